"""Contribution-weighted reward allocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Dict, Iterable, List, Optional

from app.schemas import Submission
from models.records import DistributionOutcome, ShareEntry


@dataclass
class AllocationSummary:
    """Computed shares for one reward pool."""

    outcome: DistributionOutcome
    total_units: int = 0
    units_by_address: Dict[str, int] = field(default_factory=dict)
    entries: List[ShareEntry] = field(default_factory=list)


def resolve_contributor(
    submission: Submission, fallback_address: Optional[str] = None
) -> Optional[str]:
    """Return the address credited for ``submission``, if any."""
    return submission.contributor_address or fallback_address or None


class RewardAllocator:
    """Pure allocation component that can be unit tested in isolation.

    Every captured measurement in a submission counts as one unit of
    contribution. Shares are rounded per contributor and the rounding drift
    is not redistributed, so the total paid out can differ from the pool by
    up to half a unit of the last digit per contributor.
    """

    def __init__(self, precision: int = 6) -> None:
        if precision < 0:
            raise ValueError("precision must be non-negative")
        self.precision = precision
        self._quantum = Decimal(1).scaleb(-precision)

    def count_units(
        self,
        submissions: Iterable[Submission],
        fallback_address: Optional[str] = None,
    ) -> Dict[str, int]:
        units: Dict[str, int] = {}
        for submission in submissions:
            address = resolve_contributor(submission, fallback_address)
            if address is None:
                continue
            count = len(submission.data_items or ())
            # An address with only empty submissions earns no entry at all.
            if count == 0:
                continue
            units[address] = units.get(address, 0) + count
        return units

    def allocate(
        self,
        reward_total: Decimal,
        submissions: Iterable[Submission],
        fallback_address: Optional[str] = None,
    ) -> AllocationSummary:
        reward = Decimal(reward_total)
        if not reward.is_finite() or reward < 0:
            raise ValueError("reward_total must be a non-negative amount")

        units = self.count_units(submissions, fallback_address)
        total_units = sum(units.values())

        if total_units == 0:
            return AllocationSummary(outcome=DistributionOutcome.no_contributions)
        if reward == 0:
            return AllocationSummary(
                outcome=DistributionOutcome.zero_reward,
                total_units=total_units,
                units_by_address=units,
            )

        entries = [
            ShareEntry(
                contributor_address=address,
                units=count,
                amount=self._share(reward, count, total_units),
            )
            for address, count in units.items()
        ]
        return AllocationSummary(
            outcome=DistributionOutcome.distributed,
            total_units=total_units,
            units_by_address=units,
            entries=entries,
        )

    def _share(self, reward: Decimal, units: int, total_units: int) -> Decimal:
        # quantize needs room for every integer digit plus the kept places.
        digits = max(reward.adjusted(), 0) + len(str(units)) + self.precision + 2
        with localcontext() as ctx:
            ctx.prec = max(ctx.prec, digits)
            raw = reward * Decimal(units) / Decimal(total_units)
            return raw.quantize(self._quantum, rounding=ROUND_HALF_UP)
