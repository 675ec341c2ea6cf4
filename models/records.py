"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class DistributionOutcome(str, Enum):
    """How a reward pool ended up being split.

    ``no_contributions`` and ``zero_reward`` both carry no entries; they are
    kept apart so callers can tell "nobody contributed" from "there was
    nothing to give".
    """

    distributed = "distributed"
    no_contributions = "no_contributions"
    zero_reward = "zero_reward"


@dataclass(slots=True)
class ShareEntry:
    """One contributor's slice of a reward pool."""

    contributor_address: str
    units: int
    amount: Decimal
