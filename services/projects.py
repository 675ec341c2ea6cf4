"""Project lifecycle: data intake, ledger reads and reward completion."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from functools import lru_cache
from threading import Lock
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from app.schemas import (
    ContributionRecord,
    ContributionStatus,
    ContributorHistory,
    Distribution,
    DistributionEntry,
    Project,
    ProjectCreate,
    ProjectStatus,
    Submission,
    SubmissionCreate,
)
from datastore.tables import (
    DistributionTable,
    ProjectTable,
    build_distribution_table,
    build_project_table,
)
from services.allocator import AllocationSummary, RewardAllocator
from settings import get_settings
from storage.submission_log import SubmissionLog, build_default_submission_log

logger = logging.getLogger(__name__)

Authorizer = Callable[[Project, Optional[str]], None]


class ProjectStateError(ValueError):
    """The project's status does not allow the requested operation."""


class ProjectCompletionError(RuntimeError):
    """Completion could not be recorded; the project keeps its prior state."""


def require_project_owner(project: Project, requester: Optional[str]) -> None:
    if not requester or requester != project.created_by:
        raise PermissionError(
            f"Address {requester!r} is not the owner of project {project.id!r}."
        )


def _clean_address(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectService:
    """Coordinates the submission ledger, project records and distributions."""

    def __init__(
        self,
        submissions: SubmissionLog,
        projects: ProjectTable,
        distributions: DistributionTable,
        allocator: RewardAllocator,
        authorize: Authorizer = require_project_owner,
    ) -> None:
        self.submissions = submissions
        self.projects = projects
        self.distributions = distributions
        self.allocator = allocator
        self.authorize = authorize
        self._completion_lock = Lock()

    def create_project(self, payload: ProjectCreate, owner: Optional[str] = None) -> Project:
        created_by = payload.created_by or _clean_address(owner)
        if not created_by:
            raise ValueError("A project owner address is required.")

        project = Project(
            id=f"project-{uuid4().hex}",
            created_by=created_by,
            created_at=_utcnow(),
            status=ProjectStatus.active,
            **payload.model_dump(exclude={"created_by"}),
        )
        self.projects.put_item(project)
        logger.info(
            "Created project",
            extra={"project_id": project.id, "contributor": created_by, "status": project.status.value},
        )
        return project

    def get_project(self, project_id: str) -> Project:
        project = self.projects.get_item(project_id)
        if project is None:
            raise KeyError(f"Project {project_id!r} not found.")
        return project

    def list_projects(
        self,
        created_by: Optional[str] = None,
        status: Optional[ProjectStatus] = None,
    ) -> list[Project]:
        projects = self.projects.scan()
        if created_by is not None:
            projects = [project for project in projects if project.created_by == created_by]
        if status is not None:
            projects = [project for project in projects if project.status == status]
        return sorted(projects, key=lambda project: project.created_at, reverse=True)

    def submit(
        self,
        project_id: str,
        payload: SubmissionCreate,
        fallback_address: Optional[str] = None,
    ) -> Submission:
        """Record a batch of measurements against an active project."""
        project = self.get_project(project_id)
        if project.status is not ProjectStatus.active:
            raise ProjectStateError(
                f"Project {project_id!r} is {project.status.value} and no longer accepts data."
            )
        if not payload.data_items:
            raise ValueError("Submission contains no data items.")

        contributor = payload.contributor_address or _clean_address(fallback_address)
        submission = Submission(
            submission_id=str(uuid4()),
            project_id=project_id,
            submitted_at=_utcnow(),
            contributor_address=contributor,
            data_items=list(payload.data_items),
        )
        self.submissions.append(submission)

        context = {
            "project_id": project_id,
            "submission_id": submission.submission_id,
            "contributor": contributor,
            "unit_count": len(submission.data_items),
        }
        if contributor is None:
            logger.warning(
                "Recorded submission without a contributor address",
                extra={**context, "reason": "unattributed"},
            )
        else:
            logger.info("Recorded submission", extra=context)
        return submission

    def list_submissions(self, project_id: str, requester: Optional[str]) -> list[Submission]:
        """Return the project's contribution ledger in submission order."""
        project = self.get_project(project_id)
        self.authorize(project, requester)
        return self.submissions.list_for_project(project_id)

    def preview_distribution(self, project_id: str, requester: Optional[str]) -> Distribution:
        """Compute what completing the project now would pay out, without saving it."""
        project = self.get_project(project_id)
        self.authorize(project, requester)
        summary = self._allocate(project)
        return self._build_distribution(project, summary, _utcnow())

    def complete_project(self, project_id: str, requester: Optional[str]) -> Distribution:
        """End a project and record how its reward pool is split.

        Completing an already completed project recomputes the split from the
        current ledger and overwrites the stored distribution.
        """
        with self._completion_lock:
            project = self.get_project(project_id)
            self.authorize(project, requester)
            if project.status is ProjectStatus.expired:
                raise ProjectStateError(f"Project {project_id!r} has expired and cannot be completed.")
            if project.status is ProjectStatus.completed:
                logger.warning(
                    "Project already completed; replacing its distribution",
                    extra={"project_id": project_id, "status": project.status.value},
                )

            completed_at = _utcnow()
            summary = self._allocate(project)
            distribution = self._build_distribution(project, summary, completed_at)
            completed = project.model_copy(
                update={"status": ProjectStatus.completed, "completed_at": completed_at}
            )

            previous = self.distributions.get_item(project_id)
            try:
                self.distributions.put_item(distribution)
            except Exception as exc:
                logger.error(
                    "Could not store distribution",
                    extra={"project_id": project_id, "reason": str(exc)},
                )
                raise ProjectCompletionError("Could not complete project.") from exc

            try:
                self.projects.put_item(completed)
            except Exception as exc:
                logger.error(
                    "Could not update project status; rolling back distribution",
                    extra={"project_id": project_id, "reason": str(exc)},
                )
                self._restore_distribution(project_id, previous)
                raise ProjectCompletionError("Could not complete project.") from exc

        logger.info(
            "Completed project",
            extra={
                "project_id": project_id,
                "outcome": distribution.outcome.value,
                "total_units": distribution.total_units,
                "status": ProjectStatus.completed.value,
            },
        )
        return distribution

    def get_distribution(self, project_id: str) -> Distribution:
        distribution = self.distributions.get_item(project_id)
        if distribution is None:
            raise KeyError(f"No distribution recorded for project {project_id!r}.")
        return distribution

    def contribution_history(self, address: str) -> ContributorHistory:
        """Summarise the projects an address contributed to and what it earned."""
        contributor = _clean_address(address)
        if contributor is None:
            raise ValueError("A contributor address is required.")

        units: Dict[str, int] = {}
        last_seen: Dict[str, datetime] = {}
        for submission in self.submissions.list_all():
            if submission.contributor_address != contributor:
                continue
            project_id = submission.project_id
            units[project_id] = units.get(project_id, 0) + len(submission.data_items)
            if project_id not in last_seen or submission.submitted_at > last_seen[project_id]:
                last_seen[project_id] = submission.submitted_at

        records: List[ContributionRecord] = []
        total_earned = Decimal(0)
        for project_id, unit_count in units.items():
            project = self.projects.get_item(project_id)
            if project is None:
                logger.warning(
                    "Skipping contributions to unknown project",
                    extra={"project_id": project_id, "contributor": contributor},
                )
                continue

            status, amount = self._contribution_status(project, contributor)
            if status is ContributionStatus.paid and amount is not None:
                total_earned += amount
            records.append(
                ContributionRecord(
                    project_id=project_id,
                    title=project.title,
                    project_status=project.status,
                    units=unit_count,
                    last_submitted_at=last_seen[project_id],
                    status=status,
                    amount=amount,
                )
            )

        records.sort(key=lambda record: record.last_submitted_at, reverse=True)
        return ContributorHistory(
            address=contributor, total_earned=total_earned, contributions=records
        )

    def _contribution_status(
        self, project: Project, contributor: str
    ) -> tuple[ContributionStatus, Optional[Decimal]]:
        if project.status is ProjectStatus.completed:
            distribution = self.distributions.get_item(project.id)
            amount = distribution.amount_for(contributor) if distribution else None
            if amount is None:
                return ContributionStatus.unpaid, None
            return ContributionStatus.paid, amount

        if project.status is ProjectStatus.active:
            summary = self._allocate(project)
            for entry in summary.entries:
                if entry.contributor_address == contributor:
                    return ContributionStatus.pending, entry.amount
            return ContributionStatus.pending, None

        return ContributionStatus.unpaid, None

    def _allocate(self, project: Project) -> AllocationSummary:
        return self.allocator.allocate(
            project.reward_total, self.submissions.list_for_project(project.id)
        )

    @staticmethod
    def _build_distribution(
        project: Project, summary: AllocationSummary, created_at: datetime
    ) -> Distribution:
        return Distribution(
            project_id=project.id,
            outcome=summary.outcome,
            reward_total=project.reward_total,
            total_units=summary.total_units,
            entries=[
                DistributionEntry(
                    contributor_address=entry.contributor_address,
                    units=entry.units,
                    amount=entry.amount,
                )
                for entry in summary.entries
            ],
            created_at=created_at,
        )

    def _restore_distribution(self, project_id: str, previous: Optional[Distribution]) -> None:
        try:
            if previous is None:
                self.distributions.delete_item(project_id)
            else:
                self.distributions.put_item(previous)
        except Exception:
            logger.exception(
                "Failed to roll back distribution",
                extra={"project_id": project_id, "reason": "rollback failed"},
            )


@lru_cache
def build_default_service() -> ProjectService:
    """Factory that wires the service with the default stores."""
    settings = get_settings()
    return ProjectService(
        submissions=build_default_submission_log(),
        projects=build_project_table(),
        distributions=build_distribution_table(),
        allocator=RewardAllocator(precision=settings.reward_precision),
    )
