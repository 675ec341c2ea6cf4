from __future__ import annotations
import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from pydantic import ValidationError

from app.schemas import Submission
from settings import get_settings

logger = logging.getLogger(__name__)


class SubmissionLog:
    """Append-only submission store partitioned by project id.

    With a ``root_path`` every project gets a ``<project_id>.jsonl`` file and
    each submission is appended as one JSON line, so insertion order survives
    a restart.
    """

    def __init__(self, root_path: Optional[Path] = None) -> None:
        self._entries: Dict[str, List[Submission]] = {}
        self.root_path = root_path
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)
            self._load_existing()

    def append(self, submission: Submission) -> None:
        with self._lock:
            if self.root_path:
                path = self._path_for(submission.project_id)
                with path.open("a", encoding="utf-8") as handle:
                    handle.write(submission.model_dump_json())
                    handle.write("\n")
            self._entries.setdefault(submission.project_id, []).append(submission)

    def list_for_project(self, project_id: str) -> list[Submission]:
        with self._lock:
            return list(self._entries.get(project_id, ()))

    def list_all(self) -> list[Submission]:
        with self._lock:
            return [item for items in self._entries.values() for item in items]

    def _path_for(self, project_id: str) -> Path:
        assert self.root_path is not None
        if not project_id or Path(project_id).name != project_id:
            raise ValueError(f"Invalid project id {project_id!r}.")
        return self.root_path / f"{project_id}.jsonl"

    def _load_existing(self) -> None:
        assert self.root_path is not None
        for path in sorted(self.root_path.glob("*.jsonl")):
            project_id = path.stem
            try:
                lines = path.read_text(encoding="utf-8").splitlines()
            except OSError:
                continue
            for line_number, line in enumerate(lines, start=1):
                if not line.strip():
                    continue
                try:
                    submission = Submission.model_validate(json.loads(line))
                except (json.JSONDecodeError, ValidationError):
                    logger.warning(
                        "Skipping unreadable submission line %d",
                        line_number,
                        extra={"project_id": project_id, "reason": "corrupt entry"},
                    )
                    continue
                self._entries.setdefault(submission.project_id, []).append(submission)


@lru_cache
def build_default_submission_log(root_path: Optional[str] = None) -> SubmissionLog:
    settings = get_settings()
    log_root = settings.submission_root_path if root_path is None else root_path
    path = Path(log_root) if log_root else None
    return SubmissionLog(root_path=path)
