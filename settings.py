from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_SUBMISSION_ROOT_ENV = "SUBMISSION_LOG_ROOT_PATH"
_PROJECT_TABLE_NAME_ENV = "PROJECT_TABLE_NAME"
_PROJECT_TABLE_PATH_ENV = "PROJECT_TABLE_PERSISTENCE_PATH"
_DISTRIBUTION_TABLE_NAME_ENV = "DISTRIBUTION_TABLE_NAME"
_DISTRIBUTION_TABLE_PATH_ENV = "DISTRIBUTION_TABLE_PERSISTENCE_PATH"
_REWARD_PRECISION_ENV = "REWARD_PRECISION"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    submission_root_path: Optional[str]
    project_table_name: str
    project_table_path: Optional[str]
    distribution_table_name: str
    distribution_table_path: Optional[str]
    reward_precision: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_precision(default: int) -> int:
    value = os.getenv(_REWARD_PRECISION_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        submission_root_path=_read_optional_env(_SUBMISSION_ROOT_ENV, "./tmp/submissions"),
        project_table_name=_read_str_env(_PROJECT_TABLE_NAME_ENV, "projects"),
        project_table_path=_read_optional_env(_PROJECT_TABLE_PATH_ENV, "./tmp/projects.json"),
        distribution_table_name=_read_str_env(_DISTRIBUTION_TABLE_NAME_ENV, "distributions"),
        distribution_table_path=_read_optional_env(
            _DISTRIBUTION_TABLE_PATH_ENV, "./tmp/distributions.json"
        ),
        reward_precision=_read_precision(6),
        log_level=_read_log_level("INFO"),
    )
