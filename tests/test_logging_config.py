from __future__ import annotations

import logging

from logging_config import ContextualFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.projects",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Completed project",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_context_keys() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    line = formatter.format(_record(project_id="project-1", outcome="distributed", total_units=4))

    assert line == "Completed project | project_id=project-1 total_units=4 outcome=distributed"


def test_formatter_quotes_values_with_spaces_and_skips_unknown_keys() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    line = formatter.format(_record(reason="disk full", contributor=None, unrelated="x"))

    assert line == "Completed project | reason='disk full'"


def test_formatter_without_context_leaves_message_untouched() -> None:
    formatter = ContextualFormatter(fmt="%(levelname)s %(message)s", extra_keys=["project_id"])

    assert formatter.format(_record(outcome="distributed")) == "INFO Completed project"
