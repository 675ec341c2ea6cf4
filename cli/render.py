from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_OUTCOME_MESSAGES = {
    "no_contributions": "No contributions to reward.",
    "zero_reward": "Project had no reward to distribute.",
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_project(payload: Dict[str, Any]) -> None:
    echo_heading("Project")
    echo_key_values(
        [
            ("id", payload.get("id")),
            ("title", payload.get("title")),
            ("status", payload.get("status")),
            ("created_by", payload.get("created_by")),
            ("end_date", payload.get("end_date")),
            ("reward_total", payload.get("reward_total")),
        ]
    )


def render_project_list(projects: List[Dict[str, Any]]) -> None:
    echo_heading("Projects")
    if not projects:
        typer.echo("No projects found.")
        return
    for project in projects:
        typer.echo(
            f"  - {project.get('id')}: {project.get('title')} "
            f"[{project.get('status')}] reward={project.get('reward_total')}"
        )


def render_submission(payload: Dict[str, Any]) -> None:
    items = payload.get("data_items") or []
    kinds = ", ".join(str(item.get("kind")) for item in items) or "none"
    echo_heading("Submission")
    echo_key_values(
        [
            ("submission_id", payload.get("submission_id")),
            ("project_id", payload.get("project_id")),
            ("contributor_address", payload.get("contributor_address") or "unattributed"),
            ("data_items", f"{len(items)} ({kinds})"),
        ]
    )


def render_distribution(payload: Dict[str, Any]) -> None:
    echo_heading("Reward Distribution")
    echo_key_values(
        [
            ("project_id", payload.get("project_id")),
            ("outcome", payload.get("outcome")),
            ("reward_total", payload.get("reward_total")),
            ("total_units", payload.get("total_units")),
        ]
    )

    entries = payload.get("entries") or []
    typer.echo()
    if entries:
        for entry in entries:
            typer.echo(
                f"  - {entry.get('contributor_address')}: {entry.get('amount')} "
                f"({entry.get('units')} units)"
            )
    else:
        typer.echo(_OUTCOME_MESSAGES.get(payload.get("outcome"), "No entries recorded."))


def render_history(payload: Dict[str, Any]) -> None:
    echo_heading("Contribution History")
    echo_key_values(
        [
            ("address", payload.get("address")),
            ("total_earned", payload.get("total_earned")),
        ]
    )

    contributions = payload.get("contributions") or []
    typer.echo()
    if not contributions:
        typer.echo("No contributions found.")
        return
    for record in contributions:
        amount = record.get("amount")
        amount_text = f" amount={amount}" if amount is not None else ""
        typer.echo(
            f"  - {record.get('title')} ({record.get('project_id')}): "
            f"{record.get('units')} units, {record.get('status')}{amount_text}"
        )
