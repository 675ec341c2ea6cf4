from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    render_distribution,
    render_history,
    render_project,
    render_project_list,
    render_submission,
)


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for running crowdsourced data projects and their rewards.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _require_address(state: CLIState) -> str:
    if not state.config.address:
        typer.secho(
            "This command needs an identity; pass --address or set CLI_CONTRIBUTOR_ADDRESS.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)
    return state.config.address


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Rewards API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    address: Optional[str] = typer.Option(
        None,
        "--address",
        "-a",
        help="Verified wallet address to act as (defaults to CLI_CONTRIBUTOR_ADDRESS env).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each API request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        address=address,
        request_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("create")
def create_command(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="Project title."),
    reward: str = typer.Option(..., "--reward", "-r", help="Total reward pool, e.g. 100 or 12.5."),
    end_date: datetime = typer.Option(
        ..., "--end-date", formats=["%Y-%m-%d"], help="Last day of data collection."
    ),
    description: str = typer.Option("", "--description", "-d"),
    noise: bool = typer.Option(True, "--noise/--no-noise", help="Collect background noise."),
    wifi: bool = typer.Option(False, "--wifi/--no-wifi", help="Collect WiFi speed."),
    light: bool = typer.Option(False, "--light/--no-light", help="Collect light intensity."),
) -> None:
    """Open a new data-collection project owned by --address."""
    state = _get_state(ctx)
    owner = _require_address(state)
    payload = {
        "title": title,
        "description": description,
        "end_date": end_date.date().isoformat(),
        "reward_total": reward,
        "created_by": owner,
        "data_to_collect": {
            "background_noise": noise,
            "wifi_speed": wifi,
            "light_intensity": light,
        },
    }
    project = state.client.create_project(payload)
    typer.secho(f"Project created. id={project.get('id')}", fg=typer.colors.GREEN)
    render_project(project)


@app.command("list")
def list_command(
    ctx: typer.Context,
    mine: bool = typer.Option(False, "--mine", help="Only show projects owned by --address."),
) -> None:
    """List projects, newest first."""
    state = _get_state(ctx)
    created_by = _require_address(state) if mine else None
    render_project_list(state.client.list_projects(created_by=created_by))


@app.command("show")
def show_command(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project identifier."),
) -> None:
    """Show a project's details."""
    state = _get_state(ctx)
    render_project(state.client.get_project(project_id))


@app.command("submit")
def submit_command(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project identifier."),
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON file with collected data items."
    ),
) -> None:
    """Submit collected measurements to a project."""
    state = _get_state(ctx)
    typer.echo(f"Submitting {file} to project {project_id} ...")
    submission = state.client.submit_file(project_id, file)
    typer.secho("Submission accepted.", fg=typer.colors.GREEN)
    render_submission(submission)


@app.command("complete")
def complete_command(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project identifier."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """End a project and distribute its rewards. This cannot be undone."""
    state = _get_state(ctx)
    _require_address(state)
    if not yes:
        typer.confirm(
            f"End project {project_id}? This action cannot be undone.",
            abort=True,
        )
    distribution = state.client.complete_project(project_id)
    typer.secho("Project completed.", fg=typer.colors.GREEN)
    render_distribution(distribution)


@app.command("distribution")
def distribution_command(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project identifier."),
) -> None:
    """Show the recorded reward distribution of a completed project."""
    state = _get_state(ctx)
    render_distribution(state.client.get_distribution(project_id))


@app.command("history")
def history_command(
    ctx: typer.Context,
    address: Optional[str] = typer.Argument(
        None, help="Contributor address (defaults to --address)."
    ),
) -> None:
    """Show the projects an address contributed to and what it earned."""
    state = _get_state(ctx)
    target = address or _require_address(state)
    render_history(state.client.get_history(target))
