from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional
from urllib.parse import quote

import httpx
import typer

from cli.config import CLIConfig

IDENTITY_HEADER = "X-World-ID-Address"


class ApiClient:
    """Minimal HTTP client for the rewards service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        headers = {IDENTITY_HEADER: config.address} if config.address else {}
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.request_timeout,
            headers=headers,
        )

    def close(self) -> None:
        self._client.close()

    def create_project(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/projects", json=payload)

    def get_project(self, project_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/projects/{project_id}", not_found=f"Project {project_id} was not found.")

    def submit_file(self, project_id: str, path: Path) -> Dict[str, Any]:
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"File {path} is not valid JSON: {exc.msg}.") from exc

        if isinstance(document, list):
            payload: Dict[str, Any] = {"data_items": document}
        elif isinstance(document, dict):
            payload = document
        else:
            raise typer.BadParameter("Submission file must hold a list of data items or an object.")
        return self._request(
            "POST",
            f"/projects/{project_id}/submissions",
            json=payload,
            not_found=f"Project {project_id} was not found.",
        )

    def complete_project(self, project_id: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/projects/{project_id}/complete",
            not_found=f"Project {project_id} was not found.",
        )

    def get_distribution(self, project_id: str) -> Dict[str, Any]:
        return self._request(
            "GET",
            f"/projects/{project_id}/distribution",
            not_found=f"No distribution recorded for project {project_id}.",
        )

    def get_history(self, address: str) -> Dict[str, Any]:
        return self._request("GET", f"/contributors/{quote(address, safe='')}/contributions")

    def list_projects(self, created_by: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"created_by": created_by} if created_by else None
        return self._request("GET", "/projects", params=params)

    def _request(
        self,
        method: str,
        url: str,
        not_found: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            if response.status_code == 404 and not_found:
                raise typer.BadParameter(not_found)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> NoReturn:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = _describe_detail(data.get("detail"))
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _describe_detail(detail: Any) -> Optional[str]:
    """Flatten FastAPI error details, which are a list of errors on 422."""
    if isinstance(detail, list):
        messages = [str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in detail]
        return "; ".join(messages) or None
    return detail
