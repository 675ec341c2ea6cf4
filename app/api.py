"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from app.schemas import (
    ContributorHistory,
    Distribution,
    Project,
    ProjectCreate,
    ProjectStatus,
    Submission,
    SubmissionCreate,
)
from services.projects import (
    ProjectCompletionError,
    ProjectService,
    ProjectStateError,
    build_default_service,
)

router = APIRouter()

IDENTITY_HEADER = "X-World-ID-Address"


def get_service() -> ProjectService:
    return build_default_service()


def get_requester(
    address: Optional[str] = Header(
        default=None,
        alias=IDENTITY_HEADER,
        description="Verified wallet address of the caller.",
    ),
) -> Optional[str]:
    if address is None:
        return None
    return address.strip() or None


def _not_found(exc: KeyError) -> HTTPException:
    # KeyError wraps its message in quotes when converted with str().
    detail = exc.args[0] if exc.args else "Not found."
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(detail))


def _forbidden(exc: PermissionError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))


@router.post(
    "/projects",
    status_code=status.HTTP_201_CREATED,
    response_model=Project,
    summary="Open a new data-collection project.",
)
async def create_project(
    payload: ProjectCreate,
    requester: Optional[str] = Depends(get_requester),
    service: ProjectService = Depends(get_service),
) -> Project:
    try:
        return service.create_project(payload, owner=requester)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get(
    "/projects",
    response_model=List[Project],
    summary="List projects, newest first.",
)
async def list_projects(
    created_by: Optional[str] = None,
    project_status: Optional[ProjectStatus] = Query(default=None, alias="status"),
    service: ProjectService = Depends(get_service),
) -> List[Project]:
    return service.list_projects(created_by=created_by, status=project_status)


@router.get(
    "/projects/{project_id}",
    response_model=Project,
    summary="Fetch a single project.",
)
async def get_project(
    project_id: str,
    service: ProjectService = Depends(get_service),
) -> Project:
    try:
        return service.get_project(project_id)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.post(
    "/projects/{project_id}/submissions",
    status_code=status.HTTP_201_CREATED,
    response_model=Submission,
    summary="Submit collected measurements to a project.",
)
async def submit_data(
    project_id: str,
    payload: SubmissionCreate,
    requester: Optional[str] = Depends(get_requester),
    service: ProjectService = Depends(get_service),
) -> Submission:
    try:
        return service.submit(project_id, payload, fallback_address=requester)
    except KeyError as exc:
        raise _not_found(exc) from exc
    except ProjectStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get(
    "/projects/{project_id}/submissions",
    response_model=List[Submission],
    summary="List a project's submissions (owner only).",
)
async def list_submissions(
    project_id: str,
    requester: Optional[str] = Depends(get_requester),
    service: ProjectService = Depends(get_service),
) -> List[Submission]:
    try:
        return service.list_submissions(project_id, requester)
    except KeyError as exc:
        raise _not_found(exc) from exc
    except PermissionError as exc:
        raise _forbidden(exc) from exc


@router.get(
    "/projects/{project_id}/distribution/preview",
    response_model=Distribution,
    summary="Preview how the reward pool would be split right now (owner only).",
)
async def preview_distribution(
    project_id: str,
    requester: Optional[str] = Depends(get_requester),
    service: ProjectService = Depends(get_service),
) -> Distribution:
    try:
        return service.preview_distribution(project_id, requester)
    except KeyError as exc:
        raise _not_found(exc) from exc
    except PermissionError as exc:
        raise _forbidden(exc) from exc


@router.post(
    "/projects/{project_id}/complete",
    response_model=Distribution,
    summary="End a project and distribute its rewards (owner only).",
)
async def complete_project(
    project_id: str,
    requester: Optional[str] = Depends(get_requester),
    service: ProjectService = Depends(get_service),
) -> Distribution:
    try:
        return service.complete_project(project_id, requester)
    except KeyError as exc:
        raise _not_found(exc) from exc
    except PermissionError as exc:
        raise _forbidden(exc) from exc
    except ProjectStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ProjectCompletionError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc


@router.get(
    "/projects/{project_id}/distribution",
    response_model=Distribution,
    summary="Fetch the recorded reward distribution for a completed project.",
)
async def get_distribution(
    project_id: str,
    service: ProjectService = Depends(get_service),
) -> Distribution:
    try:
        return service.get_distribution(project_id)
    except KeyError as exc:
        raise _not_found(exc) from exc


@router.get(
    "/contributors/{address:path}/contributions",
    response_model=ContributorHistory,
    summary="Projects a contributor submitted data to, with payout status.",
)
async def contribution_history(
    address: str,
    service: ProjectService = Depends(get_service),
) -> ContributorHistory:
    try:
        return service.contribution_history(address)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
