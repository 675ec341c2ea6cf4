from decimal import Decimal
from typing import Iterator, List

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.schemas import Distribution, Project
from datastore.tables import KeyedTable, build_distribution_table, build_project_table
from services.allocator import RewardAllocator
from services.projects import ProjectService, build_default_service
from settings import get_settings
from storage.submission_log import SubmissionLog, build_default_submission_log

OWNER = "0xowner"
OWNER_HEADERS = {"X-World-ID-Address": OWNER}


@pytest.fixture
def service(tmp_path) -> ProjectService:
    return ProjectService(
        submissions=SubmissionLog(root_path=tmp_path / "submissions"),
        projects=KeyedTable("projects", Project, "id", persistence_path=tmp_path / "projects.json"),
        distributions=KeyedTable(
            "distributions",
            Distribution,
            "project_id",
            persistence_path=tmp_path / "distributions.json",
        ),
        allocator=RewardAllocator(),
    )


@pytest.fixture
def api_client(service: ProjectService, monkeypatch) -> Iterator[TestClient]:
    def build_test_service() -> ProjectService:
        return service

    build_test_service.cache_clear = lambda: None  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)

    app = create_app()
    with TestClient(app) as client:
        yield client


def _create_project(client: TestClient, reward: str = "100") -> dict:
    response = client.post(
        "/projects",
        json={"title": "Street noise", "end_date": "2024-12-31", "reward_total": reward},
        headers=OWNER_HEADERS,
    )
    assert response.status_code == 201
    return response.json()


def _items(count: int) -> List[dict]:
    return [
        {
            "kind": "noise",
            "collected_at": "2024-05-01T10:00:00Z",
            "payload": {"average_db": 55.5, "min_db": 41, "max_db": 70, "level": "moderate"},
        }
        for _ in range(count)
    ]


def _submit(client: TestClient, project_id: str, address: str, count: int) -> dict:
    response = client.post(
        f"/projects/{project_id}/submissions",
        json={"data_items": _items(count)},
        headers={"X-World-ID-Address": address},
    )
    assert response.status_code == 201
    return response.json()


def test_health_endpoints(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    assert api_client.get("/").json()["status"] == "ok"


def test_create_project_defaults_owner_to_requester(api_client: TestClient) -> None:
    project = _create_project(api_client)

    assert project["created_by"] == OWNER
    assert project["status"] == "active"
    assert Decimal(project["reward_total"]) == Decimal("100")

    fetched = api_client.get(f"/projects/{project['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == project["id"]


def test_create_project_without_owner_is_rejected(api_client: TestClient) -> None:
    response = api_client.post(
        "/projects",
        json={"title": "Orphan", "end_date": "2024-12-31", "reward_total": "5"},
    )

    assert response.status_code == 400


def test_create_project_with_negative_reward_is_rejected(api_client: TestClient) -> None:
    response = api_client.post(
        "/projects",
        json={"title": "Bad", "end_date": "2024-12-31", "reward_total": "-1"},
        headers=OWNER_HEADERS,
    )

    assert response.status_code == 422


def test_list_projects_filters_by_status(api_client: TestClient) -> None:
    active = _create_project(api_client)
    completed = _create_project(api_client)
    api_client.post(f"/projects/{completed['id']}/complete", headers=OWNER_HEADERS)

    response = api_client.get("/projects", params={"status": "active"})

    assert response.status_code == 200
    assert [project["id"] for project in response.json()] == [active["id"]]


def test_submit_and_complete_project(api_client: TestClient) -> None:
    project = _create_project(api_client, reward="100")
    submission = _submit(api_client, project["id"], "0xa", 3)
    _submit(api_client, project["id"], "0xb", 1)

    assert submission["contributor_address"] == "0xa"
    assert len(submission["data_items"]) == 3

    response = api_client.post(f"/projects/{project['id']}/complete", headers=OWNER_HEADERS)

    assert response.status_code == 200
    distribution = response.json()
    assert distribution["outcome"] == "distributed"
    assert distribution["total_units"] == 4
    amounts = {entry["contributor_address"]: Decimal(entry["amount"]) for entry in distribution["entries"]}
    assert amounts == {"0xa": Decimal("75"), "0xb": Decimal("25")}

    stored = api_client.get(f"/projects/{project['id']}/distribution")
    assert stored.status_code == 200
    assert stored.json() == distribution

    assert api_client.get(f"/projects/{project['id']}").json()["status"] == "completed"


def test_complete_project_with_very_large_reward(api_client: TestClient) -> None:
    project = _create_project(api_client, reward="1e23")
    _submit(api_client, project["id"], "0xa", 1)
    _submit(api_client, project["id"], "0xb", 2)

    preview = api_client.get(
        f"/projects/{project['id']}/distribution/preview", headers=OWNER_HEADERS
    )
    response = api_client.post(f"/projects/{project['id']}/complete", headers=OWNER_HEADERS)

    assert preview.status_code == 200
    assert response.status_code == 200
    amounts = {entry["contributor_address"]: Decimal(entry["amount"]) for entry in response.json()["entries"]}
    assert amounts == {
        "0xa": Decimal("33333333333333333333333.333333"),
        "0xb": Decimal("66666666666666666666666.666667"),
    }
    assert api_client.get(f"/projects/{project['id']}").json()["status"] == "completed"


def test_complete_without_contributions_flags_outcome(api_client: TestClient) -> None:
    project = _create_project(api_client, reward="50")
    api_client.post(f"/projects/{project['id']}/submissions", json={"data_items": _items(2)})

    response = api_client.post(f"/projects/{project['id']}/complete", headers=OWNER_HEADERS)

    assert response.status_code == 200
    assert response.json()["outcome"] == "no_contributions"
    assert response.json()["entries"] == []


def test_complete_requires_owner(api_client: TestClient) -> None:
    project = _create_project(api_client)

    response = api_client.post(
        f"/projects/{project['id']}/complete",
        headers={"X-World-ID-Address": "0xintruder"},
    )

    assert response.status_code == 403
    assert api_client.get(f"/projects/{project['id']}").json()["status"] == "active"


def test_complete_storage_failure_returns_server_error(
    api_client: TestClient, service: ProjectService, monkeypatch
) -> None:
    project = _create_project(api_client)

    def broken_put(_item) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(service.distributions, "put_item", broken_put)

    response = api_client.post(f"/projects/{project['id']}/complete", headers=OWNER_HEADERS)

    assert response.status_code == 500
    assert response.json()["detail"] == "Could not complete project."
    assert api_client.get(f"/projects/{project['id']}").json()["status"] == "active"


def test_submit_to_completed_project_conflicts(api_client: TestClient) -> None:
    project = _create_project(api_client)
    api_client.post(f"/projects/{project['id']}/complete", headers=OWNER_HEADERS)

    response = api_client.post(
        f"/projects/{project['id']}/submissions",
        json={"data_items": _items(1)},
        headers={"X-World-ID-Address": "0xa"},
    )

    assert response.status_code == 409


def test_submit_empty_data_is_rejected(api_client: TestClient) -> None:
    project = _create_project(api_client)

    response = api_client.post(
        f"/projects/{project['id']}/submissions",
        json={"data_items": []},
        headers={"X-World-ID-Address": "0xa"},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Submission contains no data items."


def test_submit_unknown_measurement_kind_is_rejected(api_client: TestClient) -> None:
    project = _create_project(api_client)

    response = api_client.post(
        f"/projects/{project['id']}/submissions",
        json={"data_items": [{"kind": "radiation", "collected_at": "2024-05-01T10:00:00Z", "payload": {}}]},
    )

    assert response.status_code == 422


def test_submissions_listing_is_owner_only(api_client: TestClient) -> None:
    project = _create_project(api_client)
    _submit(api_client, project["id"], "0xa", 1)

    owner_view = api_client.get(f"/projects/{project['id']}/submissions", headers=OWNER_HEADERS)
    other_view = api_client.get(
        f"/projects/{project['id']}/submissions",
        headers={"X-World-ID-Address": "0xa"},
    )

    assert owner_view.status_code == 200
    assert len(owner_view.json()) == 1
    assert other_view.status_code == 403


def test_preview_distribution(api_client: TestClient) -> None:
    project = _create_project(api_client, reward="10")
    for address in ("0xa", "0xb", "0xc"):
        _submit(api_client, project["id"], address, 1)

    response = api_client.get(
        f"/projects/{project['id']}/distribution/preview", headers=OWNER_HEADERS
    )

    assert response.status_code == 200
    assert [Decimal(entry["amount"]) for entry in response.json()["entries"]] == [
        Decimal("3.333333")
    ] * 3
    assert api_client.get(f"/projects/{project['id']}/distribution").status_code == 404


def test_contribution_history(api_client: TestClient) -> None:
    project = _create_project(api_client, reward="20")
    _submit(api_client, project["id"], "0xa", 1)
    _submit(api_client, project["id"], "0xb", 3)
    api_client.post(f"/projects/{project['id']}/complete", headers=OWNER_HEADERS)

    response = api_client.get("/contributors/0xa/contributions")

    assert response.status_code == 200
    body = response.json()
    assert body["address"] == "0xa"
    assert Decimal(body["total_earned"]) == Decimal("5")
    assert body["contributions"][0]["status"] == "paid"
    assert body["contributions"][0]["units"] == 1


def test_contribution_history_accepts_address_with_slash(api_client: TestClient) -> None:
    project = _create_project(api_client, reward="10")
    _submit(api_client, project["id"], "team/a", 1)

    response = api_client.get("/contributors/team%2Fa/contributions")

    assert response.status_code == 200
    assert response.json()["address"] == "team/a"
    assert response.json()["contributions"][0]["units"] == 1


def test_missing_resources_return_not_found(api_client: TestClient) -> None:
    assert api_client.get("/projects/project-missing").status_code == 404
    assert api_client.get("/projects/project-missing/distribution").status_code == 404
    response = api_client.post("/projects/project-missing/complete", headers=OWNER_HEADERS)
    assert response.status_code == 404
    assert "project-missing" in response.json()["detail"]


def test_lifespan_clears_service_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SUBMISSION_LOG_ROOT_PATH", str(tmp_path / "submissions"))
    monkeypatch.setenv("PROJECT_TABLE_PERSISTENCE_PATH", str(tmp_path / "projects.json"))
    monkeypatch.setenv("DISTRIBUTION_TABLE_PERSISTENCE_PATH", str(tmp_path / "distributions.json"))
    caches = (
        get_settings,
        build_default_submission_log,
        build_project_table,
        build_distribution_table,
        build_default_service,
    )
    for cache in caches:
        cache.cache_clear()

    try:
        app = create_app()
        with TestClient(app):
            service_during = build_default_service()

        service_after = build_default_service()
        assert service_after is not service_during
    finally:
        for cache in caches:
            cache.cache_clear()
