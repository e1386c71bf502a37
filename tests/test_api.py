"""API integration tests."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker

from conftest import FakeEmbedder, ParagraphChunker, seed_library
from docmcp.api.app import create_app
from docmcp.api.service import assemble_services
from docmcp.config import Settings, get_settings
from docmcp.models.library import SourceType
from docmcp.security.api_keys import ApiKeyService
from docmcp.security.rate_limit import KeyRateLimiter
from docmcp.storage import create_engine_for_url, init_database

VERSION = "lib-1-v1.0"


@contextmanager
def running_app(docs_dir: Path, settings: Settings | None = None):
    """Start the app on a fresh database with one LOCAL library."""
    engine = create_engine_for_url(get_settings().database_url)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    services = assemble_services(
        session_factory,
        FakeEmbedder(),
        chunker=ParagraphChunker(),
        settings=settings,
        rate_limiter=KeyRateLimiter("async+memory://"),
    )
    app = create_app(services=services, start_scheduler=False)

    with TestClient(app) as client:
        client.portal.call(init_database, engine)
        client.portal.call(
            seed_library, session_factory, "lib-1", "widgets", SourceType.LOCAL, str(docs_dir)
        )
        client.services = services
        yield client
        client.portal.call(engine.dispose)


def new_key(client: TestClient, name: str = "tests", rate_limit: int | None = None) -> str:
    service = ApiKeyService(client.services.session_factory)
    generated = client.portal.call(service.generate_key, name, None, None, rate_limit)
    return generated.raw_key


@pytest.fixture
def docs_dir(tmp_path: Path) -> Path:
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "index.md").write_text("# Widgets\n\nInstall widgets with pip.\n\nConfigure the cache.")
    (docs / "deploy.md").write_text("# Deploying\n\nDeploy to production with:\n\n```bash\nmake deploy\n```")
    (docs / "release.md").write_text("# Release notes\n\nVersion one shipped.")
    return docs


@pytest.fixture
def client(docs_dir: Path) -> TestClient:
    with running_app(docs_dir) as test_client:
        yield test_client


@pytest.fixture
def auth(client: TestClient) -> dict[str, str]:
    return {"Authorization": f"Bearer {new_key(client)}"}


def test_health_needs_no_key(client: TestClient) -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["components"] == {"database": "ok", "scheduler": "stopped"}


def test_metrics_exposed(client: TestClient) -> None:
    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert "docmcp_search_requests" in resp.text


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer not-a-key"},
        {"Authorization": "Basic dXNlcjpwYXNz"},
        {"X-API-Key": "dmcp_abcdefghijklmnopqrstuvwxyz123456"},
    ],
)
def test_rejected_credentials_get_generic_401(client: TestClient, headers) -> None:
    resp = client.post("/api/search", json={"query": "install"}, headers=headers)

    assert resp.status_code == 401
    assert resp.json() == {"detail": "Invalid API key"}
    assert resp.headers["WWW-Authenticate"] == "Bearer"


def test_x_api_key_header_accepted(client: TestClient) -> None:
    resp = client.post(
        "/api/search", json={"query": "install", "version_id": VERSION}, headers={"X-API-Key": new_key(client)}
    )

    assert resp.status_code == 200


def test_sync_then_search(client: TestClient, auth) -> None:
    sync_resp = client.post(f"/api/versions/{VERSION}/sync", headers=auth)
    assert sync_resp.status_code == 200
    sync_body = sync_resp.json()
    assert sync_body["skipped"] is False
    assert sync_body["history"]["status"] == "SUCCESS"
    assert sync_body["history"]["documents_processed"] == 3

    search_resp = client.post(
        "/api/search",
        json={"query": "install", "library_id": "widgets", "alpha": 0.5, "min_similarity": 0.1},
        headers=auth,
    )
    assert search_resp.status_code == 200
    body = search_resp.json()
    assert body["version_id"] == VERSION
    assert body["total_results"] == len(body["results"]) > 0
    kinds = {r["kind"] for r in body["results"]}
    assert kinds == {"document", "chunk"}
    assert all(r["path"] == "index.md" for r in body["results"])


def test_sync_history_listed_newest_first(client: TestClient, auth) -> None:
    client.post(f"/api/versions/{VERSION}/sync", headers=auth)
    client.post(f"/api/versions/{VERSION}/sync", headers=auth)

    resp = client.get(f"/api/versions/{VERSION}/sync-history", params={"limit": 5}, headers=auth)

    assert resp.status_code == 200
    items = resp.json()["items"]
    assert len(items) == 2
    assert items[0]["started_at"] >= items[1]["started_at"]
    assert items[0]["documents_processed"] == 0


def test_unknown_version_is_404(client: TestClient, auth) -> None:
    assert client.get("/api/versions/missing/sync-history", headers=auth).status_code == 404
    assert client.post("/api/versions/missing/sync", headers=auth).status_code == 404
    resp = client.post("/api/search", json={"query": "install", "version_id": "missing"}, headers=auth)
    assert resp.status_code == 404


@pytest.mark.parametrize(
    "payload",
    [
        {"query": ""},
        {"query": "install", "limit": 0},
        {"query": "install", "alpha": 2},
        {"query": "install", "filter": {"eq": ["colour", "red"]}},
        {"query": "install", "filter": {"between": ["chunkIndex", [0, 1]]}},
    ],
)
def test_invalid_search_requests_are_422(client: TestClient, auth, payload) -> None:
    resp = client.post("/api/search", json={"version_id": VERSION, **payload}, headers=auth)

    assert resp.status_code == 422


def test_rate_limit_returns_429(client: TestClient) -> None:
    headers = {"Authorization": f"Bearer {new_key(client, 'limited', rate_limit=2)}"}
    payload = {"query": "install", "version_id": VERSION}

    assert client.post("/api/search", json=payload, headers=headers).status_code == 200
    assert client.post("/api/search", json=payload, headers=headers).status_code == 200
    resp = client.post("/api/search", json=payload, headers=headers)

    assert resp.status_code == 429
    assert int(resp.headers["Retry-After"]) > 0


def test_revoked_key_rejected(client: TestClient) -> None:
    service = ApiKeyService(client.services.session_factory)
    generated = client.portal.call(service.generate_key, "short-lived")
    headers = {"X-API-Key": generated.raw_key}
    payload = {"query": "install", "version_id": VERSION}
    assert client.post("/api/search", json=payload, headers=headers).status_code == 200

    client.portal.call(service.revoke_key, generated.api_key.id)

    assert client.post("/api/search", json=payload, headers=headers).status_code == 401


def test_auth_can_be_disabled(docs_dir: Path) -> None:
    with running_app(docs_dir, Settings(api_key_auth_enabled=False, search_min_similarity=0.0)) as client:
        resp = client.post("/api/search", json={"query": "install", "version_id": VERSION})

    assert resp.status_code == 200


def test_search_modes(client: TestClient, auth) -> None:
    client.post(f"/api/versions/{VERSION}/sync", headers=auth)

    def search(mode):
        resp = client.post(
            "/api/search", json={"query": "install", "version_id": VERSION, "mode": mode}, headers=auth
        )
        assert resp.status_code == 200
        return resp.json()

    fulltext = search("fulltext")
    assert fulltext["mode"] == "fulltext"
    assert [r["kind"] for r in fulltext["results"]] == ["document"]

    semantic = search("semantic")
    assert semantic["results"]
    assert {r["kind"] for r in semantic["results"]} == {"chunk"}

    resp = client.post(
        "/api/search", json={"query": "install", "version_id": VERSION, "mode": "fuzzy"}, headers=auth
    )
    assert resp.status_code == 422


def test_default_search_returns_document_hits(client: TestClient, auth) -> None:
    client.post(f"/api/versions/{VERSION}/sync", headers=auth)

    resp = client.post("/api/search", json={"query": "install", "version_id": VERSION}, headers=auth)

    body = resp.json()
    assert body["mode"] == "hybrid"
    assert "document" in {r["kind"] for r in body["results"]}


def test_list_libraries_by_category(client: TestClient, auth) -> None:
    client.portal.call(
        seed_library,
        client.services.session_factory,
        "lib-2",
        "gadgets",
        SourceType.MANUAL,
        None,
        ("3.0",),
        "hardware",
    )

    everything = client.get("/api/libraries", headers=auth).json()["items"]
    hardware = client.get("/api/libraries", params={"category": "hardware"}, headers=auth).json()["items"]

    assert [lib["name"] for lib in everything] == ["gadgets", "widgets"]
    assert [lib["name"] for lib in hardware] == ["gadgets"]
    assert hardware[0]["category"] == "hardware"


def test_list_library_versions(client: TestClient, auth) -> None:
    resp = client.get("/api/libraries/widgets/versions", headers=auth)

    assert resp.status_code == 200
    body = resp.json()
    assert body["library_id"] == "lib-1"
    assert [(v["id"], v["version"], v["is_latest"]) for v in body["items"]] == [(VERSION, "1.0", True)]
    assert client.get("/api/libraries/gadgets/versions", headers=auth).status_code == 404


def test_list_and_get_documents(client: TestClient, auth) -> None:
    client.post(f"/api/versions/{VERSION}/sync", headers=auth)

    listing = client.get("/api/libraries/widgets/documents", headers=auth)
    assert listing.status_code == 200
    body = listing.json()
    assert body["version_id"] == VERSION
    assert [d["path"] for d in body["items"]] == ["deploy.md", "index.md", "release.md"]

    resp = client.get("/api/libraries/lib-1/documents/deploy.md", params={"version": "1.0"}, headers=auth)
    assert resp.status_code == 200
    document = resp.json()
    assert document["title"] == "Deploying"
    assert document["content"].startswith("# Deploying")
    assert [(e["language"], e["code"], e["description"]) for e in document["code_examples"]] == [
        ("bash", "make deploy", "Deploy to production with:")
    ]


def test_document_reads_are_404_for_unknown_targets(client: TestClient, auth) -> None:
    client.post(f"/api/versions/{VERSION}/sync", headers=auth)

    assert client.get("/api/libraries/widgets/documents/missing.md", headers=auth).status_code == 404
    assert (
        client.get("/api/libraries/widgets/documents", params={"version": "9.9"}, headers=auth).status_code
        == 404
    )
    assert client.get("/api/libraries/gadgets/documents", headers=auth).status_code == 404


def test_library_routes_need_a_key(client: TestClient) -> None:
    assert client.get("/api/libraries").status_code == 401
