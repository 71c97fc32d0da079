from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from newsdesk.apps.api.main import create_app
from newsdesk.core.config import get_settings


def _apply_env(monkeypatch, **overrides: str) -> None:
    # Disable API key auth so these checks never touch the database.
    monkeypatch.setenv("AUTH_ENABLED", "false")
    for key, value in overrides.items():
        monkeypatch.setenv(key, str(value))
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _reset_settings() -> None:
    yield
    get_settings.cache_clear()


def _body(**overrides) -> dict:  # noqa: ANN003
    body = {
        "title": "Newsletter title",
        "content": {"text": "Newsletter body as plain text", "html": "<p>Newsletter body as HTML</p>"},
        "idempotency_key": "key-1",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_health_is_enveloped() -> None:
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/v1/health", headers={"X-Request-Id": "req-health"})
    assert response.status_code == 200
    assert response.json() == {"data": {"status": "ok"}, "meta": {"request_id": "req-health", "api_version": "v1"}}
    assert response.headers["X-Request-Id"] == "req-health"


@pytest.mark.asyncio
async def test_publish_rejects_invalid_bodies(monkeypatch) -> None:
    _apply_env(monkeypatch)
    app = create_app()
    headers = {"X-User-Id": "publisher-1"}
    invalid = [
        ({"title": "Newsletter title", "idempotency_key": "k"}, "missing content"),
        ({"content": {"text": "t", "html": "h"}, "idempotency_key": "k"}, "missing title"),
        (_body(title="   "), "blank title"),
        (_body(content={"text": "t"}), "missing html"),
    ]
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        for body, flaw in invalid:
            response = await client.post("/v1/admin/newsletters", json=body, headers=headers)
            assert response.status_code == 422, flaw
            assert response.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["", "k" * 51])
async def test_publish_rejects_bad_idempotency_keys(monkeypatch, key: str) -> None:
    _apply_env(monkeypatch)
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/v1/admin/newsletters",
            json=_body(idempotency_key=key),
            headers={"X-User-Id": "publisher-1"},
        )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "IDEMPOTENCY_KEY_INVALID"


@pytest.mark.asyncio
async def test_publish_requires_caller_identity(monkeypatch) -> None:
    _apply_env(monkeypatch)
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post("/v1/admin/newsletters", json=_body())
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"
