from __future__ import annotations

import json
from uuid import uuid4

import pytest
from starlette.responses import Response

from newsdesk.services import newsletters as newsletters_service
from newsdesk.services.idempotency import ReturnSaved, SavedResponse, StartProcessing


class _FakeSession:
    def __init__(self) -> None:
        self.rolled_back = False

    async def rollback(self) -> None:
        self.rolled_back = True


def _publish_kwargs() -> dict:
    return {
        "user_id": "publisher-1",
        "idempotency_key": "key-1",
        "title": "Weekly digest",
        "text_content": "plain body",
        "html_content": "<p>html body</p>",
    }


@pytest.mark.asyncio
async def test_saved_response_is_returned_without_publishing(monkeypatch) -> None:
    saved = SavedResponse(status_code=200, headers=(("content-length", b"2"),), body=b"{}")

    async def _try_process(_session, **_kwargs):  # noqa: ANN001, ANN003
        return ReturnSaved(response=saved)

    async def _publish(*_args, **_kwargs):  # noqa: ANN002, ANN003
        raise AssertionError("a replayed key must not publish again")

    monkeypatch.setattr(newsletters_service, "try_process", _try_process)
    monkeypatch.setattr(newsletters_service, "publish_newsletter", _publish)

    response = await newsletters_service.publish_issue(_FakeSession(), **_publish_kwargs())

    assert response.status_code == 200
    assert response.body == b"{}"
    assert response.raw_headers == [(b"content-length", b"2")]


@pytest.mark.asyncio
async def test_fresh_key_publishes_in_the_claiming_transaction(monkeypatch) -> None:
    session = _FakeSession()
    issue_id = uuid4()
    seen: dict[str, object] = {}

    async def _try_process(claiming_session, **_kwargs):  # noqa: ANN001, ANN003
        return StartProcessing(session=claiming_session)

    async def _publish(tx, **_kwargs):  # noqa: ANN001, ANN003
        seen["publish_session"] = tx
        return issue_id, 3

    async def _save_response(tx, *, user_id, key, response: Response) -> Response:  # noqa: ANN001
        seen["save_session"] = tx
        seen["key"] = key.value
        return response

    monkeypatch.setattr(newsletters_service, "try_process", _try_process)
    monkeypatch.setattr(newsletters_service, "publish_newsletter", _publish)
    monkeypatch.setattr(newsletters_service, "save_response", _save_response)

    response = await newsletters_service.publish_issue(session, request_id="req-1", **_publish_kwargs())

    assert seen == {"publish_session": session, "save_session": session, "key": "key-1"}
    assert json.loads(response.body)["data"] == {
        "issue_id": str(issue_id),
        "status": "accepted",
        "recipients": 3,
    }
    assert response.headers["X-Request-Id"] == "req-1"
    assert session.rolled_back is False
