from __future__ import annotations

import json

import httpx
import pytest

from newsdesk.core.errors import InvalidRecipientError, TransientDeliveryError
from newsdesk.services.email_client import EmailClient, SubscriberEmail


def _client(handler) -> EmailClient:  # noqa: ANN001
    return EmailClient(
        base_url="http://email.test/",
        sender=SubscriberEmail.parse("newsletter@example.com"),
        server_token="server-token",
        timeout_ms=1000,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.parametrize("raw", ["noisy_drop.gmail.com", "@gmail.com", ""])
def test_subscriber_email_rejects_malformed_addresses(raw: str) -> None:
    with pytest.raises(InvalidRecipientError):
        SubscriberEmail.parse(raw)


@pytest.mark.asyncio
async def test_send_email_posts_provider_payload() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"MessageID": "m-1"})

    client = _client(handler)
    await client.send_email(SubscriberEmail.parse("reader@example.com"), "Subject", "<p>html</p>", "text")
    await client.aclose()

    assert len(captured) == 1
    request = captured[0]
    assert request.method == "POST"
    assert request.url.path == "/email"
    assert request.headers["X-Server-Token"] == "server-token"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {
        "From": "newsletter@example.com",
        "To": "reader@example.com",
        "Subject": "Subject",
        "HtmlBody": "<p>html</p>",
        "TextBody": "text",
    }


@pytest.mark.asyncio
async def test_send_email_fails_on_server_error() -> None:
    client = _client(lambda request: httpx.Response(500))
    with pytest.raises(TransientDeliveryError, match="500"):
        await client.send_email(SubscriberEmail.parse("reader@example.com"), "s", "h", "t")
    await client.aclose()


@pytest.mark.asyncio
async def test_send_email_fails_on_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("provider too slow", request=request)

    client = _client(handler)
    with pytest.raises(TransientDeliveryError):
        await client.send_email(SubscriberEmail.parse("reader@example.com"), "s", "h", "t")
    await client.aclose()
