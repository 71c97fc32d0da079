from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from email_validator import EmailNotValidError, validate_email
import httpx

from newsdesk.core.config import get_settings
from newsdesk.core.errors import InvalidRecipientError, TransientDeliveryError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriberEmail:
    value: str

    @classmethod
    def parse(cls, raw: str) -> SubscriberEmail:
        # Syntax only; deliverability is the provider's problem.
        try:
            validate_email(raw, check_deliverability=False)
        except EmailNotValidError as exc:
            raise InvalidRecipientError(f"{raw!r} is not a valid subscriber email: {exc}") from exc
        return cls(raw)

    def __str__(self) -> str:
        return self.value


class EmailClient:
    """Thin client for a Postmark-style transactional email API."""

    def __init__(
        self,
        *,
        base_url: str,
        sender: SubscriberEmail,
        server_token: str,
        timeout_ms: int,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.sender = sender
        self._server_token = server_token
        self._client = httpx.AsyncClient(
            timeout=max(0.1, timeout_ms / 1000.0),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, *, transport: httpx.AsyncBaseTransport | None = None) -> EmailClient:
        settings = get_settings()
        return cls(
            base_url=settings.email_base_url,
            sender=SubscriberEmail.parse(settings.email_sender),
            server_token=settings.email_server_token,
            timeout_ms=settings.email_timeout_ms,
            transport=transport,
        )

    async def send_email(
        self,
        recipient: SubscriberEmail,
        subject: str,
        html_body: str,
        text_body: str,
    ) -> None:
        payload: dict[str, Any] = {
            "From": self.sender.value,
            "To": recipient.value,
            "Subject": subject,
            "HtmlBody": html_body,
            "TextBody": text_body,
        }
        try:
            response = await self._client.post(
                f"{self.base_url}/email",
                json=payload,
                headers={"X-Server-Token": self._server_token},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransientDeliveryError(
                f"Email provider rejected delivery ({exc.response.status_code})"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransientDeliveryError(f"Email provider request failed: {exc!r}") from exc
        logger.debug(
            "email accepted by provider",
            extra={"recipient": recipient.value, "status_code": response.status_code},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
