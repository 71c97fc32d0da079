from __future__ import annotations

import base64
from dataclasses import dataclass
import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from newsdesk.core.config import get_settings
from newsdesk.core.errors import IdempotencyInFlightError, IdempotencyKeyError
from newsdesk.domain.models import IdempotencyRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdempotencyKey:
    value: str

    @classmethod
    def parse(cls, raw: str | None, *, max_length: int | None = None) -> IdempotencyKey:
        # Pure shape check; never touches the database.
        limit = max_length if max_length is not None else get_settings().idempotency_key_max_length
        if not raw:
            raise IdempotencyKeyError("Idempotency key cannot be empty")
        if len(raw) > limit:
            raise IdempotencyKeyError(f"The length of idempotency key cannot exceed {limit}")
        return cls(raw)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SavedResponse:
    """Status, ordered raw header pairs and body bytes of a completed request.

    Header names are kept exactly as emitted (Starlette lowercases them) and
    repeated names are preserved in order, so a replay is byte-identical to
    the first response.
    """

    status_code: int
    headers: tuple[tuple[str, bytes], ...]
    body: bytes

    @classmethod
    def from_response(cls, response: Response) -> SavedResponse:
        headers = tuple((name.decode("latin-1"), bytes(value)) for name, value in response.raw_headers)
        return cls(status_code=int(response.status_code), headers=headers, body=bytes(response.body))

    def to_response(self) -> Response:
        response = Response(content=self.body, status_code=self.status_code)
        # Replace the computed headers wholesale; the saved list already has content-length.
        response.raw_headers = [(name.encode("latin-1"), value) for name, value in self.headers]
        return response

    def headers_json(self) -> list[dict[str, str]]:
        return [
            {"name": name, "value": base64.b64encode(value).decode("ascii")}
            for name, value in self.headers
        ]

    @staticmethod
    def headers_from_json(raw: list[dict[str, Any]] | None) -> tuple[tuple[str, bytes], ...]:
        pairs: list[tuple[str, bytes]] = []
        for item in raw or []:
            pairs.append((str(item["name"]), base64.b64decode(item["value"])))
        return tuple(pairs)


@dataclass(frozen=True)
class StartProcessing:
    # Holds the open transaction that inserted the in-flight record.
    session: AsyncSession


@dataclass(frozen=True)
class ReturnSaved:
    response: SavedResponse


NextAction = StartProcessing | ReturnSaved


async def try_process(session: AsyncSession, *, user_id: str, key: IdempotencyKey) -> NextAction:
    # Claim the key with an insert that no-ops on conflict; a concurrent holder blocks us until it resolves.
    result = await session.execute(
        pg_insert(IdempotencyRecord)
        .values(user_id=user_id, idempotency_key=key.value, created_at=func.now())
        .on_conflict_do_nothing()
    )
    if (result.rowcount or 0) > 0:
        return StartProcessing(session=session)
    await session.rollback()
    saved = await get_saved_response(session, user_id=user_id, key=key)
    if saved is None:
        logger.warning(
            "idempotency key has no saved response",
            extra={"user_id": user_id, "idempotency_key": key.value},
        )
        raise IdempotencyInFlightError(
            "We expected a saved response, we didn't find it"
        )
    return ReturnSaved(response=saved)


async def get_saved_response(
    session: AsyncSession,
    *,
    user_id: str,
    key: IdempotencyKey,
) -> SavedResponse | None:
    row = (
        await session.execute(
            select(IdempotencyRecord).where(
                IdempotencyRecord.user_id == user_id,
                IdempotencyRecord.idempotency_key == key.value,
            )
        )
    ).scalar_one_or_none()
    if row is None or row.response_status_code is None:
        return None
    return SavedResponse(
        status_code=int(row.response_status_code),
        headers=SavedResponse.headers_from_json(row.response_headers),
        body=bytes(row.response_body or b""),
    )


async def save_response(
    session: AsyncSession,
    *,
    user_id: str,
    key: IdempotencyKey,
    response: Response,
) -> Response:
    """Persist the response on the in-flight record and commit the unit of work.

    The returned response is rebuilt from the stored bytes so in-process
    callers see exactly what a later replay will return.
    """
    saved = SavedResponse.from_response(response)
    await session.execute(
        update(IdempotencyRecord)
        .where(
            IdempotencyRecord.user_id == user_id,
            IdempotencyRecord.idempotency_key == key.value,
        )
        .values(
            response_status_code=saved.status_code,
            response_headers=saved.headers_json(),
            response_body=saved.body,
        )
    )
    await session.commit()
    return saved.to_response()
