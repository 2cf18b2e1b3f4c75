from __future__ import annotations

import uuid

from fastapi import HTTPException, Request
from starlette.responses import Response

DEVICE_ID_COOKIE = "deviceId"
DEVICE_ID_HEADER = "X-Device-ID"
DEVICE_ID_QUERY = "deviceId"
COOKIE_MAX_AGE = 365 * 24 * 60 * 60

_MAX_DEVICE_ID_LENGTH = 128


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value or len(value) > _MAX_DEVICE_ID_LENGTH:
        return None
    return value


def resolve_device_id(request: Request) -> tuple[str | None, str | None]:
    """Return ``(device_id, source)``; source is query, cookie, header or generated."""
    for source, value in (
        ("query", request.query_params.get(DEVICE_ID_QUERY)),
        ("cookie", request.cookies.get(DEVICE_ID_COOKIE)),
        ("header", request.headers.get(DEVICE_ID_HEADER)),
    ):
        device_id = _clean(value)
        if device_id:
            return device_id, source

    generated = getattr(request.state, "generated_device_id", None)
    if generated:
        return generated, "generated"
    return None, None


def require_device_id(request: Request) -> str:
    """Raise 400 unless the client sent a device id explicitly."""
    device_id, source = resolve_device_id(request)
    if not device_id or source == "generated":
        raise HTTPException(status_code=400, detail="Device ID is required")
    return device_id


def cookie_device_id(request: Request) -> str:
    """Device id for the cookie: existing cookie, then header, else a fresh UUID."""
    existing = _clean(request.cookies.get(DEVICE_ID_COOKIE)) or _clean(
        request.headers.get(DEVICE_ID_HEADER)
    )
    if existing:
        return existing
    generated = str(uuid.uuid4())
    request.state.generated_device_id = generated
    return generated


def set_device_cookie(response: Response, device_id: str, secure: bool = False) -> None:
    response.set_cookie(
        DEVICE_ID_COOKIE,
        device_id,
        max_age=COOKIE_MAX_AGE,
        httponly=False,
        samesite="strict",
        secure=secure,
    )
