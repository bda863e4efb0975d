"""Resolve bearer tokens to ledger user ids through the Supabase Auth endpoint."""

from __future__ import annotations

import json
import logging
from uuid import UUID
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from shared import config


logger = logging.getLogger(__name__)


class UnauthorizedError(Exception):
    """Raised when a bearer token cannot be validated."""


AUTH_USER_ID_FIELD = "id"
_AUTH_TIMEOUT_SECONDS = 10


def _is_uuid_like(value: str) -> bool:
    try:
        UUID(value)
    except (ValueError, TypeError):
        return False
    return True


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token part of an ``Authorization: Bearer <token>`` header."""

    if not authorization:
        raise UnauthorizedError("Missing Authorization header")
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise UnauthorizedError("Invalid Authorization header")
    token = authorization[len(prefix) :].strip()
    if not token:
        raise UnauthorizedError("Missing bearer token")
    return token


def get_user_from_bearer_token(token: str) -> dict[str, object]:
    """Return the Supabase auth user payload for a bearer token."""

    supabase_url = (config.supabase_url() or "").rstrip("/")
    anon_key = config.supabase_anon_key()
    if not supabase_url or not anon_key:
        raise UnauthorizedError("Supabase auth is not configured")

    request = Request(
        url=f"{supabase_url}/auth/v1/user",
        headers={
            "apikey": anon_key,
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        },
        method="GET",
    )

    try:
        with urlopen(request, timeout=_AUTH_TIMEOUT_SECONDS) as response:  # noqa: S310 - trusted Supabase URL from env
            if response.status != 200:
                raise UnauthorizedError("Unauthorized")
            payload = json.loads(response.read().decode("utf-8"))
    except (HTTPError, URLError) as exc:
        logger.warning("auth_token_rejected reason=%s", type(exc).__name__)
        raise UnauthorizedError("Unauthorized") from exc

    if not isinstance(payload, dict):
        raise UnauthorizedError("Unauthorized")
    return payload


def resolve_user_id(authorization: str | None) -> str:
    """Validate the ``Authorization`` header and return the caller's user id."""

    payload = get_user_from_bearer_token(extract_bearer_token(authorization))
    user_id = payload.get(AUTH_USER_ID_FIELD)
    if not isinstance(user_id, str) or not _is_uuid_like(user_id):
        raise UnauthorizedError("Unauthorized")
    return user_id
