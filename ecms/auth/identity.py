"""Resolve who is calling.

Login and token issuance live in the wider ECMS; this module only reads
the identity they leave behind: an HS256 bearer token, or the signed
session cookie written by the login flow.
"""

from __future__ import annotations

import logging
from typing import Any

import jwt
from starlette.requests import Request

from ecms.auth.session import (
    SESSION_USER_ID_KEY,
    clear_session_requester,
    get_session_requester,
)
from ecms.logging_utils import structured_log
from ecms.services.media.constants import DEFAULT_REQUESTER_ROLE
from ecms.services.media.types import Requester
from ecms.settings import settings

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "
USER_ID_CLAIMS = ("sub", "userId")


class InvalidTokenError(Exception):
    pass


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization") or ""
    if not header.lower().startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    return token or None


def requester_from_claims(claims: dict[str, Any]) -> Requester:
    raw_user_id = next((claims[key] for key in USER_ID_CLAIMS if claims.get(key) is not None), None)
    if raw_user_id is None:
        raise InvalidTokenError("Token has no user id claim.")
    try:
        user_id = int(raw_user_id)
    except (TypeError, ValueError) as exc:
        raise InvalidTokenError("Token user id is not numeric.") from exc

    role = claims.get("role")
    if not isinstance(role, str) or not role.strip():
        role = DEFAULT_REQUESTER_ROLE
    return Requester(user_id=user_id, role=role.strip())


def decode_bearer_token(
    token: str,
    *,
    secret: str | None = None,
    algorithm: str | None = None,
) -> Requester:
    try:
        claims = jwt.decode(
            token,
            secret or settings.auth_jwt_secret,
            algorithms=[algorithm or settings.auth_jwt_algorithm],
        )
    except jwt.PyJWTError as exc:
        raise InvalidTokenError(str(exc)) from exc
    return requester_from_claims(claims)


def resolve_requester(request: Request) -> Requester | None:
    token = _bearer_token(request)
    if token is not None:
        try:
            return decode_bearer_token(token)
        except InvalidTokenError as exc:
            structured_log(logger, "info", "auth.bearer_token_rejected", reason=str(exc))
            return None

    requester = get_session_requester(request)
    if (
        requester is None
        and "session" in request.scope
        and request.session.get(SESSION_USER_ID_KEY) is not None
    ):
        structured_log(logger, "info", "auth.session_invalidated")
        clear_session_requester(request)
    return requester
