from __future__ import annotations

from starlette.requests import Request

from ecms.services.media.constants import DEFAULT_REQUESTER_ROLE
from ecms.services.media.types import Requester

SESSION_USER_ID_KEY = "auth_user_id"
SESSION_USER_ROLE_KEY = "auth_user_role"


def get_session_requester(request: Request) -> Requester | None:
    if "session" not in request.scope:
        return None
    user_id = request.session.get(SESSION_USER_ID_KEY)
    if user_id is None:
        return None
    try:
        parsed_user_id = int(user_id)
    except (TypeError, ValueError):
        return None
    role = request.session.get(SESSION_USER_ROLE_KEY)
    if not isinstance(role, str) or not role.strip():
        role = DEFAULT_REQUESTER_ROLE
    return Requester(user_id=parsed_user_id, role=role)


def set_session_requester(request: Request, *, user_id: int, role: str) -> None:
    request.session[SESSION_USER_ID_KEY] = int(user_id)
    request.session[SESSION_USER_ROLE_KEY] = role


def clear_session_requester(request: Request) -> None:
    request.session.pop(SESSION_USER_ID_KEY, None)
    request.session.pop(SESSION_USER_ROLE_KEY, None)
