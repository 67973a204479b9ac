from __future__ import annotations

from fastapi import Request

from ecms.api.errors import ApiException
from ecms.auth.identity import resolve_requester
from ecms.logging_context import set_requester_id
from ecms.services.media.application import AvatarService
from ecms.services.media.types import Requester


async def get_requester(request: Request) -> Requester:
    requester = resolve_requester(request)
    if requester is None:
        raise ApiException(
            status_code=401,
            code="auth_required",
            message="Authentication required.",
        )
    set_requester_id(requester.user_id)
    return requester


def get_avatar_service(request: Request) -> AvatarService:
    runtime = getattr(request.app.state, "media", None)
    if runtime is None:
        raise ApiException(
            status_code=503,
            code="service_unavailable",
            message="Media service is not running.",
        )
    return runtime.avatar_service
