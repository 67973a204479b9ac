from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ecms.api.deps import get_avatar_service, get_requester
from ecms.api.errors import ApiException
from ecms.services.media.application import AvatarService
from ecms.services.media.constants import AVATAR_CACHE_CONTROL, AVATAR_MEDIA_PATH_PREFIX
from ecms.services.media.exceptions import AvatarStorageError, BlobNotFoundError
from ecms.services.media.types import Requester

router = APIRouter(tags=["media"])


@router.get(f"{AVATAR_MEDIA_PATH_PREFIX}/{{blob_id}}")
async def get_avatar_image(
    blob_id: str,
    requester: Requester = Depends(get_requester),
    service: AvatarService = Depends(get_avatar_service),
):
    try:
        content = await service.open_avatar(blob_id)
    except BlobNotFoundError as exc:
        raise ApiException(
            status_code=404,
            code="avatar_not_found",
            message="Avatar not found.",
        ) from exc
    except AvatarStorageError as exc:
        raise ApiException(
            status_code=503,
            code="avatar_unavailable",
            message=str(exc),
        ) from exc

    return StreamingResponse(
        content.chunks,
        media_type=content.content_type,
        headers={
            "Cache-Control": AVATAR_CACHE_CONTROL,
            "Content-Length": str(content.size_bytes),
        },
    )
