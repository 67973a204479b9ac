from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ecms.api.deps import get_avatar_service, get_requester
from ecms.api.errors import media_error_to_api_exception
from ecms.api.responses import success_payload
from ecms.api.schemas import (
    AvatarRevertEnvelope,
    AvatarRevertRequest,
    AvatarUploadEnvelope,
    ProfileEnvelope,
)
from ecms.db.session import get_db_session
from ecms.logging_utils import structured_log
from ecms.services.media.application import AvatarService
from ecms.services.media.exceptions import MediaServiceError
from ecms.services.media.types import Requester
from ecms.services.media.validation import PRIVILEGED_LIMITS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profile", tags=["api-profile"])

# One byte past the largest tier is enough for validation to report too_large.
MAX_UPLOAD_READ_BYTES = PRIVILEGED_LIMITS.max_bytes + 1


async def _read_uploaded_image(image: UploadFile) -> bytes:
    try:
        return await image.read(MAX_UPLOAD_READ_BYTES)
    finally:
        await image.close()


@router.get(
    "",
    response_model=ProfileEnvelope,
)
async def get_profile(
    request: Request,
    user_id: int = Query(gt=0),
    db_session: AsyncSession = Depends(get_db_session),
    requester: Requester = Depends(get_requester),
    service: AvatarService = Depends(get_avatar_service),
):
    try:
        record = await service.get_profile(db_session, requester=requester, user_id=user_id)
    except MediaServiceError as exc:
        raise media_error_to_api_exception(exc) from exc
    return success_payload(request, data=service.project(record))


@router.post(
    "/avatar",
    response_model=AvatarUploadEnvelope,
)
async def upload_avatar(
    request: Request,
    user_id: int = Form(gt=0),
    image: UploadFile = File(...),
    db_session: AsyncSession = Depends(get_db_session),
    requester: Requester = Depends(get_requester),
    service: AvatarService = Depends(get_avatar_service),
):
    image_bytes = await _read_uploaded_image(image)
    try:
        result = await service.upload_avatar(
            db_session,
            requester=requester,
            user_id=user_id,
            data=image_bytes,
            content_type=image.content_type,
            filename=image.filename,
        )
    except MediaServiceError as exc:
        structured_log(
            logger, "info", "api.profile.avatar_upload_rejected",
            user_id=user_id,
            error=type(exc).__name__,
            content_type=image.content_type,
            size_bytes=len(image_bytes),
        )
        raise media_error_to_api_exception(exc) from exc

    return success_payload(
        request,
        data={
            "message": "Profile image updated.",
            "url": result.url,
            "blob_id": result.blob_id,
            "profile": service.project(result.profile),
        },
    )


@router.delete(
    "/avatar",
    response_model=AvatarRevertEnvelope,
)
async def revert_avatar(
    payload: AvatarRevertRequest,
    request: Request,
    db_session: AsyncSession = Depends(get_db_session),
    requester: Requester = Depends(get_requester),
    service: AvatarService = Depends(get_avatar_service),
):
    try:
        record = await service.revert_avatar(
            db_session,
            requester=requester,
            user_id=payload.user_id,
        )
    except MediaServiceError as exc:
        raise media_error_to_api_exception(exc) from exc

    return success_payload(
        request,
        data={
            "message": "Profile image reset to default.",
            "profile": service.project(record),
        },
    )
