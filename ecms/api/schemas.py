from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ApiMeta(BaseModel):
    request_id: str | None = None

    model_config = ConfigDict(extra="forbid")


class ApiErrorData(BaseModel):
    code: str
    message: str
    details: Any | None = None

    model_config = ConfigDict(extra="forbid")


class ApiErrorEnvelope(BaseModel):
    error: ApiErrorData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class ProfileData(BaseModel):
    user_id: int
    avatar_url: str
    blob_id: str | None
    is_default: bool
    uploaded_at: datetime | None
    updated_at: datetime

    model_config = ConfigDict(extra="forbid")


class ProfileEnvelope(BaseModel):
    data: ProfileData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class AvatarUploadData(BaseModel):
    message: str
    url: str
    blob_id: str
    profile: ProfileData

    model_config = ConfigDict(extra="forbid")


class AvatarUploadEnvelope(BaseModel):
    data: AvatarUploadData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")


class AvatarRevertRequest(BaseModel):
    user_id: int = Field(gt=0)

    model_config = ConfigDict(extra="forbid")


class AvatarRevertData(BaseModel):
    message: str
    profile: ProfileData

    model_config = ConfigDict(extra="forbid")


class AvatarRevertEnvelope(BaseModel):
    data: AvatarRevertData
    meta: ApiMeta

    model_config = ConfigDict(extra="forbid")
