from __future__ import annotations

from fastapi import APIRouter

from ecms.api.routers import profile

router = APIRouter(prefix="/api/v1")
router.include_router(profile.router)
