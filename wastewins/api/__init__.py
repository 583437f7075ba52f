from __future__ import annotations

from fastapi import APIRouter

from .health import router as health_router
from .sites import router as sites_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(sites_router)
