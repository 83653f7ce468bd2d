"""API router initialization."""

from fastapi import APIRouter
from loguru import logger

from moment_notify.api.devices import router as devices_router
from moment_notify.api.notifications import router as notifications_router

# Create main API router
router = APIRouter()

# Mount API endpoints
router.include_router(devices_router, tags=["devices"])
router.include_router(notifications_router, tags=["notifications"])

logger.debug("API router initialized (devices, notifications routers mounted)")
