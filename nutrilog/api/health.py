"""
Health endpoint - reports runtime and presence (never values) of required env vars
"""
import os
import platform

from fastapi import APIRouter

from nutrilog.config import get_settings

router = APIRouter()

REQUIRED_ENV = ["DATABASE_URL", "SYNC_TOKEN", "REFERENCE_TIMEZONE"]


@router.get("/health")
async def health_check():
    settings = get_settings()
    return {
        "ok": True,
        "node": f"python {platform.python_version()}",
        "tz": settings.REFERENCE_TIMEZONE,
        "envPresence": {key: bool(os.environ.get(key)) for key in REQUIRED_ENV},
    }
