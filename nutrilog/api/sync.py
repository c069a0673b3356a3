"""
Catalog sync endpoint - bearer-protected batch upsert of foods
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.api.auth import is_valid_bearer
from nutrilog.config import get_settings
from nutrilog.database import get_db
from nutrilog.services.catalog_sync import sync_rows
from nutrilog.utils.db_compat import utc_now

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/sync")
async def sync_ping():
    return {"status": "OK", "timestamp": utc_now().isoformat()}


@router.post("/sync")
async def sync_catalog(request: Request, db: AsyncSession = Depends(get_db)):
    """Body: {"rows": [...]}; each row is a loosely keyed food object."""
    if not is_valid_bearer(request.headers.get("authorization"), get_settings().SYNC_TOKEN):
        logger.warning("Rejected catalog sync: bad or missing token")
        return JSONResponse({"ok": False, "message": "Unauthorized"}, status_code=401)

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = {}
    rows = body.get("rows") if isinstance(body, dict) else None
    if not isinstance(rows, list) or not rows:
        return {"ok": True, "count": 0, "message": "no rows"}

    try:
        count = await sync_rows(db, rows)
    except Exception as e:
        logger.exception("Sync API error")
        return JSONResponse({"ok": False, "message": str(e)}, status_code=500)

    if count == 0:
        return {"ok": True, "count": 0, "message": "no valid rows"}
    return {"ok": True, "count": count}
