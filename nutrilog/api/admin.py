"""
Admin endpoints - weekly stats repair
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.api.auth import require_sync_token
from nutrilog.database import get_db
from nutrilog.services import weekly_stats_service
from nutrilog.utils.time_manager import TimeManager, get_time_manager

router = APIRouter(dependencies=[Depends(require_sync_token)])
logger = logging.getLogger(__name__)


@router.post("/users/{user_id}/weekly-stats/recalculate")
async def recalculate_weekly_stats(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    tm: TimeManager = Depends(get_time_manager),
):
    """Rebuild every weekly row of a user from their records."""
    result = await weekly_stats_service.recalculate_all_weekly_stats(db, user_id, tm)
    logger.info(f"Admin weekly rebuild for {user_id}: {result}")
    return {
        "success": True,
        "message": (
            f"Recalculated {result['recalculated']} weeks "
            f"with {result['errors']} errors"
        ),
        "data": result,
    }
