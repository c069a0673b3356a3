"""
Rebuild every weekly stats row of one user from their nutrition records.

Usage:
    python scripts/recalculate_weekly_stats.py <userId>
"""
import asyncio
import sys

from nutrilog.database import engine, AsyncSessionLocal
from nutrilog.services.weekly_stats_service import recalculate_all_weekly_stats
from nutrilog.utils.logger import get_logger

logger = get_logger("nutrilog")


async def main(user_id: str) -> int:
    async with AsyncSessionLocal() as session:
        result = await recalculate_all_weekly_stats(session, user_id)
    await engine.dispose()

    print(f"Recalculated {result['recalculated']} weeks for {user_id} ({result['errors']} errors)")
    return 1 if result["errors"] else 0


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python scripts/recalculate_weekly_stats.py <userId>")
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1])))
