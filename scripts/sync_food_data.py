"""
Seed or refresh the food catalog from a CSV file.

Usage:
    python scripts/sync_food_data.py [path/to/food_data.csv]

Defaults to CATALOG_CSV_PATH. Safe to re-run: rows are upserted by id.
"""
import asyncio
import sys

from nutrilog.database import engine, AsyncSessionLocal, create_tables
from nutrilog.services.catalog_sync import sync_csv_file
from nutrilog.utils.logger import get_logger

logger = get_logger("nutrilog")


async def main(path=None):
    await create_tables()

    async with AsyncSessionLocal() as session:
        summary = await sync_csv_file(session, path)

    await engine.dispose()

    print("\nCatalog sync complete")
    print(f"  Created: {summary['created']}")
    print(f"  Updated: {summary['updated']}")
    print(f"  Skipped: {summary['skipped']}")
    print(f"  Total:   {summary['total']}")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
