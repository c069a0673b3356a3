"""Create the nutrilog tables (idempotent; existing tables are left alone)"""
import asyncio

from nutrilog.database import create_tables, engine


async def init():
    tables = await create_tables()
    await engine.dispose()
    print(f"Database ready: {', '.join(tables)}")


if __name__ == "__main__":
    asyncio.run(init())
