"""
Catalog sync - batch upsert of foods keyed by id.

Two sources feed the same upsert:
  * the seed CSV (header + rows of id,name,category,calories,protein,carbs,fat)
  * JSON rows POSTed to /sync, with loosely named keys normalized by map_sync_row

Re-running either with the same input converges to the same catalog.
Each run is one transaction; nothing is visible until it commits.
"""
import csv
import io
import logging
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nutrilog.config import get_settings
from nutrilog.errors import StorageError, ValidationError
from nutrilog.models.food import Food
from nutrilog.utils.db_compat import upsert, utc_now
from nutrilog.utils.helpers import first_present, to_bool, to_float, to_str
from nutrilog.utils.validators import coerce_category

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["id", "name", "category", "calories", "protein", "carbs", "fat"]
PLACEHOLDER_ID = "000000"

# Accepted spellings per canonical field (english, camel/snake case, localized)
ID_KEYS = ("id", "ID", "Id", "食品編號", "代碼")
NAME_KEYS = ("name", "名稱", "食品名稱", "Food Name")
CATEGORY_KEYS = ("category", "分類")
BRAND_KEYS = ("brand", "品牌")
SERVING_UNIT_KEYS = ("serving_unit", "servingUnit", "單位")
SERVING_SIZE_KEYS = ("serving_size", "servingSize", "每份克數")
PUBLISHED_KEYS = ("is_published", "isPublished", "發布", "published")
CALORIE_KEYS = ("calories", "caloriesPer100g", "calories_per_100g", "熱量")
PROTEIN_KEYS = ("protein", "proteinPer100g", "protein_per_100g", "蛋白質")
CARB_KEYS = ("carbs", "carbsPer100g", "carbs_per_100g", "碳水化合物")
FAT_KEYS = ("fat", "fatPer100g", "fat_per_100g", "脂肪")


# ──────────────────────────────────────────────────────
#  Row parsing
# ──────────────────────────────────────────────────────

def parse_csv_row(cells: list[str]) -> Optional[dict]:
    """One CSV data row -> canonical food dict, or None when it must be skipped."""
    if len(cells) != len(CSV_COLUMNS):
        logger.warning(f"Skip row with {len(cells)} columns: {','.join(cells)}")
        return None

    food_id, name, category, calories, protein, carbs, fat = [c.strip() for c in cells]
    if not food_id or food_id == PLACEHOLDER_ID or not name or not category:
        return None

    numbers = [to_float(v) for v in (calories, protein, carbs, fat)]
    if any(n is None or n < 0 for n in numbers):
        logger.debug(f"Skip row {food_id}: unparseable nutrients")
        return None

    return {
        "id": food_id,
        "name": name,
        "category": coerce_category(category),
        "calories_per_100g": numbers[0],
        "protein_per_100g": numbers[1],
        "carbs_per_100g": numbers[2],
        "fat_per_100g": numbers[3],
        "is_published": True,
    }


def parse_catalog_csv(text: str) -> tuple[list[dict], int]:
    """Parse CSV text (header line first). Returns (rows, skipped count)."""
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return [], 0

    rows: list[dict] = []
    skipped = 0
    reader = csv.reader(io.StringIO("\n".join(lines[1:])))
    for cells in reader:
        food = parse_csv_row(cells)
        if food is None:
            skipped += 1
        else:
            rows.append(food)
    return rows, skipped


def map_sync_row(raw: dict) -> Optional[dict]:
    """Normalize one loosely keyed JSON row; id and name are mandatory."""
    if not isinstance(raw, dict):
        return None
    food_id = to_str(first_present(raw, *ID_KEYS))
    name = to_str(first_present(raw, *NAME_KEYS))
    if not food_id or not name:
        return None

    def nutrient(keys, default):
        value = to_float(first_present(raw, *keys))
        if value is None or value < 0:
            return default
        return value

    serving_size = to_float(first_present(raw, *SERVING_SIZE_KEYS))
    return {
        "id": food_id,
        "name": name,
        "category": coerce_category(first_present(raw, *CATEGORY_KEYS)),
        "brand": to_str(first_present(raw, *BRAND_KEYS)),
        "serving_unit": to_str(first_present(raw, *SERVING_UNIT_KEYS)),
        "serving_size": serving_size if serving_size is None or serving_size >= 0 else None,
        "calories_per_100g": nutrient(CALORIE_KEYS, 0.0),
        "protein_per_100g": nutrient(PROTEIN_KEYS, 0.0),
        "carbs_per_100g": nutrient(CARB_KEYS, None),
        "fat_per_100g": nutrient(FAT_KEYS, None),
        "is_published": to_bool(first_present(raw, *PUBLISHED_KEYS), default=False),
    }


# ──────────────────────────────────────────────────────
#  Upsert
# ──────────────────────────────────────────────────────

def _batches(rows: list[dict], size: int) -> Iterable[list[dict]]:
    for i in range(0, len(rows), size):
        yield rows[i:i + size]


async def upsert_foods(db: AsyncSession, rows: list[dict], batch_size: int = 50) -> dict:
    """
    Upsert canonical rows by id without committing.
    Columns present in a row replace the stored ones; others are left alone.
    """
    created = 0
    updated = 0
    seen: set[str] = set()
    total_batches = (len(rows) + batch_size - 1) // batch_size

    for number, batch in enumerate(_batches(rows, batch_size), start=1):
        logger.debug(f"Processing batch {number}/{total_batches}")
        ids = [row["id"] for row in batch]
        result = await db.execute(select(Food.id).where(Food.id.in_(ids)))
        existing = set(result.scalars().all())

        for row in batch:
            now = utc_now()
            values = {**row, "created_at": now, "updated_at": now}
            update_columns = [k for k in values if k not in ("id", "created_at")]
            await upsert(db, Food, values, index_elements=["id"], update_columns=update_columns)

            if row["id"] in existing or row["id"] in seen:
                updated += 1
            else:
                created += 1
            seen.add(row["id"])

    return {"created": created, "updated": updated}


async def sync_rows(db: AsyncSession, raw_rows: list) -> int:
    """Apply POSTed rows in one transaction; returns the number applied."""
    mapped = [m for m in (map_sync_row(r) for r in raw_rows) if m is not None]
    if not mapped:
        return 0

    try:
        counts = await upsert_foods(db, mapped, batch_size=get_settings().SYNC_BATCH_SIZE)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Catalog sync (HTTP) failed")
        raise StorageError(str(e)) from e

    logger.info(
        f"Catalog sync applied {len(mapped)} rows "
        f"({counts['created']} created, {counts['updated']} updated, "
        f"{len(raw_rows) - len(mapped)} dropped)"
    )
    return len(mapped)


async def sync_csv_file(
    db: AsyncSession,
    path: Optional[str] = None,
    batch_size: Optional[int] = None,
) -> dict:
    """Seed the catalog from a CSV file. Returns created/updated/skipped/total."""
    settings = get_settings()
    csv_path = Path(path or settings.CATALOG_CSV_PATH)
    batch_size = batch_size or settings.SYNC_BATCH_SIZE
    if not csv_path.is_file():
        raise ValidationError(f"CSV file not found: {csv_path}")

    text = csv_path.read_text(encoding="utf-8-sig")
    rows, skipped = parse_catalog_csv(text)
    logger.info(f"Parsed {len(rows)} valid food rows from {csv_path} ({skipped} skipped)")

    try:
        counts = await upsert_foods(db, rows, batch_size=batch_size)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Catalog sync from {csv_path} failed")
        raise StorageError(str(e)) from e

    summary = {**counts, "skipped": skipped, "total": len(rows)}
    logger.info(
        f"Catalog sync completed: {summary['created']} created, "
        f"{summary['updated']} updated, {summary['skipped']} skipped"
    )
    return summary
