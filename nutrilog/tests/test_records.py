"""
Record store + weekly aggregator tests.
Runs against the service layer with a pinned clock (see conftest.FIXED_NOW).
"""
import logging
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select, update

from nutrilog.errors import NotFoundError, StorageError, TransientError, ValidationError
from nutrilog.models.nutrition_record import NutritionRecord, SourceType
from nutrilog.models.weekly_stats import WeeklyStats
from nutrilog.services import catalog_service, record_service, weekly_stats_service


def utc(*args, **kwargs):
    return datetime(*args, tzinfo=timezone.utc, **kwargs)


# Monday 2024-01-15 00:00 Asia/Taipei
WEEK_OF_JAN_15 = utc(2024, 1, 14, 16, 0)
WEEK_OF_JAN_08 = utc(2024, 1, 7, 16, 0)


async def week_row(db, week_start, user_id="u1"):
    result = await db.execute(
        select(WeeklyStats)
        .where(WeeklyStats.user_id == user_id, WeeklyStats.week_start_date == week_start)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def assert_week(row, calories, protein, count, days, avg):
    assert row is not None
    assert row.total_calories == pytest.approx(calories)
    assert row.total_protein == pytest.approx(protein)
    assert row.records_count == count
    assert row.actual_days == days
    assert row.avg_daily_calories == pytest.approx(avg)


# ===================== END-TO-END SCENARIOS =====================


class TestScenarios:

    async def test_create_food_record_updates_week(self, db_session, seed_foods, tm):
        record = await record_service.create_from_food(
            db_session, "u1", "f1", 200, utc(2024, 1, 15, 4, 0), tm
        )
        assert record.calories == pytest.approx(260)
        assert record.protein == pytest.approx(5.0)
        assert record.source_type == SourceType.FOOD
        assert record.food_id == "f1"
        assert record.amount == 200
        assert record.name == "Rice"
        assert record.category == "Carbohydrate"
        assert record.food.id == "f1"

        assert_week(await week_row(db_session, WEEK_OF_JAN_15), 260, 5, 1, 1, 260)

    async def test_manual_record_mixed_week(self, db_session, seed_foods, tm):
        await record_service.create_from_food(db_session, "u1", "f1", 200, utc(2024, 1, 15, 4, 0), tm)
        manual = await record_service.create_manual(
            db_session, "u1", category="Other", calories=100, protein=0,
            recorded_at=utc(2024, 1, 16, 5, 0), tm=tm,
        )
        assert manual.source_type == SourceType.MANUAL
        assert manual.food_id is None
        assert manual.amount is None
        assert manual.name == "manual"

        row = await week_row(db_session, WEEK_OF_JAN_15)
        assert_week(row, 360, 5, 2, 2, 180)
        assert row.avg_protein == pytest.approx(2.5)

    async def test_delete_updates_week(self, db_session, seed_foods, tm):
        await record_service.create_from_food(db_session, "u1", "f1", 200, utc(2024, 1, 15, 4, 0), tm)
        manual = await record_service.create_manual(
            db_session, "u1", "Other", 100, 0, recorded_at=utc(2024, 1, 16, 5, 0), tm=tm
        )
        await record_service.delete_record(db_session, "u1", manual.id, tm)

        assert_week(await week_row(db_session, WEEK_OF_JAN_15), 260, 5, 1, 1, 260)
        with pytest.raises(NotFoundError):
            await record_service.get_record(db_session, "u1", manual.id)

    async def test_catalog_edit_does_not_rewrite_history(self, db_session, seed_foods, tm):
        record = await record_service.create_from_food(
            db_session, "u1", "f1", 200, utc(2024, 1, 15, 4, 0), tm
        )
        await catalog_service.update_food(db_session, "f1", {"calories_per_100g": 999})

        reread = await record_service.get_record(db_session, "u1", record.id)
        assert reread.calories == pytest.approx(260)
        assert reread.food.calories_per_100g == 999

    async def test_week_boundary_near_midnight(self, db_session, tm):
        sunday_late = await record_service.create_manual(
            db_session, "u1", "Other", 50, 0,
            recorded_at=utc(2024, 1, 14, 15, 59, 59, 999000), tm=tm,
        )
        monday_early = await record_service.create_manual(
            db_session, "u1", "Other", 70, 0,
            recorded_at=utc(2024, 1, 14, 16, 0), tm=tm,
        )
        assert tm.get_week_start_date(sunday_late.recorded_at) == WEEK_OF_JAN_08
        assert tm.get_week_start_date(monday_early.recorded_at) == WEEK_OF_JAN_15

        assert_week(await week_row(db_session, WEEK_OF_JAN_08), 50, 0, 1, 1, 50)
        assert_week(await week_row(db_session, WEEK_OF_JAN_15), 70, 0, 1, 1, 70)


# ===================== CREATE VALIDATION =====================


class TestCreateValidation:

    async def test_unknown_food(self, db_session, tm):
        with pytest.raises(NotFoundError):
            await record_service.create_from_food(db_session, "u1", "missing", 100, tm=tm)

    async def test_negative_amount(self, db_session, seed_foods, tm):
        with pytest.raises(ValidationError):
            await record_service.create_from_food(db_session, "u1", "f1", -1, tm=tm)

    async def test_zero_amount_allowed(self, db_session, seed_foods, tm):
        record = await record_service.create_from_food(db_session, "u1", "f1", 0, tm=tm)
        assert record.calories == 0

    async def test_invalid_category(self, db_session, tm):
        with pytest.raises(ValidationError):
            await record_service.create_manual(db_session, "u1", "Snacks", 100, 0, tm=tm)

    async def test_negative_calories(self, db_session, tm):
        with pytest.raises(ValidationError):
            await record_service.create_manual(db_session, "u1", "Other", -10, 0, tm=tm)

    async def test_defaults_to_now(self, db_session, seed_foods, tm):
        record = await record_service.create_from_food(db_session, "u1", "f1", 100, tm=tm)
        assert record.recorded_at == tm.now()

    async def test_small_clock_skew_tolerated(self, db_session, tm):
        when = tm.now() + timedelta(minutes=2)
        record = await record_service.create_manual(db_session, "u1", "Other", 10, 0, recorded_at=when, tm=tm)
        assert record.recorded_at == when

    async def test_future_rejected(self, db_session, tm):
        with pytest.raises(ValidationError):
            await record_service.create_manual(
                db_session, "u1", "Other", 10, 0, recorded_at=tm.now() + timedelta(hours=1), tm=tm
            )

    async def test_naive_recorded_at_is_utc(self, db_session, tm):
        record = await record_service.create_manual(
            db_session, "u1", "Other", 10, 0, recorded_at=datetime(2024, 1, 15, 4, 0), tm=tm
        )
        assert record.recorded_at == utc(2024, 1, 15, 4, 0)


# ===================== READS =====================


class TestReads:

    async def test_by_date_uses_reference_zone(self, db_session, tm):
        await record_service.create_manual(
            db_session, "u1", "Other", 1, 0, recorded_at=utc(2024, 1, 14, 15, 59, 59, 999000), tm=tm
        )
        inside = await record_service.create_manual(
            db_session, "u1", "Other", 2, 0, recorded_at=utc(2024, 1, 14, 16, 0), tm=tm
        )
        records = await record_service.get_by_date(db_session, "u1", date(2024, 1, 15), tm)
        assert [r.id for r in records] == [inside.id]

    async def test_by_date_defaults_to_today(self, db_session, tm):
        today = await record_service.create_manual(db_session, "u1", "Other", 5, 0, tm=tm)
        records = await record_service.get_by_date(db_session, "u1", tm=tm)
        assert [r.id for r in records] == [today.id]

    async def test_by_range_inclusive_and_ordered(self, db_session, tm):
        late = await record_service.create_manual(
            db_session, "u1", "Other", 1, 0, recorded_at=utc(2024, 1, 16, 15, 0), tm=tm
        )
        early = await record_service.create_manual(
            db_session, "u1", "Other", 1, 0, recorded_at=utc(2024, 1, 14, 16, 0), tm=tm
        )
        records = await record_service.get_by_range(
            db_session, "u1", date(2024, 1, 15), date(2024, 1, 16), tm
        )
        assert [r.id for r in records] == [early.id, late.id]

    async def test_by_range_rejects_reversed(self, db_session, tm):
        with pytest.raises(ValidationError):
            await record_service.get_by_range(db_session, "u1", date(2024, 1, 16), date(2024, 1, 15), tm)

    async def test_recent_newest_first_and_limited(self, db_session, tm):
        ids = []
        for hour in range(5):
            record = await record_service.create_manual(
                db_session, "u1", "Other", 1, 0, recorded_at=utc(2024, 1, 15, hour), tm=tm
            )
            ids.append(record.id)
        records = await record_service.get_recent(db_session, "u1", limit=3)
        assert [r.id for r in records] == ids[::-1][:3]

    async def test_records_are_user_scoped(self, db_session, tm):
        record = await record_service.create_manual(db_session, "u1", "Other", 1, 0, tm=tm)
        with pytest.raises(NotFoundError):
            await record_service.get_record(db_session, "u2", record.id)
        assert await record_service.get_by_date(db_session, "u2", tm=tm) == []


# ===================== UPDATE =====================


class TestUpdate:

    async def test_update_keeps_denormalized_values(self, db_session, seed_foods, tm):
        record = await record_service.create_from_food(
            db_session, "u1", "f1", 200, utc(2024, 1, 15, 4, 0), tm
        )
        updated = await record_service.update_record(db_session, "u1", record.id, {"amount": 300}, tm)
        assert updated.amount == 300
        assert updated.calories == pytest.approx(260)

    async def test_update_calories_refreshes_week(self, db_session, tm):
        record = await record_service.create_manual(
            db_session, "u1", "Other", 100, 0, recorded_at=utc(2024, 1, 15, 4, 0), tm=tm
        )
        await record_service.update_record(db_session, "u1", record.id, {"calories": 400}, tm)
        assert_week(await week_row(db_session, WEEK_OF_JAN_15), 400, 0, 1, 1, 400)

    async def test_moving_record_refreshes_both_weeks(self, db_session, tm):
        record = await record_service.create_manual(
            db_session, "u1", "Other", 100, 0, recorded_at=utc(2024, 1, 15, 4, 0), tm=tm
        )
        await record_service.update_record(
            db_session, "u1", record.id, {"recorded_at": utc(2024, 1, 10, 4, 0)}, tm
        )
        assert_week(await week_row(db_session, WEEK_OF_JAN_15), 0, 0, 0, 0, 0)
        assert_week(await week_row(db_session, WEEK_OF_JAN_08), 100, 0, 1, 1, 100)

    @pytest.mark.parametrize("partial", [
        {"source_type": "food"},
        {"food_id": "f1"},
        {"user_id": "u2"},
        {"id": "other"},
    ])
    async def test_frozen_fields(self, db_session, tm, partial):
        record = await record_service.create_manual(db_session, "u1", "Other", 1, 0, tm=tm)
        with pytest.raises(ValidationError):
            await record_service.update_record(db_session, "u1", record.id, partial, tm)

    async def test_amount_only_for_food_records(self, db_session, tm):
        record = await record_service.create_manual(db_session, "u1", "Other", 1, 0, tm=tm)
        with pytest.raises(ValidationError):
            await record_service.update_record(db_session, "u1", record.id, {"amount": 10}, tm)

    async def test_blank_name_on_manual_falls_back(self, db_session, tm):
        record = await record_service.create_manual(db_session, "u1", "Other", 1, 0, name="Cake", tm=tm)
        updated = await record_service.update_record(db_session, "u1", record.id, {"name": " "}, tm)
        assert updated.name == "manual"

    async def test_other_users_record_not_found(self, db_session, tm):
        record = await record_service.create_manual(db_session, "u1", "Other", 1, 0, tm=tm)
        with pytest.raises(NotFoundError):
            await record_service.update_record(db_session, "u2", record.id, {"calories": 5}, tm)
        with pytest.raises(NotFoundError):
            await record_service.delete_record(db_session, "u2", record.id, tm)


# ===================== WEEKLY FOLLOWER =====================


class TestWeeklyFollower:

    async def test_follow_up_failure_does_not_fail_write(self, db_session, seed_foods, tm, caplog):
        failing = AsyncMock(side_effect=StorageError("database is locked"))
        with caplog.at_level(logging.WARNING, logger="nutrilog.services.record_service"):
            with patch.object(weekly_stats_service, "update_weekly_stats", failing):
                record = await record_service.create_from_food(
                    db_session, "u1", "f1", 200, utc(2024, 1, 15, 4, 0), tm
                )

        assert failing.await_count == 1
        assert record.calories == pytest.approx(260)
        assert record.food.id == "f1"
        assert "weekly stats follow-up failed" in caplog.text
        assert await week_row(db_session, WEEK_OF_JAN_15) is None

        # read path repairs the missing row
        stats = await weekly_stats_service.get_or_create_weekly_stats(
            db_session, "u1", utc(2024, 1, 15, 4, 0), tm
        )
        assert_week(stats, 260, 5, 1, 1, 260)

    async def test_refresh_week_wraps_failures_as_transient(self, db_session, tm):
        failing = AsyncMock(side_effect=RuntimeError("connection reset"))
        with patch.object(weekly_stats_service, "update_weekly_stats", failing):
            with pytest.raises(TransientError) as exc_info:
                await record_service._refresh_week(db_session, "u1", utc(2024, 1, 15, 4, 0), tm)

        assert exc_info.value.detail == "weekly stats follow-up failed: connection reset"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    async def test_get_or_create_for_empty_week(self, db_session, tm):
        stats = await weekly_stats_service.get_or_create_weekly_stats(db_session, "new-user", tm=tm)
        assert stats.week_start_date == WEEK_OF_JAN_15
        assert_week(stats, 0, 0, 0, 0, 0)

    async def test_recompute_is_idempotent(self, db_session, tm):
        await record_service.create_manual(
            db_session, "u1", "Other", 100, 10, recorded_at=utc(2024, 1, 15, 4, 0), tm=tm
        )
        first = await weekly_stats_service.update_weekly_stats(db_session, "u1", WEEK_OF_JAN_15, tm)
        second = await weekly_stats_service.update_weekly_stats(db_session, "u1", WEEK_OF_JAN_15, tm)
        assert first.id == second.id
        assert_week(second, 100, 10, 1, 1, 100)
        rows = await db_session.execute(select(WeeklyStats).where(WeeklyStats.user_id == "u1"))
        assert len(rows.scalars().all()) == 1

    async def test_daily_series(self, db_session, tm):
        await record_service.create_manual(
            db_session, "u1", "Other", 100, 0, recorded_at=utc(2024, 1, 15, 4, 0), tm=tm
        )
        await record_service.create_manual(
            db_session, "u1", "Other", 50, 0, recorded_at=utc(2024, 1, 15, 10, 0), tm=tm
        )
        series = await weekly_stats_service.daily_calories_for_week(db_session, "u1", tm=tm)
        assert len(series) == 7
        assert series[0] == {"date": "2024-01-15", "calories": 150}
        assert series[1] == {"date": "2024-01-16", "calories": 0.0}

    async def test_history(self, db_session, tm):
        await record_service.create_manual(
            db_session, "u1", "Other", 100, 0, recorded_at=utc(2024, 1, 3, 4, 0), tm=tm
        )
        await record_service.create_manual(
            db_session, "u1", "Other", 200, 0, recorded_at=utc(2024, 1, 15, 4, 0), tm=tm
        )
        history = await weekly_stats_service.get_weekly_stats_history(db_session, "u1", 4, tm)
        assert [h.total_calories for h in history] == [100, 200]

        assert await weekly_stats_service.get_weekly_stats_history(db_session, "u1", 0, tm) == [history[1]]

    async def test_recalculate_all_repairs_rows(self, db_session, tm):
        await record_service.create_manual(
            db_session, "u1", "Other", 100, 0, recorded_at=utc(2024, 1, 3, 4, 0), tm=tm
        )
        await record_service.create_manual(
            db_session, "u1", "Other", 200, 0, recorded_at=utc(2024, 1, 15, 4, 0), tm=tm
        )
        # stale and orphaned rows left behind by failed follow-ups
        await db_session.execute(update(WeeklyStats).values(total_calories=0))
        await weekly_stats_service._write_week(
            db_session, "u1", WEEK_OF_JAN_08,
            weekly_stats_service.aggregate_week([], tm), tm,
        )
        await db_session.commit()

        result = await weekly_stats_service.recalculate_all_weekly_stats(db_session, "u1", tm)
        assert result == {"recalculated": 2, "errors": 0}

        rows = await db_session.execute(
            select(WeeklyStats)
            .where(WeeklyStats.user_id == "u1")
            .order_by(WeeklyStats.week_start_date)
            .execution_options(populate_existing=True)
        )
        assert [r.total_calories for r in rows.scalars().all()] == [100, 200]

    async def test_recalculate_all_without_records(self, db_session, tm):
        result = await weekly_stats_service.recalculate_all_weekly_stats(db_session, "ghost", tm)
        assert result == {"recalculated": 0, "errors": 0}
        assert "ghost" not in weekly_stats_service._rebuild_locks

    async def test_rebuild_lock_released_after_rebuild(self, db_session, tm):
        await record_service.create_manual(
            db_session, "u1", "Other", 100, 0, recorded_at=utc(2024, 1, 15, 4, 0), tm=tm
        )
        await weekly_stats_service.recalculate_all_weekly_stats(db_session, "u1", tm)
        assert "u1" not in weekly_stats_service._rebuild_locks
        assert "u1" not in weekly_stats_service._rebuild_holders

    async def test_rebuild_lock_shared_while_waiting(self):
        first = weekly_stats_service._acquire_rebuild_lock("busy")
        second = weekly_stats_service._acquire_rebuild_lock("busy")
        assert first is second

        weekly_stats_service._release_rebuild_lock("busy")
        assert weekly_stats_service._rebuild_locks["busy"] is first

        weekly_stats_service._release_rebuild_lock("busy")
        assert "busy" not in weekly_stats_service._rebuild_locks
        assert "busy" not in weekly_stats_service._rebuild_holders

    async def test_aggregate_divides_by_actual_days(self, tm):
        records = [
            NutritionRecord(calories=300, protein=20, recorded_at=utc(2024, 1, 15, 1)),
            NutritionRecord(calories=100, protein=10, recorded_at=utc(2024, 1, 15, 5)),
            NutritionRecord(calories=200, protein=0, recorded_at=utc(2024, 1, 18, 5)),
        ]
        stats = weekly_stats_service.aggregate_week(records, tm)
        assert stats["actual_days"] == 2
        assert stats["avg_daily_calories"] == 300
        assert stats["avg_protein"] == 15
