"""Tests for the trash retention sweeper.

Covers: retention cutoff, per-task failure isolation, image cleanup,
the Redis run lock and cron scheduling.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from modules.trash_sweeper.worker import (
    LOCK_KEY,
    next_run_at,
    purge_expired_tasks,
    retention_cutoff,
    run_sweep_once,
)
from tests.conftest import FIXED_NOW, make_execute_side_effect, scalar_result, scalars_result


class TestRetentionCutoff:
    def test_thirty_days(self):
        assert retention_cutoff(FIXED_NOW, 30) == FIXED_NOW - timedelta(days=30)


class TestPurgeExpiredTasks:
    @pytest.mark.asyncio
    async def test_purges_only_past_retention(self, mock_session_factory, mock_db_session, blob_store, make_task):
        old = make_task(title="old", deleted_at=FIXED_NOW - timedelta(days=31), image_path="tasks/old.png")
        recent = make_task(title="recent", deleted_at=FIXED_NOW - timedelta(days=10))
        mock_db_session.execute = AsyncMock(
            side_effect=make_execute_side_effect(
                scalars_result([old, recent]),
                scalar_result(old),
                # the locked re-fetch filters on the cutoff, so "recent" does not come back
                scalar_result(None),
            )
        )

        purged = await purge_expired_tasks(mock_session_factory, blob_store, FIXED_NOW, 30)

        assert purged == 1
        mock_db_session.delete.assert_awaited_once_with(old)
        assert blob_store.deleted == ["tasks/old.png"]
        refetch = mock_db_session.execute.call_args_list[1].args[0]
        assert FIXED_NOW - timedelta(days=30) in refetch.compile().params.values()

    @pytest.mark.asyncio
    async def test_nothing_expired(self, mock_session_factory, mock_db_session, blob_store):
        assert await purge_expired_tasks(mock_session_factory, blob_store, FIXED_NOW) == 0
        mock_db_session.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_restored_since_scan_is_skipped(self, mock_session_factory, mock_db_session, blob_store, make_task):
        old = make_task(deleted_at=FIXED_NOW - timedelta(days=40))
        mock_db_session.execute = AsyncMock(
            side_effect=make_execute_side_effect(scalars_result([old]), scalar_result(None))
        )
        assert await purge_expired_tasks(mock_session_factory, blob_store, FIXED_NOW) == 0

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self, mock_session_factory, mock_db_session, blob_store, make_task):
        first = make_task(title="a", deleted_at=FIXED_NOW - timedelta(days=45))
        second = make_task(title="b", deleted_at=FIXED_NOW - timedelta(days=35))
        mock_db_session.execute = AsyncMock(
            side_effect=make_execute_side_effect(
                scalars_result([first, second]),
                scalar_result(first),
                scalar_result(second),
            )
        )
        mock_db_session.commit = AsyncMock(side_effect=[RuntimeError("db went away"), None])

        purged = await purge_expired_tasks(mock_session_factory, blob_store, FIXED_NOW)

        assert purged == 1
        assert mock_db_session.delete.await_count == 2

    @pytest.mark.asyncio
    async def test_image_failure_still_purges_record(self, mock_session_factory, mock_db_session, blob_store, make_task):
        old = make_task(deleted_at=FIXED_NOW - timedelta(days=31), image_path="tasks/old.png")
        mock_db_session.execute = AsyncMock(
            side_effect=make_execute_side_effect(scalars_result([old]), scalar_result(old))
        )
        blob_store.fail_delete = True

        assert await purge_expired_tasks(mock_session_factory, blob_store, FIXED_NOW) == 1
        mock_db_session.delete.assert_awaited_once_with(old)


class TestRunSweepOnce:
    @pytest.mark.asyncio
    async def test_runs_under_lock(self, mock_session_factory, blob_store, mock_redis, settings):
        purged = await run_sweep_once(
            mock_session_factory, blob_store, mock_redis, settings, clock=lambda: FIXED_NOW
        )
        assert purged == 0
        args, kwargs = mock_redis.set.call_args
        assert args[0] == LOCK_KEY
        assert kwargs == {"nx": True, "ex": settings.trash_sweep_lock_seconds}
        # Released with the same token it was taken with
        assert mock_redis.eval.call_args.args[-1] == args[1]

    @pytest.mark.asyncio
    async def test_skips_when_locked(self, mock_session_factory, blob_store, mock_redis, settings):
        mock_redis.set = AsyncMock(return_value=None)
        assert await run_sweep_once(mock_session_factory, blob_store, mock_redis, settings) is None
        mock_session_factory.assert_not_called()
        mock_redis.eval.assert_not_awaited()


class TestNextRunAt:
    def test_daily_slot(self):
        assert next_run_at("0 3 * * *", FIXED_NOW) == datetime(2026, 3, 16, 3, 0, tzinfo=timezone.utc)

    def test_timezone_is_respected(self):
        # 03:00 in Auckland (NZDT, UTC+13) is 14:00 UTC the previous day
        result = next_run_at("0 3 * * *", FIXED_NOW, "Pacific/Auckland")
        assert result == datetime(2026, 3, 15, 14, 0, tzinfo=timezone.utc)

    def test_invalid_cron_falls_back_to_a_day(self):
        assert next_run_at("not a cron", FIXED_NOW) == FIXED_NOW + timedelta(days=1)


class TestSweeperApp:
    def test_manual_run(self, settings):
        from modules.trash_sweeper import main

        with patch.object(main, "run_sweep_once", AsyncMock(return_value=3)), \
             patch.object(main, "get_redis", AsyncMock(return_value=MagicMock())), \
             patch.object(main, "get_session_factory", MagicMock()), \
             patch.object(main, "get_settings", return_value=settings), \
             patch.object(main, "blob_store", MagicMock()):
            response = TestClient(main.app).post("/run")

        assert response.status_code == 200
        assert response.json() == {"skipped": False, "purged": 3}

    def test_health(self):
        from modules.trash_sweeper import main

        assert TestClient(main.app).get("/health").json() == {"status": "ok", "service": "trash_sweeper"}
