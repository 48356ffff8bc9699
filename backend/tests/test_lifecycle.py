"""
Unit tests for LifecycleManager

Tests that sweeps delete expired files and mark their records, retry on
removal failures, honor expiry extended mid-sweep, never overlap, and that
manual deletion reports failures instead of retrying.
"""

import asyncio
import json
from datetime import timedelta

import pytest

from app.errors import InternalError, NotFound
from app.services.metadata_store import utcnow


def _after_expiry(record, minutes=1):
    return record.expires_at + timedelta(minutes=minutes)


class TestSweep:
    async def test_deletes_expired_file_and_marks_record(self, lifecycle, storage, stored_file):
        record = stored_file(expiry_minutes=1)

        deleted = await lifecycle.sweep(now=_after_expiry(record))

        assert deleted == 1
        assert record.deleted is True
        assert record.deleted_at is not None
        assert not storage.path_for(record.id).exists()

    async def test_leaves_active_files_alone(self, lifecycle, storage, stored_file):
        record = stored_file(expiry_minutes=60)

        deleted = await lifecycle.sweep(now=utcnow())

        assert deleted == 0
        assert record.deleted is False
        assert storage.path_for(record.id).exists()

    async def test_already_absent_file_counts_as_deleted(self, lifecycle, storage, stored_file):
        record = stored_file(expiry_minutes=1)
        storage.path_for(record.id).unlink()

        deleted = await lifecycle.sweep(now=_after_expiry(record))

        assert deleted == 1
        assert record.deleted is True

    async def test_removal_failure_is_retried_next_sweep(self, lifecycle, storage, stored_file, monkeypatch, caplog):
        record = stored_file(expiry_minutes=1)
        real_remove = storage.remove

        async def denied(name):
            raise PermissionError(13, "Permission denied", name)

        monkeypatch.setattr(storage, "remove", denied)
        assert await lifecycle.sweep(now=_after_expiry(record)) == 0
        assert record.deleted is False
        assert "Failed to delete expired file" in caplog.text

        monkeypatch.setattr(storage, "remove", real_remove)
        assert await lifecycle.sweep(now=_after_expiry(record)) == 1
        assert record.deleted is True

    async def test_deleted_records_are_not_touched_again(self, lifecycle, store, stored_file):
        record = stored_file(expiry_minutes=1)
        store.mark_deleted(record.id)
        deleted_at = record.deleted_at

        assert await lifecycle.sweep(now=_after_expiry(record)) == 0
        assert record.deleted_at == deleted_at

    async def test_expiry_extended_during_sweep_is_honored(self, lifecycle, store, storage, stored_file, monkeypatch):
        first = stored_file(expiry_minutes=1)
        second = stored_file(expiry_minutes=1)
        sweep_time = _after_expiry(second)
        real_remove = storage.remove

        async def remove_and_extend(name):
            if name == first.id:
                store.update(second.id, expiry_minutes=120)
            return await real_remove(name)

        monkeypatch.setattr(storage, "remove", remove_and_extend)
        deleted = await lifecycle.sweep(now=sweep_time)

        assert deleted == 1
        assert first.deleted is True
        assert second.deleted is False
        assert storage.path_for(second.id).exists()

    async def test_sweeps_never_overlap(self, lifecycle, storage, stored_file, monkeypatch):
        record = stored_file(expiry_minutes=1)
        release = asyncio.Event()
        real_remove = storage.remove

        async def slow_remove(name):
            await release.wait()
            return await real_remove(name)

        monkeypatch.setattr(storage, "remove", slow_remove)
        running = asyncio.create_task(lifecycle.sweep(now=_after_expiry(record)))
        await asyncio.sleep(0)

        assert await lifecycle.sweep(now=_after_expiry(record)) == 0

        release.set()
        assert await running == 1

    async def test_unusable_filename_does_not_abort_the_sweep(self, lifecycle, store, storage, metadata_path):
        past = (utcnow() - timedelta(minutes=5)).isoformat()
        good = storage.generate_name("clip.mp4")
        storage.path_for(good).write_bytes(b"0123456789")
        metadata_path.parent.mkdir(parents=True, exist_ok=True)
        metadata_path.write_text(json.dumps([
            {"id": "..", "filename": "", "expiresAt": past},
            {"id": "bad.mp4", "filename": "../../etc/passwd", "expiresAt": past},
            {"id": good, "filename": good, "expiresAt": past},
        ]))
        await store.load()

        deleted = await lifecycle.sweep()

        assert store.get("bad.mp4").filename == "bad.mp4"
        assert store.get(good).deleted is True
        assert not storage.path_for(good).exists()
        assert store.get("..").deleted is False
        assert deleted == 2


class TestPeriodic:
    async def test_first_sweep_runs_immediately(self, lifecycle, store, stored_file):
        record = stored_file(expiry_minutes=1)
        record.expires_at = utcnow() - timedelta(seconds=1)

        lifecycle.start()
        try:
            for _ in range(100):
                if record.deleted:
                    break
                await asyncio.sleep(0.01)
        finally:
            await lifecycle.stop()

        assert record.deleted is True

    async def test_failing_sweep_does_not_stop_the_loop(self, store, storage, monkeypatch):
        from app.services.lifecycle import LifecycleManager

        manager = LifecycleManager(store, storage, interval_seconds=0.01)
        calls = []

        async def flaky_sweep(now=None):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        monkeypatch.setattr(manager, "sweep", flaky_sweep)
        manager.start()
        try:
            for _ in range(100):
                if len(calls) >= 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await manager.stop()

        assert len(calls) >= 2


class TestDeleteNow:
    async def test_removes_file_and_marks_record(self, lifecycle, storage, stored_file):
        record = stored_file()

        result = await lifecycle.delete_now(record.id)

        assert result is record
        assert record.deleted is True
        assert not storage.path_for(record.id).exists()

    async def test_repeat_is_a_no_op(self, lifecycle, stored_file):
        record = stored_file()
        await lifecycle.delete_now(record.id)
        deleted_at = record.deleted_at

        await lifecycle.delete_now(record.id)

        assert record.deleted_at == deleted_at

    async def test_already_absent_file_is_success(self, lifecycle, storage, stored_file):
        record = stored_file()
        storage.path_for(record.id).unlink()

        await lifecycle.delete_now(record.id)

        assert record.deleted is True

    async def test_other_failures_are_reported(self, lifecycle, storage, stored_file, monkeypatch):
        record = stored_file()

        async def denied(name):
            raise PermissionError(13, "Permission denied", name)

        monkeypatch.setattr(storage, "remove", denied)

        with pytest.raises(InternalError):
            await lifecycle.delete_now(record.id)
        assert record.deleted is False

    async def test_unknown_id(self, lifecycle):
        with pytest.raises(NotFound):
            await lifecycle.delete_now("missing.mp4")
