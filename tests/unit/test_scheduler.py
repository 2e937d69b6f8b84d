"""Unit tests for toolhub.pipeline.scheduler."""

import asyncio
import os

from toolhub.pipeline.models import Deliverable
from toolhub.pipeline.scheduler import CleanupReport, loggable_key
from toolhub.pipeline.store import DOWNLOADS, PROCESSED, UPLOADS


class TestTimers:
    """Tests for keyed expiry timers under virtual time."""

    def test_fires_only_when_due(self, scheduler, clock):
        fired = []
        scheduler.schedule(clock.now() + 240, "grant:a", lambda: fired.append("a") or True)

        assert scheduler.run_due() == CleanupReport(0, 0)
        clock.advance(239)
        assert scheduler.run_due().removed == 0
        clock.advance(1)
        assert scheduler.run_due() == CleanupReport(removed=1, failures=0)
        assert fired == ["a"]
        assert scheduler.pending() == 0

    def test_fires_in_due_order(self, scheduler, clock):
        fired = []
        now = clock.now()
        scheduler.schedule(now + 30, "late", lambda: fired.append("late") or True)
        scheduler.schedule(now + 10, "early", lambda: fired.append("early") or True)
        scheduler.run_due(now + 60)
        assert fired == ["early", "late"]

    def test_reschedule_replaces_timer(self, scheduler, clock):
        fired = []
        now = clock.now()
        scheduler.schedule(now + 10, "grant:a", lambda: fired.append("old") or True)
        scheduler.schedule(now + 20, "grant:a", lambda: fired.append("new") or True)
        assert scheduler.pending() == 1
        scheduler.run_due(now + 15)
        assert fired == []
        scheduler.run_due(now + 20)
        assert fired == ["new"]

    def test_cancel(self, scheduler, clock):
        scheduler.schedule(clock.now() + 1, "grant:a", lambda: True)
        assert scheduler.cancel("grant:a") is True
        assert scheduler.cancel("grant:a") is False
        assert scheduler.next_due() is None
        assert scheduler.run_due(clock.now() + 10) == CleanupReport()

    def test_failures_counted_never_raised(self, scheduler, clock):
        """A failing or raising action is counted, and the others still run."""
        fired = []

        def explode():
            raise OSError("permission denied")

        now = clock.now()
        scheduler.schedule(now, "raises", explode)
        scheduler.schedule(now, "returns-false", lambda: False)
        scheduler.schedule(now, "ok", lambda: fired.append("ok") or True)

        report = scheduler.run_due()
        assert report == CleanupReport(removed=1, failures=2)
        assert fired == ["ok"]

    def test_timer_keys_logged_short(self):
        assert loggable_key("grant:" + "d" * 32) == "grant:dddddddd…"
        assert loggable_key("ok") == "ok"

    def test_grant_reclaimed_by_timer(self, scheduler, grants, clock, work_dir):
        path = work_dir / "out.zip"
        path.write_bytes(b"PK")
        grant = asyncio.run(grants.issue(Deliverable(path, "out.zip", 2)))
        clock.advance(240)
        assert scheduler.run_due().removed == 1
        assert not grant.delivery_path.exists()


class TestSweep:
    """Tests for the stale-file backstop."""

    def _age(self, path, clock, seconds):
        stamp = clock.now() - seconds
        os.utime(path, (stamp, stamp))

    def test_removes_only_stale_entries(self, scheduler, store, clock):
        stale_upload = store.create(UPLOADS, "intake")
        stale_download = store.area(DOWNLOADS) / ("S" * 32)
        stale_download.mkdir()
        fresh_work = store.create(PROCESSED, "merge")
        self._age(stale_upload, clock, 3600)
        self._age(stale_download, clock, 1800)
        self._age(fresh_work, clock, 60)

        report = scheduler.sweep()
        assert report == CleanupReport(removed=2, failures=0)
        assert not stale_upload.exists()
        assert not stale_download.exists()
        assert fresh_work.exists()

    def test_failures_counted(self, scheduler, store, clock, monkeypatch):
        stale = store.create(PROCESSED, "stuck")
        self._age(stale, clock, 7200)
        monkeypatch.setattr(store, "delete", lambda path: False)
        assert scheduler.sweep() == CleanupReport(removed=0, failures=1)

    def test_empty_store(self, scheduler):
        assert scheduler.sweep() == CleanupReport()


class TestBackgroundLoop:
    """Tests for the asyncio tasks that drive timers."""

    def test_start_and_stop(self, scheduler):
        async def scenario():
            await scheduler.start()
            assert scheduler.running
            await scheduler.stop()
            assert not scheduler.running

        asyncio.run(scenario())

    def test_timer_loop_fires_due_timers(self, scheduler, clock):
        """Timers already due fire without anyone calling run_due()."""
        fired = []

        async def scenario():
            await scheduler.start()
            try:
                scheduler.schedule(clock.now(), "grant:a", lambda: fired.append("a") or True)
                for _ in range(100):
                    if fired:
                        break
                    await asyncio.sleep(0.01)
            finally:
                await scheduler.stop()

        asyncio.run(scenario())
        assert fired == ["a"]
