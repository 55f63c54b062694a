"""
Unit Tests — TaskSupervisor
═══════════════════════════
Registry bookkeeping, crash logging, join() and shutdown draining.
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from docuai.workers.supervisor import TaskSupervisor


@pytest.mark.unit
class TestTaskSupervisor:

    async def test_spawn_tracks_until_done(self):
        sup = TaskSupervisor()
        gate = asyncio.Event()

        async def _work():
            await gate.wait()
            return "ok"

        task = sup.spawn("document:1", _work())
        assert sup.active() == ["document:1"]
        assert len(sup) == 1

        gate.set()
        assert await task == "ok"
        await sup.join()
        assert sup.active() == []

    async def test_duplicate_name_rejected(self):
        sup = TaskSupervisor()
        gate = asyncio.Event()

        async def _work():
            await gate.wait()

        sup.spawn("document:1", _work())
        second = _work()
        with pytest.raises(ValueError, match="already running"):
            sup.spawn("document:1", second)

        gate.set()
        await sup.join()

    async def test_crash_is_logged_and_removed(self, caplog):
        sup = TaskSupervisor()

        async def _boom():
            raise RuntimeError("kaboom")

        with caplog.at_level(logging.ERROR, logger="docuai.workers.supervisor"):
            sup.spawn("document:bad", _boom())
            await sup.join()

        assert sup.active() == []
        assert any("Task crashed" in r.getMessage() and "kaboom" in r.getMessage() for r in caplog.records)

    async def test_join_waits_for_tasks_spawned_meanwhile(self):
        sup = TaskSupervisor()
        finished: list[str] = []

        async def _child():
            await asyncio.sleep(0)
            finished.append("child")

        async def _parent():
            sup.spawn("child", _child())
            finished.append("parent")

        sup.spawn("parent", _parent())
        await sup.join()

        assert sorted(finished) == ["child", "parent"]

    async def test_shutdown_drains_fast_tasks(self):
        sup = TaskSupervisor()
        done = asyncio.Event()

        async def _quick():
            await asyncio.sleep(0.01)
            done.set()

        sup.spawn("quick", _quick())
        await sup.shutdown(timeout=1.0)

        assert done.is_set()
        assert sup.active() == []

    async def test_shutdown_cancels_stragglers(self, caplog):
        sup = TaskSupervisor()

        async def _forever():
            await asyncio.Event().wait()

        task = sup.spawn("stuck", _forever())
        with caplog.at_level(logging.WARNING, logger="docuai.workers.supervisor"):
            await sup.shutdown(timeout=0.01)

        assert task.cancelled()
        assert sup.active() == []
        assert any("Cancelling task at shutdown" in r.getMessage() for r in caplog.records)

    async def test_closed_supervisor_rejects_work(self):
        sup = TaskSupervisor()
        await sup.shutdown(timeout=0.1)

        async def _work():
            return None

        with pytest.raises(RuntimeError, match="shut down"):
            sup.spawn("late", _work())
