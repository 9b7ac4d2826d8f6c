############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# test_background.py: Unit tests for detached background tasks
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Unit tests for spawn_detached."""

import asyncio

import pytest

from lingualink.app.core.background import pending_count, spawn_detached


class TestSpawnDetached:
    """Test fire-and-forget task handling."""

    @pytest.mark.asyncio
    async def test_task_runs_without_being_awaited(self):
        done = []

        async def work():
            done.append(True)

        spawn_detached(work(), name="work")
        for _ in range(3):
            await asyncio.sleep(0)

        assert done == [True]
        assert pending_count() == 0

    @pytest.mark.asyncio
    async def test_failure_is_not_raised(self):
        async def broken():
            raise RuntimeError("history store down")

        task = spawn_detached(broken(), name="broken")
        for _ in range(3):
            await asyncio.sleep(0)

        assert task.done()
        assert isinstance(task.exception(), RuntimeError)
        assert pending_count() == 0

    @pytest.mark.asyncio
    async def test_caller_is_not_blocked(self):
        gate = asyncio.Event()

        async def waits():
            await gate.wait()

        task = spawn_detached(waits(), name="waits")
        await asyncio.sleep(0)
        assert not task.done()
        assert pending_count() >= 1

        gate.set()
        await task
        await asyncio.sleep(0)
        assert pending_count() == 0
