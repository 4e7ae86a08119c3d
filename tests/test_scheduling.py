"""Tests for PeriodicTask."""

import asyncio
from datetime import timedelta

import pytest

from rabbitmq_admin.core.scheduling import PeriodicTask, to_seconds


def test_to_seconds():
    assert to_seconds(timedelta(minutes=1)) == 60.0
    assert to_seconds(5) == 5.0


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        PeriodicTask(0, lambda: None)


@pytest.mark.asyncio
async def test_runs_sync_callback_repeatedly():
    calls = []
    task = PeriodicTask(0.01, lambda: calls.append(1), name="test")
    task.start()
    await asyncio.sleep(0.06)
    await task.stop()

    assert len(calls) >= 2
    assert task.ticks == len(calls)
    assert not task.is_running


@pytest.mark.asyncio
async def test_runs_async_callback():
    calls = []

    async def tick():
        calls.append(1)

    task = PeriodicTask(0.01, tick)
    task.start()
    await asyncio.sleep(0.05)
    await task.stop()
    assert calls


@pytest.mark.asyncio
async def test_failing_callback_keeps_looping():
    calls = []

    def tick():
        calls.append(1)
        raise RuntimeError("tick failed")

    task = PeriodicTask(0.01, tick)
    task.start()
    await asyncio.sleep(0.06)
    assert task.is_running
    await task.stop()
    assert len(calls) >= 2


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_twice_is_safe():
    task = PeriodicTask(10, lambda: None)
    task.start()
    first = task._task
    task.start()
    assert task._task is first
    await task.stop()
    await task.stop()
    assert not task.is_running


@pytest.mark.asyncio
async def test_callback_can_stop_its_own_task():
    holder = {}

    async def tick():
        await holder["task"].stop()

    task = PeriodicTask(0.01, tick)
    holder["task"] = task
    task.start()
    await asyncio.sleep(0.05)
    assert not task.is_running
