"""Unit tests for the dump pause gate."""

import asyncio

import pytest

from mongo_es_sync.application.services.pause_gate import (
    PAUSE_GATE,
    PauseGate,
    pause_all_bootstraps,
    resume_all_bootstraps,
)


@pytest.mark.asyncio
async def test_wait_returns_immediately_when_open():
    gate = PauseGate()

    await asyncio.wait_for(gate.wait(), timeout=1)

    assert gate.is_paused is False


@pytest.mark.asyncio
async def test_resume_releases_every_waiter():
    gate = PauseGate()
    gate.pause()
    waiters = [asyncio.create_task(gate.wait()) for _ in range(3)]
    await asyncio.sleep(0)

    assert not any(waiter.done() for waiter in waiters)

    gate.resume()
    await asyncio.wait_for(asyncio.gather(*waiters), timeout=1)

    assert gate.is_paused is False


@pytest.mark.asyncio
async def test_pause_is_idempotent():
    gate = PauseGate()
    gate.pause()
    waiter = asyncio.create_task(gate.wait())
    await asyncio.sleep(0)

    gate.pause()
    gate.resume()

    await asyncio.wait_for(waiter, timeout=1)


def test_resume_without_pause_is_noop():
    gate = PauseGate()
    gate.resume()
    assert gate.is_paused is False


def test_module_functions_drive_process_gate():
    try:
        pause_all_bootstraps()
        assert PAUSE_GATE.is_paused is True
    finally:
        resume_all_bootstraps()
    assert PAUSE_GATE.is_paused is False
