"""Unit tests for SessionTimer."""

import asyncio

import pytest

from har_capturer.capture.timer import SessionTimer


class TestSessionTimer:
    """Tests for the one-shot session deadline."""

    @pytest.mark.asyncio
    async def test_fires_after_delay(self):
        timer = SessionTimer(10)

        await asyncio.wait_for(timer.start(), timeout=1)

        assert timer.expired is True
        assert timer.is_running is False

    @pytest.mark.asyncio
    async def test_cancel_interrupts_start(self):
        timer = SessionTimer(10000)
        task = asyncio.create_task(timer.start())
        await asyncio.sleep(0)

        timer.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert timer.expired is False

    @pytest.mark.asyncio
    async def test_none_timeout_never_fires(self):
        timer = SessionTimer(None)
        task = asyncio.create_task(timer.start())

        done, _ = await asyncio.wait([task], timeout=0.05)

        assert not done
        assert timer.is_running is True
        timer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_restart_cancels_previous_delay(self):
        timer = SessionTimer(10000)
        first = asyncio.create_task(timer.start())
        await asyncio.sleep(0)

        timer.timeout_ms = 5
        await asyncio.wait_for(timer.start(), timeout=1)

        with pytest.raises(asyncio.CancelledError):
            await first
        assert timer.expired is True

    @pytest.mark.asyncio
    async def test_zero_timeout(self):
        timer = SessionTimer(0)

        await asyncio.wait_for(timer.start(), timeout=1)

        assert timer.expired is True

    def test_cancel_when_idle_is_noop(self):
        timer = SessionTimer(100)

        timer.cancel()

        assert timer.expired is False
        assert timer.is_running is False
