"""Tests for the single-shot wake-up timer."""

import asyncio

from cadence.scheduling.timer import Timer


class TestTimer:
    async def test_fires_once(self):
        timer = Timer()
        fired = asyncio.Event()
        timer.arm(0.01, fired.set)

        assert timer.armed
        await asyncio.wait_for(fired.wait(), timeout=1)
        assert not timer.armed

    async def test_rearm_replaces_pending(self):
        timer = Timer()
        calls = []
        timer.arm(0.01, lambda: calls.append("first"))
        timer.arm(0.02, lambda: calls.append("second"))

        await asyncio.sleep(0.05)

        assert calls == ["second"]
        assert timer.delay == 0.02

    async def test_cancel(self):
        timer = Timer()
        calls = []
        timer.arm(0.01, lambda: calls.append(1))
        timer.cancel()

        await asyncio.sleep(0.03)
        assert calls == []
        assert not timer.armed

    async def test_negative_delay_clamped(self):
        timer = Timer()
        fired = asyncio.Event()
        timer.arm(-5, fired.set)
        assert timer.delay == 0.0
        await asyncio.wait_for(fired.wait(), timeout=1)
