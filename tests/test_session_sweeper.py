"""
Tests for the background session sweeper.
"""

import asyncio

import pytest

from filevault.services.session_sweeper import SessionSweeper


class TestSessionSweeper:
    """Test the periodic sweep task."""

    @pytest.mark.asyncio
    async def test_sweep_once_reclaims_stale_sessions(self, coordinator, registry, chunk_store):
        coordinator.submit_chunk("s1", 0, 2, "a.bin", b"x")
        sweeper = SessionSweeper(lambda: coordinator, interval_seconds=60, max_age_seconds=0)
        swept = await sweeper.sweep_once()
        assert swept == ["s1"]
        assert len(registry) == 0
        assert chunk_store.indices("s1") == []

    @pytest.mark.asyncio
    async def test_loop_runs_on_timer(self, coordinator, registry):
        coordinator.submit_chunk("s1", 0, 2, "a.bin", b"x")
        sweeper = SessionSweeper(lambda: coordinator, interval_seconds=0.01, max_age_seconds=0)
        await sweeper.start()
        try:
            for _ in range(200):
                if len(registry) == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            await sweeper.stop()
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_loop_survives_sweep_errors(self, coordinator, monkeypatch):
        calls = []

        def failing_sweep(max_age=None):
            calls.append(max_age)
            raise RuntimeError("storage offline")

        monkeypatch.setattr(coordinator, "sweep", failing_sweep)
        sweeper = SessionSweeper(lambda: coordinator, interval_seconds=0.01, max_age_seconds=5)
        await sweeper.start()
        try:
            for _ in range(200):
                if len(calls) >= 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await sweeper.stop()
        assert len(calls) >= 2
        assert calls[0] == 5

    @pytest.mark.asyncio
    async def test_stop_is_prompt(self, coordinator):
        sweeper = SessionSweeper(lambda: coordinator, interval_seconds=3600, max_age_seconds=0)
        await sweeper.start()
        await asyncio.wait_for(sweeper.stop(), timeout=1.0)
