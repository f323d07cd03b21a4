"""Tests for bounded fan-out."""

import asyncio

import pytest

from shardkeeper.core.fanout import fan_out


class TestFanOut:
    """fan_out tests."""

    @pytest.mark.asyncio
    async def test_results_keyed_by_target(self):
        """Test every result is keyed by its target."""

        async def double(n):
            return n * 2

        result = await fan_out([1, 2, 3], double)

        assert result.ok
        assert result.succeeded == {"1": 2, "2": 4, "3": 6}

    @pytest.mark.asyncio
    async def test_failures_are_collected(self):
        """Test one failure does not stop the others."""

        async def check(name):
            if name == "b":
                raise RuntimeError("disk full")
            return name

        result = await fan_out(["a", "b", "c"], check)

        assert not result.ok
        assert set(result.succeeded) == {"a", "c"}
        assert isinstance(result.failed["b"], RuntimeError)
        assert result.outcomes() == {"a": "ok", "c": "ok", "b": "disk full"}

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        """Test no more than limit targets run at once."""
        running = 0
        peak = 0

        async def work(n):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await fan_out(range(10), work, limit=3)

        assert peak == 3

    @pytest.mark.asyncio
    async def test_custom_key(self):
        """Test results use the supplied key."""

        async def identity(item):
            return item["value"]

        items = [{"name": "x", "value": 1}, {"name": "y", "value": 2}]
        result = await fan_out(items, identity, key=lambda i: i["name"])

        assert result.succeeded == {"x": 1, "y": 2}

    @pytest.mark.asyncio
    async def test_empty(self):
        """Test an empty target list."""

        async def never(item):
            raise AssertionError("not called")

        result = await fan_out([], never)

        assert result.ok
        assert result.succeeded == {}
