"""Tests for concurrent source collection."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from signal_desk.common.errors import TimeoutExceeded
from signal_desk.market.collector import collect_sources, merge_fragment


def _source(payload):
    async def fetch():
        return payload

    return fetch


def _failing(exc):
    async def fetch():
        raise exc

    return fetch


def test_merge_fragment_deep():
    target = {"technicalIndicators": {"rsi": 55}, "currentPrice": 1}
    merge_fragment(target, {"technicalIndicators": {"atr": 900}, "currentPrice": 2})
    assert target == {"technicalIndicators": {"rsi": 55, "atr": 900}, "currentPrice": 2}


def test_merge_fragment_copies_nested():
    fragment = {"onChain": {"trend": "up"}}
    target = {}
    merge_fragment(target, fragment)
    target["onChain"]["trend"] = "down"
    assert fragment["onChain"]["trend"] == "up"


@pytest.mark.asyncio
async def test_collect_merges_successful_sources():
    collected = await collect_sources(
        {
            "price": _source({"currentPrice": 95_000, "isLiveData": True}),
            "technical": _source({"technicalIndicators": {"rsi": 55}}),
        },
        timeout=1.0,
    )

    assert collected.successful == ["price", "technical"]
    assert collected.failed == []
    assert collected.payload["technicalIndicators"] == {"rsi": 55}
    assert collected.payload["currentPrice"] == 95_000


@pytest.mark.asyncio
async def test_partial_failures_recorded():
    collected = await collect_sources(
        {
            "price": _source({"currentPrice": 95_000}),
            "onchain": _failing(httpx.ConnectError("refused")),
            "sentiment": _source({}),
        },
        timeout=1.0,
    )

    assert collected.successful == ["price"]
    assert collected.failed == ["onchain", "sentiment"]
    assert "refused" in collected.failures[0].message
    assert collected.failures[1].message == "empty response"


@pytest.mark.asyncio
async def test_deadline_exceeded():
    async def slow():
        await asyncio.sleep(5)
        return {"currentPrice": 1}

    with pytest.raises(TimeoutExceeded) as exc_info:
        await collect_sources({"price": _source({"currentPrice": 1}), "slow": slow}, timeout=0.05)

    assert exc_info.value.timeout == 0.05
    assert exc_info.value.retryable


@pytest.mark.asyncio
async def test_sources_run_concurrently():
    async def delayed():
        await asyncio.sleep(0.2)
        return {"x": 1}

    # Sequential execution of three sources would exceed the deadline
    collected = await collect_sources({"a": delayed, "b": delayed, "c": delayed}, timeout=0.5)
    assert len(collected.successful) == 3
