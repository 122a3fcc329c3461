"""Tests for the in-process channel bus."""

import asyncio

import pytest

from core.streaming.channel import ChannelBus


@pytest.mark.asyncio
async def test_delivery_preserves_publish_order():
    bus = ChannelBus()
    received = []

    async def slow_listener(payload):
        await asyncio.sleep(0)
        received.append(payload)

    bus.on("agent:stream:t1", slow_listener)
    for i in range(20):
        bus.send("agent:stream:t1", i)
    await bus.flush("agent:stream:t1")

    assert received == list(range(20))
    await bus.close()


@pytest.mark.asyncio
async def test_send_without_listener_is_dropped():
    bus = ChannelBus()
    bus.send("nobody", {"type": "token"})
    received = []
    bus.on("nobody", received.append)
    await bus.flush("nobody")

    assert received == []
    await bus.close()


@pytest.mark.asyncio
async def test_at_most_one_listener():
    bus = ChannelBus()
    first, second = [], []

    bus.on("c", first.append)
    bus.on("c", second.append)
    bus.send("c", "x")
    await bus.flush("c")

    assert first == []
    assert second == ["x"]
    await bus.close()


@pytest.mark.asyncio
async def test_unsubscribe_only_removes_own_listener():
    bus = ChannelBus()
    first, second = [], []

    unsubscribe_first = bus.on("c", first.append)
    bus.on("c", second.append)
    unsubscribe_first()

    assert bus.has_listener("c")
    bus.send("c", 1)
    await bus.flush("c")
    assert second == [1]
    await bus.close()


@pytest.mark.asyncio
async def test_once_detaches_after_first_payload():
    bus = ChannelBus()
    received = []

    bus.once("c", received.append)
    bus.send("c", "a")
    bus.send("c", "b")
    await asyncio.sleep(0.01)

    assert received == ["a"]
    assert not bus.has_listener("c")
    await bus.close()


@pytest.mark.asyncio
async def test_failing_listener_does_not_stop_delivery():
    bus = ChannelBus()
    received = []

    def listener(payload):
        if payload == "boom":
            raise RuntimeError("listener failed")
        received.append(payload)

    bus.on("c", listener)
    bus.send("c", "boom")
    bus.send("c", "ok")
    await bus.flush("c")

    assert received == ["ok"]
    await bus.close()


@pytest.mark.asyncio
async def test_subscription_iterates_until_closed():
    bus = ChannelBus()
    subscription = bus.subscribe("c")
    bus.send("c", 1)
    bus.send("c", 2)

    assert await subscription.get() == 1
    assert await subscription.get() == 2

    subscription.close()
    assert not bus.has_listener("c")
    assert [item async for item in subscription] == []
    await bus.close()
