import asyncio

import pytest

from pixelchat.errors import StreamClosedError
from pixelchat.streaming import StreamableUI, StreamableValue


def test_streamable_value_appends_deltas_in_order() -> None:
    seen: list[str] = []
    value = StreamableValue()
    value.subscribe(seen.append)

    value.update("Hi")
    value.update(" there")
    value.done()

    assert value.value == "Hi there"
    assert value.closed
    assert seen == ["", "Hi", "Hi there"]


def test_done_appends_final_value_before_sealing() -> None:
    value = StreamableValue("a")
    value.done("b")
    assert value.value == "ab"


def test_update_after_done_is_rejected() -> None:
    value = StreamableValue()
    value.done()

    with pytest.raises(StreamClosedError):
        value.update("late")
    with pytest.raises(StreamClosedError):
        value.done()
    assert value.value == ""


def test_subscribe_after_close_gets_final_value() -> None:
    value = StreamableValue()
    value.update("x")
    value.done("y")

    seen: list[str] = []
    unsubscribe = value.subscribe(seen.append)
    unsubscribe()
    assert seen == ["xy"]


def test_unsubscribed_observer_stops_receiving() -> None:
    seen: list[str] = []
    value = StreamableValue()
    unsubscribe = value.subscribe(seen.append)
    value.update("a")
    unsubscribe()
    value.update("b")
    assert seen == ["", "a"]


def test_failing_observer_does_not_break_producer() -> None:
    def boom(_value: str) -> None:
        if _value:
            raise RuntimeError("observer failed")

    seen: list[str] = []
    value = StreamableValue()
    value.subscribe(boom)
    value.subscribe(seen.append)
    value.update("ok")
    assert seen == ["", "ok"]


def test_streamable_ui_replaces_value() -> None:
    ui = StreamableUI("loading")
    ui.update("half")
    ui.done("final")
    assert ui.value == "final"
    with pytest.raises(StreamClosedError):
        ui.update("again")


@pytest.mark.asyncio
async def test_async_iteration_follows_live_updates() -> None:
    value = StreamableValue()
    received: list[str] = []

    async def consume() -> None:
        async for current in value:
            received.append(current)

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    value.update("a")
    value.update("b")
    value.done()
    await asyncio.wait_for(consumer, timeout=1)

    assert received == ["", "a", "ab"]


@pytest.mark.asyncio
async def test_async_iteration_of_closed_value_yields_once() -> None:
    value = StreamableValue()
    value.done("all")
    assert [item async for item in value] == ["all"]


@pytest.mark.asyncio
async def test_slow_consumer_sees_updates_made_while_it_was_busy() -> None:
    value = StreamableValue()
    received: list[str] = []

    async def consume() -> None:
        async for current in value:
            received.append(current)
            await asyncio.sleep(0)

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    value.update("a")
    value.update("b")
    value.done()
    await asyncio.wait_for(consumer, timeout=1)

    assert received == ["", "a", "ab"]


@pytest.mark.asyncio
async def test_updates_before_first_read_are_delivered() -> None:
    value = StreamableValue()
    iterator = aiter(value)
    value.update("a")
    value.done("b")

    assert [item async for item in iterator] == ["", "a", "ab"]
