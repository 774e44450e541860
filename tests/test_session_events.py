from __future__ import annotations

import pytest

from cleanplayer.services.session_events import SessionEvent, SessionEventBus


@pytest.mark.asyncio
async def test_publish_reaches_sync_and_async_subscribers() -> None:
    bus = SessionEventBus()
    received: list[tuple[str, object]] = []

    def on_notice(payload: object) -> None:
        received.append(("sync", payload))

    async def on_notice_async(payload: object) -> None:
        received.append(("async", payload))

    bus.subscribe(SessionEvent.NOTICE, on_notice)
    bus.subscribe(SessionEvent.NOTICE, on_notice_async)

    await bus.publish(SessionEvent.NOTICE, "Logged in!")
    await bus.publish(SessionEvent.RESET)

    assert received == [("sync", "Logged in!"), ("async", "Logged in!")]


@pytest.mark.asyncio
async def test_unsubscribed_handler_is_not_called() -> None:
    bus = SessionEventBus()
    calls: list[object] = []
    unsubscribe = bus.subscribe(SessionEvent.RESET, calls.append)

    unsubscribe()
    await bus.publish(SessionEvent.RESET)

    assert calls == []


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_others() -> None:
    bus = SessionEventBus()
    calls: list[object] = []

    def broken(payload: object) -> None:
        raise RuntimeError("ui went away")

    bus.subscribe(SessionEvent.RESET, broken)
    bus.subscribe(SessionEvent.RESET, calls.append)

    await bus.publish(SessionEvent.RESET, "bye")

    assert calls == ["bye"]
