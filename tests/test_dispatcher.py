"""Tests for dapnet_announcer.dispatcher."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from dapnet_announcer.dapnet_client import DapnetError
from prometheus_client import CollectorRegistry

from dapnet_announcer.config import Settings
from dapnet_announcer.dispatcher import (
    Application,
    DispatchLoop,
    LoopState,
    send_startup_page,
)
from dapnet_announcer.models import (
    Call,
    DeliveryOutcome,
    DispatchMode,
    Event,
    EventReady,
    NoOp,
    RubricNews,
    TransientError,
)
from dapnet_announcer.translator import EventTranslator
from dapnet_announcer.venues import VenueCatalog


class QueueSource:
    """Poll source fed from a queue; poll() blocks while the queue is empty."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.poll_count = 0

    async def poll(self):
        self.poll_count += 1
        result = await self.queue.get()
        if isinstance(result, Exception):
            raise result
        return result


def _make_event(title: str = "Opening Talk") -> Event:
    return Event(
        venue="Stage A",
        title=title,
        start_time=datetime(2024, 5, 31, 10, 0, tzinfo=timezone.utc),
    )


def _make_delivery() -> MagicMock:
    delivery = MagicMock()
    delivery.deliver = AsyncMock(return_value=DeliveryOutcome(success=True, attempts=1))
    return delivery


async def _drain(source: QueueSource, polls: int) -> None:
    """Wait until the loop has started its n-th poll on an empty queue."""
    for _ in range(200):
        if source.queue.empty() and source.poll_count >= polls:
            break
        await asyncio.sleep(0)
    for _ in range(5):
        await asyncio.sleep(0)


class TestDispatchLoop:
    """Tests for DispatchLoop."""

    @pytest.mark.asyncio
    async def test_event_is_translated_and_delivered(self):
        source = QueueSource()
        delivery = _make_delivery()
        loop = DispatchLoop(source, EventTranslator(VenueCatalog()), delivery)

        await source.queue.put(EventReady(_make_event()))
        runner = asyncio.create_task(loop.run())
        await _drain(source, 2)
        loop.stop()
        await asyncio.wait_for(runner, timeout=1)

        delivery.deliver.assert_awaited_once_with(
            RubricNews(rubric="emfcamp", channel_number=1, text="Stg A: Opening Talk")
        )
        assert loop.state == LoopState.TERMINATED

    @pytest.mark.asyncio
    async def test_call_mode_delivers_call(self):
        source = QueueSource()
        delivery = _make_delivery()
        translator = EventTranslator(VenueCatalog(), DispatchMode.CALL, recipients=["M0ABC"])
        loop = DispatchLoop(source, translator, delivery)

        await source.queue.put(EventReady(_make_event()))
        runner = asyncio.create_task(loop.run())
        await _drain(source, 2)
        loop.stop()
        await asyncio.wait_for(runner, timeout=1)

        (call,), _ = delivery.deliver.await_args
        assert isinstance(call, Call)

    @pytest.mark.asyncio
    async def test_stop_while_idle(self):
        """Stopping between polls consumes no further poll results."""
        source = QueueSource()
        delivery = _make_delivery()
        loop = DispatchLoop(source, EventTranslator(VenueCatalog()), delivery)

        runner = asyncio.create_task(loop.run())
        await _drain(source, 1)
        assert loop.state == LoopState.RUNNING

        loop.stop()
        await asyncio.wait_for(runner, timeout=1)
        await source.queue.put(EventReady(_make_event()))

        assert loop.state == LoopState.TERMINATED
        assert source.queue.qsize() == 1
        delivery.deliver.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_before_run_never_polls(self):
        source = QueueSource()
        loop = DispatchLoop(source, EventTranslator(VenueCatalog()), _make_delivery())

        loop.stop()
        await asyncio.wait_for(loop.run(), timeout=1)

        assert source.poll_count == 0
        assert loop.state == LoopState.TERMINATED

    @pytest.mark.asyncio
    async def test_stop_during_delivery_finishes_delivery(self):
        source = QueueSource()
        delivery = MagicMock()
        loop = DispatchLoop(source, EventTranslator(VenueCatalog()), delivery)
        release = asyncio.Event()

        async def slow_deliver(notification):
            loop.stop()
            await release.wait()
            return DeliveryOutcome(success=True, attempts=1)

        delivery.deliver = AsyncMock(side_effect=slow_deliver)

        await source.queue.put(EventReady(_make_event("First")))
        await source.queue.put(EventReady(_make_event("Second")))
        runner = asyncio.create_task(loop.run())
        await asyncio.sleep(0.01)
        assert not runner.done()

        release.set()
        await asyncio.wait_for(runner, timeout=1)

        assert delivery.deliver.await_count == 1
        assert source.queue.qsize() == 1

    @pytest.mark.asyncio
    async def test_transient_errors_and_noops_keep_running(self):
        source = QueueSource()
        delivery = _make_delivery()
        loop = DispatchLoop(source, EventTranslator(VenueCatalog()), delivery)

        await source.queue.put(TransientError("schedule API down"))
        await source.queue.put(NoOp())
        await source.queue.put(RuntimeError("boom"))
        await source.queue.put(EventReady(_make_event()))
        runner = asyncio.create_task(loop.run())
        await _drain(source, 5)
        loop.stop()
        await asyncio.wait_for(runner, timeout=1)

        assert source.poll_count == 5
        delivery.deliver.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_untranslatable_event_is_dropped(self):
        source = QueueSource()
        delivery = _make_delivery()
        loop = DispatchLoop(source, EventTranslator(VenueCatalog()), delivery)

        await source.queue.put(EventReady(_make_event("x" * 200)))
        runner = asyncio.create_task(loop.run())
        await _drain(source, 2)
        loop.stop()
        await asyncio.wait_for(runner, timeout=1)

        delivery.deliver.assert_not_called()
        assert source.poll_count == 2

    @pytest.mark.asyncio
    async def test_failed_delivery_does_not_stop_loop(self):
        source = QueueSource()
        delivery = MagicMock()
        delivery.deliver = AsyncMock(
            return_value=DeliveryOutcome(success=False, attempts=5, reason="down")
        )
        loop = DispatchLoop(source, EventTranslator(VenueCatalog()), delivery)

        await source.queue.put(EventReady(_make_event("First")))
        await source.queue.put(EventReady(_make_event("Second")))
        runner = asyncio.create_task(loop.run())
        await _drain(source, 3)
        loop.stop()
        await asyncio.wait_for(runner, timeout=1)

        assert delivery.deliver.await_count == 2


class TestStartupPage:
    """Tests for send_startup_page."""

    @pytest.mark.asyncio
    async def test_sends_call_to_operator(self):
        client = MagicMock()
        client.send_call = AsyncMock()

        assert await send_startup_page(client, "M0ABC", ["uk-all"]) is True

        (call,), _ = client.send_call.await_args
        assert call.recipients == frozenset({"M0ABC"})
        assert call.transmitter_groups == ("uk-all",)
        assert call.text.startswith("M0ABC: EMF sched. anncr. start at ")

    @pytest.mark.asyncio
    async def test_failure_is_not_fatal(self):
        client = MagicMock()
        client.send_call = AsyncMock(side_effect=DapnetError("unauthorized"))

        assert await send_startup_page(client, "M0ABC", ["uk-all"]) is False


def _make_application() -> Application:
    settings = Settings(dapnet_username="m0abc", dapnet_password="secret")
    app = Application(settings, registry=CollectorRegistry())
    app.schedule = MagicMock()
    app.schedule.aclose = AsyncMock()
    app.dapnet = MagicMock()
    app.dapnet.send_call = AsyncMock()
    app.dapnet.aclose = AsyncMock()
    app.loop = MagicMock()
    app.loop.run = AsyncMock()
    return app


class TestApplication:
    """Tests for Application.run."""

    @pytest.mark.asyncio
    async def test_sends_startup_page_then_runs_loop(self):
        app = _make_application()

        await app.run()

        app.dapnet.send_call.assert_awaited_once()
        app.loop.run.assert_awaited_once()
        app.schedule.aclose.assert_awaited_once()
        app.dapnet.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_startup_page_still_runs_loop(self):
        app = _make_application()
        app.dapnet.send_call.side_effect = DapnetError("unauthorized")

        await app.run()

        app.loop.run.assert_awaited_once()
        app.schedule.aclose.assert_awaited_once()
        app.dapnet.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_clients_closed_when_loop_raises(self):
        app = _make_application()
        app.loop.run.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await app.run()

        app.schedule.aclose.assert_awaited_once()
        app.dapnet.aclose.assert_awaited_once()
