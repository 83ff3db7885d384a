"""Main dispatch loop for dapnet-announcer."""

from __future__ import annotations

import asyncio
import logging
import signal
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Protocol

import structlog
from prometheus_client import REGISTRY, CollectorRegistry

from dapnet_announcer.config import Settings
from dapnet_announcer.dapnet_client import DapnetClient
from dapnet_announcer.delivery import DeliveryManager
from dapnet_announcer.metrics import AnnouncementMetrics, start_metrics_server
from dapnet_announcer.models import (
    Call,
    EventReady,
    PollResult,
    TransientError,
)
from dapnet_announcer.multiplex import first_ready
from dapnet_announcer.schedule import Announcer, ScheduleClient
from dapnet_announcer.translator import EventTranslator
from dapnet_announcer.venues import VenueCatalog

logger = structlog.get_logger()


class PollSource(Protocol):
    async def poll(self) -> PollResult: ...


class LoopState(str, Enum):
    RUNNING = "running"
    TERMINATED = "terminated"


class DispatchLoop:
    """Polls the schedule source and announces due events, one at a time."""

    def __init__(
        self,
        source: PollSource,
        translator: EventTranslator,
        delivery: DeliveryManager,
    ) -> None:
        self._source = source
        self._translator = translator
        self._delivery = delivery
        self._stop_requested = asyncio.Event()
        self._state = LoopState.RUNNING

    @property
    def state(self) -> LoopState:
        return self._state

    async def run(self) -> None:
        """Run until stop() is called."""
        logger.info("dispatch_loop_started")

        while self._state == LoopState.RUNNING:
            if self._stop_requested.is_set():
                break

            try:
                index, result = await first_ready(
                    self._stop_requested.wait(), self._source.poll()
                )
            except Exception as e:
                logger.warning("poll_failed", error=str(e))
                continue

            if index == 0:
                break

            await self._handle(result)

        self._state = LoopState.TERMINATED
        logger.info("dispatch_loop_stopped")

    def stop(self) -> None:
        """Signal the loop to stop once the current delivery has finished."""
        logger.info("dispatch_loop_stopping")
        self._stop_requested.set()

    async def _handle(self, result: PollResult) -> None:
        if isinstance(result, EventReady):
            event = result.event
            notification = self._translator.translate(event)
            if notification is None:
                return

            logger.info("announcing_event", title=event.title, venue=event.venue)
            outcome = await self._delivery.deliver(notification)
            if not outcome.success:
                logger.warning("event_not_announced", title=event.title, reason=outcome.reason)
        elif isinstance(result, TransientError):
            logger.warning("schedule_poll_error", reason=result.reason)


async def send_startup_page(
    client: DapnetClient, recipient: str, transmitter_groups: list[str]
) -> bool:
    """Page the operator to check the DAPNET connection. Never raises."""
    logger.info("checking_dapnet_connection")
    started = datetime.now(timezone.utc).strftime("%d %H:%M %Z")

    try:
        await client.send_call(
            Call(
                recipients=frozenset({recipient}),
                text=f"{recipient}: EMF sched. anncr. start at {started}",
                transmitter_groups=tuple(transmitter_groups),
            )
        )
    except Exception as e:
        logger.warning("startup_page_failed", error=str(e))
        return False

    logger.info("startup_page_sent")
    return True


def configure_logging(log_level: str) -> None:
    """Configure structlog for console output."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
    )


class Application:
    """Wires the collaborators of a dispatch loop from settings."""

    def __init__(
        self, settings: Settings, registry: CollectorRegistry = REGISTRY
    ) -> None:
        self.settings = settings
        self.schedule = ScheduleClient(settings)
        self.dapnet = DapnetClient(settings)

        catalog = (
            VenueCatalog.from_yaml(settings.venues_file)
            if settings.venues_file
            else VenueCatalog()
        )
        translator = EventTranslator(
            catalog,
            settings.mode,
            rubric=settings.rubric,
            recipients=settings.recipients,
            transmitter_groups=settings.transmitter_groups,
        )
        delivery = DeliveryManager(
            self.dapnet,
            AnnouncementMetrics(registry),
            dry_run=settings.dry_run,
            max_attempts=settings.max_delivery_attempts,
            retry_delay=settings.retry_delay,
        )

        event_start_offset = timedelta(seconds=settings.pre_event_announcement_time)
        logger.info("event_start_offset", seconds=event_start_offset.total_seconds())
        announcer = Announcer(
            self.schedule, event_start_offset, settings.schedule_refresh_interval
        )
        self.loop = DispatchLoop(announcer, translator, delivery)

    async def run(self) -> None:
        try:
            await send_startup_page(
                self.dapnet, self.settings.dapnet_username, self.settings.transmitter_groups
            )
            await self.loop.run()
        finally:
            await self.schedule.aclose()
            await self.dapnet.aclose()


def create_application(settings: Settings) -> Application:
    """Create an application instance, configuring logging and metrics."""
    configure_logging(settings.log_level)
    logger.info(
        "starting",
        mode=settings.mode.value,
        dry_run=settings.dry_run,
        api_url=settings.api_url,
    )
    start_metrics_server(settings.observability_address)
    return Application(settings)


def run_with_signal_handling(settings: Settings) -> None:
    """Run the announcer with graceful shutdown on SIGINT/SIGTERM."""
    app = create_application(settings)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    # Set up signal handlers
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.loop.stop)

    try:
        loop.run_until_complete(app.run())
    finally:
        loop.close()
