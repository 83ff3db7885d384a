"""Notification delivery with bounded retry for dapnet-announcer."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from dapnet_announcer.dapnet_client import DapnetClient
from dapnet_announcer.metrics import RESULT_ERROR, RESULT_OK, AnnouncementMetrics
from dapnet_announcer.models import (
    DeliveryOutcome,
    OutgoingNotification,
    RubricNews,
)

logger = structlog.get_logger()


class DeliveryManager:
    """Sends notifications to DAPNET, retrying failed attempts."""

    def __init__(
        self,
        client: DapnetClient,
        metrics: AnnouncementMetrics,
        *,
        dry_run: bool = False,
        max_attempts: int = 5,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._metrics = metrics
        self._dry_run = dry_run
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._sleep = sleep

    async def deliver(self, notification: OutgoingNotification) -> DeliveryOutcome:
        """Deliver a notification. Never raises on transport failure."""
        target = notification.target
        log = logger.bind(target=target.value, text=notification.text)

        if self._dry_run:
            log.info("dry_run_skip_delivery", notification=repr(notification))
            return DeliveryOutcome(success=True, attempts=0, reason="dry run")

        last_error = ""

        for attempt in range(1, self._max_attempts + 1):
            log.info("delivery_attempt", attempt=attempt, max_attempts=self._max_attempts)

            try:
                await self._send(notification)
            except Exception as e:
                last_error = str(e)
                log.error("delivery_attempt_failed", attempt=attempt, error=last_error)
                self._metrics.record(target, RESULT_ERROR)
            else:
                log.info("delivery_succeeded", attempt=attempt)
                self._metrics.record(target, RESULT_OK)
                return DeliveryOutcome(success=True, attempts=attempt)

            # Fixed delay, no backoff
            if attempt < self._max_attempts:
                await self._sleep(self._retry_delay)

        log.error("delivery_failed_permanently", attempts=self._max_attempts, error=last_error)
        return DeliveryOutcome(
            success=False, attempts=self._max_attempts, reason=last_error
        )

    async def _send(self, notification: OutgoingNotification) -> None:
        if isinstance(notification, RubricNews):
            await self._client.send_rubric_news(notification)
        else:
            await self._client.send_call(notification)
