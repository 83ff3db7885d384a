"""Turns schedule events into DAPNET notifications."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from dapnet_announcer.models import (
    Call,
    DispatchMode,
    Event,
    OutgoingNotification,
    PayloadError,
    RubricNews,
)
from dapnet_announcer.venues import VenueCatalog

logger = structlog.get_logger()


class EventTranslator:
    """Builds the rubric news or call announcing an event."""

    def __init__(
        self,
        catalog: VenueCatalog,
        mode: DispatchMode = DispatchMode.RUBRIC,
        *,
        rubric: str = "emfcamp",
        recipients: Iterable[str] = (),
        transmitter_groups: Iterable[str] = ("uk-all",),
    ) -> None:
        self._catalog = catalog
        self._mode = mode
        self._rubric = rubric
        self._recipients = frozenset(recipients)
        self._transmitter_groups = tuple(transmitter_groups)

    def translate(
        self, event: Event, mode: DispatchMode | None = None
    ) -> OutgoingNotification | None:
        """Build the notification for an event, or None if it cannot be sent."""
        mode = mode or self._mode
        venue = self._catalog.resolve(event.venue)
        text = f"{venue.short_name}: {event.title}"

        try:
            if mode == DispatchMode.RUBRIC:
                return RubricNews(
                    rubric=self._rubric,
                    channel_number=venue.channel_number,
                    text=text,
                )
            return Call(
                recipients=self._recipients,
                text=text,
                transmitter_groups=self._transmitter_groups,
            )
        except PayloadError as e:
            # Deterministic, so retrying would not help
            logger.error(
                "translation_failed",
                mode=mode.value,
                venue=event.venue,
                title=event.title,
                error=str(e),
            )
            return None
