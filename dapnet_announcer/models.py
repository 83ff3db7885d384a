"""Data models for dapnet-announcer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Union


class DispatchMode(str, Enum):
    """How event announcements are addressed on DAPNET.

    Also used as the target label of the announcement counter.
    """

    RUBRIC = "rubric"
    CALL = "call"


# DAPNET rejects news and calls longer than this
MAX_TEXT_LENGTH = 80

# Rubric news carries a sub-channel number in this range
MIN_CHANNEL_NUMBER = 1
MAX_CHANNEL_NUMBER = 10


class PayloadError(ValueError):
    """Raised when an outgoing notification fails validation."""


def _validate_text(text: str) -> None:
    if not text:
        raise PayloadError("notification text is empty")
    if len(text) > MAX_TEXT_LENGTH:
        raise PayloadError(
            f"notification text is {len(text)} characters, limit is {MAX_TEXT_LENGTH}"
        )


@dataclass(frozen=True)
class Event:
    """A scheduled event as surfaced by the schedule source."""

    venue: str
    title: str
    start_time: datetime
    event_id: int = 0


@dataclass(frozen=True)
class RubricNews:
    """News item broadcast to every subscriber of a rubric."""

    rubric: str
    channel_number: int
    text: str

    def __post_init__(self) -> None:
        if not self.rubric:
            raise PayloadError("rubric name is empty")
        if not MIN_CHANNEL_NUMBER <= self.channel_number <= MAX_CHANNEL_NUMBER:
            raise PayloadError(f"channel number {self.channel_number} out of range")
        _validate_text(self.text)

    @property
    def target(self) -> DispatchMode:
        return DispatchMode.RUBRIC


@dataclass(frozen=True)
class Call:
    """Page addressed to an explicit set of callsigns."""

    recipients: frozenset[str]
    text: str
    transmitter_groups: tuple[str, ...] = ("uk-all",)

    def __post_init__(self) -> None:
        if not self.recipients:
            raise PayloadError("call has no recipients")
        if not self.transmitter_groups:
            raise PayloadError("call has no transmitter groups")
        _validate_text(self.text)

    @property
    def target(self) -> DispatchMode:
        return DispatchMode.CALL


OutgoingNotification = Union[RubricNews, Call]


@dataclass(frozen=True)
class DeliveryOutcome:
    """Final result of delivering one notification."""

    success: bool
    attempts: int = 0
    reason: str = ""


@dataclass(frozen=True)
class EventReady:
    """Poll result: an event is due for announcement."""

    event: Event


@dataclass(frozen=True)
class NoOp:
    """Poll result: nothing to announce."""


@dataclass(frozen=True)
class TransientError:
    """Poll result: the schedule source failed but may recover."""

    reason: str = ""


PollResult = Union[EventReady, NoOp, TransientError]
