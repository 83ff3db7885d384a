"""Venue table: maps schedule venue labels to short names and news channels."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog
import yaml

from dapnet_announcer.models import MAX_CHANNEL_NUMBER, MIN_CHANNEL_NUMBER

logger = structlog.get_logger()

FALLBACK_KEY = "other"
FALLBACK_CHANNEL_NUMBER = 10


@dataclass(frozen=True)
class VenueEntry:
    """Display data for one venue."""

    canonical_key: str
    short_name: str
    channel_number: int


# Channel numbers must never change between releases: receivers filter on them.
DEFAULT_VENUES: dict[str, VenueEntry] = {
    "Stage A": VenueEntry("stage-a", "Stg A", 1),
    "Stage B": VenueEntry("stage-b", "Stg B", 2),
    "Stage C": VenueEntry("stage-c", "Stg C", 3),
    "Workshop 1 (NottingHack)": VenueEntry("workshop-1", "Wksp 1", 4),
    "Workshop 2": VenueEntry("workshop-2", "Wksp 2", 5),
    "Workshop 3 (Furry High Commission)": VenueEntry("workshop-3", "Wksp 3", 6),
    "Workshop 4": VenueEntry("workshop-4", "Wksp 4", 7),
    "Workshop 5": VenueEntry("workshop-5", "Wksp 5", 8),
    "Null Sector": VenueEntry("null-sector", "Null Sec", 9),
}


class VenueCatalog:
    """Exact-match lookup from raw venue label to VenueEntry."""

    def __init__(self, venues: dict[str, VenueEntry] | None = None) -> None:
        table = DEFAULT_VENUES if venues is None else venues
        for label, entry in table.items():
            if not MIN_CHANNEL_NUMBER <= entry.channel_number <= MAX_CHANNEL_NUMBER:
                raise ValueError(
                    f"Venue {label!r} has channel number {entry.channel_number}, "
                    f"expected {MIN_CHANNEL_NUMBER}..{MAX_CHANNEL_NUMBER}"
                )
        self._venues = dict(table)

    def resolve(self, raw_venue: str) -> VenueEntry:
        """Look up a venue; unknown venues get the catch-all channel."""
        entry = self._venues.get(raw_venue)
        if entry is None:
            return VenueEntry(FALLBACK_KEY, raw_venue, FALLBACK_CHANNEL_NUMBER)
        return entry

    @property
    def labels(self) -> list[str]:
        return list(self._venues)

    @classmethod
    def from_yaml(cls, config_path: str) -> VenueCatalog:
        """Load a venue table from YAML, falling back to the built-in table.

        Expected layout::

            venues:
              - label: "Stage A"
                key: stage-a
                short_name: "Stg A"
                channel: 1

        Args:
            config_path: Path to the YAML venue file.
        """
        config_file = Path(config_path)

        if not config_file.exists():
            logger.warning("venues_file_not_found", path=config_path)
            return cls()

        try:
            with config_file.open("r") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error("yaml_parse_error", path=config_path, error=str(e))
            return cls()

        if not config_data or not isinstance(config_data.get("venues"), list):
            logger.warning("missing_venues_list", path=config_path)
            return cls()

        venues: dict[str, VenueEntry] = {}
        seen_channels: set[int] = set()

        for record in config_data["venues"]:
            if not isinstance(record, dict):
                logger.warning("invalid_venue_entry", entry=record)
                continue

            label = record.get("label")
            if not label or not isinstance(label, str):
                logger.warning("missing_venue_label", entry=record)
                continue

            if label in venues:
                logger.warning("duplicate_venue_label", label=label)
                continue

            short_name = record.get("short_name")
            if not short_name or not isinstance(short_name, str):
                logger.warning("missing_short_name", label=label)
                continue

            channel = record.get("channel")
            if (
                not isinstance(channel, int)
                or isinstance(channel, bool)
                or not MIN_CHANNEL_NUMBER <= channel <= MAX_CHANNEL_NUMBER
            ):
                logger.warning("invalid_channel_number", label=label, channel=channel)
                continue

            if channel in seen_channels:
                # Channels may be shared, but it usually means a typo
                logger.warning("shared_channel_number", label=label, channel=channel)
            seen_channels.add(channel)

            key = record.get("key") or label.lower().replace(" ", "-")
            venues[label] = VenueEntry(str(key), short_name, channel)

        if not venues:
            logger.warning("no_valid_venues", path=config_path)
            return cls()

        logger.info("venues_loaded", path=config_path, venue_count=len(venues))
        return cls(venues)
