"""Configuration management for dapnet-announcer."""

from __future__ import annotations

import json
from typing import Annotated

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode

from dapnet_announcer.models import DispatchMode


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    List settings (`RECIPIENTS`, `TRANSMITTER_GROUPS`) accept either a
    comma-separated value such as `M0ABC,M0XYZ` or a JSON array.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Schedule API
    api_url: str = "https://schedule.emfcamp.dan-nixon.com/schedule"
    schedule_refresh_interval: int = 60  # seconds between schedule fetches
    pre_event_announcement_time: int = 120  # seconds before event start

    # DAPNET
    dapnet_url: str = "https://hampager.de/api"
    dapnet_username: str
    dapnet_password: str
    transmitter_groups: Annotated[list[str], NoDecode] = ["uk-all"]
    http_timeout: float = 10.0

    # Dispatch
    mode: DispatchMode = DispatchMode.RUBRIC
    rubric: str = "emfcamp"
    recipients: Annotated[list[str], NoDecode] = []
    dry_run: bool = False
    max_delivery_attempts: int = 5
    retry_delay: float = 1.0  # fixed delay between attempts, no backoff
    venues_file: str = ""  # empty uses the built-in venue table

    # Observability
    observability_address: str = "127.0.0.1:9090"
    log_level: str = "INFO"

    @field_validator("recipients", "transmitter_groups", mode="before")
    @classmethod
    def _split_list(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        value = value.strip()
        if value.startswith("["):
            return json.loads(value)
        return [item.strip() for item in value.split(",") if item.strip()]

    @field_validator("pre_event_announcement_time", "schedule_refresh_interval")
    @classmethod
    def _positive_seconds(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive number of seconds")
        return value

    @field_validator("max_delivery_attempts")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        if value < 1:
            raise ValueError("at least one delivery attempt is required")
        return value

    @field_validator("observability_address")
    @classmethod
    def _host_and_port(cls, value: str) -> str:
        host, sep, port = value.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError("expected an address of the form host:port")
        return value

    @model_validator(mode="after")
    def _mode_has_target(self) -> Settings:
        if self.mode == DispatchMode.CALL and not self.recipients:
            raise ValueError("call mode requires at least one recipient")
        if self.mode == DispatchMode.RUBRIC and not self.rubric:
            raise ValueError("rubric mode requires a rubric name")
        return self
