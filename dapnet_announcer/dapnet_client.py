"""DAPNET API client for dapnet-announcer."""

from __future__ import annotations

import httpx
import structlog

from dapnet_announcer.config import Settings
from dapnet_announcer.models import Call, RubricNews

logger = structlog.get_logger()


class DapnetError(Exception):
    """Raised when DAPNET rejects a request or cannot be reached."""


class DapnetClient:
    """Wrapper around the DAPNET REST API for news and calls."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=settings.dapnet_url.rstrip("/"),
            auth=httpx.BasicAuth(settings.dapnet_username, settings.dapnet_password),
            timeout=settings.http_timeout,
            transport=transport,
        )

    async def send_rubric_news(self, news: RubricNews) -> None:
        """Post a news item to a rubric."""
        logger.debug("posting_news", rubric=news.rubric, number=news.channel_number)
        await self._post(
            "/news",
            {
                "rubricName": news.rubric,
                "text": news.text,
                "number": news.channel_number,
            },
        )

    async def send_call(self, call: Call) -> None:
        """Page a set of callsigns."""
        logger.debug("posting_call", recipients=sorted(call.recipients))
        await self._post(
            "/calls",
            {
                "text": call.text,
                "callSignNames": sorted(call.recipients),
                "transmitterGroupNames": list(call.transmitter_groups),
                "emergency": False,
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, body: dict) -> None:
        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as e:
            raise DapnetError(f"DAPNET request to {path} failed: {e}") from e

        if response.is_error:
            raise DapnetError(
                f"DAPNET rejected {path} (HTTP {response.status_code}): "
                f"{response.text[:200]}"
            )
