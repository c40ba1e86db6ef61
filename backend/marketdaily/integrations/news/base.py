"""Abstract base class for external news providers."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import httpx

from marketdaily.schemas.report import NewsEntry

logger = logging.getLogger(__name__)


class NewsProvider(ABC):
    """Unified interface for third-party news search.

    Implementations return items normalized to ``NewsEntry`` with
    ``external=True`` and raise on transport errors, non-2xx responses and
    malformed payloads. Isolation of failures is the gateway's job.
    """

    base_url: str = ""

    def __init__(
        self,
        api_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    async def search(self, query: str, days: int) -> list[NewsEntry]:
        """Free-text news search over the trailing ``days`` window."""
        ...

    @abstractmethod
    async def company_news(self, symbol: str, days: int) -> list[NewsEntry]:
        """News about a single ticker over the trailing ``days`` window."""
        ...

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            resp = await client.get(path, params=params)
            resp.raise_for_status()
            return resp.json()

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)


def parse_iso_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable timestamp: %s", value)
        return None
