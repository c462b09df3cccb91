"""Market data service client (read-only)."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from signal_desk.common.errors import DataServiceError
from signal_desk.common.http import HttpClient
from signal_desk.common.types import JsonDict, SourceFetcher
from signal_desk.config import get_settings

logger = logging.getLogger(__name__)


def unwrap_payload(body: object) -> JsonDict:
    """Accept a bare payload or a ``{"success": ..., "data": {...}}`` envelope."""
    if not isinstance(body, Mapping):
        raise DataServiceError("Data service returned a non-object body")
    if "success" in body:
        if not body.get("success"):
            raise DataServiceError(str(body.get("error") or "Data service reported failure"))
        data = body.get("data")
        if not isinstance(data, Mapping):
            raise DataServiceError("Data service envelope has no data object")
        return dict(data)
    return dict(body)


class DataServiceClient:
    """Fetches the aggregated analysis payload for a symbol/timeframe."""

    def __init__(self, http: HttpClient | None = None, base_url: str | None = None) -> None:
        self._http = http or HttpClient(base_url=base_url or get_settings().data_api_url)

    async def fetch_analysis(self, symbol: str, timeframe: str) -> JsonDict:
        body = await self._http.get_json(
            "/analysis",
            params={"symbol": symbol, "timeframe": timeframe},
        )
        payload = unwrap_payload(body)
        logger.debug("Fetched analysis for %s %s (%d keys)", symbol, timeframe, len(payload))
        return payload

    async def close(self) -> None:
        await self._http.close()

    async def __aenter__(self) -> DataServiceClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()


def default_fetchers(
    client: DataServiceClient,
    symbol: str,
    timeframe: str,
) -> dict[str, SourceFetcher]:
    """Source map for the collector: the aggregated analysis feed."""

    async def _analysis() -> JsonDict:
        return await client.fetch_analysis(symbol, timeframe)

    return {"analysis": _analysis}
