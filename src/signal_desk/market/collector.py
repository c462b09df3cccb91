"""Concurrent multi-source fetch with an overall deadline.

Sources are fanned out with asyncio.gather. The whole fetch is bounded by
one deadline: past it, nothing is returned. Within it, a failing source is
recorded and its fragment skipped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from signal_desk.common.errors import PartialSourceFailure, TimeoutExceeded
from signal_desk.common.types import JsonDict, SourceFetcher

logger = logging.getLogger(__name__)


@dataclass
class CollectedData:
    """Merged payload plus per-source outcome.

    Attributes:
        payload: fragments from all successful sources, merged in source order
        successful: names of sources that returned a usable fragment
        failures: one PartialSourceFailure per failed source
    """

    payload: JsonDict = field(default_factory=dict)
    successful: list[str] = field(default_factory=list)
    failures: list[PartialSourceFailure] = field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [f.source for f in self.failures]


def merge_fragment(target: dict, fragment: Mapping) -> None:
    """Deep-merge *fragment* into *target*; later sources win on conflicts."""
    for key, value in fragment.items():
        existing = target.get(key)
        if isinstance(existing, dict) and isinstance(value, Mapping):
            merge_fragment(existing, value)
        elif isinstance(value, Mapping):
            target[key] = {}
            merge_fragment(target[key], value)
        else:
            target[key] = value


async def collect_sources(
    fetchers: Mapping[str, SourceFetcher],
    timeout: float,
) -> CollectedData:
    """Run all source fetchers concurrently under one deadline.

    Raises:
        TimeoutExceeded: the deadline passed before every source settled
    """
    names = list(fetchers)
    coros = [fetchers[name]() for name in names]

    try:
        results = await asyncio.wait_for(
            asyncio.gather(*coros, return_exceptions=True),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("Data collection timed out after %.1fs (%d sources)", timeout, len(names))
        raise TimeoutExceeded(timeout) from None

    collected = CollectedData()
    for name, result in zip(names, results):
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            logger.warning("Source %s failed: %s", name, result)
            collected.failures.append(PartialSourceFailure(name, str(result) or type(result).__name__))
        elif not isinstance(result, Mapping) or not result:
            logger.info("Source %s returned no data", name)
            collected.failures.append(PartialSourceFailure(name, "empty response"))
        else:
            merge_fragment(collected.payload, result)
            collected.successful.append(name)

    logger.debug(
        "Collected %d/%d sources", len(collected.successful), len(names),
    )
    return collected
