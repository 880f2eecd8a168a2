"""Async, fetch-once providers for the survey dataset and country boundaries.

Both sources are fetched with requests on a worker thread so the event loop
never blocks. A provider loads on first need, shares the in-flight load with
concurrent callers and keeps the result (or the failure) for the rest of the
process unless ``invalidate`` is called.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

import requests

from survey_records import CityRecord, parse_city_records

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_IDLE = "idle"
STATUS_PENDING = "pending"
STATUS_READY = "ready"
STATUS_FAILED = "failed"


class DataFetchError(RuntimeError):
    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class ProviderClosedError(DataFetchError):
    pass


class ProviderInvalidatedError(DataFetchError):
    """A load finished after ``invalidate``; its result was dropped."""


class CachedProvider(Generic[T]):
    def __init__(self, name: str, loader: Callable[[], Awaitable[T]]) -> None:
        self.name = name
        self._loader = loader
        self._task: Optional[asyncio.Future] = None
        self._value: Optional[T] = None
        self._error: Optional[DataFetchError] = None
        self._status = STATUS_IDLE
        self._closed = False
        self._generation = 0

    @property
    def status(self) -> str:
        return self._status

    @property
    def error(self) -> Optional[DataFetchError]:
        return self._error

    @property
    def closed(self) -> bool:
        return self._closed

    async def get(self) -> T:
        while True:
            if self._closed:
                raise ProviderClosedError(self.name, "provider is closed")
            if self._status == STATUS_READY:
                return self._value  # type: ignore[return-value]
            if self._status == STATUS_FAILED and self._error is not None:
                raise self._error
            if self._task is None:
                self._status = STATUS_PENDING
                self._task = asyncio.ensure_future(self._load(self._generation))
                self._task.add_done_callback(_consume_result)
            task = self._task
            try:
                return await asyncio.shield(task)
            except ProviderInvalidatedError:
                # Waiters of a dropped load move on to the reload.
                continue
            except asyncio.CancelledError:
                if self._closed and task.cancelled():
                    raise ProviderClosedError(self.name, "closed while loading") from None
                raise

    def _is_stale(self, generation: int) -> bool:
        return self._closed or generation != self._generation

    def _stale_error(self) -> DataFetchError:
        if self._closed:
            return ProviderClosedError(self.name, "result discarded")
        return ProviderInvalidatedError(self.name, "result discarded")

    async def _load(self, generation: int) -> T:
        logger.info("Loading %s", self.name)
        try:
            value = await self._loader()
        except DataFetchError as exc:
            if self._is_stale(generation):
                raise self._stale_error() from exc
            self._error = exc
            self._status = STATUS_FAILED
            logger.warning("Loading %s failed: %s", self.name, exc.message)
            raise
        if self._is_stale(generation):
            logger.debug("Discarding stale %s result", self.name)
            raise self._stale_error()
        self._value = value
        self._status = STATUS_READY
        return value

    def invalidate(self) -> None:
        # An in-flight load finishes but its result is dropped; waiters reload.
        self._generation += 1
        self._task = None
        self._value = None
        self._error = None
        self._status = STATUS_IDLE

    def close(self) -> None:
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


def _consume_result(task: "asyncio.Future") -> None:
    # Results of dropped loads may have no awaiter left.
    if not task.cancelled():
        task.exception()


def _is_remote(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _read_json(source: str, timeout: int) -> Any:
    if _is_remote(source):
        response = requests.get(source, timeout=timeout)
        response.raise_for_status()
        return response.json()
    return json.loads(Path(source).read_text(encoding="utf-8"))


def load_survey_records(source: str, timeout: int = 60) -> List[CityRecord]:
    try:
        payload = _read_json(source, timeout=timeout)
        records = parse_city_records(payload)
    except (requests.RequestException, OSError, ValueError) as exc:
        raise DataFetchError("survey data", f"failed to load {source}: {exc}") from exc
    logger.info("Loaded %d survey records from %s", len(records), source)
    return records


def index_country_polygons(geojson: Any, name_property: str) -> Dict[str, Dict[str, Any]]:
    """Key boundary features by their country name property."""
    if not isinstance(geojson, dict) or geojson.get("type") != "FeatureCollection":
        raise ValueError("Geography payload is not a GeoJSON FeatureCollection.")
    polygons: Dict[str, Dict[str, Any]] = {}
    for feature in geojson.get("features") or []:
        properties = feature.get("properties") or {}
        name = properties.get(name_property)
        if not name or not feature.get("geometry"):
            continue
        polygons[str(name)] = feature
    return polygons


def load_country_polygons(
    url: str,
    name_property: str,
    timeout: int = 60,
) -> Dict[str, Dict[str, Any]]:
    try:
        polygons = index_country_polygons(_read_json(url, timeout=timeout), name_property)
    except (requests.RequestException, OSError, ValueError) as exc:
        raise DataFetchError("geography", f"failed to load {url}: {exc}") from exc
    logger.info("Loaded %d country boundaries", len(polygons))
    return polygons


async def fetch_survey_records(source: str, timeout: int = 60) -> List[CityRecord]:
    return await asyncio.to_thread(load_survey_records, source, timeout)


async def fetch_country_polygons(
    url: str,
    name_property: str,
    timeout: int = 60,
) -> Dict[str, Dict[str, Any]]:
    return await asyncio.to_thread(load_country_polygons, url, name_property, timeout)


def survey_data_provider(source: str, timeout: int = 60) -> CachedProvider[List[CityRecord]]:
    return CachedProvider("survey data", lambda: fetch_survey_records(source, timeout))


def geography_provider(
    url: str,
    name_property: str,
    timeout: int = 60,
) -> CachedProvider[Dict[str, Dict[str, Any]]]:
    return CachedProvider(
        "geography",
        lambda: fetch_country_polygons(url, name_property, timeout),
    )
