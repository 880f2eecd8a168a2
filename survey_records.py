"""City-level survey records and the aggregates derived from them."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Mapping, Optional, Union

from survey_metrics import as_float
from survey_schema import FIELD_ALIASES, missing_survey_fields, validate_survey_payload

logger = logging.getLogger(__name__)

LEVEL_COUNTRY = "country"
LEVEL_STATE = "state"
LEVEL_CITY = "city"
DRILL_LEVELS = (LEVEL_COUNTRY, LEVEL_STATE, LEVEL_CITY)


@dataclass(frozen=True)
class CityRecord:
    city: str
    country: str
    latitude: float
    longitude: float
    nps: Optional[float]
    response_count: float
    state: str = ""
    csat: Optional[float] = None
    ces: Optional[float] = None
    survey_date: Optional[str] = None

    @property
    def level(self) -> str:
        return LEVEL_CITY

    @property
    def state_key(self) -> str:
        """State used for grouping; country-wide records fall back to the country."""
        return self.state or self.country

    @property
    def label(self) -> str:
        parts = [self.city]
        if self.state:
            parts.append(self.state)
        parts.append(self.country)
        return ", ".join(parts)


@dataclass(frozen=True)
class AggregateRecord:
    name: str
    level: str
    latitude: float
    longitude: float
    nps: Optional[float]
    csat: Optional[float]
    ces: Optional[float]
    response_count: float
    survey_date: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    # Set when every constituent has a response count of 0; metrics are then None.
    zero_weight: bool = False

    @property
    def label(self) -> str:
        return self.name


RenderItem = Union[AggregateRecord, CityRecord]


def _optional_number(raw: object) -> Optional[float]:
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, str):
        try:
            raw = float(raw.strip())
        except ValueError:
            return None
    return as_float(raw)


def _text(raw: object) -> str:
    if raw is None:
        return ""
    return str(raw).strip()


def parse_city_record(row: Mapping[str, object]) -> Optional[CityRecord]:
    """Build a CityRecord from one dataset row, or None if the row is unusable.

    Metric fields become floats, or ``None`` when missing, non-numeric or
    NaN, so that defaults are applied where the values are consumed.
    """
    normalized = {FIELD_ALIASES.get(key, key): value for key, value in row.items()}
    missing = missing_survey_fields(normalized)
    if missing:
        logger.warning("Skipping survey row without %s: %r", ", ".join(missing), dict(row))
        return None

    latitude = _optional_number(normalized["latitude"])
    longitude = _optional_number(normalized["longitude"])
    if (
        latitude is None
        or longitude is None
        or not math.isfinite(latitude)
        or not math.isfinite(longitude)
    ):
        logger.warning("Skipping survey row with non-numeric coordinates: %r", dict(row))
        return None

    response_count = _optional_number(normalized.get("response_count"))
    survey_date = _text(normalized.get("survey_date")) or None

    return CityRecord(
        city=_text(normalized["city"]),
        country=_text(normalized["country"]),
        state=_text(normalized.get("state")),
        latitude=float(latitude),
        longitude=float(longitude),
        nps=_optional_number(normalized.get("nps")),
        csat=_optional_number(normalized.get("csat")),
        ces=_optional_number(normalized.get("ces")),
        response_count=response_count if response_count is not None else 0,
        survey_date=survey_date,
    )


def parse_city_records(payload: object) -> List[CityRecord]:
    validate_survey_payload(payload)
    records = [parse_city_record(row) for row in payload]
    parsed = [record for record in records if record is not None]
    skipped = len(records) - len(parsed)
    if skipped:
        logger.warning("Skipped %d of %d survey rows", skipped, len(records))
    return parsed
