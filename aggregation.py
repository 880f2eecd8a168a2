"""Response-weighted roll-ups of city survey records.

Country and state aggregates are recomputed from the full record list on
every call. Weights are response counts; missing CSAT and CES values count as
50 and 3 and non-numeric NPS as 0. A group whose responses sum to zero is
returned with ``zero_weight=True``, coordinates averaged without weights and
no metric values.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from survey_metrics import as_float, coerce_metric
from survey_records import LEVEL_COUNTRY, LEVEL_STATE, AggregateRecord, CityRecord

logger = logging.getLogger(__name__)

CSAT_DEFAULT = 50.0
CES_DEFAULT = 3.0

WEIGHTED_COLUMNS = ("latitude", "longitude", "nps", "csat", "ces")
METRIC_COLUMNS = ("nps", "csat", "ces")


def _metric_or_default(raw: object, default: float) -> float:
    value = as_float(raw)
    return default if value is None else value


def _weight(raw: object) -> float:
    value = as_float(raw)
    if value is None or not math.isfinite(value) or value < 0:
        return 0.0
    return value


def _records_frame(records: Iterable[CityRecord]) -> pd.DataFrame:
    rows = [
        {
            "country": record.country,
            "state_key": record.state_key,
            "latitude": float(record.latitude),
            "longitude": float(record.longitude),
            "nps": coerce_metric(record.nps),
            "csat": _metric_or_default(record.csat, CSAT_DEFAULT),
            "ces": _metric_or_default(record.ces, CES_DEFAULT),
            "weight": _weight(record.response_count),
            "survey_date": record.survey_date or "",
        }
        for record in records
    ]
    return pd.DataFrame(rows, columns=[
        "country",
        "state_key",
        *WEIGHTED_COLUMNS,
        "weight",
        "survey_date",
    ])


def _aggregate(frame: pd.DataFrame, key: str) -> pd.DataFrame:
    weighted = frame.copy()
    for col in WEIGHTED_COLUMNS:
        weighted[f"{col}_w"] = weighted[col] * weighted["weight"]

    grouped = weighted.groupby(key, sort=True)
    sums = grouped[[f"{col}_w" for col in WEIGHTED_COLUMNS] + ["weight"]].sum()
    plain = grouped[["latitude", "longitude"]].mean()
    latest = grouped["survey_date"].max()

    result = pd.DataFrame(index=sums.index)
    result["weight"] = sums["weight"]
    result["zero_weight"] = result["weight"] <= 0
    safe_weight = result["weight"].where(~result["zero_weight"])
    for col in WEIGHTED_COLUMNS:
        result[col] = sums[f"{col}_w"] / safe_weight
    result["latitude"] = result["latitude"].fillna(plain["latitude"])
    result["longitude"] = result["longitude"].fillna(plain["longitude"])
    result["survey_date"] = latest
    return result


def _optional(value: object) -> Optional[float]:
    if pd.isna(value):
        return None
    return float(value)


def _count(value: object) -> float:
    total = float(value)
    return int(total) if total.is_integer() else total


def _to_records(
    result: pd.DataFrame,
    level: str,
    country: Optional[str] = None,
) -> List[AggregateRecord]:
    aggregates: List[AggregateRecord] = []
    for name, row in result.iterrows():
        zero_weight = bool(row["zero_weight"])
        if zero_weight:
            logger.debug("Aggregate %s has no responses; metrics left empty", name)
        aggregates.append(
            AggregateRecord(
                name=str(name),
                level=level,
                latitude=float(row["latitude"]),
                longitude=float(row["longitude"]),
                nps=_optional(row["nps"]),
                csat=_optional(row["csat"]),
                ces=_optional(row["ces"]),
                response_count=_count(row["weight"]),
                survey_date=str(row["survey_date"]) or None,
                country=country,
                state=str(name) if level == LEVEL_STATE else None,
                zero_weight=zero_weight,
            )
        )
    return aggregates


def aggregate_by_country(records: Sequence[CityRecord]) -> List[AggregateRecord]:
    if not records:
        return []
    result = _aggregate(_records_frame(records), key="country")
    return _to_records(result, level=LEVEL_COUNTRY)


def aggregate_by_state(records: Sequence[CityRecord], country: str) -> List[AggregateRecord]:
    in_country = [record for record in records if record.country == country]
    if not in_country:
        return []
    result = _aggregate(_records_frame(in_country), key="state_key")
    return _to_records(result, level=LEVEL_STATE, country=country)


def country_names_in(records: Iterable[CityRecord]) -> List[str]:
    return sorted({record.country for record in records})


def state_names_in(records: Iterable[CityRecord], country: Optional[str]) -> List[str]:
    if not country:
        return []
    return sorted({record.state_key for record in records if record.country == country})
