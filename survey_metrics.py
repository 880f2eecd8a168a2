"""Metric value helpers shared by aggregation, tooltips and the map legend."""

from __future__ import annotations

import math
import re
from typing import Dict, List, Optional, Tuple

import pandas as pd

METRICS: Tuple[str, ...] = ("nps", "csat", "ces")

METRIC_LABELS: Dict[str, str] = {
    "nps": "NPS",
    "csat": "CSAT",
    "ces": "CES",
}

MISSING_VALUE = "—"

# pandas also accepts words such as "now"; only ISO-8601 dates are formatted.
ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")

BAND_GOOD = "good"
BAND_NEUTRAL = "neutral"
BAND_BAD = "bad"
BAND_UNKNOWN = "unknown"

BAND_COLORS: Dict[str, str] = {
    BAND_GOOD: "#22c55e",
    BAND_NEUTRAL: "#eab308",
    BAND_BAD: "#ef4444",
    BAND_UNKNOWN: "#6b7280",
}

LEGEND_LABELS: Dict[str, Tuple[str, str, str]] = {
    "nps": ("50+", "0–49", "<0"),
    "csat": ("80+", "60–79", "<60"),
    "ces": ("1–2.9", "3–5", ">5"),
}


def as_float(raw: object) -> Optional[float]:
    """Return ``raw`` as a float, or None when it is not a usable number.

    Booleans, NaN and integers too large for a float all count as unusable.
    """
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    try:
        value = float(raw)
    except OverflowError:
        return None
    if math.isnan(value):
        return None
    return value


def coerce_metric(raw: object) -> float:
    """Return ``raw`` as a float, or 0.0 when it is missing, NaN or not numeric."""
    value = as_float(raw)
    return 0.0 if value is None else value


def format_metric(raw: object, metric: str) -> str:
    value = as_float(raw)
    if value is None or not math.isfinite(value):
        return MISSING_VALUE
    if metric == "ces":
        return f"{value:.1f}"
    return str(math.floor(value + 0.5))


def format_count(raw: object) -> str:
    value = coerce_metric(raw)
    if value.is_integer():
        return str(int(value))
    return f"{value:g}"


def classify(metric: str, value: object) -> str:
    v = coerce_metric(value)
    if metric == "nps":
        if v >= 50:
            return BAND_GOOD
        if v >= 0:
            return BAND_NEUTRAL
        return BAND_BAD
    if metric == "csat":
        if v >= 80:
            return BAND_GOOD
        if v >= 60:
            return BAND_NEUTRAL
        return BAND_BAD
    if metric == "ces":
        # Lower effort is better.
        if v < 3:
            return BAND_GOOD
        if v <= 5:
            return BAND_NEUTRAL
        return BAND_BAD
    return BAND_UNKNOWN


def metric_color(metric: str, value: object) -> str:
    return BAND_COLORS[classify(metric, value)]


def legend_ranges(metric: str) -> List[Tuple[str, str]]:
    labels = LEGEND_LABELS.get(metric)
    if labels is None:
        return []
    bands = (BAND_GOOD, BAND_NEUTRAL, BAND_BAD)
    return [(label, BAND_COLORS[band]) for label, band in zip(labels, bands)]


def format_survey_time(iso: Optional[str]) -> str:
    """Render an ISO-8601 survey timestamp as e.g. ``Nov 15, 2024 09:30``.

    Unparseable input is returned unchanged.
    """
    if not iso:
        return MISSING_VALUE
    text = str(iso)
    if not ISO_DATE_PREFIX.match(text):
        return text
    try:
        stamp = pd.Timestamp(text)
    except (TypeError, ValueError, OverflowError):
        return text
    if pd.isna(stamp):
        return text
    return f"{stamp:%b} {stamp.day}, {stamp:%Y %H:%M}"
