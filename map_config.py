"""Shared map configuration, environment settings and option parsing."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Tuple

from survey_metrics import METRIC_LABELS, METRICS

DEFAULT_DATA_SOURCE = "data/survey_data.json"
DEFAULT_GEOGRAPHY_URL = (
    "https://raw.githubusercontent.com/nvkelso/natural-earth-vector/master/"
    "geojson/ne_110m_admin_0_countries.geojson"
)
DEFAULT_GEOGRAPHY_NAME_PROPERTY = "NAME"
DEFAULT_REQUEST_TIMEOUT = 60

MAP_CENTER = [20.0, 0.0]
DEFAULT_ZOOM = 2
FIT_PADDING = (40, 40)
FIT_MAX_ZOOM = 10

# Circle marker radius in pixels, scaled from response count.
RADIUS_MIN = 5
RADIUS_MAX = 25
RADIUS_DIVISOR = 10

AREA_RADIUS_METERS: Dict[str, float] = {
    "country": 600_000,
    "state": 180_000,
    "city": 70_000,
}

UNMATCHED_REGION_COLOR = "#e5e7eb"

DISPLAY_TYPE_LABELS: Dict[str, str] = {
    "circle": "Circle",
    "time": "Time",
    "area": "Area",
}
DISPLAY_TYPES: Tuple[str, ...] = tuple(DISPLAY_TYPE_LABELS.keys())

TILE_LAYERS: Dict[str, Dict[str, str]] = {
    "standard": {
        "label": "Standard",
        "tiles": "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png",
        "attr": (
            '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a>'
        ),
    },
    "satellite": {
        "label": "Satellite",
        "tiles": (
            "https://server.arcgisonline.com/ArcGIS/rest/services/"
            "World_Imagery/MapServer/tile/{z}/{y}/{x}"
        ),
        "attr": "Tiles &copy; Esri",
    },
    "terrain": {
        "label": "Terrain",
        "tiles": "https://{s}.tile.opentopomap.org/{z}/{x}/{y}.png",
        "attr": (
            'Map data: &copy; <a href="https://www.openstreetmap.org/copyright">'
            "OpenStreetMap</a> contributors, SRTM | Map style: &copy; "
            '<a href="https://opentopomap.org">OpenTopoMap</a>'
        ),
    },
}
BASE_LAYERS: Tuple[str, ...] = tuple(TILE_LAYERS.keys())
DEFAULT_BASE_LAYER = "standard"


def _parse_choice(raw: str, valid: Tuple[str, ...], kind: str) -> str:
    value = raw.strip().lower()
    if value not in valid:
        raise ValueError(f"Unknown {kind}: '{raw}'. Valid values: {', '.join(valid)}.")
    return value


def parse_metric(raw: str) -> str:
    return _parse_choice(raw, METRICS, "metric")


def parse_display_type(raw: str) -> str:
    return _parse_choice(raw, DISPLAY_TYPES, "display type")


def parse_base_layer(raw: str) -> str:
    return _parse_choice(raw, BASE_LAYERS, "base layer")


def metric_options() -> Dict[str, str]:
    return {metric: METRIC_LABELS[metric] for metric in METRICS}


@dataclass(frozen=True)
class MapSettings:
    data_source: str
    geography_url: str
    geography_name_property: str
    request_timeout: int

    @property
    def data_is_remote(self) -> bool:
        return self.data_source.startswith(("http://", "https://"))

    @property
    def data_path(self) -> Path:
        return Path(self.data_source)


def _timeout_from_env(raw: str) -> int:
    try:
        timeout = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"SURVEY_MAP_REQUEST_TIMEOUT must be an integer, got '{raw}'.") from exc
    if timeout <= 0:
        raise ValueError("SURVEY_MAP_REQUEST_TIMEOUT must be greater than zero.")
    return timeout


@lru_cache(maxsize=1)
def get_map_settings() -> MapSettings:
    """Read settings from the environment once per process."""
    return MapSettings(
        data_source=os.getenv("SURVEY_MAP_DATA_SOURCE", DEFAULT_DATA_SOURCE).strip(),
        geography_url=os.getenv("SURVEY_MAP_GEOGRAPHY_URL", DEFAULT_GEOGRAPHY_URL).strip(),
        geography_name_property=os.getenv(
            "SURVEY_MAP_GEOGRAPHY_NAME_PROPERTY",
            DEFAULT_GEOGRAPHY_NAME_PROPERTY,
        ).strip(),
        request_timeout=_timeout_from_env(
            os.getenv("SURVEY_MAP_REQUEST_TIMEOUT", str(DEFAULT_REQUEST_TIMEOUT))
        ),
    )
