"""Render-ready map items derived from the current view.

The rendering surface only reads these objects: positions, colour bands,
display strings, tooltip lines and the identity to report back on click.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Mapping, Optional, Sequence, Tuple

from country_names import to_geography_name, to_survey_name
from drilldown import ClickTarget, ViewState, derive_render_set, use_choropleth
from map_config import AREA_RADIUS_METERS, RADIUS_DIVISOR, RADIUS_MAX, RADIUS_MIN
from survey_metrics import (
    BAND_COLORS,
    METRIC_LABELS,
    classify,
    coerce_metric,
    format_count,
    format_metric,
    format_survey_time,
)
from survey_records import (
    LEVEL_CITY,
    LEVEL_COUNTRY,
    LEVEL_STATE,
    AggregateRecord,
    CityRecord,
    RenderItem,
)

DRILL_HINT_PATTERN = re.compile(r"Drill into (country|state): ([^<\n]+)")


@dataclass(frozen=True)
class MapMarker:
    label: str
    level: str
    latitude: float
    longitude: float
    value: float
    band: str
    color: str
    display_value: str
    tooltip: Tuple[str, ...]
    click: Optional[ClickTarget]
    radius_px: float
    area_radius_m: float
    time_label: str


@dataclass(frozen=True)
class ChoroplethEntry:
    geo_name: str
    marker: MapMarker


@dataclass(frozen=True)
class RenderFrame:
    view: ViewState
    use_choropleth: bool
    markers: List[MapMarker] = field(default_factory=list)
    choropleth: Dict[str, ChoroplethEntry] = field(default_factory=dict)

    @property
    def bounds(self) -> Optional[List[List[float]]]:
        points = [(m.latitude, m.longitude) for m in self.markers]
        points.extend(
            (entry.marker.latitude, entry.marker.longitude)
            for entry in self.choropleth.values()
        )
        if not points:
            return None
        lats = [lat for lat, _ in points]
        lons = [lon for _, lon in points]
        return [[min(lats), min(lons)], [max(lats), max(lons)]]


def marker_radius(response_count: object) -> float:
    return min(RADIUS_MAX, max(RADIUS_MIN, coerce_metric(response_count) / RADIUS_DIVISOR))


def click_target(item: RenderItem) -> Optional[ClickTarget]:
    if isinstance(item, AggregateRecord):
        return ClickTarget(level=item.level, name=item.name, country=item.country)
    return None


def tooltip_lines(item: RenderItem, metric: str) -> Tuple[str, ...]:
    lines = [
        item.label,
        f"{METRIC_LABELS[metric]}: {format_metric(getattr(item, metric), metric)}",
        f"Response Count: {format_count(item.response_count)}",
        f"NPS: {format_metric(item.nps, 'nps')}",
        f"CSAT: {format_metric(item.csat, 'csat')}",
        f"CES: {format_metric(item.ces, 'ces')}",
    ]
    if item.survey_date:
        lines.append(f"Survey: {format_survey_time(item.survey_date)}")
    return tuple(lines)


def build_marker(item: RenderItem, metric: str) -> MapMarker:
    if isinstance(item, (AggregateRecord, CityRecord)):
        level = item.level
    else:
        raise TypeError(f"Unsupported render item: {type(item).__name__}")

    raw = getattr(item, metric)
    value = coerce_metric(raw)
    band = classify(metric, value)
    return MapMarker(
        label=item.label,
        level=level,
        latitude=float(item.latitude),
        longitude=float(item.longitude),
        value=value,
        band=band,
        color=BAND_COLORS[band],
        display_value=format_metric(raw, metric),
        tooltip=tooltip_lines(item, metric),
        click=click_target(item),
        radius_px=marker_radius(item.response_count),
        area_radius_m=AREA_RADIUS_METERS.get(level, AREA_RADIUS_METERS[LEVEL_CITY]),
        time_label=format_survey_time(item.survey_date),
    )


def choropleth_join(
    aggregates: Sequence[AggregateRecord],
    metric: str,
) -> Dict[str, ChoroplethEntry]:
    joined: Dict[str, ChoroplethEntry] = {}
    for aggregate in aggregates:
        geo_name = to_geography_name(aggregate.name)
        joined[geo_name] = ChoroplethEntry(geo_name=geo_name, marker=build_marker(aggregate, metric))
    return joined


def build_render_frame(records: Sequence[CityRecord], view: ViewState) -> RenderFrame:
    items = derive_render_set(records, view)
    if use_choropleth(view) and items:
        aggregates = [item for item in items if isinstance(item, AggregateRecord)]
        return RenderFrame(
            view=view,
            use_choropleth=True,
            choropleth=choropleth_join(aggregates, view.metric),
        )
    return RenderFrame(
        view=view,
        use_choropleth=False,
        markers=[build_marker(item, view.metric) for item in items],
    )


def drill_hint(target: ClickTarget) -> str:
    return f"Drill into {target.level}: {target.name}"


def _target_from_feature(
    feature: Mapping[str, Any],
    known_countries: Collection[str],
) -> Optional[ClickTarget]:
    properties = feature.get("properties") or {}
    name = str(properties.get("survey_name") or "")
    if not name and properties.get("geo_name"):
        name = to_survey_name(str(properties["geo_name"]), known=known_countries)
    if name not in known_countries:
        return None
    return ClickTarget(level=LEVEL_COUNTRY, name=name)


def click_target_from_event(
    event: Optional[Mapping[str, Any]],
    view: ViewState,
    known_countries: Sequence[str],
) -> Optional[ClickTarget]:
    """Translate a click reported by the browser map into a drill target.

    Choropleth regions are identified by the properties of the clicked
    GeoJSON feature (or the first tooltip line); markers by the drill hint
    in their popup. Clicks that do not belong to the current level, such as
    one left over from the previous view, resolve to None.
    """
    if not event:
        return None
    known = set(known_countries)

    if use_choropleth(view):
        feature = event.get("last_active_drawing")
        if isinstance(feature, Mapping):
            target = _target_from_feature(feature, known)
            if target is not None:
                return target
        tooltip = re.sub(r"<br\s*/?>", "\n", str(event.get("last_object_clicked_tooltip") or ""))
        lines = html.unescape(tooltip).strip().splitlines()
        first_line = lines[0].strip() if lines else ""
        if first_line in known:
            return ClickTarget(level=LEVEL_COUNTRY, name=first_line)

    popup = event.get("last_object_clicked_popup")
    if not popup:
        return None
    match = DRILL_HINT_PATTERN.search(html.unescape(str(popup)))
    if match is None:
        return None
    level, name = match.group(1), match.group(2).strip()
    if level != view.drill_level:
        return None
    if level == LEVEL_STATE:
        if not view.country:
            return None
        return ClickTarget(level=LEVEL_STATE, name=name, country=view.country)
    return ClickTarget(level=LEVEL_COUNTRY, name=name)
