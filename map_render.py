"""Folium rendering of a survey map frame.

Circle, time-label and area encodings are drawn per marker; the country
level in area mode is drawn as a choropleth over country boundaries instead.
"""

from __future__ import annotations

import html
from typing import Any, Dict, Optional

try:
    import folium
    from branca.element import MacroElement, Template
    from folium import plugins
except ImportError as exc:
    raise SystemExit(
        "Folium dependencies are missing. Run: pip3 install -e ."
    ) from exc

from map_config import (
    DEFAULT_ZOOM,
    FIT_MAX_ZOOM,
    FIT_PADDING,
    MAP_CENTER,
    TILE_LAYERS,
    UNMATCHED_REGION_COLOR,
)
from render_frame import MapMarker, RenderFrame, drill_hint
from survey_metrics import METRIC_LABELS, legend_ranges

TOOLTIP_STYLE = "font-family:Arial,sans-serif;font-size:12px;"


def _tooltip(marker: MapMarker) -> folium.Tooltip:
    body = "<br>".join(html.escape(line) for line in marker.tooltip)
    return folium.Tooltip(body, sticky=False, style=TOOLTIP_STYLE)


def _popup(marker: MapMarker) -> Optional[folium.Popup]:
    if marker.click is None:
        return None
    body = (
        f"<b>{html.escape(marker.label)}</b><br>"
        f"{html.escape(drill_hint(marker.click))}"
    )
    return folium.Popup(body, max_width=260)


def _add_base_layers(map_object: folium.Map, selected: str) -> None:
    for key, layer in TILE_LAYERS.items():
        folium.TileLayer(
            tiles=layer["tiles"],
            attr=layer["attr"],
            name=layer["label"],
            overlay=False,
            control=True,
            show=key == selected,
        ).add_to(map_object)


def _add_circle_marker(layer: folium.FeatureGroup, marker: MapMarker) -> None:
    folium.CircleMarker(
        location=[marker.latitude, marker.longitude],
        radius=marker.radius_px,
        color="#1f2937",
        weight=1,
        opacity=1,
        fill=True,
        fill_color=marker.color,
        fill_opacity=0.8,
        tooltip=_tooltip(marker),
        popup=_popup(marker),
    ).add_to(layer)


def _add_area_circle(layer: folium.FeatureGroup, marker: MapMarker) -> None:
    folium.Circle(
        location=[marker.latitude, marker.longitude],
        radius=marker.area_radius_m,
        color="rgba(31, 41, 55, 0.6)",
        weight=1.5,
        opacity=0.8,
        fill=True,
        fill_color=marker.color,
        fill_opacity=0.4,
        tooltip=_tooltip(marker),
        popup=_popup(marker),
    ).add_to(layer)


def _add_time_label(layer: folium.FeatureGroup, marker: MapMarker) -> None:
    icon = folium.DivIcon(
        class_name="survey-time-marker",
        icon_size=(120, 24),
        icon_anchor=(60, 12),
        html=(
            '<span class="survey-time-label" style="'
            f"background:#fff;border:2px solid {marker.color};border-radius:4px;"
            'padding:2px 4px;font:11px Arial,sans-serif;white-space:nowrap;">'
            f"{html.escape(marker.time_label)}</span>"
        ),
    )
    folium.Marker(
        location=[marker.latitude, marker.longitude],
        icon=icon,
        tooltip=_tooltip(marker),
        popup=_popup(marker),
    ).add_to(layer)


def _add_choropleth(
    map_object: folium.Map,
    frame: RenderFrame,
    polygons: Dict[str, Dict[str, Any]],
) -> None:
    features = []
    for name, feature in polygons.items():
        entry = frame.choropleth.get(name)
        click = entry.marker.click if entry else None
        properties = {
            "geo_name": name,
            "survey_name": click.name if click else "",
            "fill": entry.marker.color if entry else UNMATCHED_REGION_COLOR,
            "tooltip": "<br>".join(html.escape(line) for line in entry.marker.tooltip)
            if entry
            else html.escape(name),
        }
        features.append(
            {"type": "Feature", "geometry": feature["geometry"], "properties": properties}
        )

    folium.GeoJson(
        {"type": "FeatureCollection", "features": features},
        name="Survey Regions",
        style_function=lambda feature: {
            "fillColor": feature["properties"]["fill"],
            "weight": 1,
            "opacity": 1,
            "color": "#374151",
            "fillOpacity": 0.65,
        },
        tooltip=folium.GeoJsonTooltip(fields=["tooltip"], labels=False, style=TOOLTIP_STYLE),
    ).add_to(map_object)


def _add_legend_panel(map_object: folium.Map, frame: RenderFrame) -> None:
    metric = frame.view.metric
    rows = "".join(
        (
            f'<li><span class="swatch" style="background:{color};"></span>'
            f"<span>{html.escape(label)}</span></li>"
        )
        for label, color in legend_ranges(metric)
    )
    level_label = html.escape(frame.view.drill_level.title())
    scope = html.escape(frame.view.country or "World")

    template = Template(
        f"""
        {{% macro html(this, kwargs) %}}
        <style>
          #survey-legend {{
            position: fixed;
            bottom: 18px;
            left: 18px;
            z-index: 9999;
            width: 200px;
            background: rgba(255, 255, 255, 0.96);
            border-radius: 10px;
            border: 1px solid #d6dde8;
            box-shadow: 0 8px 20px rgba(10, 25, 47, 0.15);
            padding: 12px;
            font-family: Arial, sans-serif;
          }}
          #survey-legend h3 {{
            margin: 0 0 6px 0;
            font-size: 15px;
            color: #0f172a;
          }}
          #survey-legend p {{
            margin: 0 0 6px 0;
            font-size: 12px;
            color: #334155;
          }}
          #survey-legend ul {{
            list-style: none;
            margin: 0;
            padding: 0;
          }}
          #survey-legend li {{
            display: flex;
            align-items: center;
            font-size: 13px;
            padding: 3px 0;
            color: #1f2937;
          }}
          #survey-legend .swatch {{
            display: inline-block;
            width: 14px;
            height: 14px;
            border-radius: 50%;
            margin-right: 8px;
            border: 1px solid #1f2937;
          }}
        </style>
        <div id="survey-legend">
          <h3>{METRIC_LABELS[metric]}</h3>
          <p>{scope} | {level_label} view</p>
          <ul>{rows}</ul>
        </div>
        {{% endmacro %}}
        """
    )

    macro = MacroElement()
    macro._template = template
    map_object.get_root().add_child(macro)


def build_survey_map(
    frame: RenderFrame,
    polygons: Optional[Dict[str, Dict[str, Any]]] = None,
    zoom: int = DEFAULT_ZOOM,
) -> folium.Map:
    """Draw ``frame`` on a new folium map.

    ``polygons`` is only consulted for choropleth frames; without it the
    country aggregates fall back to area circles.
    """
    survey_map = folium.Map(
        location=MAP_CENTER,
        zoom_start=zoom,
        control_scale=True,
        tiles=None,
    )
    _add_base_layers(survey_map, frame.view.base_layer)

    plugins.Fullscreen(
        position="topright",
        title="Full screen",
        title_cancel="Exit full screen",
        force_separate_button=True,
    ).add_to(survey_map)

    if frame.use_choropleth and polygons:
        _add_choropleth(survey_map, frame, polygons)
    else:
        markers = frame.markers or [entry.marker for entry in frame.choropleth.values()]
        layer = folium.FeatureGroup(name="Survey Results", show=True)
        for marker in markers:
            if frame.view.display_type == "time":
                _add_time_label(layer, marker)
            elif frame.view.display_type == "area":
                _add_area_circle(layer, marker)
            else:
                _add_circle_marker(layer, marker)
        layer.add_to(survey_map)

    folium.LayerControl(collapsed=True).add_to(survey_map)
    _add_legend_panel(survey_map, frame)

    bounds = frame.bounds
    if bounds is not None:
        survey_map.fit_bounds(bounds, padding=FIT_PADDING, max_zoom=FIT_MAX_ZOOM)

    return survey_map
