from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
import streamlit as st
import streamlit.runtime as st_runtime
from streamlit_folium import st_folium

from drilldown import SurveyMapController
from map_config import (
    BASE_LAYERS,
    DISPLAY_TYPE_LABELS,
    DISPLAY_TYPES,
    TILE_LAYERS,
    get_map_settings,
    metric_options,
)
from map_render import build_survey_map
from providers import DataFetchError, load_country_polygons, load_survey_records
from render_frame import build_render_frame, click_target_from_event
from survey_metrics import METRICS, format_count, format_metric, format_survey_time
from survey_records import AggregateRecord, RenderItem

CONTROLLER_KEY = "survey_controller"
MAP_GENERATION_KEY = "map_generation"
NO_SELECTION = ""

DEFAULT_CONTROL_STATE = {
    "metric_select": "nps",
    "display_select": "circle",
    "base_layer_select": "standard",
}

# Only clicks trigger a rerun; panning and zooming stay in the browser.
MAP_EVENT_FIELDS = [
    "last_object_clicked_popup",
    "last_object_clicked_tooltip",
    "last_active_drawing",
]


def _initialize_ui_state() -> None:
    for key, value in DEFAULT_CONTROL_STATE.items():
        st.session_state.setdefault(key, value)
    st.session_state.setdefault(MAP_GENERATION_KEY, 0)


def _streamlit_runtime_exists() -> bool:
    try:
        return bool(st_runtime.exists())
    except Exception:
        return False


def _cache_data_passthrough(*_args, **_kwargs):
    def decorator(func):
        return func

    return decorator


def _safe_cache_data(*args, **kwargs):
    if _streamlit_runtime_exists():
        return st.cache_data(*args, **kwargs)
    return _cache_data_passthrough(*args, **kwargs)


@_safe_cache_data(show_spinner=False)
def fetch_survey_records(source: str, timeout: int):
    return load_survey_records(source, timeout=timeout)


@_safe_cache_data(show_spinner=False)
def fetch_country_polygons(url: str, name_property: str, timeout: int):
    return load_country_polygons(url, name_property, timeout=timeout)


def _get_controller() -> SurveyMapController:
    controller = st.session_state.get(CONTROLLER_KEY)
    if isinstance(controller, SurveyMapController):
        return controller

    settings = get_map_settings()
    controller = SurveyMapController()
    try:
        controller.attach_records(
            fetch_survey_records(settings.data_source, settings.request_timeout)
        )
    except DataFetchError as exc:
        controller.mark_failed(str(exc))
    st.session_state[CONTROLLER_KEY] = controller
    return controller


def _render_table(items: Sequence[RenderItem], metric: str) -> pd.DataFrame:
    rows: List[Dict[str, Any]] = []
    for item in items:
        rows.append(
            {
                "name": item.label,
                "level": item.level,
                "selected": format_metric(getattr(item, metric), metric),
                "NPS": format_metric(item.nps, "nps"),
                "CSAT": format_metric(item.csat, "csat"),
                "CES": format_metric(item.ces, "ces"),
                "responses": format_count(item.response_count),
                "latest survey": format_survey_time(item.survey_date),
            }
        )
    return pd.DataFrame(
        rows,
        columns=["name", "level", "selected", "NPS", "CSAT", "CES", "responses", "latest survey"],
    )


def _status_caption(controller: SurveyMapController) -> str:
    view = controller.view
    bits = [
        f"View: `{' > '.join(controller.breadcrumb())}`",
        f"Level: `{view.drill_level}`",
        f"Records: `{len(controller.records):,}`",
    ]
    zero_weight = [
        item.name
        for item in controller.current_render_set()
        if isinstance(item, AggregateRecord) and item.zero_weight
    ]
    if zero_weight:
        bits.append(f"No responses: `{', '.join(zero_weight)}`")
    return " | ".join(bits)


def _on_metric_change() -> None:
    _get_controller().set_metric(st.session_state["metric_select"])


def _on_display_change() -> None:
    _get_controller().set_display_type(st.session_state["display_select"])


def _on_base_layer_change() -> None:
    _get_controller().set_base_layer(st.session_state["base_layer_select"])


def _on_country_change() -> None:
    _reset_map_events()
    country = st.session_state.get("country_select", NO_SELECTION)
    controller = _get_controller()
    if country:
        controller.select_country(country)
    else:
        controller.go_to_world()


def _on_state_change() -> None:
    _reset_map_events()
    _get_controller().select_state_from_select(st.session_state.get("state_select"))


def _reset_map_events() -> None:
    # A fresh component key starts without the previous view's last click.
    st.session_state[MAP_GENERATION_KEY] = st.session_state.get(MAP_GENERATION_KEY, 0) + 1


def _apply_map_click(controller: SurveyMapController, event: Optional[Dict[str, Any]]) -> bool:
    """Drill into the clicked country or state; True when the view changed."""
    before = controller.view
    target = click_target_from_event(event, before, controller.countries())
    controller.handle_click(target)
    return controller.view != before


def _sync_drill_widgets(controller: SurveyMapController) -> None:
    st.session_state["country_select"] = controller.view.country or NO_SELECTION
    st.session_state["state_select"] = controller.view.state or NO_SELECTION


def _go_to_world() -> None:
    _reset_map_events()
    controller = _get_controller()
    controller.go_to_world()
    _sync_drill_widgets(controller)


def _go_back() -> None:
    _reset_map_events()
    controller = _get_controller()
    if controller.view.drill_level == "city":
        controller.go_back_from_city()
    else:
        controller.go_back_from_state()
    _sync_drill_widgets(controller)


def _polygons_for(controller: SurveyMapController) -> Optional[Dict[str, Dict[str, Any]]]:
    if not controller.use_choropleth():
        return None
    settings = get_map_settings()
    try:
        return fetch_country_polygons(
            settings.geography_url,
            settings.geography_name_property,
            settings.request_timeout,
        )
    except DataFetchError as exc:
        st.warning(f"Country boundaries unavailable, showing area circles instead. ({exc})")
        return None


def app() -> None:
    st.set_page_config(
        page_title="Survey Map",
        page_icon=":world_map:",
        layout="wide",
    )

    st.title("Survey Map")
    st.caption("NPS, CSAT and CES by location. Drill from countries to states to cities.")
    _initialize_ui_state()

    controller = _get_controller()
    status = controller.load_status
    if status.status == "failed":
        st.error(status.message or "Failed to load survey data")

    with st.sidebar:
        st.header("Display")
        options = metric_options()
        st.selectbox(
            "Metric",
            options=list(METRICS),
            format_func=lambda key: options[key],
            key="metric_select",
            on_change=_on_metric_change,
        )
        st.selectbox(
            "Display type",
            options=list(DISPLAY_TYPES),
            format_func=lambda key: DISPLAY_TYPE_LABELS[key],
            key="display_select",
            on_change=_on_display_change,
        )
        st.selectbox(
            "Base map",
            options=list(BASE_LAYERS),
            format_func=lambda key: TILE_LAYERS[key]["label"],
            key="base_layer_select",
            on_change=_on_base_layer_change,
        )

        st.subheader("Drill down")
        _sync_drill_widgets(controller)
        st.selectbox(
            "Country",
            options=[NO_SELECTION] + controller.countries(),
            format_func=lambda name: name or "All countries",
            key="country_select",
            on_change=_on_country_change,
        )
        st.selectbox(
            "State",
            options=[NO_SELECTION] + controller.states(),
            format_func=lambda name: name or "All states",
            key="state_select",
            on_change=_on_state_change,
            disabled=not controller.view.country,
        )

        left, right = st.columns(2)
        left.button("World", on_click=_go_to_world)
        right.button(
            "Back",
            on_click=_go_back,
            disabled=controller.view.drill_level == "country",
        )

        st.subheader("Legend")
        for label, color in controller.legend_ranges():
            st.markdown(
                f"<span style='color:{color};font-size:18px;'>&#9679;</span> {label}",
                unsafe_allow_html=True,
            )

    frame = build_render_frame(controller.records, controller.view)
    polygons = _polygons_for(controller)
    with st.spinner("Rendering map..."):
        survey_map = build_survey_map(frame, polygons=polygons)

    st.caption(_status_caption(controller))
    event = st_folium(
        survey_map,
        height=680,
        use_container_width=True,
        returned_objects=MAP_EVENT_FIELDS,
        key=f"survey_map_{st.session_state[MAP_GENERATION_KEY]}",
    )
    if _apply_map_click(controller, event):
        _reset_map_events()
        st.rerun()

    items = controller.current_render_set()
    if not items:
        st.info("No survey results for the current selection.")
        return
    st.dataframe(
        _render_table(items, controller.view.metric),
        use_container_width=True,
        hide_index=True,
    )


if __name__ == "__main__":
    if not _streamlit_runtime_exists():
        raise SystemExit("Run this UI with: python3 -m streamlit run app.py")
    app()
