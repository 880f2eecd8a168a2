"""Drill-down navigation state for the survey map.

The view is a frozen ``ViewState`` snapshot. Every transition builds a new
snapshot, and the data to render is derived from the snapshot and the record
list on each request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from aggregation import aggregate_by_country, aggregate_by_state, country_names_in, state_names_in
from map_config import BASE_LAYERS, DEFAULT_BASE_LAYER, DISPLAY_TYPES
from providers import CachedProvider, DataFetchError
from survey_metrics import METRICS, legend_ranges
from survey_records import (
    DRILL_LEVELS,
    LEVEL_CITY,
    LEVEL_COUNTRY,
    LEVEL_STATE,
    CityRecord,
    RenderItem,
)

logger = logging.getLogger(__name__)

LOAD_IDLE = "idle"
LOAD_LOADING = "loading"
LOAD_READY = "ready"
LOAD_FAILED = "failed"


@dataclass(frozen=True)
class ViewState:
    metric: str = "nps"
    display_type: str = "circle"
    drill_level: str = LEVEL_COUNTRY
    country: Optional[str] = None
    state: Optional[str] = None
    base_layer: str = DEFAULT_BASE_LAYER


@dataclass(frozen=True)
class ClickTarget:
    level: str
    name: str
    country: Optional[str] = None


@dataclass(frozen=True)
class LoadStatus:
    status: str = LOAD_IDLE
    message: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.status == LOAD_LOADING


def _in_state(record: CityRecord, state: Optional[str]) -> bool:
    if not state:
        return True
    return record.state_key == state


def filter_cities(
    records: Sequence[CityRecord],
    country: Optional[str],
    state: Optional[str],
) -> List[CityRecord]:
    if not country:
        return list(records)
    return [
        record
        for record in records
        if record.country == country and _in_state(record, state)
    ]


def derive_render_set(records: Sequence[CityRecord], view: ViewState) -> List[RenderItem]:
    if view.drill_level == LEVEL_COUNTRY:
        return list(aggregate_by_country(records))
    if view.drill_level == LEVEL_STATE and view.country:
        return list(aggregate_by_state(records, view.country))
    if view.drill_level == LEVEL_CITY:
        return list(filter_cities(records, view.country, view.state))
    return []


def use_choropleth(view: ViewState) -> bool:
    return view.display_type == "area" and view.drill_level == LEVEL_COUNTRY


class SurveyMapController:
    """Owns the view state and the loaded records for one map."""

    def __init__(
        self,
        records: Optional[Sequence[CityRecord]] = None,
        view: Optional[ViewState] = None,
    ) -> None:
        self._records: Tuple[CityRecord, ...] = tuple(records or ())
        self._view = view or ViewState()
        self._load = LoadStatus(LOAD_READY if records is not None else LOAD_IDLE)
        self._closed = False

    @property
    def view(self) -> ViewState:
        return self._view

    @property
    def records(self) -> Tuple[CityRecord, ...]:
        return self._records

    @property
    def load_status(self) -> LoadStatus:
        return self._load

    @property
    def closed(self) -> bool:
        return self._closed

    def _set_view(self, view: ViewState) -> None:
        if view != self._view:
            logger.debug("View %s -> %s", self._view, view)
        self._view = view

    # Data lifecycle

    def attach_records(self, records: Sequence[CityRecord]) -> None:
        if self._closed:
            logger.debug("Discarding %d records received after close", len(records))
            return
        self._records = tuple(records)
        self._load = LoadStatus(LOAD_READY)

    def mark_failed(self, message: str) -> None:
        if self._closed:
            return
        self._load = LoadStatus(LOAD_FAILED, message)

    async def load(self, provider: CachedProvider) -> None:
        if self._closed:
            return
        self._load = LoadStatus(LOAD_LOADING)
        try:
            records = await provider.get()
        except DataFetchError as exc:
            self.mark_failed(str(exc))
            return
        self.attach_records(records)

    def close(self) -> None:
        self._closed = True

    # Transitions

    def set_drill_level(
        self,
        level: str,
        country: Optional[str] = None,
        state: Optional[str] = None,
    ) -> None:
        if level not in DRILL_LEVELS:
            logger.warning("Ignoring unknown drill level %r", level)
            return
        # Selections below the target level do not survive the move.
        if level == LEVEL_COUNTRY:
            country = state = None
        elif level == LEVEL_STATE:
            state = None
        self._set_view(
            replace(
                self._view,
                drill_level=level,
                country=country or None,
                state=state or None,
            )
        )

    def go_to_world(self) -> None:
        self.set_drill_level(LEVEL_COUNTRY)

    def select_country(self, country: Optional[str]) -> None:
        if not country:
            return
        self.set_drill_level(LEVEL_STATE, country=country)

    def select_state(self, state: Optional[str]) -> None:
        if not self._view.country:
            logger.debug("Ignoring state %r without a selected country", state)
            return
        if not state:
            return
        self.set_drill_level(LEVEL_CITY, country=self._view.country, state=state)

    def select_state_from_select(self, value: Optional[str]) -> None:
        if value:
            self.select_state(value)

    def go_back_from_state(self) -> None:
        self.go_to_world()

    def go_back_from_city(self) -> None:
        self.set_drill_level(LEVEL_STATE, country=self._view.country)

    def handle_click(self, target: Optional[ClickTarget]) -> None:
        if target is None:
            return
        if target.level == LEVEL_COUNTRY:
            self.select_country(target.name)
        elif target.level == LEVEL_STATE and target.country:
            self.select_state(target.name)

    def set_metric(self, metric: str) -> None:
        if metric not in METRICS:
            logger.warning("Ignoring unknown metric %r", metric)
            return
        self._set_view(replace(self._view, metric=metric))

    def set_display_type(self, display_type: str) -> None:
        if display_type not in DISPLAY_TYPES:
            logger.warning("Ignoring unknown display type %r", display_type)
            return
        self._set_view(replace(self._view, display_type=display_type))

    def set_base_layer(self, key: str) -> None:
        if key not in BASE_LAYERS:
            logger.warning("Ignoring unknown base layer %r", key)
            return
        self._set_view(replace(self._view, base_layer=key))

    # Derived values

    def current_render_set(self) -> List[RenderItem]:
        return derive_render_set(self._records, self._view)

    def use_choropleth(self) -> bool:
        return use_choropleth(self._view)

    def countries(self) -> List[str]:
        return country_names_in(self._records)

    def states(self) -> List[str]:
        return state_names_in(self._records, self._view.country)

    def cities_in_selection(self) -> List[CityRecord]:
        return filter_cities(self._records, self._view.country, self._view.state)

    def legend_ranges(self) -> List[Tuple[str, str]]:
        return legend_ranges(self._view.metric)

    def breadcrumb(self) -> List[str]:
        crumbs = ["World"]
        if self._view.drill_level != LEVEL_COUNTRY and self._view.country:
            crumbs.append(self._view.country)
            if self._view.drill_level == LEVEL_CITY and self._view.state:
                crumbs.append(self._view.state)
        return crumbs
