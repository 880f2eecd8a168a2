"""Generate a survey results map as a standalone HTML file."""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from country_names import to_survey_name
from drilldown import SurveyMapController
from map_config import (
    DEFAULT_BASE_LAYER,
    DEFAULT_ZOOM,
    get_map_settings,
    parse_base_layer,
    parse_display_type,
    parse_metric,
)
from map_render import build_survey_map
from providers import DataFetchError, geography_provider, survey_data_provider
from render_frame import RenderFrame, build_render_frame

MIN_ZOOM = 1
MAX_ZOOM = 12

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SurveyMapResult:
    map_obj: object
    frame: RenderFrame
    controller: SurveyMapController
    geography_source: str


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    settings = get_map_settings()
    parser = argparse.ArgumentParser(
        description="Render NPS / CSAT / CES survey results on a drill-down world map."
    )
    parser.add_argument(
        "--data",
        default=settings.data_source,
        help="Survey dataset: local JSON path or http(s) URL.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory where output HTML files will be written.",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="survey_map.html",
        help="Output HTML filename (inside output-dir).",
    )
    parser.add_argument("--metric", default="nps", help="nps, csat or ces.")
    parser.add_argument("--display", default="circle", help="circle, time or area.")
    parser.add_argument(
        "--base-layer",
        default=DEFAULT_BASE_LAYER,
        help="standard, satellite or terrain.",
    )
    parser.add_argument("--country", default="", help="Drill into this country.")
    parser.add_argument("--state", default="", help="Drill into this state (needs --country).")
    parser.add_argument(
        "--zoom",
        type=int,
        default=DEFAULT_ZOOM,
        help="Initial zoom before the map fits the data.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    return parser.parse_args(argv)


def _validate_args(args: argparse.Namespace) -> None:
    if args.zoom < MIN_ZOOM or args.zoom > MAX_ZOOM:
        raise SystemExit(f"--zoom must be between {MIN_ZOOM} and {MAX_ZOOM}.")
    if args.state and not args.country:
        raise SystemExit("--state requires --country.")
    try:
        args.metric = parse_metric(args.metric)
        args.display = parse_display_type(args.display)
        args.base_layer = parse_base_layer(args.base_layer)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc


def _apply_selection(controller: SurveyMapController, args: argparse.Namespace) -> None:
    controller.set_metric(args.metric)
    controller.set_display_type(args.display)
    controller.set_base_layer(args.base_layer)
    if args.country:
        # Accept boundary-dataset spellings such as "United States of America".
        country = to_survey_name(args.country, known=controller.countries())
        controller.select_country(country)
        if args.state:
            controller.select_state(args.state)


async def build_survey_result(args: argparse.Namespace) -> SurveyMapResult:
    settings = get_map_settings()
    controller = SurveyMapController()
    await controller.load(survey_data_provider(args.data, timeout=settings.request_timeout))
    status = controller.load_status
    if status.status == "failed":
        raise RuntimeError(f"Survey data could not be loaded: {status.message}")

    _apply_selection(controller, args)
    frame = build_render_frame(controller.records, controller.view)

    polygons: Optional[Dict[str, Dict[str, Any]]] = None
    geography_source = "not needed"
    if frame.use_choropleth:
        provider = geography_provider(
            settings.geography_url,
            settings.geography_name_property,
            timeout=settings.request_timeout,
        )
        try:
            polygons = await provider.get()
            geography_source = settings.geography_url
        except DataFetchError as exc:
            logger.warning("Falling back to area circles: %s", exc)
            geography_source = f"unavailable ({exc.message})"

    map_obj = build_survey_map(frame, polygons=polygons, zoom=args.zoom)
    return SurveyMapResult(
        map_obj=map_obj,
        frame=frame,
        controller=controller,
        geography_source=geography_source,
    )


def _print_summary(result: SurveyMapResult, output_path: Path) -> None:
    view = result.controller.view
    print("Generated map:")
    print(f"- Survey map: {output_path.resolve()}")
    print(f"- View: {' > '.join(result.controller.breadcrumb())} | level={view.drill_level}")
    print(f"- Metric: {view.metric} | display={view.display_type} | base={view.base_layer}")
    print("\nCounts:")
    print(f"- Survey records: {len(result.controller.records)}")
    print(f"- Countries represented: {len(result.controller.countries())}")
    if result.frame.use_choropleth:
        print(f"- Choropleth regions: {len(result.frame.choropleth)}")
        print(f"- Geography: {result.geography_source}")
    else:
        print(f"- Markers drawn: {len(result.frame.markers)}")
    print(f"- Generated at: {datetime.now().isoformat(timespec='seconds')}")


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    _validate_args(args)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        result = asyncio.run(build_survey_result(args))
    except RuntimeError as exc:
        raise SystemExit(str(exc)) from exc

    args.output_dir.mkdir(parents=True, exist_ok=True)
    output_path = args.output_dir / args.output
    result.map_obj.save(str(output_path))
    _print_summary(result, output_path=output_path)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
