import unittest

from drilldown import ViewState
from map_render import build_survey_map
from render_frame import build_render_frame
from survey_records import CityRecord

RECORDS = [
    CityRecord(
        city="Austin",
        state="TX",
        country="USA",
        latitude=30.27,
        longitude=-97.74,
        nps=55.0,
        csat=81.0,
        ces=2.8,
        response_count=150,
        survey_date="2024-10-30T11:00:00Z",
    ),
    CityRecord(
        city="Prague",
        country="Czech Republic",
        latitude=50.08,
        longitude=14.44,
        nps=-12.0,
        response_count=90,
    ),
]

POLYGONS = {
    "United States of America": {
        "type": "Feature",
        "properties": {"NAME": "United States of America"},
        "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]},
    },
    "France": {
        "type": "Feature",
        "properties": {"NAME": "France"},
        "geometry": {"type": "Polygon", "coordinates": [[[2, 2], [3, 2], [3, 3], [2, 2]]]},
    },
}


def render(view: ViewState, polygons=None) -> str:
    frame = build_render_frame(RECORDS, view)
    return build_survey_map(frame, polygons=polygons).get_root().render()


class BuildSurveyMapTests(unittest.TestCase):
    def test_circle_markers(self) -> None:
        page = render(ViewState())

        self.assertIn("L.circleMarker(", page)
        self.assertIn("survey-legend", page)
        self.assertIn("fitBounds", page)
        self.assertIn("Drill into country: USA", page)

    def test_time_labels(self) -> None:
        page = render(ViewState(display_type="time", drill_level="city"))

        self.assertIn("survey-time-label", page)
        self.assertIn("Oct 30, 2024 11:00", page)

    def test_area_circles_below_country_level(self) -> None:
        page = render(ViewState(display_type="area", drill_level="state", country="USA"))

        self.assertIn("L.circle(", page)

    def test_choropleth_fills_matched_regions(self) -> None:
        page = render(ViewState(display_type="area"), polygons=POLYGONS)

        self.assertIn("Survey Regions", page)
        self.assertIn("#22c55e", page)
        self.assertIn("#e5e7eb", page)
        self.assertIn("survey_name", page)
        self.assertNotIn("L.circleMarker(", page)

    def test_choropleth_without_geography_falls_back_to_circles(self) -> None:
        page = render(ViewState(display_type="area"), polygons=None)

        self.assertIn("L.circle(", page)
        self.assertNotIn("Survey Regions", page)

    def test_selected_base_layer(self) -> None:
        page = render(ViewState(base_layer="satellite"))

        self.assertIn("World_Imagery", page)
        self.assertIn("opentopomap", page)


if __name__ == "__main__":
    unittest.main()
