import asyncio
import unittest

from drilldown import ClickTarget, SurveyMapController, ViewState, derive_render_set, use_choropleth
from providers import CachedProvider, DataFetchError
from survey_records import AggregateRecord, CityRecord


def city(name: str, state: str, country: str, nps: float = 40.0, count: int = 10) -> CityRecord:
    return CityRecord(
        city=name,
        state=state,
        country=country,
        latitude=10.0,
        longitude=20.0,
        nps=nps,
        csat=75.0,
        ces=3.0,
        response_count=count,
    )


RECORDS = [
    city("San Francisco", "CA", "USA", nps=80),
    city("Los Angeles", "CA", "USA", nps=40),
    city("Austin", "TX", "USA"),
    city("Toronto", "ON", "Canada"),
    city("Prague", "", "Czech Republic"),
]


class TransitionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.controller = SurveyMapController(RECORDS)

    def test_initial_state(self) -> None:
        view = self.controller.view
        self.assertEqual(view.drill_level, "country")
        self.assertIsNone(view.country)
        self.assertIsNone(view.state)
        self.assertEqual(view.metric, "nps")
        self.assertEqual(view.display_type, "circle")
        self.assertEqual(view.base_layer, "standard")

    def test_select_country_then_back_restores_initial_state(self) -> None:
        self.controller.select_country("USA")
        self.assertEqual(self.controller.view.drill_level, "state")
        self.assertEqual(self.controller.view.country, "USA")

        self.controller.go_back_from_state()

        self.assertEqual(self.controller.view, ViewState())

    def test_select_state_requires_country(self) -> None:
        self.controller.select_state("CA")

        self.assertEqual(self.controller.view, ViewState())
        self.assertEqual(len(self.controller.current_render_set()), 3)

    def test_select_state_drills_to_city(self) -> None:
        self.controller.select_country("USA")
        self.controller.select_state("CA")

        view = self.controller.view
        self.assertEqual((view.drill_level, view.country, view.state), ("city", "USA", "CA"))
        cities = self.controller.current_render_set()
        self.assertEqual([c.city for c in cities], ["San Francisco", "Los Angeles"])

    def test_back_from_city_keeps_country(self) -> None:
        self.controller.select_country("USA")
        self.controller.select_state("TX")

        self.controller.go_back_from_city()

        view = self.controller.view
        self.assertEqual((view.drill_level, view.country, view.state), ("state", "USA", None))

    def test_new_country_clears_state(self) -> None:
        self.controller.select_country("USA")
        self.controller.select_state("CA")

        self.controller.select_country("Canada")

        self.assertEqual(self.controller.view.drill_level, "state")
        self.assertIsNone(self.controller.view.state)

    def test_go_to_world_clears_selection(self) -> None:
        self.controller.select_country("USA")
        self.controller.select_state("CA")
        self.controller.set_metric("csat")

        self.controller.go_to_world()

        self.assertEqual(self.controller.view, ViewState(metric="csat"))

    def test_field_updates_keep_drill_position(self) -> None:
        self.controller.select_country("USA")

        self.controller.set_metric("ces")
        self.controller.set_display_type("time")
        self.controller.set_base_layer("terrain")

        view = self.controller.view
        self.assertEqual((view.metric, view.display_type, view.base_layer), ("ces", "time", "terrain"))
        self.assertEqual((view.drill_level, view.country), ("state", "USA"))

    def test_unknown_values_are_ignored(self) -> None:
        self.controller.set_metric("effort")
        self.controller.set_display_type("heatmap")
        self.controller.set_base_layer("night")
        self.controller.set_drill_level("galaxy")
        self.controller.select_country("")

        self.assertEqual(self.controller.view, ViewState())

    def test_state_dropdown_only_drills_on_value(self) -> None:
        self.controller.select_country("USA")

        self.controller.select_state_from_select("")
        self.assertEqual(self.controller.view.drill_level, "state")

        self.controller.select_state_from_select("TX")
        self.assertEqual(self.controller.view.drill_level, "city")

    def test_click_on_country_then_state(self) -> None:
        usa = next(
            item for item in self.controller.current_render_set() if item.name == "USA"
        )
        self.controller.handle_click(ClickTarget(level=usa.level, name=usa.name))
        self.assertEqual(self.controller.view.country, "USA")

        self.controller.handle_click(ClickTarget(level="state", name="TX", country="USA"))
        self.assertEqual(self.controller.view.state, "TX")

        self.controller.handle_click(None)
        self.assertEqual(self.controller.view.drill_level, "city")

    def test_breadcrumb(self) -> None:
        self.assertEqual(self.controller.breadcrumb(), ["World"])
        self.controller.select_country("USA")
        self.controller.select_state("CA")
        self.assertEqual(self.controller.breadcrumb(), ["World", "USA", "CA"])


class RenderSetTests(unittest.TestCase):
    def test_country_level_aggregates(self) -> None:
        items = derive_render_set(RECORDS, ViewState())

        self.assertTrue(all(isinstance(item, AggregateRecord) for item in items))
        self.assertEqual([item.name for item in items], ["Canada", "Czech Republic", "USA"])

    def test_state_level_aggregates(self) -> None:
        items = derive_render_set(RECORDS, ViewState(drill_level="state", country="USA"))

        self.assertEqual([item.name for item in items], ["CA", "TX"])
        self.assertAlmostEqual(items[0].nps, 60.0)

    def test_state_level_without_country_is_empty(self) -> None:
        self.assertEqual(derive_render_set(RECORDS, ViewState(drill_level="state")), [])

    def test_city_level_without_country_returns_all_records(self) -> None:
        items = derive_render_set(RECORDS, ViewState(drill_level="city"))

        self.assertEqual(items, RECORDS)

    def test_city_level_country_only(self) -> None:
        items = derive_render_set(RECORDS, ViewState(drill_level="city", country="USA"))

        self.assertEqual(len(items), 3)
        self.assertTrue(all(isinstance(item, CityRecord) for item in items))

    def test_city_level_state_falls_back_to_country(self) -> None:
        view = ViewState(drill_level="city", country="Czech Republic", state="Czech Republic")

        self.assertEqual([c.city for c in derive_render_set(RECORDS, view)], ["Prague"])

    def test_render_set_follows_current_records(self) -> None:
        controller = SurveyMapController(RECORDS[:1])
        self.assertEqual(len(controller.current_render_set()), 1)

        controller.attach_records(RECORDS)

        self.assertEqual(len(controller.current_render_set()), 3)

    def test_choropleth_branch(self) -> None:
        self.assertTrue(use_choropleth(ViewState(display_type="area")))
        self.assertFalse(use_choropleth(ViewState(display_type="area", drill_level="state")))
        self.assertFalse(use_choropleth(ViewState(display_type="circle")))

    def test_ui_choices(self) -> None:
        controller = SurveyMapController(RECORDS)
        self.assertEqual(controller.countries(), ["Canada", "Czech Republic", "USA"])
        self.assertEqual(controller.states(), [])
        controller.select_country("USA")
        self.assertEqual(controller.states(), ["CA", "TX"])
        self.assertEqual(len(controller.cities_in_selection()), 3)
        self.assertEqual(controller.legend_ranges()[0][0], "50+")


class LoadLifecycleTests(unittest.IsolatedAsyncioTestCase):
    async def test_successful_load(self) -> None:
        async def loader():
            return RECORDS

        controller = SurveyMapController()
        self.assertEqual(controller.load_status.status, "idle")

        await controller.load(CachedProvider("survey data", loader))

        self.assertEqual(controller.load_status.status, "ready")
        self.assertEqual(len(controller.records), len(RECORDS))

    async def test_failed_load_leaves_empty_queryable_state(self) -> None:
        async def loader():
            raise DataFetchError("survey data", "HTTP 500")

        controller = SurveyMapController()
        await controller.load(CachedProvider("survey data", loader))

        self.assertEqual(controller.load_status.status, "failed")
        self.assertIn("HTTP 500", controller.load_status.message)
        self.assertEqual(controller.current_render_set(), [])
        controller.select_country("USA")
        self.assertEqual(controller.current_render_set(), [])
        self.assertEqual(controller.countries(), [])

    async def test_result_after_close_is_discarded(self) -> None:
        release = asyncio.Event()

        async def loader():
            await release.wait()
            return RECORDS

        controller = SurveyMapController()
        pending = asyncio.ensure_future(controller.load(CachedProvider("survey data", loader)))
        await asyncio.sleep(0)
        self.assertTrue(controller.load_status.loading)

        controller.close()
        release.set()
        await pending

        self.assertEqual(controller.records, ())
        self.assertEqual(controller.current_render_set(), [])


if __name__ == "__main__":
    unittest.main()
