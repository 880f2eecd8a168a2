import math
import unittest

from survey_metrics import (
    BAND_COLORS,
    METRIC_LABELS,
    classify,
    coerce_metric,
    format_count,
    format_metric,
    format_survey_time,
    legend_ranges,
    metric_color,
)


class CoerceMetricTests(unittest.TestCase):
    def test_numbers_pass_through(self) -> None:
        self.assertEqual(coerce_metric(42), 42.0)
        self.assertEqual(coerce_metric(-3.5), -3.5)

    def test_missing_and_invalid_values_become_zero(self) -> None:
        for raw in (None, float("nan"), "80", True, [], {}):
            with self.subTest(raw=raw):
                self.assertEqual(coerce_metric(raw), 0.0)

    def test_oversized_integer_becomes_zero(self) -> None:
        self.assertEqual(coerce_metric(10**400), 0.0)
        self.assertEqual(classify("nps", 10**400), "neutral")


class FormatMetricTests(unittest.TestCase):
    def test_placeholder_for_missing_values(self) -> None:
        self.assertEqual(format_metric(None, "ces"), "—")
        self.assertEqual(format_metric(float("nan"), "nps"), "—")
        self.assertEqual(format_metric(math.inf, "csat"), "—")
        self.assertEqual(format_metric("72", "nps"), "—")
        self.assertEqual(format_metric(10**400, "nps"), "—")
        self.assertEqual(format_metric(-(10**400), "ces"), "—")

    def test_ces_uses_one_decimal(self) -> None:
        self.assertEqual(format_metric(3.14159, "ces"), "3.1")
        self.assertEqual(format_metric(3, "ces"), "3.0")

    def test_nps_and_csat_round_to_integers(self) -> None:
        self.assertEqual(format_metric(72.6, "nps"), "73")
        self.assertEqual(format_metric(72.5, "csat"), "73")
        self.assertEqual(format_metric(-72.5, "nps"), "-72")
        self.assertEqual(format_metric(-12.6, "nps"), "-13")

    def test_format_count_drops_trailing_zero(self) -> None:
        self.assertEqual(format_count(20.0), "20")
        self.assertEqual(format_count(12.5), "12.5")
        self.assertEqual(format_count(None), "0")


class ClassifyTests(unittest.TestCase):
    def test_nps_thresholds(self) -> None:
        self.assertEqual(classify("nps", 50), "good")
        self.assertEqual(classify("nps", 49.99), "neutral")
        self.assertEqual(classify("nps", 0), "neutral")
        self.assertEqual(classify("nps", -0.01), "bad")

    def test_csat_thresholds(self) -> None:
        self.assertEqual(classify("csat", 80), "good")
        self.assertEqual(classify("csat", 79.9), "neutral")
        self.assertEqual(classify("csat", 60), "neutral")
        self.assertEqual(classify("csat", 59.9), "bad")

    def test_ces_lower_is_better(self) -> None:
        self.assertEqual(classify("ces", 2.99), "good")
        self.assertEqual(classify("ces", 3), "neutral")
        self.assertEqual(classify("ces", 5), "neutral")
        self.assertEqual(classify("ces", 5.01), "bad")

    def test_unknown_metric_is_gray(self) -> None:
        self.assertEqual(classify("effort", 10), "unknown")
        self.assertEqual(metric_color("effort", 10), "#6b7280")

    def test_missing_value_classifies_as_zero(self) -> None:
        self.assertEqual(classify("nps", None), "neutral")
        self.assertEqual(classify("csat", None), "bad")
        self.assertEqual(classify("ces", None), "good")

    def test_colors_follow_bands(self) -> None:
        self.assertEqual(metric_color("nps", 75), BAND_COLORS["good"])
        self.assertEqual(metric_color("csat", 65), BAND_COLORS["neutral"])
        self.assertEqual(metric_color("ces", 6), BAND_COLORS["bad"])


class LabelAndLegendTests(unittest.TestCase):
    def test_metric_labels(self) -> None:
        self.assertEqual(METRIC_LABELS, {"nps": "NPS", "csat": "CSAT", "ces": "CES"})

    def test_legend_rows_per_metric(self) -> None:
        self.assertEqual(
            legend_ranges("nps"),
            [("50+", "#22c55e"), ("0–49", "#eab308"), ("<0", "#ef4444")],
        )
        self.assertEqual(legend_ranges("ces")[0], ("1–2.9", "#22c55e"))
        self.assertEqual(legend_ranges("other"), [])


class FormatSurveyTimeTests(unittest.TestCase):
    def test_iso_timestamp(self) -> None:
        self.assertEqual(format_survey_time("2024-11-15T09:30:00Z"), "Nov 15, 2024 09:30")
        self.assertEqual(format_survey_time("2024-06-05"), "Jun 5, 2024 00:00")

    def test_missing_timestamp(self) -> None:
        self.assertEqual(format_survey_time(None), "—")
        self.assertEqual(format_survey_time(""), "—")

    def test_unparseable_timestamp_is_returned_unchanged(self) -> None:
        self.assertEqual(format_survey_time("pending review"), "pending review")

    def test_relative_words_are_not_read_as_dates(self) -> None:
        for text in ("now", "today", "Tomorrow", "Nov 15 2024"):
            with self.subTest(text=text):
                self.assertEqual(format_survey_time(text), text)


if __name__ == "__main__":
    unittest.main()
