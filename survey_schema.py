"""Shared schema validation for survey dataset rows."""

from __future__ import annotations

from typing import List, Mapping, Set

SURVEY_REQUIRED_FIELDS: Set[str] = {
    "city",
    "country",
    "latitude",
    "longitude",
}

# Accepted spellings of fields that the exported JSON writes in camelCase.
FIELD_ALIASES = {
    "responseCount": "response_count",
    "surveyDate": "survey_date",
}


def missing_survey_fields(row: Mapping[str, object]) -> List[str]:
    """Return the required fields absent (or null) in one dataset row."""
    return sorted(field for field in SURVEY_REQUIRED_FIELDS if row.get(field) is None)


def validate_survey_payload(payload: object) -> None:
    """Raise a ValueError when the dataset is not a list of JSON objects."""
    if not isinstance(payload, list):
        raise ValueError(
            f"Survey dataset must be a JSON array, got {type(payload).__name__}."
        )
    bad_rows = [index for index, row in enumerate(payload) if not isinstance(row, dict)]
    if bad_rows:
        preview = ", ".join(str(index) for index in bad_rows[:5])
        raise ValueError(f"Survey dataset rows must be objects (bad rows: {preview}).")
