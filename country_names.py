"""Translate between survey country names and boundary-dataset country names.

The boundary polygons use the Natural Earth ``NAME`` vocabulary (the same
names world-atlas ships), which abbreviates many long forms. Only the
choropleth join goes through these tables; labels and records keep the
survey's own spelling.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

COUNTRY_NAME_TO_GEO: Dict[str, str] = {
    "USA": "United States of America",
    "US": "United States of America",
    "U.S.": "United States of America",
    "U.S.A.": "United States of America",
    "United States": "United States of America",
    "UK": "United Kingdom",
    "U.K.": "United Kingdom",
    "Great Britain": "United Kingdom",
    "UAE": "United Arab Emirates",
    "Czech Republic": "Czechia",
    "Republic of Korea": "South Korea",
    "Korea, South": "South Korea",
    "Korea": "South Korea",
    "Democratic People's Republic of Korea": "North Korea",
    "Russian Federation": "Russia",
    "Viet Nam": "Vietnam",
    "Republic of China": "Taiwan",
    "Democratic Republic of the Congo": "Dem. Rep. Congo",
    "DR Congo": "Dem. Rep. Congo",
    "DRC": "Dem. Rep. Congo",
    "Republic of the Congo": "Congo",
    "Central African Republic": "Central African Rep.",
    "Bosnia and Herzegovina": "Bosnia and Herz.",
    "Dominican Republic": "Dominican Rep.",
    "Equatorial Guinea": "Eq. Guinea",
    "South Sudan": "S. Sudan",
    "Solomon Islands": "Solomon Is.",
    "Falkland Islands": "Falkland Is.",
    "Western Sahara": "W. Sahara",
    "French Southern and Antarctic Lands": "Fr. S. Antarctic Lands",
    "Ivory Coast": "Côte d'Ivoire",
    "Cote d'Ivoire": "Côte d'Ivoire",
    "Eswatini": "eSwatini",
    "Swaziland": "eSwatini",
    "North Macedonia": "Macedonia",
    "East Timor": "Timor-Leste",
    "Burma": "Myanmar",
    "Lao PDR": "Laos",
    "Iran, Islamic Republic of": "Iran",
    "Syrian Arab Republic": "Syria",
    "Turkiye": "Turkey",
    "Türkiye": "Turkey",
    "The Bahamas": "Bahamas",
    "The Gambia": "Gambia",
    "Brunei Darussalam": "Brunei",
}


def to_geography_name(survey_country: str) -> str:
    return COUNTRY_NAME_TO_GEO.get(survey_country, survey_country)


def _aliases_by_geo_name() -> Dict[str, List[str]]:
    aliases: Dict[str, List[str]] = {}
    for survey_name, geo_name in COUNTRY_NAME_TO_GEO.items():
        aliases.setdefault(geo_name, []).append(survey_name)
    return aliases


GEO_TO_COUNTRY_NAMES: Dict[str, List[str]] = _aliases_by_geo_name()


def to_survey_name(geo_name: str, known: Optional[Iterable[str]] = None) -> str:
    """Map a boundary name back to a survey country name.

    When ``known`` is given, the first alias that appears in it wins, so a
    click on a polygon resolves to the spelling the dataset actually uses.
    Without a match the geography name is returned unchanged.
    """
    aliases = GEO_TO_COUNTRY_NAMES.get(geo_name, [])
    if known is not None:
        known_names = set(known)
        if geo_name in known_names:
            return geo_name
        for alias in aliases:
            if alias in known_names:
                return alias
        return geo_name
    return aliases[0] if aliases else geo_name
