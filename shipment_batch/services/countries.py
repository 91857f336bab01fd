"""Country name resolution and customs-jurisdiction classification.

Uploaded rows carry free-text destination countries ("Germany", "USA",
"Almanya", "de"). Everything downstream works on ISO 3166-1 alpha-2 codes,
so names are resolved here once: exact code, exact name or alias,
case-insensitive name, then the longest known name that appears as whole
words inside the input.
"""

from __future__ import annotations

import re

from shipment_batch.core.logging import get_logger

logger = get_logger("countries")

EU_COUNTRY_CODES = frozenset(
    {
        "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR",
        "DE", "GR", "HU", "IE", "IT", "LV", "LT", "LU", "MT", "NL",
        "PL", "PT", "RO", "SK", "SI", "ES", "SE",
    }
)

# Sweden is also an EU member; HMRC classification takes precedence for it.
HMRC_COUNTRY_CODES = frozenset({"GB", "SE"})

DDP_COUNTRY_CODES = frozenset({"US"})

COUNTRY_NAMES: dict[str, str] = {
    "AT": "Austria",
    "AU": "Australia",
    "BE": "Belgium",
    "BG": "Bulgaria",
    "BR": "Brazil",
    "CA": "Canada",
    "CH": "Switzerland",
    "CN": "China",
    "CY": "Cyprus",
    "CZ": "Czech Republic",
    "DE": "Germany",
    "DK": "Denmark",
    "EE": "Estonia",
    "ES": "Spain",
    "FI": "Finland",
    "FR": "France",
    "GB": "United Kingdom",
    "GR": "Greece",
    "HR": "Croatia",
    "HU": "Hungary",
    "IE": "Ireland",
    "IL": "Israel",
    "IN": "India",
    "IS": "Iceland",
    "IT": "Italy",
    "JP": "Japan",
    "KR": "South Korea",
    "LT": "Lithuania",
    "LU": "Luxembourg",
    "LV": "Latvia",
    "MT": "Malta",
    "MX": "Mexico",
    "NL": "Netherlands",
    "NO": "Norway",
    "NZ": "New Zealand",
    "PL": "Poland",
    "PT": "Portugal",
    "RO": "Romania",
    "RS": "Serbia",
    "RU": "Russia",
    "SA": "Saudi Arabia",
    "SE": "Sweden",
    "SG": "Singapore",
    "SI": "Slovenia",
    "SK": "Slovakia",
    "TR": "Turkey",
    "UA": "Ukraine",
    "AE": "United Arab Emirates",
    "US": "United States",
    "ZA": "South Africa",
}

COUNTRY_ALIASES: dict[str, str] = {
    "USA": "US",
    "U.S.A.": "US",
    "United States of America": "US",
    "America": "US",
    "Amerika Birleşik Devletleri": "US",
    "UK": "GB",
    "Great Britain": "GB",
    "England": "GB",
    "Scotland": "GB",
    "Wales": "GB",
    "Northern Ireland": "GB",
    "Deutschland": "DE",
    "Almanya": "DE",
    "Fransa": "FR",
    "İtalya": "IT",
    "Italya": "IT",
    "İspanya": "ES",
    "Ispanya": "ES",
    "España": "ES",
    "Hollanda": "NL",
    "Holland": "NL",
    "The Netherlands": "NL",
    "Belçika": "BE",
    "Österreich": "AT",
    "Avusturya": "AT",
    "İsveç": "SE",
    "Isvec": "SE",
    "Sverige": "SE",
    "Czechia": "CZ",
    "Türkiye": "TR",
    "Turkiye": "TR",
    "Republic of Korea": "KR",
    "UAE": "AE",
}

_NAME_INDEX: dict[str, str] = {name.lower(): code for code, name in COUNTRY_NAMES.items()}
_NAME_INDEX.update({alias.lower(): code for alias, code in COUNTRY_ALIASES.items()})

# Substring matching below this length produces too many false hits ("in", "us").
_PARTIAL_MATCH_MIN_LENGTH = 4

# Regions whose names contain a country name but are not that country.
_SUBDIVISION_NAMES = frozenset({"new mexico", "new south wales", "new england"})


def _contains_word(text: str, name: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(name)}(?!\w)", text) is not None


def country_name_to_code(value: str | None) -> str | None:
    if not value:
        return None
    text = value.strip()
    if not text:
        return None

    upper = text.upper()
    if len(upper) == 2 and upper in COUNTRY_NAMES:
        return upper

    exact = COUNTRY_ALIASES.get(text)
    if exact:
        return exact

    lowered = text.lower()
    if lowered in _NAME_INDEX:
        return _NAME_INDEX[lowered]

    if len(lowered) >= _PARTIAL_MATCH_MIN_LENGTH and not any(
        _contains_word(lowered, region) for region in _SUBDIVISION_NAMES
    ):
        candidates = [
            (name, code)
            for name, code in _NAME_INDEX.items()
            if len(name) >= _PARTIAL_MATCH_MIN_LENGTH and _contains_word(lowered, name)
        ]
        if candidates:
            name, code = max(candidates, key=lambda item: len(item[0]))
            logger.info("country_partial_match", value=text, matched=name, code=code)
            return code

    logger.warning("country_unresolved", value=text)
    return None


def is_eu_country(code: str | None) -> bool:
    if not code:
        return False
    return code.upper() in EU_COUNTRY_CODES


def is_hmrc_country(code: str | None) -> bool:
    if not code:
        return False
    return code.upper() in HMRC_COUNTRY_CODES


def supports_ddp(code: str | None) -> bool:
    if not code:
        return False
    return code.upper() in DDP_COUNTRY_CODES
