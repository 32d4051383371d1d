"""
Card Comps — Population Payload Parsing

Population providers answer in several JSON shapes:

    company_keyed   {"PSA": {"10": 50, "9": 120}, "BGS": {...}}
    nested_company  {"population": {"PSA": {...}}}   (also pop/grades/data)
    grade_keyed     {"10": 50, "PSA 9": 120}  or  {"grades": {...}}
    array           [{"grade": "10", "count": 50}, ...]

Each shape has a detector returning a ParsedPopulation or None. Detectors
are tried in SHAPE_DETECTORS order and the first match wins.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from cardcomps.engine.grade_filter import AUTH_GRADE, normalize_grade_label
from cardcomps.engine.rarity import UNIVERSAL_GRADE_ORDER
from cardcomps.models.comps import GradeCount

logger = structlog.get_logger(__name__)

_NUMERIC = re.compile(r"(\d+(?:\.\d+)?)")
_CONTAINER_KEYS = ("population", "pop", "grades", "data")
_GRADE_LABEL_KEYS = ("grade", "Grade", "label", "name")
_COUNT_KEYS = ("count", "Count", "pop", "population", "total", "value")


@dataclass(frozen=True)
class ParsedPopulation:
    shape: str
    grade_breakdown: list[GradeCount] = field(default_factory=list)

    @property
    def total_graded(self) -> int:
        return sum(entry.count for entry in self.grade_breakdown)


ShapeDetector = Callable[[Any, str], ParsedPopulation | None]


# ---------------------------------------------------------------------------
# Value normalization
# ---------------------------------------------------------------------------


def normalize_pop_grade(raw: Any) -> str | None:
    """Strip company prefixes ("PSA 10" -> "10", "Authentic" -> "Auth"); None if off the ladder."""
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    if "auth" in text.lower() and not _NUMERIC.search(text):
        return AUTH_GRADE
    match = _NUMERIC.search(text)
    if not match:
        return None
    grade = normalize_grade_label(match.group(1))
    return grade if grade in UNIVERSAL_GRADE_ORDER else None


def _parse_count(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return int(raw)
    digits = re.sub(r"[^0-9]", "", str(raw))
    return int(digits) if digits else None


def _lookup(mapping: Mapping[str, Any], key: str) -> Any:
    """Case-insensitive key lookup."""
    wanted = key.lower()
    for candidate, value in mapping.items():
        if str(candidate).lower() == wanted:
            return value
    return None


# ---------------------------------------------------------------------------
# Entry parsers
# ---------------------------------------------------------------------------


def _entries_from_mapping(data: Mapping[str, Any]) -> list[GradeCount]:
    inner = data
    for key in ("grades", "counts"):
        nested = _lookup(data, key)
        if isinstance(nested, Mapping):
            inner = nested
            break
        if isinstance(nested, list):
            return _entries_from_list(nested)

    entries: list[GradeCount] = []
    for key, value in inner.items():
        if isinstance(value, (Mapping, list)):
            continue
        grade = normalize_pop_grade(key)
        count = _parse_count(value)
        if grade and count and count > 0:
            entries.append(GradeCount(grade=grade, count=count))
    return entries


def _entries_from_list(items: list[Any]) -> list[GradeCount]:
    entries: list[GradeCount] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        grade_raw = next((item[k] for k in _GRADE_LABEL_KEYS if k in item), None)
        count_raw = next((item[k] for k in _COUNT_KEYS if k in item), None)
        grade = normalize_pop_grade(grade_raw)
        count = _parse_count(count_raw) if count_raw is not None else None
        if grade and count and count > 0:
            entries.append(GradeCount(grade=grade, count=count))
    return entries


def _entries_from_any(data: Any) -> list[GradeCount]:
    if isinstance(data, Mapping):
        return _entries_from_mapping(data)
    if isinstance(data, list):
        return _entries_from_list(data)
    return []


# ---------------------------------------------------------------------------
# Shape detectors
# ---------------------------------------------------------------------------


def detect_company_keyed(data: Any, company: str) -> ParsedPopulation | None:
    if not isinstance(data, Mapping):
        return None
    entries = _entries_from_any(_lookup(data, company))
    return ParsedPopulation("company_keyed", entries) if entries else None


def detect_nested_company(data: Any, company: str) -> ParsedPopulation | None:
    if not isinstance(data, Mapping):
        return None
    for key in _CONTAINER_KEYS:
        container = data.get(key)
        if isinstance(container, Mapping):
            entries = _entries_from_any(_lookup(container, company))
            if entries:
                return ParsedPopulation("nested_company", entries)
    return None


def detect_grade_keyed(data: Any, company: str) -> ParsedPopulation | None:
    if not isinstance(data, Mapping):
        return None
    entries = _entries_from_mapping(data)
    if not entries:
        for key in _CONTAINER_KEYS:
            container = data.get(key)
            if isinstance(container, (Mapping, list)):
                entries = _entries_from_any(container)
                if entries:
                    break
    return ParsedPopulation("grade_keyed", entries) if entries else None


def detect_array(data: Any, company: str) -> ParsedPopulation | None:
    if not isinstance(data, list):
        return None
    entries = _entries_from_list(data)
    return ParsedPopulation("array", entries) if entries else None


SHAPE_DETECTORS: tuple[ShapeDetector, ...] = (
    detect_company_keyed,
    detect_nested_company,
    detect_grade_keyed,
    detect_array,
)


def parse_population_payload(data: Any, company: str) -> ParsedPopulation | None:
    """
    Grade breakdown for ``company`` from a provider payload.

    Args:
        data: Decoded JSON.
        company: Grading company to extract (case-insensitive).

    Returns:
        ParsedPopulation tagged with the matching shape, or None.
    """
    if data is None:
        return None
    for detector in SHAPE_DETECTORS:
        parsed = detector(data, company)
        if parsed is not None:
            logger.debug(
                "population_payload_parsed",
                shape=parsed.shape,
                company=company,
                grades=len(parsed.grade_breakdown),
                total_graded=parsed.total_graded,
            )
            return parsed
    logger.debug("population_payload_unrecognized", company=company)
    return None
