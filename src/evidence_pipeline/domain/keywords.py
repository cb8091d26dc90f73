"""Free-text keyword and position extraction.

The console's "info" box mixes plain search words with inline geo markers
(``lat:45.4,lon:9.1,r:500``) and address-like prefixes (``to:``). Both
extractors read the same strings and partition them consistently: when a
string carries a complete lat/lon/r triple the geo tokens become a proximity
constraint and are removed from keyword output; a partial triple is just
text.

Pure Python, zero framework imports.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from evidence_pipeline.domain.builder import KEYWORDS_KEY, POSITION_KEY
from evidence_pipeline.domain.models import FieldCondition, Proximity

if TYPE_CHECKING:
    from collections.abc import Iterable

    from evidence_pipeline.domain.builder import FilterBuilder

KEYWORD_FIELD = "kw"

GEO_TOKEN_PATTERN = re.compile(r"\b(lat|lon|r)\s*:\s*(-?\d+(?:\.\d+)?)", re.IGNORECASE)

# Address-like field prefixes the console prepends to search terms
STRUCTURAL_PREFIXES: frozenset[str] = frozenset({"to", "from", "cc", "bcc", "subject"})

# Any run of non-alphanumeric characters (underscore included) separates tokens
_TOKEN_SEPARATOR = re.compile(r"[\W_]+")


def _as_list(sources: str | Iterable[str] | None) -> list[str]:
    if sources is None:
        return []
    if isinstance(sources, str):
        return [sources]
    return [s for s in sources if s]


def _prefix_pattern(prefixes: Iterable[str]) -> re.Pattern[str]:
    alternatives = "|".join(sorted(re.escape(p) for p in prefixes))
    return re.compile(rf"(?:^|(?<=[\s,;]))(?:{alternatives})\s*:", re.IGNORECASE)


_DEFAULT_PREFIX_PATTERN = _prefix_pattern(STRUCTURAL_PREFIXES)


def extract_position(text: str) -> Proximity | None:
    """Return the proximity constraint encoded in ``text``, if complete.

    The first occurrence of each of ``lat``, ``lon`` and ``r`` is used. Any
    missing component, or an out-of-range value, means ``text`` carries no
    position.
    """
    found: dict[str, float] = {}
    for key, value in GEO_TOKEN_PATTERN.findall(text):
        found.setdefault(key.lower(), float(value))

    if not {"lat", "lon", "r"} <= found.keys():
        return None
    lat, lon, radius = found["lat"], found["lon"], found["r"]
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0) or radius < 0:
        return None
    return Proximity(lat=lat, lon=lon, radius=radius)


def extract_keywords(
    text: str,
    structural_prefixes: frozenset[str] = STRUCTURAL_PREFIXES,
) -> list[str]:
    """Split ``text`` into sorted, lower-cased, de-duplicated keywords.

    Geo tokens are dropped only when they form a complete position triple.
    """
    if extract_position(text) is not None:
        text = GEO_TOKEN_PATTERN.sub(" ", text)

    if structural_prefixes:
        pattern = (
            _DEFAULT_PREFIX_PATTERN
            if structural_prefixes == STRUCTURAL_PREFIXES
            else _prefix_pattern(structural_prefixes)
        )
        text = pattern.sub(" ", text)

    tokens = {token.lower() for token in _TOKEN_SEPARATOR.split(text) if token}
    return sorted(tokens)


def filter_for_keywords(
    sources: str | Iterable[str] | None,
    builder: FilterBuilder,
    structural_prefixes: frozenset[str] = STRUCTURAL_PREFIXES,
) -> None:
    """Add one "all keywords present" alternative per source string.

    The alternatives go into the disjunction under ``KEYWORDS_KEY``. A source
    carrying a complete geo triple also contributes the proximity constraint.
    Nothing is added when no source yields a keyword.
    """
    clauses: list[FieldCondition] = []
    for text in _as_list(sources):
        position = extract_position(text)
        if position is not None and POSITION_KEY not in builder:
            builder.set(POSITION_KEY, position)

        tokens = extract_keywords(text, structural_prefixes)
        if tokens:
            clauses.append(FieldCondition(field=KEYWORD_FIELD, op="all", value=tokens))

    builder.extend_any(KEYWORDS_KEY, clauses)


def filter_for_position(sources: str | Iterable[str] | None, builder: FilterBuilder) -> None:
    """Add the first complete lat/lon/r triple found as a proximity constraint."""
    for text in _as_list(sources):
        position = extract_position(text)
        if position is not None:
            builder.set(POSITION_KEY, position)
            return
