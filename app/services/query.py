from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from app.enums import PhysicalLocation
from app.services.validation import (
    ValidationError,
    validate_min_rating,
    validate_physical_location,
    validate_year_range,
)

logger = logging.getLogger(__name__)

MIN_TERM_LENGTH = 2
DEFAULT_MAX_QUERY_LENGTH = 100

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
        "book", "books", "novel", "story", "tale", "reading", "read", "author", "writer",
    }
)

_QUOTES_AND_BRACKETS = re.compile(r"[\"'`()\[\]{}]")
_PUNCTUATION = re.compile(r"[;,!?]")
_JOINERS = re.compile(r"[-_]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class SearchFilters:
    category: str | None = None
    physical_location: PhysicalLocation | None = None
    min_rating: int | None = None
    year_from: int | None = None
    year_to: int | None = None

    @property
    def is_empty(self) -> bool:
        return not any(
            value is not None
            for value in (self.category, self.physical_location, self.min_rating, self.year_from, self.year_to)
        )


@dataclass(frozen=True)
class SearchQuery:
    raw: str
    text: str
    terms: tuple[str, ...]
    filters: SearchFilters = field(default_factory=SearchFilters)

    @property
    def is_empty(self) -> bool:
        """True for the match-all sentinel: nothing but whitespace was submitted."""
        return not self.text


def build_filters(
    *,
    category: str | None = None,
    physical_location: str | PhysicalLocation | None = None,
    min_rating: int | None = None,
    year_from: int | None = None,
    year_to: int | None = None,
) -> SearchFilters:
    """Validate raw filter values; malformed input fails fast with ValidationError."""
    location: PhysicalLocation | None
    if physical_location is None or (isinstance(physical_location, str) and not physical_location.strip()):
        location = None
    elif isinstance(physical_location, PhysicalLocation):
        location = physical_location
    else:
        location = validate_physical_location(physical_location)

    if min_rating is not None:
        validate_min_rating(min_rating)
    validate_year_range(year_from, year_to)

    cleaned_category = category.strip() if category else None
    if cleaned_category is not None and len(cleaned_category) > 100:
        raise ValidationError("category must not exceed 100 characters")

    return SearchFilters(
        category=cleaned_category or None,
        physical_location=location,
        min_rating=min_rating,
        year_from=year_from,
        year_to=year_to,
    )


def preprocess_query(raw: str) -> str:
    cleaned = _QUOTES_AND_BRACKETS.sub("", raw.strip())
    cleaned = _PUNCTUATION.sub(" ", cleaned)
    cleaned = _JOINERS.sub("", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned)
    return cleaned.strip().lower()


def split_terms(text: str) -> tuple[str, ...]:
    candidates = [term for term in text.split() if len(term) >= MIN_TERM_LENGTH]
    if len(candidates) <= 1:
        return tuple(candidates)
    meaningful = [term for term in candidates if term not in STOP_WORDS]
    # A query made only of stop words still has to match something.
    return tuple(meaningful or candidates)


def normalize_query(
    raw: str | None,
    *,
    filters: SearchFilters | None = None,
    max_length: int = DEFAULT_MAX_QUERY_LENGTH,
) -> SearchQuery:
    raw_text = (raw or "").strip()
    if len(raw_text) > max_length:
        logger.warning("Search query exceeds maximum length: %s characters", len(raw_text))
        raw_text = raw_text[:max_length].rstrip()

    text = preprocess_query(raw_text)
    terms = split_terms(text)
    logger.debug("Normalized query %r -> text=%r terms=%s", raw_text, text, terms)
    return SearchQuery(raw=raw_text, text=text, terms=terms, filters=filters or SearchFilters())
