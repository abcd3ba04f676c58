import re
from datetime import UTC, datetime

_ISBN_STRIP = re.compile(r"[^0-9X]")
_ISBN_SHAPE = re.compile(r"^(?:\d{9}[\dX]|\d{13})$")
_TITLE_STRIP = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def now_utc() -> datetime:
    return datetime.now(UTC)


def normalize_isbn(value: str | None) -> str:
    if not value:
        return ""
    return _ISBN_STRIP.sub("", value.upper())


def normalize_title(value: str | None) -> str:
    if not value:
        return ""
    lowered = _TITLE_STRIP.sub("", value.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def looks_like_isbn(value: str) -> bool:
    compact = re.sub(r"[\s-]", "", value.upper())
    return bool(_ISBN_SHAPE.match(compact))
