from enum import Enum


class SortBy(str, Enum):
    relevance = "RELEVANCE"
    title = "TITLE"
    author = "AUTHOR"
    date_added = "DATE_ADDED"
    publication_year = "PUBLICATION_YEAR"


class SortOrder(str, Enum):
    asc = "ASC"
    desc = "DESC"


class Origin(str, Enum):
    local = "LOCAL"
    external = "EXTERNAL"
    both = "BOTH"


class OriginSummary(str, Enum):
    local_only = "LOCAL_ONLY"
    merged = "MERGED"
    merged_partial = "MERGED_PARTIAL"
    empty = "EMPTY"


class CircuitState(str, Enum):
    closed = "CLOSED"
    open = "OPEN"
    half_open = "HALF_OPEN"


class SearchField(str, Enum):
    title = "title"
    author = "author"


class SearchStrategy(str, Enum):
    native = "native"
    portable = "portable"


class SourceStatus(str, Enum):
    ok = "ok"
    cached = "cached"
    timeout = "timeout"
    fault = "fault"
    unavailable = "unavailable"
    rate_limited = "rate_limited"
    abandoned = "abandoned"
    skipped = "skipped"


class PhysicalLocation(str, Enum):
    master_bedroom = "MASTER_BEDROOM"
    fiona_bedroom = "FIONA_BEDROOM"
    guest_bedroom = "GUEST_BEDROOM"
    dining_room = "DINING_ROOM"
    living_room = "LIVING_ROOM"
    home_office = "HOME_OFFICE"
    kitchen = "KITCHEN"
    basement = "BASEMENT"
    other = "OTHER"

    @property
    def display_name(self) -> str:
        return LOCATION_DISPLAY_NAMES[self]


LOCATION_DISPLAY_NAMES = {
    PhysicalLocation.master_bedroom: "Master Bedroom",
    PhysicalLocation.fiona_bedroom: "Fiona's Bedroom",
    PhysicalLocation.guest_bedroom: "Guest Bedroom",
    PhysicalLocation.dining_room: "Dining Room",
    PhysicalLocation.living_room: "Living Room",
    PhysicalLocation.home_office: "Home Office",
    PhysicalLocation.kitchen: "Kitchen",
    PhysicalLocation.basement: "Basement Bedroom",
    PhysicalLocation.other: "Other",
}
