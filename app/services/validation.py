from app.enums import LOCATION_DISPLAY_NAMES, PhysicalLocation


class ValidationError(ValueError):
    pass


def require(condition: bool, message: str) -> None:
    if not condition:
        raise ValidationError(message)


def validate_physical_location(value: str) -> PhysicalLocation:
    normalized = value.strip().upper()
    for location in PhysicalLocation:
        if location.value == normalized:
            return location
    for location, display_name in LOCATION_DISPLAY_NAMES.items():
        if display_name.upper() == normalized:
            return location
    raise ValidationError(f"Unsupported physical_location: {value}")


def validate_min_rating(value: int) -> None:
    require(1 <= value <= 5, "min_rating must be between 1 and 5")


def validate_year_range(year_from: int | None, year_to: int | None) -> None:
    for label, year in (("year_from", year_from), ("year_to", year_to)):
        if year is not None:
            require(0 < year <= 9999, f"{label} must be a four-digit year")
    if year_from is not None and year_to is not None:
        require(year_from <= year_to, "year_from must not be after year_to")


def validate_pagination(page: int, size: int, *, max_size: int) -> None:
    require(page >= 1, "page must be >= 1")
    require(1 <= size <= max_size, f"size must be between 1 and {max_size}")
