import pytest

from app.enums import PhysicalLocation
from app.services.query import build_filters, normalize_query, preprocess_query, split_terms
from app.services.validation import ValidationError


def test_preprocess_strips_quotes_punctuation_and_joiners():
    assert preprocess_query('  "Tolkien"; (Hobbit)!  ') == "tolkien hobbit"
    assert preprocess_query("978-0-7432-7356-5") == "9780743273565"
    assert preprocess_query("sci_fi   classics") == "scifi classics"


def test_stop_words_dropped_only_from_multi_term_queries():
    assert split_terms("the great gatsby") == ("great", "gatsby")
    assert split_terms("the") == ("the",)
    assert split_terms("the book") == ("the", "book")


def test_single_character_terms_are_ignored():
    assert split_terms("a dune") == ("dune",)
    query = normalize_query("x")
    assert query.terms == ()
    assert not query.is_empty


def test_whitespace_only_query_is_the_match_all_sentinel():
    query = normalize_query("   ")
    assert query.is_empty
    assert query.raw == ""
    assert normalize_query(None).is_empty


def test_long_query_is_truncated():
    query = normalize_query("gatsby " * 40, max_length=100)
    assert len(query.raw) <= 100
    assert query.raw.startswith("gatsby gatsby")


def test_isbn_query_keeps_raw_text_and_normalized_term():
    query = normalize_query("978-0-7432-7356-5")
    assert query.raw == "978-0-7432-7356-5"
    assert query.terms == ("9780743273565",)


def test_filters_accept_enum_value_or_display_name():
    assert build_filters(physical_location="LIVING_ROOM").physical_location == PhysicalLocation.living_room
    assert build_filters(physical_location="Living Room").physical_location == PhysicalLocation.living_room
    assert build_filters(physical_location="  ").physical_location is None
    assert build_filters().is_empty


@pytest.mark.parametrize(
    "kwargs",
    [
        {"physical_location": "Garage"},
        {"min_rating": 0},
        {"min_rating": 6},
        {"year_from": 2000, "year_to": 1990},
        {"category": "x" * 101},
    ],
)
def test_invalid_filters_raise_validation_error(kwargs):
    with pytest.raises(ValidationError):
        build_filters(**kwargs)
