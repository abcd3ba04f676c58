from datetime import UTC, datetime

from app.enums import Origin, SortBy, SortOrder
from app.services.merge import baseline_score, merge_results, sort_results
from app.services.search import PortableRelevance, ScoredResult
from tests.helpers import make_candidate, make_query


def _local(book_id: int, title: str, *, score: float = 2.0, **fields) -> ScoredResult:
    fields.setdefault("author", "Ursula K. Le Guin")
    fields.setdefault("isbn", None)
    fields.setdefault("genre", None)
    fields.setdefault("publisher", None)
    return ScoredResult(book_id=book_id, title=title, score=score, matched_fields=frozenset({"author"}), **fields)


def _merge(local, external):
    return merge_results(make_query("guin"), local, external, strategy=PortableRelevance())


def test_duplicate_isbn_merges_into_one_result_with_both_origin():
    local = [_local(1, "The Dispossessed", isbn="0-06-051275-x")]
    duplicate = make_candidate(
        "open_library",
        title="The Dispossessed: An Ambiguous Utopia",
        author="Le Guin",
        isbn="006051275X",
        description="An ambiguous utopia.",
        publisher="Harper",
    )
    merged = _merge(local, [(0, [duplicate])])

    assert len(merged) == 1
    result = merged[0]
    assert result.origin == Origin.both
    assert result.external_source == "open_library"
    assert result.title == "The Dispossessed"
    assert result.author == "Ursula K. Le Guin"
    assert result.description == "An ambiguous utopia."
    assert result.publisher == "Harper"
    assert result.score == 2.0
    assert "external:open_library" in result.matched_fields


def test_local_fields_stay_authoritative_when_present():
    local = [_local(1, "The Dispossessed", isbn="9780060512750", publisher="Avon")]
    duplicate = make_candidate("google_books", title="The Dispossessed", isbn="9780060512750", publisher="Harper")
    result = _merge(local, [(0, [duplicate])])[0]
    assert result.publisher == "Avon"


def test_title_author_dedup_applies_when_an_isbn_is_missing():
    local = [_local(1, "A Wizard of Earthsea")]
    candidate = make_candidate("open_library", title="A Wizard of Earthsea!", author="Ursula K. Le Guin", isbn="9780547773742")
    merged = _merge(local, [(0, [candidate])])
    assert len(merged) == 1
    assert merged[0].origin == Origin.both
    assert merged[0].isbn is None


def test_different_isbns_under_one_title_are_separate_editions():
    local = [_local(1, "A Wizard of Earthsea", isbn="9780553262506")]
    candidate = make_candidate("open_library", title="A Wizard of Earthsea", author="Ursula K. Le Guin", isbn="9780547773742")
    merged = _merge(local, [(0, [candidate])])
    assert [result.origin for result in merged] == [Origin.local, Origin.external]


def test_external_only_results_get_priority_baseline_below_local_matches():
    local = [_local(1, "The Dispossessed")]
    first = make_candidate("open_library", title="The Lathe of Heaven", author="Ursula K. Le Guin")
    second = make_candidate("google_books", title="The Word for World Is Forest", author="Ursula K. Le Guin")
    merged = sort_results(_merge(local, [(1, [second]), (0, [first])]), SortBy.relevance, SortOrder.desc)

    assert [result.title for result in merged] == [
        "The Dispossessed",
        "The Lathe of Heaven",
        "The Word for World Is Forest",
    ]
    assert [result.score for result in merged] == [2.0, 0.9, 0.8]
    assert merged[1].origin == Origin.external
    assert merged[1].matched_fields == {"author"}


def test_duplicates_across_sources_collapse_to_first_source():
    first = make_candidate("open_library", title="The Lathe of Heaven", isbn="9781416556961")
    second = make_candidate("google_books", title="Lathe of Heaven", isbn="978-1-4165-5696-1", page_count=184)
    merged = _merge([], [(0, [first]), (1, [second])])
    assert len(merged) == 1
    assert merged[0].external_source == "open_library"
    assert merged[0].origin == Origin.external
    assert merged[0].page_count == 184


def test_baseline_score_is_floored():
    assert baseline_score(0, base=0.9, step=0.1) == 0.9
    assert baseline_score(20, base=0.9, step=0.1) == 0.1


def test_sort_by_publication_year_puts_missing_values_last():
    results = _merge(
        [
            _local(1, "Old", publication_year=1960),
            _local(2, "Undated"),
            _local(3, "New", publication_year=2001),
        ],
        [],
    )
    ascending = sort_results(results, SortBy.publication_year, SortOrder.asc)
    descending = sort_results(results, SortBy.publication_year, SortOrder.desc)
    assert [item.title for item in ascending] == ["Old", "New", "Undated"]
    assert [item.title for item in descending] == ["New", "Old", "Undated"]


def test_sort_by_title_and_author_are_case_insensitive():
    results = _merge(
        [
            _local(1, "beta", author="Zed"),
            _local(2, "Alpha", author="amy"),
            _local(3, "Gamma", author="Bob", date_added=datetime(2024, 1, 1, tzinfo=UTC)),
        ],
        [],
    )
    assert [item.title for item in sort_results(results, SortBy.title, SortOrder.asc)] == ["Alpha", "beta", "Gamma"]
    assert [item.author for item in sort_results(results, SortBy.author, SortOrder.desc)] == ["Zed", "Bob", "amy"]
    assert sort_results(results, SortBy.date_added, SortOrder.desc)[0].title == "Gamma"
