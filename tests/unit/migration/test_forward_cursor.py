"""
Unit tests for ForwardCursor.

Uses mongomock collections to exercise paging, filtering and resumption.
"""

import pytest

from libs.migration import ForwardCursor


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def granules(source_db):
    """Granules collection with 5 records across two collections."""
    collection = source_db["granules"]
    collection.insert_many([
        {"granuleId": f"g{i}", "collectionId": "MOD09GQ___006" if i % 2 else "MYD13Q1___006"}
        for i in range(5)
    ])
    return collection


# =============================================================================
# Test: Paging
# =============================================================================


def test_iterates_all_records_in_order(granules):
    cursor = ForwardCursor(granules, page_size=2)
    assert [r["granuleId"] for r in cursor] == ["g0", "g1", "g2", "g3", "g4"]


def test_fetches_in_pages(granules):
    cursor = ForwardCursor(granules, page_size=2)
    list(cursor)
    # 2 + 2 + 1; the short page marks the end.
    assert cursor.pages_fetched == 3


def test_exact_multiple_of_page_size_needs_one_empty_page(granules):
    granules.delete_one({"granuleId": "g4"})
    cursor = ForwardCursor(granules, page_size=2)
    assert len(list(cursor)) == 4
    assert cursor.pages_fetched == 3


def test_records_are_stripped_of_object_id(granules):
    record = ForwardCursor(granules).peek()
    assert "_id" not in record
    assert record["granuleId"] == "g0"


def test_empty_collection(source_db):
    cursor = ForwardCursor(source_db["empty"])
    assert cursor.peek() is None
    assert list(cursor) == []
    assert cursor.position is None


def test_invalid_page_size(granules):
    with pytest.raises(ValueError):
        ForwardCursor(granules, page_size=0)


# =============================================================================
# Test: peek / advance protocol
# =============================================================================


def test_peek_does_not_consume(granules):
    cursor = ForwardCursor(granules, page_size=2)
    assert cursor.peek()["granuleId"] == "g0"
    assert cursor.peek()["granuleId"] == "g0"
    cursor.advance()
    assert cursor.peek()["granuleId"] == "g1"


def test_position_tracks_last_advanced_record(granules):
    cursor = ForwardCursor(granules, page_size=2)
    first_id = granules.find_one({"granuleId": "g0"})["_id"]
    cursor.peek()
    assert cursor.position is None
    cursor.advance()
    assert cursor.position == first_id


def test_advance_when_exhausted_is_noop(granules):
    cursor = ForwardCursor(granules)
    list(cursor)
    position = cursor.position
    cursor.advance()
    assert cursor.position == position


def test_record_not_advanced_past_is_seen_again_on_resume(granules):
    cursor = ForwardCursor(granules, page_size=2)
    cursor.advance()
    cursor.advance()
    # g2 was peeked but processing failed; resume from the position.
    assert cursor.peek()["granuleId"] == "g2"
    resumed = ForwardCursor(granules, page_size=2, start_after=cursor.position)
    assert [r["granuleId"] for r in resumed] == ["g2", "g3", "g4"]


# =============================================================================
# Test: Filtering
# =============================================================================


def test_query_filters_records(granules):
    cursor = ForwardCursor(granules, query={"collectionId": "MOD09GQ___006"}, page_size=1)
    assert [r["granuleId"] for r in cursor] == ["g1", "g3"]


def test_query_combined_with_resume(granules):
    start = granules.find_one({"granuleId": "g1"})["_id"]
    cursor = ForwardCursor(granules, query={"collectionId": "MOD09GQ___006"}, start_after=start)
    assert [r["granuleId"] for r in cursor] == ["g3"]
