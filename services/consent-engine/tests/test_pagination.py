import pytest

from consent_engine.utils.pagination import MAX_PAGE_SIZE, Pagination, paginate


def test_defaults_when_query_is_missing():
    assert Pagination.from_query(None, None) == Pagination(number=1, size=MAX_PAGE_SIZE)


def test_large_page_size_is_clamped():
    assert Pagination.from_query(2, 500).size == MAX_PAGE_SIZE


def test_page_size_above_limit_is_refused():
    with pytest.raises(ValueError):
        Pagination.from_query(1, 1001)


def test_paginate_slices_and_counts():
    page = paginate(list(range(7)), Pagination(number=3, size=3))

    assert page.records == [6]
    assert page.total_records == 7
    assert page.total_pages == 3


def test_empty_listing_has_no_pages():
    assert paginate([], Pagination()).total_pages == 0
