import pytest

from budget_tracker.components import build_table
from budget_tracker.pagination import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    NormalizedPageQuery,
    PageLink,
    build_window,
    normalize,
    paginate,
    to_limit_offset,
)


@pytest.mark.parametrize("page", [None, 0, -1, -250])
def test_normalize_collapses_missing_or_non_positive_page_to_one(page):
    assert normalize(page, 10).page == 1


def test_normalize_does_not_clamp_page_from_above():
    assert normalize(10_000, 10).page == 10_000


@pytest.mark.parametrize(
    "page_size, expected",
    [
        (None, DEFAULT_PAGE_SIZE),
        (-5, 1),
        (0, 1),
        (1, 1),
        (40, 40),
        (MAX_PAGE_SIZE, MAX_PAGE_SIZE),
        (MAX_PAGE_SIZE + 1, MAX_PAGE_SIZE),
        (10**12, MAX_PAGE_SIZE),
    ],
)
def test_normalize_clamps_page_size(page_size, expected):
    assert normalize(1, page_size).page_size == expected


def test_normalize_uses_supplied_default_and_max():
    assert normalize(None, None, default_size=10, max_size=50) == NormalizedPageQuery(1, 10)
    assert normalize(None, 80, default_size=10, max_size=50).page_size == 50


@pytest.mark.parametrize("page, page_size", [(None, None), (-3, 0), (7, 5000), (2, 33)])
def test_normalize_is_idempotent(page, page_size):
    once = normalize(page, page_size)
    assert normalize(once.page, once.page_size) == once


def test_to_limit_offset():
    assert to_limit_offset(NormalizedPageQuery(1, 25)) == (25, 0)
    assert to_limit_offset(NormalizedPageQuery(3, 25)) == (25, 50)


def test_to_limit_offset_saturates_to_zero_past_sql_integer_range():
    limit, offset = to_limit_offset(NormalizedPageQuery(2**62, MAX_PAGE_SIZE))
    assert limit == MAX_PAGE_SIZE
    assert offset == 0


@pytest.mark.parametrize("page", [1, 2**53, 2**62, 2**63, 2**70])
def test_to_limit_offset_is_never_negative(page):
    _, offset = to_limit_offset(normalize(page, MAX_PAGE_SIZE))
    assert 0 <= offset <= 2**63 - 1


def test_build_window_without_rows_is_empty():
    result = build_window(0, normalize(1, 25), "/x")

    assert result.window == []
    assert result.first is None
    assert result.last is None
    assert result.previous is None
    assert result.next is None


def test_build_window_on_first_page():
    result = build_window(250, normalize(1, 25), "/x")

    assert [link.page_number for link in result.window] == [1, 2, 3, 4]
    assert [link.is_current for link in result.window] == [True, False, False, False]
    assert result.window[1].url == "/x?page=2"
    assert result.first is None
    assert result.last == PageLink(10, False, "/x?page=10")
    assert result.previous is None
    assert result.next == "/x?page=2"


def test_build_window_on_last_page():
    result = build_window(250, normalize(10, 25), "/x")

    assert [link.page_number for link in result.window] == [7, 8, 9, 10]
    assert result.window[-1].is_current
    assert result.last is None
    assert result.first == "/x?page=1"
    assert result.next is None
    assert result.previous == "/x?page=9"


def test_build_window_in_the_middle():
    result = build_window(250, normalize(5, 25), "/x")

    assert [link.page_number for link in result.window] == [2, 3, 4, 5, 6, 7, 8]
    assert [link.page_number for link in result.window if link.is_current] == [5]
    assert result.first == "/x?page=1"
    assert result.last.page_number == 10
    assert result.previous == "/x?page=4"
    assert result.next == "/x?page=6"


def test_build_window_counts_partial_last_page():
    result = build_window(251, normalize(11, 25), "/x")

    assert result.window[-1].page_number == 11
    assert result.next is None


def test_build_window_single_page_has_no_navigation():
    result = build_window(3, normalize(1, 25), "/api/entry")

    assert result.window == [PageLink(1, True, "/api/entry?page=1")]
    assert (result.first, result.last, result.previous, result.next) == (None, None, None, None)


def test_build_window_far_past_the_end_is_empty():
    result = build_window(250, normalize(20, 25), "/x")

    assert result.window == []
    assert (result.first, result.last, result.previous, result.next) == (None, None, None, None)


def test_build_window_just_past_the_end_keeps_overlapping_pages():
    result = build_window(250, normalize(12, 25), "/x")

    assert [link.page_number for link in result.window] == [9, 10]
    assert not any(link.is_current for link in result.window)
    assert result.last is None
    assert result.first == "/x?page=1"
    assert result.previous == "/x?page=11"
    assert result.next == "/x?page=13"


def test_paginate_composes_normalize_offset_and_window():
    limit, offset, result = paginate(3, None, 95, "/api/entry", default_size=10)

    assert (limit, offset) == (10, 20)
    assert [link.page_number for link in result.window] == [1, 2, 3, 4, 5, 6]
    assert result.last.url == "/api/entry?page=10"


def test_build_table_carries_pager_result():
    query = normalize(2, 10)

    table = build_table([("a1", "Main")], ["id", "name"], 25, "/api/accounts", query)

    assert table["columns"] == ["id", "name"]
    assert table["max_entries_per_page"] == 10
    assert table["pager"] == build_window(25, query, "/api/accounts")
    assert table["pager"].previous == "/api/accounts?page=1"
    assert table["pager"].next == "/api/accounts?page=3"
