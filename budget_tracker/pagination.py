"""Page number windowing shared by every paginated list view.

Nothing in here raises for bad client input: unusable page numbers and page
sizes collapse to page 1 and the default size. ``total_count`` must be a
non-negative row count supplied by the caller.
"""

from collections import namedtuple

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 1000
WINDOW_RADIUS = 3

# Largest value a SQL BIGINT (and sqlite INTEGER) can carry.
MAX_SQL_INTEGER = 2**63 - 1

NormalizedPageQuery = namedtuple("NormalizedPageQuery", ["page", "page_size"])
PageLink = namedtuple("PageLink", ["page_number", "is_current", "url"])
PagerResult = namedtuple("PagerResult", ["window", "first", "last", "previous", "next"])


def normalize(page=None, page_size=None, default_size=DEFAULT_PAGE_SIZE, max_size=MAX_PAGE_SIZE):
    return NormalizedPageQuery(
        page=max(page if page is not None else 1, 1),
        page_size=min(max(page_size if page_size is not None else default_size, 1), max_size),
    )


def to_limit_offset(query):
    offset = (query.page - 1) * query.page_size
    if offset > MAX_SQL_INTEGER:
        offset = 0
    return query.page_size, offset


def page_url(base_url, page_number):
    return f"{base_url}?page={page_number}"


def total_pages(total_count, page_size):
    return -(-total_count // page_size)


def build_window(total_count, query, base_url):
    """Return the page links to show around ``query.page``.

    The window spans ``WINDOW_RADIUS`` pages either side of the current page,
    cut down to the pages that exist. ``first`` and ``last`` are only set when
    the window does not already reach that end.
    """
    last_page = total_pages(total_count, query.page_size)
    current = query.page

    window = [
        PageLink(number, number == current, page_url(base_url, number))
        for number in range(current - WINDOW_RADIUS, current + WINDOW_RADIUS + 1)
        if 1 <= number <= last_page
    ]
    if not window:
        return PagerResult(window=[], first=None, last=None, previous=None, next=None)

    last = None
    if window[-1].page_number != last_page:
        last = PageLink(last_page, False, page_url(base_url, last_page))

    first = None
    if window[0].page_number != 1:
        first = page_url(base_url, 1)

    next_url = page_url(base_url, current + 1) if current != last_page else None
    previous_url = page_url(base_url, current - 1) if current != 1 else None

    return PagerResult(window=window, first=first, last=last, previous=previous_url, next=next_url)


def paginate(page, page_size, total_count, base_url, default_size=DEFAULT_PAGE_SIZE, max_size=MAX_PAGE_SIZE):
    query = normalize(page, page_size, default_size=default_size, max_size=max_size)
    limit, offset = to_limit_offset(query)
    return limit, offset, build_window(total_count, query, base_url)
