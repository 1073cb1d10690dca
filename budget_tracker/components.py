from .pagination import build_window


def column_names(cursor):
    return [col.name if hasattr(col, "name") else col[0] for col in (cursor.description or [])]


def build_table(rows, columns, total_count, base_url, query):
    """Template context for ``component_table.html``.

    ``rows`` must yield values in the same order as ``columns``; ``pager`` is
    rendered by the shared ``pagination.html`` partial.
    """
    return {
        "entries": rows,
        "columns": list(columns),
        "pager": build_window(total_count, query, base_url),
        "max_entries_per_page": query.page_size,
    }
