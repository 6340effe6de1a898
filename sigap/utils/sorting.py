from __future__ import annotations
from flask import abort


def apply_multi_sort(query, sort_expr: str | None, allowed: dict, tie_breaker):
    """Order a SQLAlchemy query by a comma-separated sort expression.

    Each token is a key of ``allowed`` optionally prefixed with '-' for descending;
    ``tie_breaker`` is appended so paging is deterministic. Unknown keys abort with 400.
    """
    clauses = []
    for raw in (sort_expr or '').split(','):
        token = raw.strip()
        if not token:
            continue
        key = token.lstrip('-')
        col = allowed.get(key)
        if col is None:
            abort(400, description=f'Invalid sort field {key}')
        clauses.append(col.desc() if token.startswith('-') else col.asc())
    clauses.append(tie_breaker.asc())
    return query.order_by(*clauses)
