DEFAULT_LIMIT = 50
MAX_LIMIT = 200
# backend list endpoints are page based (page / per_page)
DEFAULT_PER_PAGE = 15
MAX_PER_PAGE = 100


def normalize_pagination(limit_raw, offset_raw):
    try:
        limit = int(limit_raw) if limit_raw is not None else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset)
    return limit, offset


def normalize_page(page_raw, per_page_raw):
    try:
        page = int(page_raw) if page_raw is not None else 1
        per_page = int(per_page_raw) if per_page_raw is not None else DEFAULT_PER_PAGE
    except ValueError:
        raise ValueError('page/per_page must be int')
    return max(1, page), max(1, min(per_page, MAX_PER_PAGE))
