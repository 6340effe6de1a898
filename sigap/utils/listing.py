"""List payloads and conditional GET support.

Audit log listings are paginated with limit/offset against the local database; ticket
views are JSON documents assembled from the backend, so their ETag is a digest of the
document itself (any change in status, diagnosis, work orders or caller role yields a
new tag).
"""
from __future__ import annotations
import hashlib
import json
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime
from typing import Any, Iterable, Optional, Tuple

from flask import request, abort, make_response
from sigap.config.pagination import normalize_pagination, normalize_page

TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """Return UTC tz-aware timestamp truncated to whole seconds."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.replace(microsecond=0)


def _iso(dt: datetime) -> str:
    return canonicalize_timestamp(dt).isoformat().replace('+00:00', 'Z')


def apply_pagination(q) -> Tuple[Any, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def page_params() -> dict:
    """page/per_page for backend list endpoints, clamped to the backend's limits."""
    try:
        page, per_page = normalize_page(request.args.get('page'), request.args.get('per_page'))
    except ValueError as e:
        abort(400, description=str(e))
    return {'page': page, 'per_page': per_page}


def compute_etag(ids: Iterable[Any], total: int, limit: int, offset: int, latest_ts: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def document_etag(document: Any) -> str:
    seed = json.dumps(document, sort_keys=True, default=str)
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def _http_date(dt: datetime) -> str:
    return format_datetime(canonicalize_timestamp(dt), usegmt=True)


def make_cached_list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None):
    latest_iso = _iso(latest_ts) if isinstance(latest_ts, datetime) else ''
    etag = compute_etag([r.get('id') for r in rows], total, limit, offset, latest_iso)
    resp = make_response(build_list_payload(rows, total, limit, offset))
    resp.headers['ETag'] = etag
    if latest_iso:
        resp.headers['Last-Modified'] = _http_date(latest_ts)
    return resp, etag


def make_document_response(document: dict):
    etag = document_etag(document)
    resp = make_response(document)
    resp.headers['ETag'] = etag
    return resp, etag


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    if not header_val:
        return None
    try:
        dt = datetime.fromisoformat(header_val.replace('Z', '+00:00'))
    except ValueError:
        try:
            dt = parsedate_to_datetime(header_val)
        except (TypeError, ValueError):
            return None
    if dt is not None and dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def handle_conditional(etag_value: str, latest_ts: Optional[datetime] = None):
    """Return a 304 response when If-None-Match / If-Modified-Since match, else None.

    If-None-Match takes precedence over If-Modified-Since.
    """
    inm = request.headers.get('If-None-Match')
    if inm:
        if inm.strip('"') == etag_value:
            resp = make_response('', 304)
            resp.headers['ETag'] = etag_value
            return resp
        return None
    ims = _parse_if_modified_since(request.headers.get('If-Modified-Since'))
    if ims and isinstance(latest_ts, datetime):
        if canonicalize_timestamp(latest_ts) <= canonicalize_timestamp(ims) + TIMESTAMP_TOLERANCE:
            resp = make_response('', 304)
            resp.headers['ETag'] = etag_value
            resp.headers['Last-Modified'] = _http_date(latest_ts)
            return resp
    return None


__all__ = [
    'canonicalize_timestamp', 'apply_pagination', 'page_params', 'compute_etag', 'document_etag', 'build_list_payload',
    'make_cached_list_response', 'make_document_response', 'handle_conditional',
]
