"""HTTP client for the SIGAP backend REST API.

The backend owns every ticket, diagnosis and work order; this client only reads records
and forwards mutations. Responses use the envelope
``{"success": bool, "message": str, "data": ..., "pagination": {...}}``; the client
unwraps ``data`` and raises on anything that is not a 2xx.

No retries: a network failure surfaces as UpstreamUnavailable and the user refreshes.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """Base for backend call failures."""


class UpstreamRejected(UpstreamError):
    """The backend answered with a non-2xx status (authorization, stale state, validation)."""

    def __init__(self, status_code: int, message: str, payload: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.payload = payload or {}


class UpstreamUnavailable(UpstreamError):
    """Connection error, timeout, or a body that is not JSON."""


def _unwrap(body: Any) -> Tuple[Any, Optional[dict]]:
    if isinstance(body, dict) and 'data' in body and ({'success', 'message', 'pagination'} & body.keys()):
        return body['data'], body.get('pagination')
    return body, None


class TicketRepositoryClient:
    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 15, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def _request(self, method: str, path: str, *, params: Optional[dict] = None, json: Optional[dict] = None):
        url = self._url(path)
        logger.debug('%s %s params=%s', method, url, params)
        try:
            resp = self.session.request(method, url, params=params, json=json, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning('backend unreachable: %s %s: %s', method, url, e)
            raise UpstreamUnavailable(f'backend unreachable: {e}') from e
        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            if resp.ok:
                raise UpstreamUnavailable(f'backend returned non-JSON body for {method} {path}')
            body = {}
        if not resp.ok:
            message = body.get('message') if isinstance(body, dict) else None
            message = message or resp.reason or 'request rejected'
            logger.warning('backend rejected %s %s: %s %s', method, path, resp.status_code, message)
            raise UpstreamRejected(resp.status_code, message, body if isinstance(body, dict) else None)
        return _unwrap(body)

    def _params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in params.items() if v is not None and v != ''}

    # ---------- session ---------- #

    def login(self, email: str, password: str) -> Dict[str, Any]:
        data, _ = self._request('POST', 'auth/login', json={'email': email, 'password': password})
        return data

    # ---------- tickets ---------- #

    def list_tickets(self, **params) -> Tuple[List[Dict[str, Any]], Optional[dict]]:
        data, pagination = self._request('GET', 'tickets', params=self._params(params))
        return list(data or []), pagination

    def ticket_counts(self, **params) -> Dict[str, Any]:
        data, _ = self._request('GET', 'tickets-counts', params=self._params(params))
        return data or {}

    def get_ticket(self, ticket_id) -> Dict[str, Any]:
        data, _ = self._request('GET', f'tickets/{ticket_id}')
        return data

    def patch_ticket_status(self, ticket_id, status: str, **payload) -> Dict[str, Any]:
        body = dict(payload, status=status)
        data, _ = self._request('PATCH', f'tickets/{ticket_id}/status', json=body)
        return data

    def put_diagnosis(self, ticket_id, payload: Dict[str, Any]) -> Dict[str, Any]:
        data, _ = self._request('PUT', f'tickets/{ticket_id}/diagnosis', json=payload)
        return data

    # ---------- work orders ---------- #

    def list_ticket_work_orders(self, ticket_id) -> List[Dict[str, Any]]:
        data, _ = self._request('GET', f'tickets/{ticket_id}/work-orders')
        return list(data or [])

    def create_work_order(self, ticket_id, payload: Dict[str, Any]) -> Dict[str, Any]:
        data, _ = self._request('POST', f'tickets/{ticket_id}/work-orders', json=payload)
        return data

    def list_work_orders(self, **params) -> Tuple[List[Dict[str, Any]], Optional[dict]]:
        data, pagination = self._request('GET', 'work-orders', params=self._params(params))
        return list(data or []), pagination

    def get_work_order(self, work_order_id) -> Dict[str, Any]:
        data, _ = self._request('GET', f'work-orders/{work_order_id}')
        return data

    def work_order_stats(self) -> Dict[str, Any]:
        data, _ = self._request('GET', 'work-orders/stats/summary')
        return data or {}

    def patch_work_order_status(self, work_order_id, status: str, **payload) -> Dict[str, Any]:
        body = dict(payload, status=status)
        data, _ = self._request('PATCH', f'work-orders/{work_order_id}/status', json=body)
        return data

    # ---------- zoom ---------- #

    def list_zoom_bookings(self, date: str) -> List[Dict[str, Any]]:
        data, _ = self._request('GET', 'tickets', params={'type': 'zoom_meeting', 'zoom_date': date, 'per_page': 100})
        return list(data or [])


__all__ = ['TicketRepositoryClient', 'UpstreamError', 'UpstreamRejected', 'UpstreamUnavailable']
