"""Audit logging decorator for gateway endpoints that forward a workflow action.

Usage:

@audit_log('TICKET.APPROVE', entity='Ticket', entity_key='ticket', diff_keys=['status', 'assigned_to'])
def approve_ticket(ticket_id): ...

Parameters:
  action: audit action code (TICKET.APPROVE, WO.STATUS, ...)
  entity: entity label (Ticket, WorkOrder)
  entity_key: key of the returned JSON holding the entity record ({'ticket': {...}, ...});
              the record's ``id`` becomes entity_id. Falls back to entity_id_arg.
  entity_id_arg: name of the path parameter used for entity_id when the record has none.
  meta_keys: keys projected from the entity record into meta.
  diff_keys: keys compared between the "before" snapshot a handler stores with
             remember_before() and the returned record; differences land in meta['changes'].

Error responses (aborts) are not audited; only completed forwards are.
"""
from __future__ import annotations
import logging
from functools import wraps
from typing import Any, Dict, Iterable, Optional

from flask import g
from sigap.services.audit import add_audit
from sigap import get_db

logger = logging.getLogger(__name__)


def remember_before(record: Dict[str, Any]):
    """Store the pre-action snapshot for the audit decorator of the current request."""
    g.audit_before = dict(record or {})


def _extract_payload(rv: Any):
    if isinstance(rv, tuple) and rv:
        return rv[0]
    return rv


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    diff_keys: Optional[Iterable[str]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            rv = fn(*args, **kwargs)
            try:
                data = _extract_payload(rv)
                record = data.get(entity_key) if isinstance(data, dict) and entity_key else data
                if not isinstance(record, dict):
                    record = {}
                entity_id = record.get('id')
                if entity_id is None and entity_id_arg:
                    entity_id = kwargs.get(entity_id_arg)
                meta: Dict[str, Any] = {k: record.get(k) for k in (meta_keys or ()) if k in record}
                before = g.pop('audit_before', None)
                if diff_keys and isinstance(before, dict):
                    changes = {}
                    for k in diff_keys:
                        if before.get(k) != record.get(k):
                            changes[k] = {'before': before.get(k), 'after': record.get(k)}
                    if changes:
                        meta['changes'] = changes
                add_audit(action, entity, entity_id, meta)
                get_db().commit()
            except Exception:
                # audit must not interfere with a response the backend already accepted
                logger.exception('audit write failed for %s', action)
                get_db().rollback()
            return rv
        return wrapper
    return outer


__all__ = ['audit_log', 'remember_before']
