from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt_identity, get_jwt
from sigap import get_db
from sigap.models.audit import AuditLog

logger = logging.getLogger(__name__)


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Stage an audit log entry in the current DB session.

    Parameters:
      action: short action code e.g. TICKET.APPROVE, TICKET.DIAGNOSE, WO.STATUS
      entity: optional entity name (Ticket, WorkOrder)
      entity_id: backend id of the entity
      meta: additional JSON-safe dictionary (shallow copied)
    """
    session = get_db()
    claims: Dict[str, Any] = {}
    try:
        claims = get_jwt() or {}
    except RuntimeError:
        pass  # outside a verified JWT request (scripts, tests) - keep empty
    actor = None
    try:
        actor = get_jwt_identity()
    except RuntimeError:
        actor = None
    log = AuditLog(
        actor_user_id=str(actor) if actor is not None else '0',
        actor_role=claims.get('active_role'),
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    logger.info('audit %s %s=%s by %s', action, entity, entity_id, log.actor_user_id)
    # No commit here; caller's transaction boundary controls durability.
    return log


def audit_json(log: AuditLog) -> Dict[str, Any]:
    return {
        'id': log.id,
        'actor_user_id': log.actor_user_id,
        'actor_role': log.actor_role,
        'action': log.action,
        'entity': log.entity,
        'entity_id': log.entity_id,
        'meta': log.meta or {},
        'created_at': log.created_at.isoformat() if log.created_at else None,
    }


__all__ = ['add_audit', 'audit_json']
