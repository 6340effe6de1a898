from flask import Blueprint, request
from sqlalchemy import func
from sigap import get_db
from sigap.decorators.auth import require_roles
from sigap.models.audit import AuditLog
from sigap.services.audit import audit_json
from sigap.utils.filters import apply_filters
from sigap.utils.listing import apply_pagination, make_cached_list_response, handle_conditional
from sigap.utils.sorting import apply_multi_sort
from sigap.workflow.types import Role

audit_bp = Blueprint('audit', __name__)

AUDIT_FILTERS = {
    'actor_user_id': {'op': lambda q, v: q.filter(AuditLog.actor_user_id == v)},
    'actor_role': {'op': lambda q, v: q.filter(AuditLog.actor_role == v), 'validate': lambda v: v in {r.value for r in Role}},
    'action': {'op': lambda q, v: q.filter(AuditLog.action == v)},
    'entity': {'op': lambda q, v: q.filter(AuditLog.entity == v)},
    'entity_id': {'op': lambda q, v: q.filter(AuditLog.entity_id == v)},
}

AUDIT_SORT = {
    'id': AuditLog.id,
    'created_at': AuditLog.created_at,
    'action': AuditLog.action,
    'actor_user_id': AuditLog.actor_user_id,
}


@audit_bp.route('/logs', methods=['GET', 'HEAD'])
@require_roles(Role.SUPER_ADMIN)
def list_audit_logs():
    session = get_db()
    q = apply_filters(session.query(AuditLog), AUDIT_FILTERS, request.args)
    # newest first unless the caller asks otherwise
    q = apply_multi_sort(q, request.args.get('sort') or '-id', AUDIT_SORT, AuditLog.id)
    page, total, limit, offset = apply_pagination(q)
    rows = page.all()
    latest_ts = apply_filters(session.query(func.max(AuditLog.created_at)), AUDIT_FILTERS, request.args).scalar()
    resp, etag = make_cached_list_response([audit_json(r) for r in rows], total, limit, offset, latest_ts)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp
