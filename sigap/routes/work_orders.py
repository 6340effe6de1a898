from __future__ import annotations
import logging
from flask import Blueprint, request
from sigap import get_repository
from sigap.decorators.auth import require_roles
from sigap.decorators.audit import audit_log, remember_before
from sigap.services.repository import UpstreamError, UpstreamRejected
from sigap.services.session import current_actor, upstream_token
from sigap.utils.filters import passthrough_params
from sigap.utils.listing import make_document_response, handle_conditional, page_params
from sigap.utils.validation import ensure, json_body, require_fields
from sigap.workflow.records import WorkOrder, normalize_work_order_status, parse_work_order
from sigap.workflow.results import MalformedRecord
from sigap.workflow.types import Role, WorkOrderStatus, WorkOrderType
from sigap.workflow.work_orders import allowed_targets, check_transition

logger = logging.getLogger(__name__)

wo_bp = Blueprint('work_orders', __name__)

LIST_PARAMS = {
    'status': lambda v: v in {s.value for s in WorkOrderStatus},
    'type': lambda v: v in {t.value for t in WorkOrderType},
    'ticket_id': None,
    'search': None,
}

STATUS_FIELDS = ('vendor_name', 'vendor_contact', 'completion_notes', 'failure_reason')


def _repo():
    return get_repository(upstream_token())


def _view(wo: WorkOrder, actor):
    return {
        'work_order': wo.to_dict(),
        'allowed_targets': sorted(s.value for s in allowed_targets(wo, actor)),
        'is_terminal': wo.is_terminal,
    }


@wo_bp.get('')
@require_roles()
def list_work_orders():
    actor = current_actor()
    rows, pagination = _repo().list_work_orders(**passthrough_params(request.args, LIST_PARAMS), **page_params())
    data = []
    for raw in rows:
        wo = parse_work_order(raw)
        data.append({**wo.to_dict(), 'allowed_targets': sorted(s.value for s in allowed_targets(wo, actor))})
    payload = {'data': data}
    if pagination:
        payload['pagination'] = pagination
    return payload


@wo_bp.get('/stats')
@require_roles()
def work_order_stats():
    return {'data': _repo().work_order_stats()}


@wo_bp.route('/<wo_id>', methods=['GET', 'HEAD'])
@require_roles()
def get_work_order(wo_id):
    actor = current_actor()
    resp, etag = make_document_response(_view(parse_work_order(_repo().get_work_order(wo_id)), actor))
    cond = handle_conditional(etag)
    if cond:
        return cond
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


@wo_bp.patch('/<wo_id>/status')
@require_roles(Role.ADMIN_PENYEDIA)
@audit_log('WO.STATUS', entity='WorkOrder', entity_key='work_order', meta_keys=['ticket_id', 'type'], diff_keys=['status'])
def update_work_order_status(wo_id):
    """Move one work order along requested -> in_procurement -> completed | unsuccessful."""
    data = json_body()
    require_fields(data, ['status'])
    actor = current_actor()
    repo = _repo()
    before = parse_work_order(repo.get_work_order(wo_id))
    ensure(check_transition(before, data['status'], data))
    target = WorkOrderStatus(normalize_work_order_status(data['status']))
    extra = {k: data[k] for k in STATUS_FIELDS if data.get(k) not in (None, '')}
    try:
        repo.patch_work_order_status(before.id, target.value, **extra)
    except UpstreamRejected as e:
        try:
            e.refetched = _view(parse_work_order(repo.get_work_order(wo_id)), actor)
        except (UpstreamError, MalformedRecord):
            e.refetched = None
        raise
    logger.info('work order %s: %s -> %s by user %s', before.id, before.status.value, target.value, actor.user_id)
    remember_before(before.to_dict())
    return _view(parse_work_order(repo.get_work_order(wo_id)), actor)
