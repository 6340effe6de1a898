from __future__ import annotations
from flask import Blueprint, request, abort
from sigap import get_repository
from sigap.decorators.auth import require_roles
from sigap.decorators.audit import audit_log, remember_before
from sigap.services.session import current_actor, upstream_token
from sigap.services.ticket_actions import load_snapshot, snapshot_from_record, ticket_view, perform, forward_status
from sigap.utils.filters import passthrough_params
from sigap.utils.listing import make_document_response, handle_conditional, page_params
from sigap.utils.validation import json_body, validate_choice
from sigap.workflow.records import RepairTicket, ZoomTicket, parse_ticket
from sigap.workflow.results import ALLOWED, ValidationFailed
from sigap.workflow.types import Action, RepairType, RepairStatus, TicketType, ZoomStatus
from sigap.workflow.work_orders import check_new_work_order
from sigap.workflow.zoom import find_conflicts

tickets_bp = Blueprint('tickets', __name__)

PROBLEM_CATEGORIES = ('hardware', 'software', 'lainnya')
ALL_TICKET_STATUSES = {s.value for s in RepairStatus} | {s.value for s in ZoomStatus}

LIST_PARAMS = {
    'type': lambda v: v in {t.value for t in TicketType},
    'status': lambda v: v in ALL_TICKET_STATUSES,
    'statuses': lambda v: all(s in ALL_TICKET_STATUSES for s in v.split(',')),
    'search': None,
}


def _repo():
    return get_repository(upstream_token())


def _text(data, key):
    value = data.get(key)
    return value.strip() if isinstance(value, str) else value


def _run(ticket_id, action: Action, payload=None, precheck=None):
    actor = current_actor()
    repo = _repo()
    before, after = perform(repo, ticket_id, actor, action, forward_status(repo, action, **(payload or {})), precheck)
    remember_before(before.ticket.to_dict())
    return ticket_view(after, actor)


# ---------- read models ---------- #

@tickets_bp.get('')
@require_roles()
def list_tickets():
    actor = current_actor()
    params = {**passthrough_params(request.args, LIST_PARAMS), **page_params()}
    # scope by active role so multi-role accounts only see the queue they are working
    params['role'] = actor.role.value
    repo = _repo()
    rows, pagination = repo.list_tickets(**params)
    data = []
    for raw in rows:
        snapshot = snapshot_from_record(repo, raw)
        row = snapshot.ticket.to_dict()
        if isinstance(snapshot.ticket, RepairTicket):
            row['work_orders'] = [wo.to_dict() for wo in snapshot.work_orders]
        row['workflow'] = snapshot.evaluate(actor).to_dict()
        data.append(row)
    payload = {'data': data}
    if pagination:
        payload['pagination'] = pagination
    return payload


@tickets_bp.get('/counts')
@require_roles()
def ticket_counts():
    actor = current_actor()
    params = passthrough_params(request.args, {'type': LIST_PARAMS['type']})
    params['role'] = actor.role.value
    return {'data': _repo().ticket_counts(**params)}


@tickets_bp.route('/<ticket_id>', methods=['GET', 'HEAD'])
@require_roles()
def get_ticket(ticket_id):
    actor = current_actor()
    view = ticket_view(load_snapshot(_repo(), ticket_id), actor)
    resp, etag = make_document_response(view)
    cond = handle_conditional(etag)
    if cond:
        return cond
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


@tickets_bp.get('/<ticket_id>/conflicts')
@require_roles()
def zoom_conflicts(ticket_id):
    repo = _repo()
    snapshot = load_snapshot(repo, ticket_id)
    if not isinstance(snapshot.ticket, ZoomTicket):
        abort(400, description='conflicts are only defined for zoom_meeting tickets')
    return {'data': _conflicts(repo, snapshot.ticket, request.args.get('zoom_account_id'))}


def _conflicts(repo, ticket: ZoomTicket, account_id=None):
    if not ticket.zoom_date:
        return []
    bookings = [parse_ticket(r) for r in repo.list_zoom_bookings(ticket.zoom_date)]
    bookings = [b for b in bookings if isinstance(b, ZoomTicket)]
    return [b.to_dict() for b in find_conflicts(ticket, bookings, account_id)]


# ---------- review (admin_layanan / super_admin) ---------- #

@tickets_bp.post('/<ticket_id>/approve')
@require_roles()
@audit_log('TICKET.APPROVE', entity='Ticket', entity_key='ticket', meta_keys=['type', 'status'], diff_keys=['status', 'assigned_to', 'zoom_account_id'])
def approve_ticket(ticket_id):
    data = json_body()
    assigned_to = _text(data, 'assigned_to')
    account = _text(data, 'zoom_account_id')

    def precheck(snapshot):
        if isinstance(snapshot.ticket, RepairTicket) and not assigned_to:
            return ValidationFailed('assigned_to', 'pick a technician to assign')
        return ALLOWED

    payload = {}
    if assigned_to:
        payload['assigned_to'] = assigned_to
    if account:
        payload['zoom_account_id'] = account
    actor = current_actor()
    repo = _repo()
    before, after = perform(repo, ticket_id, actor, Action.APPROVE, forward_status(repo, Action.APPROVE, **payload), precheck)
    remember_before(before.ticket.to_dict())
    view = ticket_view(after, actor)
    if isinstance(after.ticket, ZoomTicket):
        # overlapping bookings do not block approval; the reviewer is told about them
        view['warnings'] = {'conflicts': _conflicts(repo, after.ticket)}
    return view


@tickets_bp.post('/<ticket_id>/reject')
@require_roles()
@audit_log('TICKET.REJECT', entity='Ticket', entity_key='ticket', meta_keys=['type'], diff_keys=['status'])
def reject_ticket(ticket_id):
    data = json_body()
    reason = _text(data, 'reason')

    def precheck(snapshot):
        return ALLOWED if reason else ValidationFailed('reason', 'rejection reason required')

    return _run(ticket_id, Action.REJECT, {'reason': reason}, precheck)


@tickets_bp.post('/<ticket_id>/cancel')
@require_roles()
@audit_log('TICKET.CANCEL', entity='Ticket', entity_key='ticket', meta_keys=['type'], diff_keys=['status'])
def cancel_ticket(ticket_id):
    data = json_body()
    reason = _text(data, 'reason')
    return _run(ticket_id, Action.CANCEL, {'reason': reason} if reason else None)


@tickets_bp.post('/<ticket_id>/close')
@require_roles()
@audit_log('TICKET.CLOSE', entity='Ticket', entity_key='ticket', meta_keys=['type'], diff_keys=['status'])
def close_ticket(ticket_id):
    data = json_body()
    notes = _text(data, 'notes')
    return _run(ticket_id, Action.CLOSE, {'notes': notes} if notes else None)


# ---------- technician ---------- #

@tickets_bp.put('/<ticket_id>/diagnosis')
@require_roles()
@audit_log('TICKET.DIAGNOSE', entity='Ticket', entity_key='ticket', diff_keys=['status', 'diagnosis'])
def diagnose_ticket(ticket_id):
    data = json_body()
    diagnosis = {
        'repair_type': _text(data, 'repair_type'),
        'problem_category': _text(data, 'problem_category'),
        'problem_description': _text(data, 'problem_description'),
        'technician_notes': _text(data, 'technician_notes') or '',
        'unrepairable_reason': _text(data, 'unrepairable_reason') or '',
        'repair_description': _text(data, 'repair_description') or '',
        'alternative_solution': _text(data, 'alternative_solution') or '',
        'estimated_days': data.get('estimated_days'),
    }

    def precheck(snapshot):
        if diagnosis['repair_type'] not in {t.value for t in RepairType}:
            return ValidationFailed('repair_type', 'repair_type must be one of ' + ', '.join(t.value for t in RepairType))
        if diagnosis['problem_category'] not in PROBLEM_CATEGORIES:
            return ValidationFailed('problem_category', 'problem_category must be one of ' + ', '.join(PROBLEM_CATEGORIES))
        if not diagnosis['problem_description']:
            return ValidationFailed('problem_description', 'describe the problem')
        return ALLOWED

    actor = current_actor()
    repo = _repo()
    before, after = perform(
        repo, ticket_id, actor, Action.DIAGNOSE,
        lambda snapshot: repo.put_diagnosis(snapshot.ticket.id, diagnosis),
        precheck,
    )
    remember_before(before.ticket.to_dict())
    return ticket_view(after, actor)


@tickets_bp.post('/<ticket_id>/start')
@require_roles()
@audit_log('TICKET.START', entity='Ticket', entity_key='ticket', diff_keys=['status'])
def start_work(ticket_id):
    return _run(ticket_id, Action.START_WORK)


@tickets_bp.post('/<ticket_id>/hold')
@require_roles()
@audit_log('TICKET.HOLD', entity='Ticket', entity_key='ticket', diff_keys=['status'])
def put_on_hold(ticket_id):
    data = json_body()
    reason = _text(data, 'reason')
    return _run(ticket_id, Action.PUT_ON_HOLD, {'reason': reason} if reason else None)


@tickets_bp.post('/<ticket_id>/resume')
@require_roles()
@audit_log('TICKET.RESUME', entity='Ticket', entity_key='ticket', diff_keys=['status'])
def resume_work(ticket_id):
    return _run(ticket_id, Action.RESUME_WORK)


@tickets_bp.post('/<ticket_id>/complete')
@require_roles()
@audit_log('TICKET.COMPLETE', entity='Ticket', entity_key='ticket', diff_keys=['status'])
def complete_ticket(ticket_id):
    data = json_body()
    notes = _text(data, 'notes')
    return _run(ticket_id, Action.MARK_COMPLETE, {'notes': notes} if notes else None)


@tickets_bp.post('/<ticket_id>/work-orders')
@require_roles()
@audit_log('WO.CREATE', entity='Ticket', entity_key='ticket')
def open_work_order(ticket_id):
    data = json_body()
    wo_type = validate_choice(_text(data, 'type'), ('sparepart', 'vendor', 'license'), 'type')
    fields = {
        'sparepart': ('items',),
        'vendor': ('vendor_name', 'vendor_contact', 'vendor_description'),
        'license': ('license_name', 'license_description'),
    }[wo_type]
    payload = {'type': wo_type, **{k: data[k] for k in fields if data.get(k) is not None}}
    actor = current_actor()
    repo = _repo()
    before, after = perform(
        repo, ticket_id, actor, Action.OPEN_WORK_ORDERS,
        lambda snapshot: repo.create_work_order(snapshot.ticket.id, payload),
        lambda snapshot: check_new_work_order(snapshot.ticket, payload),
    )
    remember_before(before.ticket.to_dict())
    return ticket_view(after, actor), 201
