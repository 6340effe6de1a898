"""Work order sub-lifecycle and readiness aggregation.

A work order moves requested -> in_procurement -> {completed | unsuccessful}; it may
also fail straight from requested. Terminal work orders never move again. Field
preconditions mirror what the backend validates and are advisory only.
"""
from __future__ import annotations
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from sigap.utils.fsm import TransitionValidator
from sigap.workflow.records import ActorContext, RepairTicket, WorkOrder, normalize_work_order_status
from sigap.workflow.results import ALLOWED, InvalidTransition, ValidationFailed
from sigap.workflow.types import RepairType, Role, WorkOrderStatus, WorkOrderType

WORK_ORDER_FSM = TransitionValidator({
    WorkOrderStatus.REQUESTED: {WorkOrderStatus.IN_PROCUREMENT, WorkOrderStatus.UNSUCCESSFUL},
    WorkOrderStatus.IN_PROCUREMENT: {WorkOrderStatus.COMPLETED, WorkOrderStatus.UNSUCCESSFUL},
    WorkOrderStatus.COMPLETED: set(),
    WorkOrderStatus.UNSUCCESSFUL: set(),
}, field_name='work order status')

REQUIRED_TYPE = {
    RepairType.NEED_SPAREPART: WorkOrderType.SPAREPART,
    RepairType.NEED_VENDOR: WorkOrderType.VENDOR,
    RepairType.NEED_LICENSE: WorkOrderType.LICENSE,
}

WORK_ORDER_MANAGERS = frozenset({Role.ADMIN_PENYEDIA})


def all_terminal(work_orders: Iterable[WorkOrder]) -> bool:
    work_orders = list(work_orders)
    return len(work_orders) > 0 and all(wo.is_terminal for wo in work_orders)


def readiness(work_orders: Iterable[WorkOrder], server_ready: bool = False) -> bool:
    """Work-order gate for ticket completion.

    The backend's ``work_orders_ready`` flag is honored as-is, whatever the individual
    statuses say.
    """
    if server_ready:
        return True
    return all_terminal(work_orders)


def summarize(work_orders: Iterable[WorkOrder]) -> Dict[str, Any]:
    counts = {s.value: 0 for s in WorkOrderStatus}
    total = 0
    for wo in work_orders:
        counts[wo.status.value] += 1
        total += 1
    return {'total': total, 'by_status': counts, 'all_terminal': total > 0 and counts['requested'] + counts['in_procurement'] == 0}


def required_type(repair_type: RepairType) -> Optional[WorkOrderType]:
    return REQUIRED_TYPE.get(repair_type)


def _filled(payload: Mapping[str, Any], key: str, fallback: str = '') -> bool:
    value = payload.get(key)
    if value is None:
        value = fallback
    return bool(str(value).strip())


def check_transition(work_order: WorkOrder, target, payload: Optional[Mapping[str, Any]] = None):
    """Validate a status move for one work order.

    Legality is checked before fields, so a move out of a terminal state is reported as
    InvalidTransition even when the payload is also incomplete.
    """
    payload = payload or {}
    raw_target = normalize_work_order_status(target)
    try:
        target = WorkOrderStatus(raw_target)
    except ValueError:
        return ValidationFailed('status', f'unknown work order status {raw_target!r}')
    result = WORK_ORDER_FSM.check(work_order.status, target)
    if not result:
        return result
    is_vendor = work_order.type == WorkOrderType.VENDOR
    if is_vendor and target in (WorkOrderStatus.IN_PROCUREMENT, WorkOrderStatus.COMPLETED):
        if not _filled(payload, 'vendor_name', work_order.vendor_name):
            return ValidationFailed('vendor_name', 'vendor name required')
        if not _filled(payload, 'vendor_contact', work_order.vendor_contact):
            return ValidationFailed('vendor_contact', 'vendor contact required')
    if target == WorkOrderStatus.UNSUCCESSFUL and not _filled(payload, 'failure_reason'):
        return ValidationFailed('failure_reason', 'failure reason required')
    if is_vendor and target == WorkOrderStatus.COMPLETED and not _filled(payload, 'completion_notes'):
        return ValidationFailed('completion_notes', 'completion notes required for vendor work orders')
    return ALLOWED


def allowed_targets(work_order: WorkOrder, actor: ActorContext) -> FrozenSet[WorkOrderStatus]:
    if actor.role not in WORK_ORDER_MANAGERS:
        return frozenset()
    return frozenset(WorkOrderStatus(s) for s in WORK_ORDER_FSM.targets(work_order.status))


def _check_items(items: Any):
    if not isinstance(items, list) or not items:
        return ValidationFailed('items', 'at least one item required')
    for item in items:
        if not isinstance(item, dict) or not str(item.get('name') or '').strip():
            return ValidationFailed('items', 'each item needs a name')
        try:
            qty = int(item.get('quantity', 0))
        except (TypeError, ValueError):
            return ValidationFailed('items', 'item quantity must be an integer')
        if qty <= 0:
            return ValidationFailed('items', 'item quantity must be positive')
    return ALLOWED


def check_new_work_order(ticket: RepairTicket, payload: Mapping[str, Any]):
    """Validate a work order about to be opened for a diagnosed repair ticket."""
    diagnosis = ticket.diagnosis
    if diagnosis is None or not diagnosis.requires_work_orders:
        return InvalidTransition('open_work_orders', ticket.status.value, 'diagnosis does not require procurement')
    raw_type = str(payload.get('type') or '').strip().lower()
    try:
        wo_type = WorkOrderType(raw_type)
    except ValueError:
        return ValidationFailed('type', f'unknown work order type {raw_type!r}')
    if wo_type != required_type(diagnosis.repair_type):
        return ValidationFailed('type', f'{diagnosis.repair_type.value} requires a {required_type(diagnosis.repair_type).value} work order')
    if wo_type == WorkOrderType.SPAREPART:
        return _check_items(payload.get('items'))
    if wo_type == WorkOrderType.LICENSE and not _filled(payload, 'license_name'):
        return ValidationFailed('license_name', 'license name required')
    if wo_type == WorkOrderType.VENDOR and not _filled(payload, 'vendor_description'):
        return ValidationFailed('vendor_description', 'describe the vendor work')
    return ALLOWED


__all__ = [
    'WORK_ORDER_FSM', 'WORK_ORDER_MANAGERS', 'all_terminal', 'readiness', 'summarize', 'required_type',
    'check_transition', 'allowed_targets', 'check_new_work_order',
]
