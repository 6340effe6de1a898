"""Typed views over raw backend records.

The backend answers with either snake_case or camelCase keys depending on the resource,
so every lookup goes through _get() with both spellings. Tickets are parsed into a
tagged union (RepairTicket | ZoomTicket) discriminated on ``type``; repair-only fields
only exist on the repair variant.
"""
from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from sigap.workflow.results import MalformedRecord
from sigap.workflow.types import (
    TicketType, RepairStatus, ZoomStatus, RepairType, WorkOrderType, WorkOrderStatus, Role,
    PROCUREMENT_REPAIR_TYPES, WORK_ORDER_TERMINAL, TICKET_STATUS_ALIASES, WORK_ORDER_STATUS_ALIASES,
)


def _camel(key: str) -> str:
    head, *rest = key.split('_')
    return head + ''.join(p.title() for p in rest)


def _get(record: Dict[str, Any], key: str, default: Any = None) -> Any:
    if key in record:
        return record[key]
    return record.get(_camel(key), default)


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ''


def _int(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, '') else None
    except (TypeError, ValueError):
        return None


def _ident(value: Any) -> Optional[str]:
    # ids arrive as int or str depending on the endpoint; compare them as strings
    if value is None or value == '':
        return None
    return str(value)


@dataclass(frozen=True)
class ActorContext:
    user_id: str
    role: Role
    roles: Tuple[Role, ...] = ()

    @classmethod
    def of(cls, user_id: Any, role: Union[Role, str], roles=()) -> 'ActorContext':
        return cls(user_id=str(user_id), role=Role(role), roles=tuple(Role(r) for r in roles))


@dataclass(frozen=True)
class Diagnosis:
    repair_type: RepairType
    problem_category: str = ''
    problem_description: str = ''
    technician_notes: str = ''
    unrepairable_reason: str = ''
    repair_description: str = ''
    alternative_solution: str = ''
    estimated_days: Optional[int] = None
    technician_id: Optional[str] = None

    @property
    def requires_work_orders(self) -> bool:
        return self.repair_type in PROCUREMENT_REPAIR_TYPES

    @property
    def is_unrepairable(self) -> bool:
        return self.repair_type == RepairType.UNREPAIRABLE

    @property
    def missing_unrepairable_reason(self) -> bool:
        """Hint for forms; the reason is conventional, not enforced."""
        return self.is_unrepairable and not self.unrepairable_reason

    def to_dict(self) -> Dict[str, Any]:
        return {
            'repair_type': self.repair_type.value,
            'problem_category': self.problem_category,
            'problem_description': self.problem_description,
            'technician_notes': self.technician_notes,
            'unrepairable_reason': self.unrepairable_reason,
            'repair_description': self.repair_description,
            'alternative_solution': self.alternative_solution,
            'estimated_days': self.estimated_days,
            'technician_id': self.technician_id,
        }


@dataclass(frozen=True)
class WorkOrder:
    id: str
    ticket_id: Optional[str]
    type: WorkOrderType
    status: WorkOrderStatus
    items: Tuple[Dict[str, Any], ...] = ()
    vendor_name: str = ''
    vendor_contact: str = ''
    vendor_description: str = ''
    license_name: str = ''
    license_description: str = ''
    completion_notes: str = ''
    failure_reason: str = ''

    @property
    def is_terminal(self) -> bool:
        return self.status in WORK_ORDER_TERMINAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'ticket_id': self.ticket_id,
            'type': self.type.value,
            'status': self.status.value,
            'items': [dict(i) for i in self.items],
            'vendor_name': self.vendor_name,
            'vendor_contact': self.vendor_contact,
            'vendor_description': self.vendor_description,
            'license_name': self.license_name,
            'license_description': self.license_description,
            'completion_notes': self.completion_notes,
            'failure_reason': self.failure_reason,
        }


@dataclass(frozen=True)
class RepairTicket:
    id: str
    ticket_number: str
    user_id: Optional[str]
    status: RepairStatus
    title: str = ''
    assigned_to: Optional[str] = None
    diagnosis: Optional[Diagnosis] = None
    work_orders: Tuple[WorkOrder, ...] = ()
    work_orders_ready: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    type = TicketType.REPAIR

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'ticket_number': self.ticket_number,
            'type': self.type.value,
            'status': self.status.value,
            'title': self.title,
            'user_id': self.user_id,
            'assigned_to': self.assigned_to,
            'diagnosis': self.diagnosis.to_dict() if self.diagnosis else None,
            'work_orders': [wo.to_dict() for wo in self.work_orders],
            'work_orders_ready': self.work_orders_ready,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }


@dataclass(frozen=True)
class ZoomTicket:
    id: str
    ticket_number: str
    user_id: Optional[str]
    status: ZoomStatus
    title: str = ''
    zoom_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    participants: Optional[int] = None
    zoom_account_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    type = TicketType.ZOOM

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'ticket_number': self.ticket_number,
            'type': self.type.value,
            'status': self.status.value,
            'title': self.title,
            'user_id': self.user_id,
            'zoom_date': self.zoom_date,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'participants': self.participants,
            'zoom_account_id': self.zoom_account_id,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }


Ticket = Union[RepairTicket, ZoomTicket]


def normalize_ticket_status(raw: Any) -> str:
    value = _text(raw).lower()
    return TICKET_STATUS_ALIASES.get(value, value)


def normalize_work_order_status(raw: Any) -> str:
    value = _text(raw).lower()
    return WORK_ORDER_STATUS_ALIASES.get(value, value)


def parse_diagnosis(record: Optional[Dict[str, Any]]) -> Optional[Diagnosis]:
    if not record:
        return None
    raw_type = _text(_get(record, 'repair_type'))
    try:
        repair_type = RepairType(raw_type)
    except ValueError:
        raise MalformedRecord(f'diagnosis repair_type {raw_type!r} unknown', record)
    days = _int(_get(record, 'estimated_days', _get(record, 'estimasi_hari')))
    technician = _get(record, 'technician_id')
    if technician is None and isinstance(_get(record, 'technician'), dict):
        technician = record['technician'].get('id')
    return Diagnosis(
        repair_type=repair_type,
        problem_category=_text(_get(record, 'problem_category')),
        problem_description=_text(_get(record, 'problem_description')),
        technician_notes=_text(_get(record, 'technician_notes')),
        unrepairable_reason=_text(_get(record, 'unrepairable_reason')),
        repair_description=_text(_get(record, 'repair_description')),
        alternative_solution=_text(_get(record, 'alternative_solution')),
        estimated_days=days,
        technician_id=_ident(technician),
    )


def _parse_items(raw: Any) -> Tuple[Dict[str, Any], ...]:
    if not raw:
        return ()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return ()
    if not isinstance(raw, list):
        return ()
    return tuple(dict(i) for i in raw if isinstance(i, dict))


def parse_work_order(record: Dict[str, Any]) -> WorkOrder:
    if not isinstance(record, dict):
        raise MalformedRecord('work order record must be an object')
    wo_id = _ident(_get(record, 'id'))
    if wo_id is None:
        raise MalformedRecord('work order id missing', record)
    raw_type = _text(_get(record, 'type')).lower()
    raw_status = normalize_work_order_status(_get(record, 'status'))
    try:
        wo_type = WorkOrderType(raw_type)
        wo_status = WorkOrderStatus(raw_status)
    except ValueError:
        raise MalformedRecord(f'work order {wo_id} has type={raw_type!r} status={raw_status!r}', record)
    return WorkOrder(
        id=wo_id,
        ticket_id=_ident(_get(record, 'ticket_id')),
        type=wo_type,
        status=wo_status,
        items=_parse_items(_get(record, 'items')),
        vendor_name=_text(_get(record, 'vendor_name')),
        vendor_contact=_text(_get(record, 'vendor_contact')),
        vendor_description=_text(_get(record, 'vendor_description')),
        license_name=_text(_get(record, 'license_name')),
        license_description=_text(_get(record, 'license_description')),
        completion_notes=_text(_get(record, 'completion_notes')),
        failure_reason=_text(_get(record, 'failure_reason')),
    )


def parse_work_orders(records: Optional[List[Dict[str, Any]]]) -> Tuple[WorkOrder, ...]:
    return tuple(parse_work_order(r) for r in (records or []))


def parse_ticket(record: Dict[str, Any]) -> Ticket:
    """Build the typed ticket variant for a backend record.

    Raises MalformedRecord when the record has no usable id/type or its status is not a
    member of the set valid for its type.
    """
    if not isinstance(record, dict):
        raise MalformedRecord('ticket record must be an object')
    ticket_id = _ident(_get(record, 'id'))
    if ticket_id is None:
        raise MalformedRecord('ticket id missing', record)
    raw_type = _text(_get(record, 'type'))
    if not raw_type:
        raise MalformedRecord(f'ticket {ticket_id} has no type', record)
    try:
        ticket_type = TicketType(raw_type)
    except ValueError:
        raise MalformedRecord(f'ticket {ticket_id} type {raw_type!r} unknown', record)
    status = normalize_ticket_status(_get(record, 'status'))
    common = dict(
        id=ticket_id,
        ticket_number=_text(_get(record, 'ticket_number')),
        user_id=_ident(_get(record, 'user_id')),
        title=_text(_get(record, 'title')),
        created_at=_get(record, 'created_at'),
        updated_at=_get(record, 'updated_at'),
    )
    if ticket_type == TicketType.ZOOM:
        if _get(record, 'diagnosis'):
            raise MalformedRecord(f'zoom ticket {ticket_id} carries a diagnosis', record)
        try:
            zoom_status = ZoomStatus(status)
        except ValueError:
            raise MalformedRecord(f'zoom ticket {ticket_id} status {status!r} invalid', record)
        participants = _get(record, 'estimated_participants', _get(record, 'participants'))
        return ZoomTicket(
            status=zoom_status,
            zoom_date=_get(record, 'zoom_date'),
            start_time=_get(record, 'zoom_start_time', _get(record, 'start_time')),
            end_time=_get(record, 'zoom_end_time', _get(record, 'end_time')),
            participants=_int(participants),
            zoom_account_id=_ident(_get(record, 'zoom_account_id')),
            **common,
        )
    try:
        repair_status = RepairStatus(status)
    except ValueError:
        raise MalformedRecord(f'repair ticket {ticket_id} status {status!r} invalid', record)
    return RepairTicket(
        status=repair_status,
        assigned_to=_ident(_get(record, 'assigned_to')),
        diagnosis=parse_diagnosis(_get(record, 'diagnosis')),
        work_orders=parse_work_orders(_get(record, 'work_orders')),
        work_orders_ready=_get(record, 'work_orders_ready') is True,
        **common,
    )


__all__ = [
    'ActorContext', 'Diagnosis', 'WorkOrder', 'RepairTicket', 'ZoomTicket', 'Ticket',
    'parse_ticket', 'parse_diagnosis', 'parse_work_order', 'parse_work_orders',
    'normalize_ticket_status', 'normalize_work_order_status',
]
