"""Enumerated vocabulary of the ticket workflow.

Values are the wire strings used by the SIGAP backend, so members compare equal to
plain strings and serialize without conversion. Legacy spellings are folded into
canonical members only at the record boundary (see records.py).
"""
from __future__ import annotations
from enum import Enum


class TicketType(str, Enum):
    REPAIR = 'perbaikan'
    ZOOM = 'zoom_meeting'


class RepairStatus(str, Enum):
    SUBMITTED = 'submitted'
    ASSIGNED = 'assigned'
    IN_PROGRESS = 'in_progress'
    ON_HOLD = 'on_hold'
    WAITING_FOR_SUBMITTER = 'waiting_for_submitter'
    CLOSED = 'closed'
    REJECTED = 'rejected'


class ZoomStatus(str, Enum):
    PENDING_REVIEW = 'pending_review'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'


class RepairType(str, Enum):
    DIRECT_REPAIR = 'direct_repair'
    NEED_SPAREPART = 'need_sparepart'
    NEED_VENDOR = 'need_vendor'
    NEED_LICENSE = 'need_license'
    UNREPAIRABLE = 'unrepairable'


class WorkOrderType(str, Enum):
    SPAREPART = 'sparepart'
    VENDOR = 'vendor'
    LICENSE = 'license'


class WorkOrderStatus(str, Enum):
    REQUESTED = 'requested'
    IN_PROCUREMENT = 'in_procurement'
    COMPLETED = 'completed'
    UNSUCCESSFUL = 'unsuccessful'


class Role(str, Enum):
    SUPER_ADMIN = 'super_admin'
    ADMIN_LAYANAN = 'admin_layanan'
    ADMIN_PENYEDIA = 'admin_penyedia'
    TEKNISI = 'teknisi'
    PEGAWAI = 'pegawai'


class Action(str, Enum):
    APPROVE = 'approve'
    REJECT = 'reject'
    DIAGNOSE = 'diagnose'
    START_WORK = 'start_work'
    PUT_ON_HOLD = 'put_on_hold'
    RESUME_WORK = 'resume_work'
    OPEN_WORK_ORDERS = 'open_work_orders'
    MARK_COMPLETE = 'mark_complete'
    CLOSE = 'close'
    CANCEL = 'cancel'


class BlockingReason(str, Enum):
    UNDIAGNOSED = 'undiagnosed'
    WORK_ORDERS_PENDING = 'work_orders_pending'
    NOT_REPAIRABLE = 'not_repairable'


# Status groups
REPAIR_TECHNICIAN_ACTIVE = frozenset({RepairStatus.ASSIGNED, RepairStatus.IN_PROGRESS, RepairStatus.ON_HOLD})
WORK_ORDER_TERMINAL = frozenset({WorkOrderStatus.COMPLETED, WorkOrderStatus.UNSUCCESSFUL})

PROCUREMENT_REPAIR_TYPES = frozenset({RepairType.NEED_SPAREPART, RepairType.NEED_VENDOR, RepairType.NEED_LICENSE})
SELF_CONTAINED_REPAIR_TYPES = frozenset({RepairType.DIRECT_REPAIR, RepairType.UNREPAIRABLE})

ZOOM_REVIEWERS = frozenset({Role.ADMIN_LAYANAN, Role.SUPER_ADMIN})

# Boundary aliases (legacy spellings seen on the wire)
TICKET_STATUS_ALIASES = {
    'ditolak': 'rejected',
}
WORK_ORDER_STATUS_ALIASES = {
    'delivered': 'completed',
    'failed': 'unsuccessful',
    'cancelled': 'unsuccessful',
}

__all__ = [
    'TicketType', 'RepairStatus', 'ZoomStatus', 'RepairType', 'WorkOrderType', 'WorkOrderStatus',
    'Role', 'Action', 'BlockingReason',
    'REPAIR_TECHNICIAN_ACTIVE', 'WORK_ORDER_TERMINAL',
    'PROCUREMENT_REPAIR_TYPES', 'SELF_CONTAINED_REPAIR_TYPES', 'ZOOM_REVIEWERS',
    'TICKET_STATUS_ALIASES', 'WORK_ORDER_STATUS_ALIASES',
]
