"""Ticket workflow model.

Given a ticket snapshot and the caller's ActorContext, computes which actions the caller
may take next and whether a repair ticket may be marked complete. Everything here is
pure: no I/O, no session lookups, no caching. Callers re-evaluate after every mutation
using the freshly fetched ticket.

Repair lifecycle:
    submitted -> assigned -> in_progress <-> on_hold -> waiting_for_submitter -> closed
    submitted -> rejected
    any status but closed -> closed (admin_layanan override)

Zoom lifecycle:
    pending_review -> approved | rejected | cancelled
"""
from __future__ import annotations
from typing import FrozenSet, Iterable, Optional, Set

from sigap.utils.fsm import TransitionValidator
from sigap.workflow.records import ActorContext, RepairTicket, ZoomTicket, WorkOrder
from sigap.workflow.results import ALLOWED, CompletionCheck, InvalidTransition, MalformedRecord, WorkflowDecision
from sigap.workflow.types import (
    Action, BlockingReason, RepairStatus, RepairType, Role, ZoomStatus,
    REPAIR_TECHNICIAN_ACTIVE, SELF_CONTAINED_REPAIR_TYPES, ZOOM_REVIEWERS,
)
from sigap.workflow.work_orders import readiness

ZOOM_FSM = TransitionValidator({
    ZoomStatus.PENDING_REVIEW: {ZoomStatus.APPROVED, ZoomStatus.REJECTED, ZoomStatus.CANCELLED},
    ZoomStatus.APPROVED: set(),
    ZoomStatus.REJECTED: set(),
    ZoomStatus.CANCELLED: set(),
})

REPAIR_TARGETS = {
    Action.APPROVE: RepairStatus.ASSIGNED,
    Action.REJECT: RepairStatus.REJECTED,
    Action.START_WORK: RepairStatus.IN_PROGRESS,
    Action.PUT_ON_HOLD: RepairStatus.ON_HOLD,
    Action.RESUME_WORK: RepairStatus.IN_PROGRESS,
    Action.MARK_COMPLETE: RepairStatus.WAITING_FOR_SUBMITTER,
    Action.CLOSE: RepairStatus.CLOSED,
}

ZOOM_TARGETS = {
    Action.APPROVE: ZoomStatus.APPROVED,
    Action.REJECT: ZoomStatus.REJECTED,
    Action.CANCEL: ZoomStatus.CANCELLED,
}

# technician status moves, keyed by the status they start from
_TECHNICIAN_MOVES = {
    RepairStatus.ASSIGNED: Action.START_WORK,
    RepairStatus.IN_PROGRESS: Action.PUT_ON_HOLD,
    RepairStatus.ON_HOLD: Action.RESUME_WORK,
}


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def _work_orders_for(ticket: RepairTicket, work_orders: Optional[Iterable[WorkOrder]]):
    return tuple(work_orders) if work_orders is not None else ticket.work_orders


def can_complete(ticket, work_orders: Optional[Iterable[WorkOrder]] = None) -> CompletionCheck:
    """Completion gate for a repair ticket, independent of who is asking.

    Diagnosed AND (direct repair or unrepairable, OR every work order terminal, OR the
    backend says work orders are ready). Unrepairable tickets complete but are flagged.
    """
    if isinstance(ticket, ZoomTicket):
        return CompletionCheck(False, BlockingReason.NOT_REPAIRABLE)
    if not isinstance(ticket, RepairTicket):
        raise MalformedRecord(f'cannot evaluate {type(ticket).__name__}')
    diagnosis = ticket.diagnosis
    if diagnosis is None:
        return CompletionCheck(False, BlockingReason.UNDIAGNOSED)
    unrepairable = diagnosis.repair_type == RepairType.UNREPAIRABLE
    if diagnosis.repair_type in SELF_CONTAINED_REPAIR_TYPES:
        return CompletionCheck(True, None, unrepairable)
    if readiness(_work_orders_for(ticket, work_orders), server_ready=ticket.work_orders_ready):
        return CompletionCheck(True, None, unrepairable)
    return CompletionCheck(False, BlockingReason.WORK_ORDERS_PENDING, unrepairable)


def _repair_actions(ticket: RepairTicket, actor: ActorContext, completion: CompletionCheck) -> Set[Action]:
    actions: Set[Action] = set()
    status = ticket.status
    if actor.role == Role.ADMIN_LAYANAN:
        if status == RepairStatus.SUBMITTED:
            actions.update({Action.APPROVE, Action.REJECT})
        if status != RepairStatus.CLOSED:
            actions.add(Action.CLOSE)
    elif actor.role == Role.TEKNISI:
        if _same(ticket.assigned_to, actor.user_id) and status in REPAIR_TECHNICIAN_ACTIVE:
            actions.add(Action.DIAGNOSE)
            if ticket.diagnosis is not None:
                actions.add(_TECHNICIAN_MOVES[status])
                if ticket.diagnosis.requires_work_orders:
                    actions.add(Action.OPEN_WORK_ORDERS)
                if completion.ok:
                    actions.add(Action.MARK_COMPLETE)
    elif actor.role == Role.PEGAWAI:
        if _same(ticket.user_id, actor.user_id) and status == RepairStatus.WAITING_FOR_SUBMITTER:
            actions.add(Action.CLOSE)
    return actions


def _zoom_actions(ticket: ZoomTicket, actor: ActorContext) -> Set[Action]:
    if actor.role not in ZOOM_REVIEWERS or ZOOM_FSM.is_terminal(ticket.status):
        return set()
    return set(ZOOM_TARGETS)


def evaluate(ticket, actor: ActorContext, work_orders: Optional[Iterable[WorkOrder]] = None) -> WorkflowDecision:
    """Full decision for one ticket and one caller.

    ``work_orders`` overrides the summary embedded in the ticket record when the caller
    fetched them separately.
    """
    if isinstance(ticket, ZoomTicket):
        completion = can_complete(ticket)
        return WorkflowDecision(frozenset(_zoom_actions(ticket, actor)), False, completion.blocking_reason, False)
    if not isinstance(ticket, RepairTicket):
        raise MalformedRecord(f'cannot evaluate {type(ticket).__name__}')
    completion = can_complete(ticket, work_orders)
    return WorkflowDecision(
        allowed_actions=frozenset(_repair_actions(ticket, actor, completion)),
        can_complete=completion.ok,
        blocking_reason=completion.blocking_reason,
        is_unrepairable=completion.is_unrepairable,
    )


def allowed_actions(ticket, actor: ActorContext, work_orders: Optional[Iterable[WorkOrder]] = None) -> FrozenSet[Action]:
    return evaluate(ticket, actor, work_orders).allowed_actions


def check_action(ticket, actor: ActorContext, action, work_orders: Optional[Iterable[WorkOrder]] = None):
    """Return ALLOWED or an InvalidTransition explaining why ``action`` is refused."""
    try:
        action = Action(getattr(action, 'value', action))
    except ValueError:
        return InvalidTransition(str(action), ticket.status.value, 'unknown action')
    decision = evaluate(ticket, actor, work_orders)
    if decision.allows(action):
        return ALLOWED
    reason = f'{action.value} not allowed for {actor.role.value} on {ticket.type.value} ticket in {ticket.status.value}'
    if action == Action.MARK_COMPLETE and decision.blocking_reason is not None:
        reason = f'{reason} ({decision.blocking_reason.value})'
    return InvalidTransition(action.value, ticket.status.value, reason)


def target_status(ticket, action) -> Optional[str]:
    """Status the backend is asked to move to for a status-changing action, else None."""
    action = Action(getattr(action, 'value', action))
    targets = ZOOM_TARGETS if isinstance(ticket, ZoomTicket) else REPAIR_TARGETS
    status = targets.get(action)
    return status.value if status is not None else None


__all__ = ['ZOOM_FSM', 'can_complete', 'evaluate', 'allowed_actions', 'check_action', 'target_status']
