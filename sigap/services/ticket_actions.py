"""Forwarding of workflow actions to the backend.

Every action follows the same sequence:
    1. fetch a fresh snapshot of the ticket (and its work orders when not embedded)
    2. check the action against the workflow decision for the caller
    3. forward the mutation to the backend
    4. fetch again and re-derive the decision from the new snapshot

When the backend refuses step 3 the ticket is fetched again anyway, and the fresh view
travels with the UpstreamRejected error so the client can redraw its controls.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from sigap.services.repository import UpstreamError, UpstreamRejected
from sigap.utils.validation import ensure
from sigap.workflow import tickets as workflow
from sigap.workflow.records import ActorContext, RepairTicket, WorkOrder, parse_ticket, parse_work_orders
from sigap.workflow.results import MalformedRecord
from sigap.workflow.types import Action
from sigap.workflow.work_orders import summarize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TicketSnapshot:
    ticket: Any
    work_orders: Tuple[WorkOrder, ...] = ()

    def evaluate(self, actor: ActorContext):
        return workflow.evaluate(self.ticket, actor, self.work_orders)


def _embeds_work_orders(raw: Dict[str, Any]) -> bool:
    return 'work_orders' in raw or 'workOrders' in raw


def snapshot_from_record(repo, raw: Dict[str, Any]) -> TicketSnapshot:
    """Build a snapshot from one backend record, fetching work orders the record does not embed.

    Used for both the ticket view and every row of the ticket list, so a row and its
    detail view always agree on readiness.
    """
    ticket = parse_ticket(raw)
    if not isinstance(ticket, RepairTicket):
        return TicketSnapshot(ticket)
    if ticket.diagnosis is not None and ticket.diagnosis.requires_work_orders and not _embeds_work_orders(raw):
        return TicketSnapshot(ticket, parse_work_orders(repo.list_ticket_work_orders(ticket.id)))
    return TicketSnapshot(ticket, ticket.work_orders)


def load_snapshot(repo, ticket_id) -> TicketSnapshot:
    return snapshot_from_record(repo, repo.get_ticket(ticket_id))


def ticket_view(snapshot: TicketSnapshot, actor: ActorContext) -> Dict[str, Any]:
    ticket = snapshot.ticket.to_dict()
    view: Dict[str, Any] = {'ticket': ticket, 'workflow': snapshot.evaluate(actor).to_dict()}
    if isinstance(snapshot.ticket, RepairTicket):
        ticket['work_orders'] = [wo.to_dict() for wo in snapshot.work_orders]
        view['work_orders_summary'] = summarize(snapshot.work_orders)
        diagnosis = snapshot.ticket.diagnosis
        view['hints'] = ['unrepairable_reason_missing'] if diagnosis and diagnosis.missing_unrepairable_reason else []
    return view


def perform(
    repo,
    ticket_id,
    actor: ActorContext,
    action: Action,
    forward: Callable[[TicketSnapshot], Any],
    precheck: Optional[Callable[[TicketSnapshot], Any]] = None,
) -> Tuple[TicketSnapshot, TicketSnapshot]:
    """Check ``action`` for ``actor`` on a fresh snapshot, forward it, and refetch.

    ``precheck`` runs after the action gate and may return a negative result
    (e.g. ValidationFailed for a missing payload field). Returns (before, after).
    """
    before = load_snapshot(repo, ticket_id)
    ensure(workflow.check_action(before.ticket, actor, action, before.work_orders))
    if precheck is not None:
        ensure(precheck(before))
    try:
        forward(before)
    except UpstreamRejected as e:
        logger.warning('backend refused %s on ticket %s: %s', action.value, ticket_id, e.message)
        try:
            e.refetched = ticket_view(load_snapshot(repo, ticket_id), actor)
        except (UpstreamError, MalformedRecord):
            e.refetched = None
        raise
    logger.info('ticket %s: %s forwarded for user %s (%s)', ticket_id, action.value, actor.user_id, actor.role.value)
    return before, load_snapshot(repo, ticket_id)


def forward_status(repo, action: Action, **payload) -> Callable[[TicketSnapshot], Any]:
    """Forwarder that PATCHes the status mapped to ``action`` for the snapshot's ticket."""
    def _forward(snapshot: TicketSnapshot):
        status = workflow.target_status(snapshot.ticket, action)
        return repo.patch_ticket_status(snapshot.ticket.id, status, **payload)
    return _forward


__all__ = ['TicketSnapshot', 'snapshot_from_record', 'load_snapshot', 'ticket_view', 'perform', 'forward_status']
