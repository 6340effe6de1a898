import pytest
from sigap.workflow import tickets as workflow
from sigap.workflow.records import ActorContext, Diagnosis, RepairTicket, WorkOrder
from sigap.workflow.results import InvalidTransition
from sigap.workflow.types import (
    Action, BlockingReason, RepairStatus, RepairType, Role, WorkOrderStatus, WorkOrderType,
)

ADMIN = ActorContext.of('1', Role.ADMIN_LAYANAN)
TECH = ActorContext.of('5', Role.TEKNISI)
OTHER_TECH = ActorContext.of('6', Role.TEKNISI)
OWNER = ActorContext.of('10', Role.PEGAWAI)
STRANGER = ActorContext.of('11', Role.PEGAWAI)


def _ticket(status=RepairStatus.IN_PROGRESS, repair_type=None, work_orders=(), ready=False, **kw):
    diagnosis = Diagnosis(repair_type=repair_type, problem_description='x') if repair_type else None
    return RepairTicket(id='1', ticket_number='T-1', user_id='10', status=status, assigned_to='5',
                        diagnosis=diagnosis, work_orders=tuple(work_orders), work_orders_ready=ready, **kw)


def _wo(status, type=WorkOrderType.SPAREPART, wo_id='1'):
    return WorkOrder(id=wo_id, ticket_id='1', type=type, status=status)


def test_no_diagnosis_blocks_completion():
    for status in RepairStatus:
        check = workflow.can_complete(_ticket(status=status))
        assert check.ok is False
        assert check.blocking_reason == BlockingReason.UNDIAGNOSED


def test_undiagnosed_technician_may_only_diagnose():
    decision = workflow.evaluate(_ticket(status=RepairStatus.ASSIGNED), TECH)
    assert decision.allowed_actions == {Action.DIAGNOSE}
    assert decision.blocking_reason == BlockingReason.UNDIAGNOSED


def test_direct_repair_completes_without_work_orders():
    t = _ticket(repair_type=RepairType.DIRECT_REPAIR)
    assert workflow.can_complete(t).ok is True
    assert Action.MARK_COMPLETE in workflow.allowed_actions(t, TECH)
    assert Action.OPEN_WORK_ORDERS not in workflow.allowed_actions(t, TECH)


def test_completion_is_gated_on_work_orders():
    pending = _ticket(repair_type=RepairType.NEED_SPAREPART, work_orders=[_wo(WorkOrderStatus.REQUESTED)])
    check = workflow.can_complete(pending)
    assert check.ok is False
    assert check.blocking_reason == BlockingReason.WORK_ORDERS_PENDING
    done = _ticket(repair_type=RepairType.NEED_SPAREPART, work_orders=[_wo(WorkOrderStatus.COMPLETED)])
    assert workflow.can_complete(done).ok is True


def test_procurement_without_any_work_order_is_pending():
    t = _ticket(repair_type=RepairType.NEED_LICENSE)
    assert workflow.can_complete(t).blocking_reason == BlockingReason.WORK_ORDERS_PENDING
    assert Action.OPEN_WORK_ORDERS in workflow.allowed_actions(t, TECH)


def test_failed_work_orders_still_count_as_settled():
    t = _ticket(repair_type=RepairType.NEED_VENDOR, work_orders=[
        _wo(WorkOrderStatus.COMPLETED, WorkOrderType.VENDOR, '1'),
        _wo(WorkOrderStatus.UNSUCCESSFUL, WorkOrderType.VENDOR, '2'),
    ])
    assert workflow.can_complete(t).ok is True


def test_server_ready_flag_overrides_local_statuses():
    t = _ticket(repair_type=RepairType.NEED_VENDOR, work_orders=[_wo(WorkOrderStatus.REQUESTED, WorkOrderType.VENDOR)], ready=True)
    assert workflow.can_complete(t).ok is True


def test_separately_fetched_work_orders_override_embedded_ones():
    t = _ticket(repair_type=RepairType.NEED_SPAREPART, work_orders=[_wo(WorkOrderStatus.REQUESTED)])
    assert workflow.can_complete(t, [_wo(WorkOrderStatus.COMPLETED)]).ok is True


def test_unrepairable_completes_and_is_flagged():
    decision = workflow.evaluate(_ticket(repair_type=RepairType.UNREPAIRABLE), TECH)
    assert decision.can_complete is True
    assert decision.blocking_reason is None
    assert decision.is_unrepairable is True
    assert Action.MARK_COMPLETE in decision.allowed_actions


@pytest.mark.parametrize('status', list(RepairStatus))
def test_non_owner_pegawai_has_no_actions(status):
    for repair_type in (None, RepairType.DIRECT_REPAIR):
        assert workflow.allowed_actions(_ticket(status=status, repair_type=repair_type), STRANGER) == frozenset()


def test_owner_closes_only_when_waiting():
    assert workflow.allowed_actions(_ticket(status=RepairStatus.WAITING_FOR_SUBMITTER), OWNER) == {Action.CLOSE}
    assert workflow.allowed_actions(_ticket(status=RepairStatus.IN_PROGRESS), OWNER) == frozenset()


def test_only_the_assigned_technician_acts():
    t = _ticket(repair_type=RepairType.DIRECT_REPAIR)
    assert workflow.allowed_actions(t, OTHER_TECH) == frozenset()


def test_technician_status_moves_follow_current_status():
    assigned = _ticket(status=RepairStatus.ASSIGNED, repair_type=RepairType.DIRECT_REPAIR)
    assert Action.START_WORK in workflow.allowed_actions(assigned, TECH)
    in_progress = _ticket(status=RepairStatus.IN_PROGRESS, repair_type=RepairType.DIRECT_REPAIR)
    assert Action.PUT_ON_HOLD in workflow.allowed_actions(in_progress, TECH)
    on_hold = _ticket(status=RepairStatus.ON_HOLD, repair_type=RepairType.DIRECT_REPAIR)
    assert Action.RESUME_WORK in workflow.allowed_actions(on_hold, TECH)
    waiting = _ticket(status=RepairStatus.WAITING_FOR_SUBMITTER, repair_type=RepairType.DIRECT_REPAIR)
    assert workflow.allowed_actions(waiting, TECH) == frozenset()


def test_admin_review_and_override_close():
    submitted = _ticket(status=RepairStatus.SUBMITTED)
    assert workflow.allowed_actions(submitted, ADMIN) == {Action.APPROVE, Action.REJECT, Action.CLOSE}
    assert workflow.allowed_actions(_ticket(status=RepairStatus.ON_HOLD), ADMIN) == {Action.CLOSE}
    assert workflow.allowed_actions(_ticket(status=RepairStatus.CLOSED), ADMIN) == frozenset()


def test_admin_may_close_rejected_ticket():
    rejected = _ticket(status=RepairStatus.REJECTED)
    assert workflow.allowed_actions(rejected, ADMIN) == {Action.CLOSE}
    assert workflow.check_action(rejected, ADMIN, Action.CLOSE)
    assert workflow.target_status(rejected, Action.CLOSE) == 'closed'


def test_check_action_returns_discriminated_refusal():
    result = workflow.check_action(_ticket(repair_type=RepairType.NEED_SPAREPART, work_orders=[_wo(WorkOrderStatus.REQUESTED)]),
                                   TECH, Action.MARK_COMPLETE)
    assert isinstance(result, InvalidTransition)
    assert result.attempted == 'mark_complete'
    assert 'work_orders_pending' in result.reason
    assert workflow.check_action(_ticket(), TECH, 'teleport').reason == 'unknown action'
    assert workflow.check_action(_ticket(status=RepairStatus.SUBMITTED), ADMIN, 'approve')


def test_target_status_mapping():
    t = _ticket()
    assert workflow.target_status(t, Action.APPROVE) == 'assigned'
    assert workflow.target_status(t, Action.MARK_COMPLETE) == 'waiting_for_submitter'
    assert workflow.target_status(t, Action.REJECT) == 'rejected'
    assert workflow.target_status(t, Action.DIAGNOSE) is None


def test_decision_serializes_sorted_actions():
    d = workflow.evaluate(_ticket(status=RepairStatus.SUBMITTED), ADMIN).to_dict()
    assert d['allowed_actions'] == ['approve', 'close', 'reject']
    assert d['blocking_reason'] == 'undiagnosed'
