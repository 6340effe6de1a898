import pytest
from flask import Flask
from sigap import get_db
from sigap.models.audit import AuditLog
from tests.test_utils_backend import jwt_headers


@pytest.fixture()
def actors(app_context: Flask):
    return {
        'admin': jwt_headers(1, 'admin_layanan'),
        'tech': jwt_headers(5, 'teknisi'),
        'other_tech': jwt_headers(6, 'teknisi'),
        'owner': jwt_headers(10, 'pegawai'),
        'stranger': jwt_headers(11, 'pegawai'),
        'procurement': jwt_headers(3, 'admin_penyedia'),
    }


def test_list_annotates_each_ticket_with_caller_actions(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'submitted')
    backend.add_zoom('50')
    resp = client.get('/tickets?type=perbaikan&page=1', headers=actors['admin'])
    assert resp.status_code == 200, resp.get_json()
    rows = resp.get_json()['data']
    assert [r['id'] for r in rows] == ['1']
    assert rows[0]['workflow']['allowed_actions'] == ['approve', 'close', 'reject']
    params = backend.calls[-1][1]
    assert params == {'type': 'perbaikan', 'page': 1, 'per_page': 15, 'role': 'admin_layanan'}


def test_list_rejects_unknown_filters(app_context: Flask, actors):
    client = app_context.test_client()
    assert client.get('/tickets?status=lost', headers=actors['admin']).status_code == 400


def test_counts_are_scoped_to_active_role(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'submitted')
    resp = client.get('/tickets/counts', headers=actors['tech'])
    assert resp.get_json()['data'] == {'submitted': 1}
    assert backend.calls[-1][1] == {'role': 'teknisi'}


def test_approve_assigns_technician_and_is_audited(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'submitted')
    resp = client.post('/tickets/1/approve', json={'assigned_to': '5'}, headers=actors['admin'])
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['ticket']['status'] == 'assigned'
    assert body['ticket']['assigned_to'] == '5'
    assert body['workflow']['allowed_actions'] == ['close']
    assert backend.mutations() == [('patch_ticket_status', '1', 'assigned', {'assigned_to': '5'})]
    log = get_db().query(AuditLog).filter_by(action='TICKET.APPROVE').order_by(AuditLog.id.desc()).first()
    assert log.entity_id == '1'
    assert log.actor_user_id == '1'
    assert log.actor_role == 'admin_layanan'
    assert log.meta['changes']['status'] == {'before': 'submitted', 'after': 'assigned'}


def test_approve_repair_requires_technician(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'submitted')
    resp = client.post('/tickets/1/approve', json={}, headers=actors['admin'])
    assert resp.status_code == 422
    err = resp.get_json()['error']
    assert err['code'] == 'validation_failed'
    assert err['field'] == 'assigned_to'
    assert backend.mutations() == []


def test_illegal_actions_are_refused_before_forwarding(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'assigned', assigned_to='5', diagnosis={'repair_type': 'direct_repair'})
    resp = client.post('/tickets/1/start', headers=actors['other_tech'])
    assert resp.status_code == 409
    err = resp.get_json()['error']
    assert err['code'] == 'invalid_transition'
    assert err['action'] == 'start_work'
    assert err['current'] == 'assigned'
    assert client.post('/tickets/1/close', headers=actors['stranger']).status_code == 409
    assert client.post('/tickets/1/approve', json={'assigned_to': '5'}, headers=actors['admin']).status_code == 409
    assert backend.mutations() == []


def test_reject_requires_reason(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'submitted')
    assert client.post('/tickets/1/reject', json={'reason': '  '}, headers=actors['admin']).status_code == 422
    resp = client.post('/tickets/1/reject', json={'reason': 'Bukan aset kantor'}, headers=actors['admin'])
    assert resp.status_code == 200
    assert resp.get_json()['ticket']['status'] == 'rejected'
    assert resp.get_json()['workflow']['allowed_actions'] == ['close']

    resp = client.post('/tickets/1/close', headers=actors['admin'])
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['ticket']['status'] == 'closed'
    assert resp.get_json()['workflow']['allowed_actions'] == []


def test_repair_lifecycle_with_work_orders(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'submitted', user_id='10')
    assert client.post('/tickets/1/approve', json={'assigned_to': '5'}, headers=actors['admin']).status_code == 200

    # technician sees only diagnose until a diagnosis exists
    view = client.get('/tickets/1', headers=actors['tech']).get_json()
    assert view['workflow']['allowed_actions'] == ['diagnose']
    assert view['workflow']['blocking_reason'] == 'undiagnosed'

    resp = client.put('/tickets/1/diagnosis', json={
        'repair_type': 'need_sparepart', 'problem_category': 'hardware', 'problem_description': 'RAM rusak',
    }, headers=actors['tech'])
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['ticket']['diagnosis']['repair_type'] == 'need_sparepart'
    assert body['workflow']['allowed_actions'] == ['diagnose', 'open_work_orders', 'start_work']
    assert body['workflow']['blocking_reason'] == 'work_orders_pending'

    resp = client.post('/tickets/1/start', headers=actors['tech'])
    assert resp.get_json()['ticket']['status'] == 'in_progress'

    resp = client.post('/tickets/1/work-orders', json={'type': 'sparepart', 'items': [{'name': 'RAM 8GB', 'quantity': 1}]},
                       headers=actors['tech'])
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    wo_id = body['ticket']['work_orders'][0]['id']
    assert body['work_orders_summary']['by_status']['requested'] == 1

    resp = client.post('/tickets/1/complete', headers=actors['tech'])
    assert resp.status_code == 409
    assert 'work_orders_pending' in resp.get_json()['error']['reason']

    assert client.patch(f'/work-orders/{wo_id}/status', json={'status': 'in_procurement'}, headers=actors['procurement']).status_code == 200
    assert client.patch(f'/work-orders/{wo_id}/status', json={'status': 'completed'}, headers=actors['procurement']).status_code == 200

    resp = client.post('/tickets/1/complete', headers=actors['tech'])
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['ticket']['status'] == 'waiting_for_submitter'

    owner_view = client.get('/tickets/1', headers=actors['owner']).get_json()
    assert owner_view['workflow']['allowed_actions'] == ['close']
    resp = client.post('/tickets/1/close', headers=actors['owner'])
    assert resp.get_json()['ticket']['status'] == 'closed'
    assert resp.get_json()['workflow']['allowed_actions'] == []


def test_diagnosis_payload_is_validated(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'assigned', assigned_to='5')
    resp = client.put('/tickets/1/diagnosis', json={'repair_type': 'magic', 'problem_category': 'hardware',
                                                    'problem_description': 'x'}, headers=actors['tech'])
    assert resp.status_code == 422
    assert resp.get_json()['error']['field'] == 'repair_type'
    resp = client.put('/tickets/1/diagnosis', json={'repair_type': 'unrepairable', 'problem_category': 'hardware'},
                      headers=actors['tech'])
    assert resp.get_json()['error']['field'] == 'problem_description'
    assert backend.mutations() == []


def test_unrepairable_diagnosis_hints_missing_reason(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'in_progress', assigned_to='5')
    resp = client.put('/tickets/1/diagnosis', json={'repair_type': 'unrepairable', 'problem_category': 'hardware',
                                                    'problem_description': 'Mainboard terbakar'}, headers=actors['tech'])
    body = resp.get_json()
    assert body['hints'] == ['unrepairable_reason_missing']
    assert body['workflow']['is_unrepairable'] is True
    assert 'mark_complete' in body['workflow']['allowed_actions']


def test_work_order_type_must_match_diagnosis(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'in_progress', assigned_to='5', diagnosis={'repair_type': 'need_license'})
    resp = client.post('/tickets/1/work-orders', json={'type': 'vendor', 'vendor_description': 'x'}, headers=actors['tech'])
    assert resp.status_code == 422
    assert resp.get_json()['error']['field'] == 'type'
    assert client.post('/tickets/1/work-orders', json={'type': 'printer'}, headers=actors['tech']).status_code == 400


def test_backend_refusal_carries_refetched_view(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'submitted')
    audited = get_db().query(AuditLog).filter_by(action='TICKET.APPROVE').count()
    backend.reject_next = (409, 'Status tiket sudah berubah')
    resp = client.post('/tickets/1/approve', json={'assigned_to': '5'}, headers=actors['admin'])
    assert resp.status_code == 409
    body = resp.get_json()
    assert body['error']['detail'] == 'Status tiket sudah berubah'
    assert body['refetched']['ticket']['status'] == 'submitted'
    assert body['refetched']['workflow']['allowed_actions'] == ['approve', 'close', 'reject']
    assert get_db().query(AuditLog).filter_by(action='TICKET.APPROVE').count() == audited



def test_refusal_keeps_backend_status_when_refetch_is_malformed(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'submitted')
    backend.reject_next = (409, 'Status tiket sudah berubah')
    backend.on_reject = lambda: backend.tickets['1'].update(status='hilang')
    resp = client.post('/tickets/1/approve', json={'assigned_to': '5'}, headers=actors['admin'])
    assert resp.status_code == 409
    body = resp.get_json()
    assert body['error']['detail'] == 'Status tiket sudah berubah'
    assert 'refetched' not in body


def test_list_row_matches_detail_view_when_work_orders_are_not_embedded(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'in_progress', assigned_to='5', diagnosis={'repair_type': 'need_sparepart'})
    backend.add_work_order('101', ticket_id='1', status='completed')
    detail = client.get('/tickets/1', headers=actors['tech']).get_json()
    rows = client.get('/tickets', headers=actors['tech']).get_json()['data']
    assert len(rows) == 1
    assert rows[0]['workflow'] == detail['workflow']
    assert rows[0]['workflow']['can_complete'] is True
    assert 'mark_complete' in rows[0]['workflow']['allowed_actions']
    assert [wo['id'] for wo in rows[0]['work_orders']] == ['101']


def test_non_object_json_body_is_bad_request(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'submitted')
    resp = client.post('/tickets/1/approve', json=['5'], headers=actors['admin'])
    assert resp.status_code == 400
    assert 'JSON object' in resp.get_json()['error']['detail']
    assert client.post('/tickets/1/reject', json='alasan', headers=actors['admin']).status_code == 400
    assert backend.mutations() == []


def test_backend_server_error_maps_to_bad_gateway(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'submitted')
    backend.reject_next = (500, 'Server Error')
    assert client.post('/tickets/1/close', headers=actors['admin']).status_code == 502


def test_unknown_and_malformed_tickets(app_context: Flask, backend, actors):
    client = app_context.test_client()
    assert client.get('/tickets/404', headers=actors['admin']).status_code == 404
    backend.tickets['9'] = {'id': '9', 'status': 'submitted'}
    resp = client.get('/tickets/9', headers=actors['admin'])
    assert resp.status_code == 502
    assert resp.get_json()['error']['title'] == 'Malformed Backend Record'


def test_ticket_view_etag_conditional(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_repair('1', 'submitted')
    resp = client.get('/tickets/1', headers=actors['admin'])
    etag = resp.headers['ETag']
    resp = client.get('/tickets/1', headers={**actors['admin'], 'If-None-Match': etag})
    assert resp.status_code == 304
    head = client.head('/tickets/1', headers=actors['admin'])
    assert head.status_code == 200
    assert head.headers['ETag'] == etag
    assert head.data == b''
    # a different role sees different actions, hence a different document
    assert client.get('/tickets/1', headers=actors['owner']).headers['ETag'] != etag
    backend.tickets['1']['status'] = 'assigned'
    assert client.get('/tickets/1', headers={**actors['admin'], 'If-None-Match': etag}).status_code == 200


def test_zoom_approval_reports_conflicts(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_zoom('50', start='09:00', end='10:00')
    backend.add_zoom('51', status='approved', start='09:30', end='11:00', zoom_account_id='A')
    backend.add_zoom('52', status='approved', start='09:30', end='11:00', zoom_account_id='B')
    preview = client.get('/tickets/50/conflicts?zoom_account_id=A', headers=actors['admin']).get_json()
    assert [c['id'] for c in preview['data']] == ['51']
    resp = client.post('/tickets/50/approve', json={'zoom_account_id': 'A'}, headers=actors['admin'])
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['ticket']['status'] == 'approved'
    assert body['ticket']['zoom_account_id'] == 'A'
    assert [c['id'] for c in body['warnings']['conflicts']] == ['51']
    assert 'work_orders_summary' not in body


def test_zoom_review_is_limited_to_reviewers(app_context: Flask, backend, actors):
    client = app_context.test_client()
    backend.add_zoom('50')
    assert client.post('/tickets/50/cancel', headers=actors['owner']).status_code == 409
    resp = client.post('/tickets/50/cancel', json={'reason': 'Jadwal bentrok'}, headers=jwt_headers(2, 'super_admin'))
    assert resp.get_json()['ticket']['status'] == 'cancelled'
    backend.add_repair('1', 'submitted')
    assert client.get('/tickets/1/conflicts', headers=actors['admin']).status_code == 400
