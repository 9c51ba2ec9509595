"""
JSON API: status codes, error bodies and request replay
"""
import pytest


@pytest.fixture
def po_payload(item):
    return {
        'customer_id': 'cust-1',
        'customer_name': 'Acme Farms',
        'start_date': '2026-01-05',
        'line_items': [{'item': item.id, 'quantity': 10, 'price_per_unit': '25.00'}],
    }


@pytest.fixture
def created_po(client, user_headers, po_payload):
    response = client.post('/purchase-orders/', json=po_payload, headers=user_headers)
    assert response.status_code == 201
    return response.get_json()


def test_items_are_listed(client, item):
    response = client.get('/items/')

    assert response.status_code == 200
    assert [entry['name'] for entry in response.get_json()] == ['Field Sensor']


def test_unknown_item_is_json_404(client):
    response = client.get('/items/999/')

    assert response.status_code == 404
    assert response.get_json()['code'] == 'NOT_FOUND'


def test_unknown_route_is_json_404(client):
    response = client.get('/nowhere/')

    assert response.status_code == 404
    assert 'detail' in response.get_json()


def test_create_purchase_order(created_po):
    assert created_po['po_number'].startswith('PO-')
    assert created_po['created_by_user_id'] == 'clerk-7'
    line = created_po['fulfillment_status']['line_items'][0]
    assert (line['remaining_quantity'], line['status_label']) == (10, 'Not Started')


def test_line_item_errors_are_keyed_by_index(client, item, po_payload):
    po_payload['line_items'].append({'item': item.id, 'quantity': 0, 'price_per_unit': '1.00'})

    response = client.post('/purchase-orders/', json=po_payload)

    assert response.status_code == 400
    body = response.get_json()
    assert body['code'] == 'VALIDATION_FAILED'
    assert 'line_items[1].quantity' in body


def test_create_replay_returns_first_document(client, po_payload):
    headers = {'Idempotency-Key': 'po-create-1'}
    first = client.post('/purchase-orders/', json=po_payload, headers=headers)
    second = client.post('/purchase-orders/', json=po_payload, headers=headers)

    assert (first.status_code, second.status_code) == (201, 200)
    assert first.get_json()['id'] == second.get_json()['id']
    assert len(client.get('/purchase-orders/').get_json()) == 1


def test_customer_cannot_change(client, created_po):
    response = client.patch(f"/purchase-orders/{created_po['id']}/", json={'customer_id': 'cust-2'})

    assert response.status_code == 400
    assert 'customer_id' in response.get_json()


def test_patch_updates_header_only_fields_sent(client, created_po):
    response = client.patch(f"/purchase-orders/{created_po['id']}/", json={'notes': 'renewed'})

    body = response.get_json()
    assert response.status_code == 200
    assert body['notes'] == 'renewed'
    assert body['customer_name'] == 'Acme Farms'
    assert len(body['line_items']) == 1


def test_order_allocates_from_po(client, created_po, item):
    response = client.post('/orders/', json={
        'customer_id': 'cust-1',
        'allocate_from_po': True,
        'line_items': [{'item': item.id, 'quantity': 3}],
    })

    assert response.status_code == 201
    order = response.get_json()
    assert order['line_items'][0]['po_line_item'] == created_po['line_items'][0]['id']
    assert order['line_items'][0]['price_per_unit'] == '25.00'

    po = client.get(f"/purchase-orders/{created_po['id']}/").get_json()
    line = po['fulfillment_status']['line_items'][0]
    assert (line['ordered_quantity'], line['remaining_quantity']) == (3, 7)


def test_order_beyond_capacity_is_rejected(client, created_po, item):
    response = client.post('/orders/', json={
        'customer_id': 'cust-1',
        'allocate_from_po': True,
        'line_items': [{'item': item.id, 'quantity': 11}],
    })

    assert response.status_code == 400
    body = response.get_json()
    assert body['code'] == 'NO_CAPACITY'
    assert 'line_items[0].quantity' in body
    assert client.get('/orders/').get_json() == []


def test_waive_requires_admin(client, created_po, user_headers):
    line_id = created_po['line_items'][0]['id']

    response = client.post(f"/purchase-orders/{created_po['id']}/waive/",
                           json={'line_item_id': line_id, 'quantity_to_waive': 2}, headers=user_headers)

    assert response.status_code == 403


def test_waive(client, created_po, admin_headers):
    line_id = created_po['line_items'][0]['id']

    response = client.post(f"/purchase-orders/{created_po['id']}/waive/",
                           json={'line_item_id': line_id, 'quantity_to_waive': 2, 'reason': 'downsized'},
                           headers=admin_headers)

    assert response.status_code == 200
    body = response.get_json()
    assert 'message' in body
    assert body['line_item']['waived_quantity'] == 2
    assert body['line_item']['remaining_quantity'] == 8


def test_waive_zero_is_rejected(client, created_po, admin_headers):
    line_id = created_po['line_items'][0]['id']

    response = client.post(f"/purchase-orders/{created_po['id']}/waive/",
                           json={'line_item_id': line_id, 'quantity_to_waive': 0}, headers=admin_headers)

    assert response.status_code == 400
    assert response.get_json()['code'] == 'INVALID_QUANTITY'
    assert 'detail' in response.get_json()


def test_close_with_remaining_quantity(client, created_po, user_headers, admin_headers):
    url = f"/purchase-orders/{created_po['id']}/close/"

    blocked = client.post(url, json={}, headers=user_headers)
    assert blocked.status_code == 409
    assert blocked.get_json()['can_override'] is True

    forbidden = client.post(url, json={'admin_override': True, 'override_reason': 'lapsed'}, headers=user_headers)
    assert forbidden.status_code == 403

    no_reason = client.post(url, json={'admin_override': True}, headers=admin_headers)
    assert no_reason.status_code == 400
    assert 'override_reason' in no_reason.get_json()

    closed = client.post(url, json={'admin_override': True, 'override_reason': 'lapsed'}, headers=admin_headers)
    assert closed.status_code == 200
    assert closed.get_json()['status'] == 'CLOSED'

    edit = client.patch(f"/purchase-orders/{created_po['id']}/", json={'notes': 'too late'})
    assert edit.status_code == 409


def test_consumed_po_cannot_be_deleted(client, created_po, item):
    client.post('/orders/', json={
        'customer_id': 'cust-1', 'allocate_from_po': True,
        'line_items': [{'item': item.id, 'quantity': 1}],
    })

    response = client.delete(f"/purchase-orders/{created_po['id']}/")

    assert response.status_code == 409
    assert response.get_json()['code'] == 'HAS_DEPENDENTS'


def test_unconsumed_po_can_be_deleted(client, created_po):
    assert client.delete(f"/purchase-orders/{created_po['id']}/").status_code == 204
    assert client.get(f"/purchase-orders/{created_po['id']}/").status_code == 404


def test_closed_documents_cannot_be_deleted(client, created_po, item, admin_headers):
    order = client.post('/orders/', json={
        'customer_id': 'cust-1', 'allocate_from_po': True,
        'line_items': [{'item': item.id, 'quantity': 10}],
    }).get_json()
    closed_po = client.post(f"/purchase-orders/{created_po['id']}/close/", json={})
    assert closed_po.status_code == 200
    closed_order = client.post(f"/orders/{order['id']}/close/", json={
        'admin_override': True, 'override_reason': 'customer cancelled',
    }, headers=admin_headers)
    assert closed_order.status_code == 200

    response = client.delete(f"/orders/{order['id']}/")
    assert response.status_code == 409
    assert response.get_json()['code'] == 'INVALID_TRANSITION'

    response = client.delete(f"/purchase-orders/{created_po['id']}/")
    assert response.status_code == 409
    assert response.get_json()['code'] == 'INVALID_TRANSITION'

    po = client.get(f"/purchase-orders/{created_po['id']}/").get_json()
    assert po['fulfillment_status']['line_items'][0]['remaining_quantity'] == 0
    assert client.get(f"/orders/{order['id']}/").get_json()['status'] == 'CLOSED'


def test_delivery_flow(client, created_po, item):
    order = client.post('/orders/', json={
        'customer_id': 'cust-1', 'allocate_from_po': True,
        'line_items': [{'item': item.id, 'quantity': 2}],
    }).get_json()
    order_line_id = order['line_items'][0]['id']

    duplicate = client.post('/deliveries/', json={
        'customer_id': 'cust-1', 'ship_date': '2026-03-01',
        'line_items': [
            {'serial_number': 'SN-1', 'order_line_item': order_line_id},
            {'serial_number': 'SN-1', 'order_line_item': order_line_id},
        ],
    })
    assert duplicate.status_code == 400
    assert 'line_items[1].serial_number' in duplicate.get_json()

    created = client.post('/deliveries/', json={
        'customer_id': 'cust-1', 'ship_date': '2026-03-01',
        'line_items': [{'serial_number': 'SN-1', 'order_line_item': order_line_id}],
    })
    assert created.status_code == 201
    delivery = created.get_json()

    found = client.get('/deliveries/search_serial/', query_string={'serial_number': 'SN-1'})
    assert found.get_json()['id'] == delivery['id']
    assert client.get('/deliveries/search_serial/', query_string={'serial_number': 'SN-404'}).status_code == 404

    status = client.get(f"/orders/{order['id']}/").get_json()['fulfillment_status']
    assert status['line_items'][0]['status_label'] == '50% Delivered'
    assert status['deliveries'][0]['delivery_id'] == delivery['id']

    assert client.post(f"/deliveries/{delivery['id']}/close/").get_json()['status'] == 'CLOSED'


def test_list_filters_by_status(client, created_po, po_payload):
    client.post('/purchase-orders/', json=po_payload)

    assert len(client.get('/purchase-orders/', query_string={'status': 'open'}).get_json()) == 2
    assert client.get('/purchase-orders/', query_string={'status': 'closed'}).get_json() == []
    assert client.get('/purchase-orders/', query_string={'status': 'bogus'}).status_code == 400
