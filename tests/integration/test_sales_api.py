"""
Integration tests for the /sales JSON API.
"""

from decimal import Decimal
from unittest.mock import patch

from stockpos.models import Product
from stockpos.utils.dates import utcnow


def _create(client, product_id, quantity=1, payment_method='cash', **extra):
    body = {'items': [{'product_id': product_id, 'quantity': quantity}], 'payment_method': payment_method}
    body.update(extra)
    return client.post('/sales/', json=body)


class TestSalesAuth:

    def test_anonymous_is_rejected(self, client, product_tenant1):
        response = _create(client, product_tenant1.id)

        assert response.status_code == 401
        assert response.get_json()['kind'] == 'unauthorized'

    def test_tenant_comes_from_session_not_body(self, authenticated_client, session, tenant2, product_tenant2):
        response = authenticated_client.post('/sales/', json={
            'tenant_id': tenant2.id,
            'items': [{'product_id': product_tenant2.id, 'quantity': 1}],
            'payment_method': 'cash',
        })

        assert response.status_code == 404
        session.expire_all()
        assert session.get(Product, product_tenant2.id).stock == 10


class TestCreateSaleApi:

    def test_create_sale(self, authenticated_client, session, product_tenant1):
        response = _create(
            authenticated_client, product_tenant1.id, 3,
            total='1.00', customer={'email': 'cliente@test.com'}
        )

        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['total'] == '30.00'
        assert data['status'] == 'COMPLETED'
        assert data['payment_method'] == 'CASH'
        assert data['ticket_number'] == f"{utcnow():%Y%m%d}-0001"
        assert data['customer']['email'] == 'cliente@test.com'
        assert data['lines'][0]['subtotal'] == '30.00'

        session.expire_all()
        assert session.get(Product, product_tenant1.id).stock == 2

    def test_insufficient_stock_response(self, authenticated_client, product_tenant1):
        response = _create(authenticated_client, product_tenant1.id, 6)

        assert response.status_code == 409
        body = response.get_json()
        assert body['status'] == 'error'
        assert body['kind'] == 'insufficient_stock'
        assert body['product_id'] == product_tenant1.id
        assert body['requested'] == 6
        assert body['available'] == 5

    def test_validation_response(self, authenticated_client, product_tenant1):
        response = _create(authenticated_client, product_tenant1.id, 0)

        assert response.status_code == 400
        assert response.get_json()['field'] == 'quantity'

    def test_empty_basket(self, authenticated_client):
        response = authenticated_client.post('/sales/', json={'items': [], 'payment_method': 'cash'})
        assert response.status_code == 400

    def test_unknown_product_response(self, authenticated_client):
        response = _create(authenticated_client, 31337)

        assert response.status_code == 404
        body = response.get_json()
        assert body['resource'] == 'product'
        assert body['resource_id'] == 31337

    def test_non_json_body(self, authenticated_client):
        response = authenticated_client.post('/sales/', data='items=1')
        assert response.status_code == 400


class TestCancelSaleApi:

    def test_cancel_then_cancel_again(self, authenticated_client, session, product_tenant1):
        sale_id = _create(authenticated_client, product_tenant1.id, 3).get_json()['data']['id']

        response = authenticated_client.delete(f'/sales/{sale_id}')
        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'CANCELLED'

        session.expire_all()
        assert session.get(Product, product_tenant1.id).stock == 5

        again = authenticated_client.post(f'/sales/{sale_id}/cancel')
        assert again.status_code == 409
        assert again.get_json()['kind'] == 'conflict'

        session.expire_all()
        assert session.get(Product, product_tenant1.id).stock == 5

    def test_cancel_unknown(self, authenticated_client):
        assert authenticated_client.delete('/sales/999').status_code == 404


class TestSalesQueriesApi:

    def test_list_and_detail(self, authenticated_client, product_tenant1, product2_tenant1):
        first = _create(authenticated_client, product_tenant1.id, 1, 'cash').get_json()['data']
        _create(authenticated_client, product2_tenant1.id, 2, 'card')
        authenticated_client.delete(f"/sales/{first['id']}")

        response = authenticated_client.get('/sales/')
        body = response.get_json()
        assert response.status_code == 200
        assert body['count'] == 2
        assert body['stats']['total_sales'] == 1
        assert body['stats']['total_amount'] == '5.00'
        assert body['stats']['by_payment_method']['card']['count'] == 1

        by_status = authenticated_client.get('/sales/?status=cancelled').get_json()
        assert [s['id'] for s in by_status['data']] == [first['id']]

        by_method = authenticated_client.get('/sales/?payment_method=card').get_json()
        assert by_method['count'] == 1

        detail = authenticated_client.get(f"/sales/{first['id']}")
        assert detail.get_json()['data']['ticket_number'] == first['ticket_number']

    def test_invalid_filters(self, authenticated_client):
        assert authenticated_client.get('/sales/?status=unknown').status_code == 400
        assert authenticated_client.get('/sales/?payment_method=bitcoin').status_code == 400
        assert authenticated_client.get('/sales/?start_date=31-12-2024').status_code == 400

    def test_date_filters(self, authenticated_client, product_tenant1):
        _create(authenticated_client, product_tenant1.id, 1)
        today = f"{utcnow():%Y-%m-%d}"

        assert authenticated_client.get(f'/sales/?start_date={today}&end_date={today}').get_json()['count'] == 1
        assert authenticated_client.get('/sales/?end_date=2000-01-01').get_json()['count'] == 0

    def test_today(self, authenticated_client, product_tenant1):
        _create(authenticated_client, product_tenant1.id, 2)

        body = authenticated_client.get('/sales/today').get_json()
        assert body['count'] == 1
        assert Decimal(body['total_amount']) == Decimal('20.00')

    def test_stats_summary(self, authenticated_client, product_tenant1, product2_tenant1):
        _create(authenticated_client, product_tenant1.id, 2, 'cash')
        _create(authenticated_client, product2_tenant1.id, 4, 'transfer')
        _create(authenticated_client, product2_tenant1.id, 1, 'transfer')

        response = authenticated_client.get('/sales/stats/summary?period=week')
        body = response.get_json()
        data = body['data']

        assert response.status_code == 200
        assert body['period'] == 'week'
        assert data['total_sales'] == 3
        assert data['total_units'] == 7
        assert Decimal(data['total_amount']) == Decimal('32.50')
        assert Decimal(data['average_sale']) == Decimal('10.83')
        assert data['top_products'][0]['name'] == 'Galletitas'
        assert data['top_products'][0]['quantity'] == 5
        assert data['by_payment_method']['transfer']['count'] == 2
        assert data['by_payment_method']['card']['count'] == 0

    def test_stats_invalid_period(self, authenticated_client):
        assert authenticated_client.get('/sales/stats/summary?period=year').status_code == 400


class TestSendEmailApi:

    def test_send_receipt(self, authenticated_client, product_tenant1):
        sale_id = _create(authenticated_client, product_tenant1.id, 1).get_json()['data']['id']

        with patch('stockpos.blueprints.sales.send_sale_receipt', return_value=True) as send:
            response = authenticated_client.post(f'/sales/{sale_id}/send-email', json={'email': 'otro@test.com'})

        assert response.status_code == 200
        assert send.call_args.kwargs['to_email'] == 'otro@test.com'

        detail = authenticated_client.get(f'/sales/{sale_id}').get_json()['data']
        assert detail['receipt_sent'] == 'email'

    def test_send_receipt_without_email(self, authenticated_client, product_tenant1):
        sale_id = _create(authenticated_client, product_tenant1.id, 1).get_json()['data']['id']

        response = authenticated_client.post(f'/sales/{sale_id}/send-email')
        assert response.status_code == 400

    def test_send_receipt_failure(self, authenticated_client, product_tenant1):
        sale_id = _create(authenticated_client, product_tenant1.id, 1).get_json()['data']['id']

        with patch('stockpos.blueprints.sales.send_sale_receipt', return_value=False):
            response = authenticated_client.post(f'/sales/{sale_id}/send-email', json={'email': 'a@b.com'})
        assert response.status_code == 502

        detail = authenticated_client.get(f'/sales/{sale_id}').get_json()['data']
        assert detail['receipt_sent'] == 'none'
