"""
Integration tests for the /products JSON API and catalog service.
"""

from datetime import date, timedelta

import pytest

from stockpos.exceptions import ValidationError, InsufficientStockError
from stockpos.models import Product
from stockpos.services import catalog_service


class TestProductsApi:

    def test_create_and_get(self, authenticated_client):
        response = authenticated_client.post('/products/', json={
            'barcode': '7790001',
            'name': 'Leche Entera',
            'price': '1250.50',
            'stock': 12,
            'category': 'Lácteos',
            'expiration_date': '2030-01-31',
        })

        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['price'] == '1250.50'
        assert data['category'] == 'Lácteos'
        assert data['min_stock'] == 10
        assert data['expiration_date'] == '2030-01-31'

        detail = authenticated_client.get(f"/products/{data['id']}").get_json()['data']
        assert detail['name'] == 'Leche Entera'

    def test_duplicate_barcode_conflict(self, authenticated_client, product_tenant1):
        response = authenticated_client.post('/products/', json={
            'barcode': product_tenant1.barcode, 'name': 'Otro', 'price': 1,
        })
        assert response.status_code == 409

    @pytest.mark.parametrize('body', [
        {'name': 'Sin código', 'price': 1},
        {'barcode': '1', 'price': 1},
        {'barcode': '1', 'name': 'Sin precio'},
        {'barcode': '1', 'name': 'Precio negativo', 'price': -1},
        {'barcode': '1', 'name': 'Stock negativo', 'price': 1, 'stock': -3},
        {'barcode': '1', 'name': 'Categoría', 'price': 1, 'category': 'Juguetes'},
    ])
    def test_create_validation(self, authenticated_client, body):
        assert authenticated_client.post('/products/', json=body).status_code == 400

    def test_by_barcode(self, authenticated_client, product_tenant1):
        response = authenticated_client.get(f'/products/barcode/{product_tenant1.barcode}')
        assert response.get_json()['data']['id'] == product_tenant1.id

        assert authenticated_client.get('/products/barcode/000').status_code == 404

    def test_list_with_search_and_category(self, authenticated_client, tenant1, make_product):
        from stockpos.models import ProductCategory
        make_product(tenant1, name='Coca Cola', category=ProductCategory.BEBIDAS)
        make_product(tenant1, name='Pan Lactal', category=ProductCategory.PANADERIA)

        assert authenticated_client.get('/products/').get_json()['count'] == 2
        assert authenticated_client.get('/products/?search=coca').get_json()['data'][0]['name'] == 'Coca Cola'
        assert authenticated_client.get('/products/', query_string={'category': 'Panadería'}).get_json()['count'] == 1
        assert authenticated_client.get('/products/?category=Todos').get_json()['count'] == 2

    def test_update_never_touches_stock(self, authenticated_client, product_tenant1):
        url = f'/products/{product_tenant1.id}'

        assert authenticated_client.put(url, json={'stock': 100}).status_code == 400

        response = authenticated_client.put(url, json={'price': '12.00', 'name': 'Yerba 1kg'})
        data = response.get_json()['data']
        assert data['price'] == '12.00'
        assert data['name'] == 'Yerba 1kg'
        assert data['stock'] == 5

    def test_soft_delete(self, authenticated_client, session, product_tenant1):
        response = authenticated_client.delete(f'/products/{product_tenant1.id}')
        assert response.status_code == 200

        session.expire_all()
        product = session.get(Product, product_tenant1.id)
        assert product is not None
        assert product.active is False
        assert authenticated_client.get('/products/').get_json()['count'] == 0

    def test_adjust_stock(self, authenticated_client, product_tenant1):
        url = f'/products/{product_tenant1.id}/stock'

        added = authenticated_client.patch(url, json={'quantity': 10, 'operation': 'add'})
        assert added.get_json()['data']['stock'] == 15

        removed = authenticated_client.patch(url, json={'quantity': 4, 'operation': 'subtract'})
        assert removed.get_json()['data']['stock'] == 11

        too_many = authenticated_client.patch(url, json={'quantity': 50, 'operation': 'subtract'})
        assert too_many.status_code == 409
        assert too_many.get_json()['available'] == 11

        assert authenticated_client.patch(url, json={'quantity': 1, 'operation': 'set'}).status_code == 400
        assert authenticated_client.patch(url, json={'quantity': 0, 'operation': 'add'}).status_code == 400

    def test_import_all_new(self, authenticated_client, session, tenant1):
        response = authenticated_client.post('/products/import', json={'products': [
            {'barcode': '7791001', 'name': 'Arroz', 'price': '900', 'stock': 8},
            {'barcode': '7791002', 'name': 'Fideos', 'price': '750.50', 'category': 'Almacén'},
        ]})

        assert response.status_code == 201
        body = response.get_json()
        assert body['inserted'] == 2
        assert body['skipped'] == []
        assert session.query(Product).filter_by(tenant_id=tenant1.id).count() == 2

    def test_import_existing_barcode_does_not_abort_new_ones(
        self, authenticated_client, session, tenant1, product_tenant1, product_tenant2
    ):
        response = authenticated_client.post('/products/import', json={'products': [
            {'barcode': product_tenant1.barcode, 'name': 'Repetido', 'price': 1},
            {'barcode': '7792001', 'name': 'Nuevo', 'price': 1},
            {'barcode': '7792001', 'name': 'Repetido en el lote', 'price': 1},
            {'barcode': product_tenant2.barcode, 'name': 'Código de otro almacén', 'price': 1},
            {'barcode': '7792002', 'name': 'Sin precio'},
        ]})

        assert response.status_code == 207
        body = response.get_json()
        assert body['inserted'] == 2
        assert [s['index'] for s in body['skipped']] == [0, 2, 4]
        assert sorted(p['name'] for p in body['data']) == ['Código de otro almacén', 'Nuevo']
        assert body['data'][0]['min_stock'] == 10

        session.expire_all()
        assert session.get(Product, product_tenant1.id).name == 'Yerba Mate 1kg'
        assert session.query(Product).filter_by(tenant_id=tenant1.id).count() == 3

    @pytest.mark.parametrize('body', [{}, {'products': []}, {'products': 'no'}])
    def test_import_requires_a_list(self, authenticated_client, body):
        assert authenticated_client.post('/products/import', json=body).status_code == 400

    def test_low_stock(self, authenticated_client, tenant1, make_product):
        make_product(tenant1, name='Poco', stock=1, min_stock=5)
        make_product(tenant1, name='Mucho', stock=50, min_stock=5)

        names = [p['name'] for p in authenticated_client.get('/products/low-stock').get_json()['data']]
        assert names == ['Poco']

    def test_expiration_reports(self, authenticated_client, expiring_products):
        near = authenticated_client.get('/products/near-expiration').get_json()['data']
        assert [p['name'] for p in near] == ['Yogur']

        wider = authenticated_client.get('/products/near-expiration?days=120').get_json()['data']
        assert [p['name'] for p in wider] == ['Yogur', 'Fideos']

        expired = authenticated_client.get('/products/expired').get_json()['data']
        assert [p['name'] for p in expired] == ['Leche vencida']
        assert expired[0]['is_expired'] is True


class TestCatalogScopeHelpers:

    def test_decrement_is_conditional(self, session, tenant1, product_tenant1):
        assert catalog_service.decrement_stock(session, tenant1.id, product_tenant1.id, 6) is False
        assert catalog_service.decrement_stock(session, tenant1.id, product_tenant1.id, 5) is True
        assert catalog_service.get_stock(session, tenant1.id, product_tenant1.id) == 0
        session.rollback()

        assert catalog_service.get_stock(session, tenant1.id, product_tenant1.id) == 5

    def test_increment_missing_product(self, session, tenant1):
        assert catalog_service.increment_stock(session, tenant1.id, 123456, 1) is False
        session.rollback()

    def test_adjust_stock_rejects_bad_quantity(self, session, tenant1, product_tenant1):
        with pytest.raises(ValidationError):
            catalog_service.adjust_stock(session, tenant1.id, product_tenant1.id, '3', 'add')
        with pytest.raises(InsufficientStockError):
            catalog_service.adjust_stock(session, tenant1.id, product_tenant1.id, 6, 'subtract')

    def test_near_expiration_with_explicit_today(self, session, tenant1, make_product):
        today = date(2024, 6, 1)
        make_product(tenant1, name='Queso', expiration_date=today + timedelta(days=20))
        make_product(tenant1, name='Manteca', expiration_date=today + timedelta(days=21))

        names = [p.name for p in catalog_service.list_near_expiration(session, tenant1.id, today=today)]
        assert names == ['Queso']
