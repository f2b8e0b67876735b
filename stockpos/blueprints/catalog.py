"""Catalog blueprint (JSON) - products management, Multi-Tenant."""
from typing import Tuple

from flask import Blueprint, request, jsonify, g, current_app, Response

from stockpos.database import get_session
from stockpos.exceptions import ValidationError
from stockpos.middleware import require_tenant
from stockpos.services import catalog_service

catalog_bp = Blueprint('catalog', __name__, url_prefix='/products')


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Se esperaba un cuerpo JSON')
    return data


def _products_response(products) -> Response:
    return jsonify({
        'status': 'ok',
        'count': len(products),
        'data': [p.to_dict() for p in products],
    })


# Special routes go before /<id>

@catalog_bp.route('/low-stock', methods=['GET'])
@require_tenant
def low_stock() -> Response:
    return _products_response(catalog_service.list_low_stock(get_session(), g.tenant_id))


@catalog_bp.route('/near-expiration', methods=['GET'])
@require_tenant
def near_expiration() -> Response:
    """Products expiring within NEAR_EXPIRATION_DAYS (or ?days=N)."""
    days = request.args.get('days', type=int)
    if days is None:
        days = current_app.config.get('NEAR_EXPIRATION_DAYS', 20)
    if days < 0:
        raise ValidationError('days no puede ser negativo', field='days')
    return _products_response(catalog_service.list_near_expiration(get_session(), g.tenant_id, days=days))


@catalog_bp.route('/expired', methods=['GET'])
@require_tenant
def expired() -> Response:
    return _products_response(catalog_service.list_expired(get_session(), g.tenant_id))


@catalog_bp.route('/barcode/<barcode>', methods=['GET'])
@require_tenant
def by_barcode(barcode: str) -> Response:
    product = catalog_service.get_product_by_barcode(get_session(), g.tenant_id, barcode)
    return jsonify({'status': 'ok', 'data': product.to_dict()})


@catalog_bp.route('/import', methods=['POST'])
@require_tenant
def import_products() -> Tuple[Response, int]:
    """Bulk create. Body: {"products": [...]}; 207 when some items were skipped."""
    result = catalog_service.import_products(
        get_session(),
        g.tenant_id,
        _json_body().get('products'),
        default_min_stock=current_app.config.get('LOW_STOCK_THRESHOLD', 10),
    )
    inserted = result['inserted']
    skipped = result['skipped']
    if skipped:
        message = 'Algunos productos se importaron, otros ya existían o eran inválidos'
    else:
        message = f'{len(inserted)} productos importados exitosamente'

    return jsonify({
        'status': 'ok',
        'message': message,
        'inserted': len(inserted),
        'skipped': skipped,
        'data': [p.to_dict() for p in inserted],
    }), 207 if skipped else 201


@catalog_bp.route('/', methods=['GET'])
@require_tenant
def list_products() -> Response:
    """List active products (?search=, ?category=)."""
    products = catalog_service.list_products(
        get_session(),
        g.tenant_id,
        search=request.args.get('search', '').strip(),
        category=request.args.get('category') or None,
    )
    return _products_response(products)


@catalog_bp.route('/', methods=['POST'])
@require_tenant
def create_product() -> Tuple[Response, int]:
    data = _json_body()
    data.setdefault('min_stock', current_app.config.get('LOW_STOCK_THRESHOLD', 10))
    product = catalog_service.create_product(get_session(), g.tenant_id, data)
    return jsonify({'status': 'ok', 'message': 'Producto creado exitosamente', 'data': product.to_dict()}), 201


@catalog_bp.route('/<int:product_id>', methods=['GET'])
@require_tenant
def get_product(product_id: int) -> Response:
    product = catalog_service.get_product(get_session(), g.tenant_id, product_id)
    return jsonify({'status': 'ok', 'data': product.to_dict()})


@catalog_bp.route('/<int:product_id>', methods=['PUT'])
@require_tenant
def update_product(product_id: int) -> Response:
    product = catalog_service.update_product(get_session(), g.tenant_id, product_id, _json_body())
    return jsonify({'status': 'ok', 'message': 'Producto actualizado', 'data': product.to_dict()})


@catalog_bp.route('/<int:product_id>', methods=['DELETE'])
@require_tenant
def deactivate_product(product_id: int) -> Response:
    """Soft delete."""
    catalog_service.deactivate_product(get_session(), g.tenant_id, product_id)
    return jsonify({'status': 'ok', 'message': 'Producto eliminado'})


@catalog_bp.route('/<int:product_id>/stock', methods=['PATCH'])
@require_tenant
def adjust_stock(product_id: int) -> Response:
    """Body: {"quantity": 5, "operation": "add" | "subtract"}."""
    data = _json_body()
    product = catalog_service.adjust_stock(
        get_session(),
        g.tenant_id,
        product_id,
        data.get('quantity'),
        data.get('operation'),
    )
    return jsonify({'status': 'ok', 'message': 'Stock actualizado', 'data': product.to_dict()})
