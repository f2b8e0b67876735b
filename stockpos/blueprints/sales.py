"""Sales blueprint (JSON) - Multi-Tenant."""
import logging
from typing import Tuple

from flask import Blueprint, request, jsonify, g, Response

from stockpos.database import get_session
from stockpos.exceptions import ValidationError
from stockpos.middleware import require_tenant
from stockpos.models import ReceiptChannel
from stockpos.services import sales_service
from stockpos.services.email_service import send_sale_receipt
from stockpos.services.sales_report_service import get_sales_summary, get_today_sales, summarize_sales
from stockpos.utils.dates import parse_date

logger = logging.getLogger(__name__)

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')


def _parse_date_arg(name: str):
    try:
        return parse_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f'Fecha inválida en {name} (formato YYYY-MM-DD)', field=name)


# Special routes go before /<id>

@sales_bp.route('/stats/summary', methods=['GET'])
@require_tenant
def stats_summary() -> Response:
    """Statistics for period=today|week|month."""
    period = request.args.get('period', 'today')
    summary = get_sales_summary(get_session(), g.tenant_id, period)
    return jsonify({'status': 'ok', 'period': summary['period'], 'data': summary})


@sales_bp.route('/today', methods=['GET'])
@require_tenant
def today() -> Response:
    """Completed sales of the current local day."""
    result = get_today_sales(get_session(), g.tenant_id)
    return jsonify({
        'status': 'ok',
        'count': result['count'],
        'total_amount': result['total_amount'],
        'data': [sale.to_dict() for sale in result['sales']],
    })


@sales_bp.route('/', methods=['GET'])
@require_tenant
def list_sales() -> Response:
    """List sales with optional start_date, end_date, status and payment_method filters."""
    sales = sales_service.list_sales(
        get_session(),
        g.tenant_id,
        start_date=_parse_date_arg('start_date'),
        end_date=_parse_date_arg('end_date'),
        status=request.args.get('status') or None,
        payment_method=request.args.get('payment_method') or None,
    )
    return jsonify({
        'status': 'ok',
        'count': len(sales),
        'stats': summarize_sales(sales),
        'data': [sale.to_dict() for sale in sales],
    })


@sales_bp.route('/', methods=['POST'])
@require_tenant
def create_sale() -> Tuple[Response, int]:
    """
    Register a sale.

    Body: {"items": [{"product_id": 1, "quantity": 2}], "payment_method": "cash",
           "customer": {"email": "...", "phone": "..."}, "receipt_sent": "whatsapp"}
    Any price or total in the body is ignored.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Se esperaba un cuerpo JSON')

    sale = sales_service.create_sale(
        get_session(),
        g.tenant_id,
        data.get('items'),
        data.get('payment_method'),
        data.get('customer'),
        receipt_sent=data.get('receipt_sent'),
    )
    return jsonify({
        'status': 'ok',
        'message': 'Venta registrada exitosamente',
        'data': sale.to_dict(),
    }), 201


@sales_bp.route('/<int:sale_id>', methods=['GET'])
@require_tenant
def detail_sale(sale_id: int) -> Response:
    sale = sales_service.get_sale(get_session(), g.tenant_id, sale_id)
    return jsonify({'status': 'ok', 'data': sale.to_dict()})


@sales_bp.route('/<int:sale_id>', methods=['DELETE'])
@sales_bp.route('/<int:sale_id>/cancel', methods=['POST'])
@require_tenant
def cancel_sale(sale_id: int) -> Response:
    """Cancel a sale and restore its stock."""
    sale = sales_service.cancel_sale(get_session(), g.tenant_id, sale_id)
    return jsonify({
        'status': 'ok',
        'message': 'Venta cancelada y stock restaurado',
        'data': sale.to_dict(),
    })


@sales_bp.route('/<int:sale_id>/send-email', methods=['POST'])
@require_tenant
def send_email(sale_id: int) -> Tuple[Response, int]:
    """Send (or re-send) the receipt. Body may override the recipient: {"email": "..."}."""
    sale = sales_service.get_sale(get_session(), g.tenant_id, sale_id)
    data = request.get_json(silent=True) or {}
    recipient = (data.get('email') or sale.customer_email or '').strip().lower()

    if not recipient:
        raise ValidationError('La venta no tiene email de cliente', field='email')
    if not sales_service.EMAIL_RE.match(recipient):
        raise ValidationError('Email inválido', field='email')

    if not send_sale_receipt(sale, g.tenant, to_email=recipient):
        return jsonify({'status': 'error', 'message': 'No se pudo enviar el comprobante'}), 502

    sales_service.record_receipt_sent(get_session(), sale, ReceiptChannel.EMAIL)

    return jsonify({'status': 'ok', 'message': f'Comprobante enviado a {recipient}'}), 200
