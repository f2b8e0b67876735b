"""
Sales service with transactional logic - Multi-Tenant.

create_sale() and cancel_sale() each run inside one transactional scope
(see services.transaction): stock decrements/increments, ticket assignment
and the sale row commit or roll back together. Stock is only ever changed
through conditional updates, so two concurrent sales can never drive a
product below zero.
"""
import logging
import re
from decimal import Decimal
from datetime import date
from typing import List, Dict, Optional, Any

from flask import current_app, has_app_context
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from stockpos.blueprints.metrics import (
    sales_committed_total, sales_cancelled_total, sale_failures_total, sale_retries_total
)
from stockpos.exceptions import (
    StockPosError, ValidationError, NotFoundError, InsufficientStockError,
    ConflictError, TicketConflictError, InternalInvariantError
)
from stockpos.models import (
    Tenant, Sale, SaleLine, SaleStatus, ReceiptChannel, normalize_payment_method, normalize_receipt_channel
)
from stockpos.services.catalog_service import (
    get_product_for_update, decrement_stock, increment_stock, get_stock
)
from stockpos.services.ticket_service import next_ticket_number, tenant_timezone
from stockpos.services.transaction import run_in_transaction
from stockpos.utils.dates import utcnow, local_date_bounds

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
EMAIL_RE = re.compile(r'^\S+@\S+\.\S+$')
PHONE_RE = re.compile(r'^[\d\s\+\-\(\)]+$')

DEFAULT_COMMIT_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF = 0.05


# =====================================================
# VALIDATION
# =====================================================

def _parse_basket(items) -> List[Dict[str, int]]:
    """
    Validate the basket and return [{'product_id', 'quantity'}] in basket order.
    Prices or totals sent by the caller are ignored.
    """
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError('La venta debe tener al menos un producto', field='items')

    basket = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f'Producto inválido en la posición {index + 1}', field='items')

        product_id = item.get('product_id')
        if isinstance(product_id, str) and product_id.strip().isdigit():
            product_id = int(product_id.strip())
        if isinstance(product_id, bool) or not isinstance(product_id, int) or product_id < 1:
            raise ValidationError(
                f'Producto inválido en la posición {index + 1}',
                field='product_id', payload={'index': index}
            )

        quantity = item.get('quantity')
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(
                'La cantidad debe ser un número entero mayor a 0',
                field='quantity', payload={'index': index, 'product_id': product_id}
            )

        basket.append({'product_id': product_id, 'quantity': quantity})

    return basket


def _parse_customer(customer) -> Dict[str, Optional[str]]:
    """Optional customer contact: {'email', 'phone'} (empty values become None)."""
    if customer is None:
        return {'email': None, 'phone': None}
    if not isinstance(customer, dict):
        raise ValidationError('Datos de cliente inválidos', field='customer')

    email = (customer.get('email') or '').strip().lower() or None
    phone = (customer.get('phone') or '').strip() or None

    if email and not EMAIL_RE.match(email):
        raise ValidationError('Email inválido', field='customer.email')
    if phone and not PHONE_RE.match(phone):
        raise ValidationError('Teléfono inválido', field='customer.phone')

    return {'email': email, 'phone': phone}


def _get_active_tenant(session, tenant_id: int) -> Tenant:
    tenant = session.get(Tenant, tenant_id)
    if not tenant or not tenant.active:
        raise NotFoundError('Negocio no encontrado', resource='tenant', resource_id=tenant_id)
    return tenant


def _retry_settings():
    if has_app_context():
        cfg = current_app.config
        return (
            cfg.get('SALE_COMMIT_ATTEMPTS', DEFAULT_COMMIT_ATTEMPTS),
            cfg.get('SALE_RETRY_BACKOFF', DEFAULT_RETRY_BACKOFF),
        )
    return DEFAULT_COMMIT_ATTEMPTS, DEFAULT_RETRY_BACKOFF


def _count_retry(operation: str):
    def on_retry(error: StockPosError) -> None:
        sale_retries_total.labels(operation=operation, kind=error.kind).inc()
    return on_retry


# =====================================================
# CREATE SALE
# =====================================================

def create_sale(
    session,
    tenant_id: int,
    items: List[Dict[str, Any]],
    payment_method,
    customer: Optional[Dict[str, str]] = None,
    receipt_sent=None
) -> Sale:
    """
    Register a sale: validate stock, decrement it, snapshot prices, assign
    the ticket number and persist the sale, all in one transactional scope.

    Args:
        session: Database session
        tenant_id: Authenticated tenant (never taken from the basket)
        items: [{'product_id': int, 'quantity': int}, ...]
        payment_method: 'cash' | 'transfer' | 'card' (or PaymentMethod)
        customer: optional {'email': str, 'phone': str}
        receipt_sent: channel already used by the POS ('whatsapp', ...); default 'none'

    Returns:
        The committed Sale (status COMPLETED)

    Raises:
        ValidationError: empty basket, bad quantity, bad payment method or contact
        NotFoundError: unknown tenant, or product missing/inactive/of another tenant
        InsufficientStockError: a line asks for more than the stock on hand
        TransientStoreError: the store kept failing after bounded retries
        InternalInvariantError: computed totals or stock broke an invariant
    """
    try:
        basket = _parse_basket(items)
        try:
            method = normalize_payment_method(payment_method)
        except ValueError:
            raise ValidationError(
                "Método de pago inválido. Debe ser 'cash', 'transfer' o 'card'",
                field='payment_method'
            )
        contact = _parse_customer(customer)
        try:
            channel = normalize_receipt_channel(receipt_sent)
        except ValueError:
            raise ValidationError(
                "Canal de comprobante inválido. Debe ser 'email', 'whatsapp' o 'none'",
                field='receipt_sent'
            )
        tenant = _get_active_tenant(session, tenant_id)
        tz = tenant_timezone(tenant)

        attempts, backoff = _retry_settings()
        sale = run_in_transaction(
            session,
            lambda: _create_sale_once(session, tenant_id, basket, method, contact, channel, tz),
            attempts=attempts,
            backoff_base=backoff,
            label=f'create_sale tenant={tenant_id}',
            on_retry=_count_retry('create'),
        )
    except StockPosError as e:
        sale_failures_total.labels(operation='create', kind=e.kind).inc()
        raise

    _after_sale_committed(session, sale, tenant)
    return sale


def _create_sale_once(session, tenant_id: int, basket, method, contact, channel, tz) -> Sale:
    """One attempt of the sale scope. Never commits."""
    lines = []
    touched = {}

    # Stock is decremented in basket order
    for position, item in enumerate(basket, start=1):
        product_id = item['product_id']
        qty = item['quantity']

        product = get_product_for_update(session, tenant_id, product_id)
        if product is None or not product.active:
            raise NotFoundError(
                f'Producto {product_id} no encontrado o inactivo',
                resource='product', resource_id=product_id
            )
        if product.stock < qty:
            raise InsufficientStockError(product.id, product.name, qty, product.stock)

        if not decrement_stock(session, tenant_id, product_id, qty):
            # Another scope committed a sale of this product after our read
            available = get_stock(session, tenant_id, product_id) or 0
            raise InsufficientStockError(product.id, product.name, qty, available)

        unit_price = Decimal(product.price).quantize(CENT)
        lines.append(SaleLine(
            position=position,
            product_id=product.id,
            product_name=product.name,
            barcode=product.barcode,
            qty=qty,
            unit_price=unit_price,
            line_total=(unit_price * qty).quantize(CENT),
        ))
        touched[product.id] = product.name

    total = sum((line.line_total for line in lines), Decimal('0.00')).quantize(CENT)

    for product_id, name in touched.items():
        stock_after = get_stock(session, tenant_id, product_id)
        if stock_after is None or stock_after < 0:
            logger.critical(
                f"[SALES] tenant={tenant_id} product={product_id} ({name}) "
                f"stock={stock_after} after decrement"
            )
            raise InternalInvariantError(
                'Stock negativo detectado, la venta fue revertida',
                {'product_id': product_id, 'stock': stock_after}
            )

    now = utcnow()
    ticket_number = next_ticket_number(session, tenant_id, now, tz)

    sale = Sale(
        tenant_id=tenant_id,
        ticket_number=ticket_number,
        total=total,
        customer_email=contact['email'],
        customer_phone=contact['phone'],
        payment_method=method,
        receipt_sent=channel,
        status=SaleStatus.COMPLETED,
        created_at=now,
    )
    sale.lines = lines

    if sale.lines_total != sale.total:
        logger.critical(
            f"[SALES] tenant={tenant_id} ticket={ticket_number} "
            f"total {sale.total} != lines {sale.lines_total}"
        )
        raise InternalInvariantError(
            'El total de la venta no coincide con sus líneas',
            {'total': str(sale.total), 'lines_total': str(sale.lines_total)}
        )

    session.add(sale)
    try:
        session.flush()
    except IntegrityError as e:
        detail = str(e.orig)
        if 'ticket_number' in detail or 'uq_sale_tenant_ticket' in detail:
            raise TicketConflictError(tenant_id, ticket_number) from e
        raise

    return sale


def _after_sale_committed(session, sale: Sale, tenant: Tenant) -> None:
    """Post-commit side effects. Failures are logged and never undo the sale."""
    logger.info(
        f"[SALES] tenant={sale.tenant_id} ticket={sale.ticket_number} "
        f"total={sale.total} method={sale.payment_method.value} committed"
    )
    try:
        sales_committed_total.labels(payment_method=sale.payment_method.value).inc()
    except Exception as e:
        logger.warning(f"[SALES] Failed to record metrics: {e}")

    _invalidate_sales_cache(sale.tenant_id)

    if not has_app_context() or not sale.customer_email:
        return
    if not current_app.config.get('RECEIPT_AUTO_SEND', True):
        return

    from stockpos.services.email_service import send_sale_receipt
    try:
        sent = send_sale_receipt(sale, tenant)
    except Exception as e:
        logger.error(f"[SALES] Receipt for ticket {sale.ticket_number} failed: {e}")
        return

    if sent:
        try:
            record_receipt_sent(session, sale, ReceiptChannel.EMAIL)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[SALES] Could not record receipt for ticket {sale.ticket_number}: {e}")


def _invalidate_sales_cache(tenant_id: int) -> None:
    """Invalidate cached sales reports after a ledger change."""
    try:
        from stockpos.services.cache_service import get_cache
        get_cache().invalidate_module(tenant_id, 'sales')
    except Exception as e:
        logger.warning(f"[SALES] Failed to invalidate sales cache: {e}")


# =====================================================
# CANCEL SALE
# =====================================================

def cancel_sale(session, tenant_id: int, sale_id: int) -> Sale:
    """
    Cancel a completed sale and restore the stock of each line.

    The status transition is a compare-and-set (COMPLETED -> CANCELLED), so
    two concurrent cancellations cannot both restore stock.

    Raises:
        NotFoundError: no sale with that id for the tenant
        ConflictError: the sale is already cancelled (or not completed)
    """
    try:
        attempts, backoff = _retry_settings()
        sale = run_in_transaction(
            session,
            lambda: _cancel_sale_once(session, tenant_id, sale_id),
            attempts=attempts,
            backoff_base=backoff,
            label=f'cancel_sale tenant={tenant_id} sale={sale_id}',
            on_retry=_count_retry('cancel'),
        )
    except StockPosError as e:
        sale_failures_total.labels(operation='cancel', kind=e.kind).inc()
        raise

    logger.info(f"[SALES] tenant={tenant_id} ticket={sale.ticket_number} cancelled, stock restored")
    try:
        sales_cancelled_total.inc()
    except Exception as e:
        logger.warning(f"[SALES] Failed to record metrics: {e}")
    _invalidate_sales_cache(tenant_id)
    return sale


def _cancel_sale_once(session, tenant_id: int, sale_id: int) -> Sale:
    now = utcnow()
    result = session.execute(
        update(Sale)
        .where(
            Sale.id == sale_id,
            Sale.tenant_id == tenant_id,
            Sale.status == SaleStatus.COMPLETED
        )
        .values(status=SaleStatus.CANCELLED, cancelled_at=now)
        .execution_options(synchronize_session=False)
    )

    sale = session.query(Sale).filter(
        Sale.id == sale_id,
        Sale.tenant_id == tenant_id
    ).populate_existing().first()

    if result.rowcount != 1:
        if sale is None:
            raise NotFoundError('Venta no encontrada', resource='sale', resource_id=sale_id)
        if sale.status == SaleStatus.CANCELLED:
            raise ConflictError('La venta ya está cancelada', {'sale_id': sale_id})
        raise ConflictError(
            'Solo se pueden cancelar ventas completadas',
            {'sale_id': sale_id, 'sale_status': sale.status.value}
        )

    for line in sale.lines:
        if not increment_stock(session, tenant_id, line.product_id, line.qty):
            logger.warning(
                f"[SALES] tenant={tenant_id} sale={sale_id}: product {line.product_id} "
                f"({line.product_name}) no longer exists, {line.qty} units not restored"
            )

    return sale


# =====================================================
# LEDGER QUERIES
# =====================================================

def get_sale(session, tenant_id: int, sale_id: int) -> Sale:
    """Get sale by ID (tenant-scoped)."""
    sale = session.query(Sale).filter(
        Sale.id == sale_id,
        Sale.tenant_id == tenant_id
    ).first()
    if not sale:
        raise NotFoundError('Venta no encontrada', resource='sale', resource_id=sale_id)
    return sale


def record_receipt_sent(session, sale: Sale, channel=ReceiptChannel.EMAIL) -> Sale:
    """Store the channel the receipt went out through. Lines, stock and status are untouched."""
    sale.receipt_sent = normalize_receipt_channel(channel)
    session.commit()
    logger.info(f"[SALES] tenant={sale.tenant_id} ticket={sale.ticket_number} receipt sent by {sale.receipt_sent.value}")
    return sale


def list_sales(
    session,
    tenant_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status=None,
    payment_method=None,
    tz=None
) -> List[Sale]:
    """
    List the tenant's sales, newest first.

    Args:
        start_date / end_date: local calendar days, both inclusive
        status: SaleStatus or its name
        payment_method: anything normalize_payment_method() accepts
        tz: calendar timezone (defaults to the tenant's)
    """
    if tz is None:
        tz = tenant_timezone(session.get(Tenant, tenant_id))

    query = session.query(Sale).filter(Sale.tenant_id == tenant_id)

    if start_date:
        start_utc, _ = local_date_bounds(start_date, tz)
        query = query.filter(Sale.created_at >= start_utc)
    if end_date:
        _, end_utc = local_date_bounds(end_date, tz)
        query = query.filter(Sale.created_at < end_utc)

    if status:
        if isinstance(status, str):
            try:
                status = SaleStatus[status.strip().upper()]
            except KeyError:
                raise ValidationError('Estado de venta inválido', field='status')
        query = query.filter(Sale.status == status)

    if payment_method:
        try:
            query = query.filter(Sale.payment_method == normalize_payment_method(payment_method))
        except ValueError:
            raise ValidationError('Método de pago inválido', field='payment_method')

    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()
