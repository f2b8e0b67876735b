"""
Sales reports (tenant-scoped, completed sales only).
Summaries are cached in Redis and invalidated whenever a sale is committed
or cancelled.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from flask import current_app, has_app_context
from sqlalchemy import func, desc

from stockpos.exceptions import ValidationError
from stockpos.models import Tenant, Sale, SaleLine, SaleStatus, PaymentMethod
from stockpos.services.ticket_service import tenant_timezone
from stockpos.utils.dates import utcnow, local_day_bounds

logger = logging.getLogger(__name__)

PERIODS = ('today', 'week', 'month')
TOP_PRODUCTS_LIMIT = 5


def _one_month_before(moment: datetime) -> datetime:
    """Same day of the previous month, clamped to the month's last day."""
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = moment.day
    while True:
        try:
            return moment.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1


def period_start(period: str, now_utc: datetime, tz) -> datetime:
    """
    Start (naive UTC) of a report period.

    'today' starts at local midnight; 'week' and 'month' are rolling windows
    of 7 days and one calendar month ending now.
    """
    if period == 'today':
        _, start_utc, _ = local_day_bounds(now_utc, tz)
        return start_utc
    if period == 'week':
        return now_utc - timedelta(days=7)
    if period == 'month':
        return _one_month_before(now_utc)
    raise ValidationError("Período inválido. Debe ser 'today', 'week' o 'month'", field='period')


def summarize_sales(sales: List[Sale]) -> dict:
    """Totals and payment-method breakdown of the completed sales in `sales`."""
    completed = [s for s in sales if s.status == SaleStatus.COMPLETED]
    by_method = {
        method.value.lower(): {'count': 0, 'total': Decimal('0.00')}
        for method in PaymentMethod
    }
    total_amount = Decimal('0.00')
    total_units = 0

    for sale in completed:
        total_amount += sale.total
        total_units += sale.units
        bucket = by_method[sale.payment_method.value.lower()]
        bucket['count'] += 1
        bucket['total'] += sale.total

    return {
        'total_sales': len(completed),
        'total_amount': total_amount,
        'total_units': total_units,
        'by_payment_method': by_method,
    }


def _load_summary(session, tenant_id: int, start_utc: datetime, end_utc: datetime) -> dict:
    base_filters = (
        Sale.tenant_id == tenant_id,
        Sale.status == SaleStatus.COMPLETED,
        Sale.created_at >= start_utc,
        Sale.created_at <= end_utc,
    )

    count, amount = session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total), 0)
    ).filter(*base_filters).one()
    amount = Decimal(str(amount)).quantize(Decimal('0.01'))

    units = session.query(
        func.coalesce(func.sum(SaleLine.qty), 0)
    ).join(Sale, Sale.id == SaleLine.sale_id).filter(*base_filters).scalar() or 0

    top_rows = (
        session.query(
            SaleLine.product_id.label('product_id'),
            func.max(SaleLine.product_name).label('name'),
            func.sum(SaleLine.qty).label('quantity'),
            func.sum(SaleLine.line_total).label('revenue')
        )
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(*base_filters)
        .group_by(SaleLine.product_id)
        .order_by(desc('quantity'), SaleLine.product_id)
        .limit(TOP_PRODUCTS_LIMIT)
        .all()
    )

    method_rows = (
        session.query(Sale.payment_method, func.count(Sale.id), func.sum(Sale.total))
        .filter(*base_filters)
        .group_by(Sale.payment_method)
        .all()
    )
    by_method = {
        method.value.lower(): {'count': 0, 'total': Decimal('0.00')}
        for method in PaymentMethod
    }
    for method, method_count, method_total in method_rows:
        by_method[method.value.lower()] = {
            'count': int(method_count),
            'total': Decimal(str(method_total or 0)).quantize(Decimal('0.01')),
        }

    return {
        'total_sales': int(count),
        'total_amount': amount,
        'total_units': int(units),
        'average_sale': (amount / count).quantize(Decimal('0.01')) if count else Decimal('0.00'),
        'top_products': [
            {
                'product_id': row.product_id,
                'name': row.name,
                'quantity': int(row.quantity),
                'revenue': Decimal(str(row.revenue)).quantize(Decimal('0.01')),
            }
            for row in top_rows
        ],
        'by_payment_method': by_method,
    }


def get_sales_summary(session, tenant_id: int, period: str = 'today', now: Optional[datetime] = None) -> dict:
    """
    Sales statistics for `period` ('today', 'week' or 'month').

    Returns:
        dict with total_sales, total_amount, total_units, average_sale,
        top_products (5 best sellers by units) and by_payment_method
    """
    period = (period or 'today').lower()
    now = now or utcnow()
    tz = tenant_timezone(session.get(Tenant, tenant_id))
    start_utc = period_start(period, now, tz)

    def loader():
        summary = _load_summary(session, tenant_id, start_utc, now)
        summary['period'] = period
        return summary

    if not has_app_context():
        return loader()

    from stockpos.services.cache_service import get_cache
    cache = current_app.extensions.get('cache') or get_cache()
    ttl = current_app.config.get('CACHE_SALES_TTL', 60)
    return cache.memoize(tenant_id, 'sales', f'summary:{period}', loader, ttl)


def get_today_sales(session, tenant_id: int, now: Optional[datetime] = None) -> dict:
    """Completed sales of the tenant's current local day, newest first, with totals."""
    now = now or utcnow()
    tz = tenant_timezone(session.get(Tenant, tenant_id))
    _, start_utc, end_utc = local_day_bounds(now, tz)

    sales = session.query(Sale).filter(
        Sale.tenant_id == tenant_id,
        Sale.status == SaleStatus.COMPLETED,
        Sale.created_at >= start_utc,
        Sale.created_at < end_utc
    ).order_by(Sale.created_at.desc(), Sale.id.desc()).all()

    return {
        'count': len(sales),
        'total_amount': sum((s.total for s in sales), Decimal('0.00')),
        'sales': sales,
    }
