"""
Ticket sequencer.

Ticket numbers are derived, not stored in a counter: the next number for a
tenant and local calendar day is the count of that tenant's sales (any
status) created that day, plus one. The count must run inside the same
transaction as the insert it gates; the unique (tenant_id, ticket_number)
constraint turns a lost race into a retryable conflict.
"""
from datetime import date, datetime
from zoneinfo import ZoneInfo
from flask import current_app, has_app_context
from sqlalchemy import func
from stockpos.models import Sale
from stockpos.utils.dates import local_day_bounds, resolve_timezone

TICKET_SEQUENCE_WIDTH = 4


def format_ticket_number(day: date, sequence: int) -> str:
    """Format `YYYYMMDD-NNNN` (sequence zero-padded to four digits)."""
    if sequence < 1:
        raise ValueError(f"Ticket sequence must start at 1, got {sequence}")
    return f"{day:%Y%m%d}-{sequence:0{TICKET_SEQUENCE_WIDTH}d}"


def tenant_timezone(tenant) -> ZoneInfo:
    """Timezone defining the tenant's calendar day (tenant setting > STORE_TIMEZONE)."""
    fallback = 'UTC'
    if has_app_context():
        fallback = current_app.config.get('STORE_TIMEZONE', 'UTC')
    return resolve_timezone(getattr(tenant, 'timezone', None), fallback)


def count_sales_between(session, tenant_id: int, start_utc: datetime, end_utc: datetime) -> int:
    """Count sales of any status with created_at in [start_utc, end_utc)."""
    return session.query(func.count(Sale.id)).filter(
        Sale.tenant_id == tenant_id,
        Sale.created_at >= start_utc,
        Sale.created_at < end_utc
    ).scalar() or 0


def next_ticket_number(session, tenant_id: int, moment_utc: datetime, tz: ZoneInfo) -> str:
    """Derive the ticket number for a sale created at `moment_utc`."""
    local_date, start_utc, end_utc = local_day_bounds(moment_utc, tz)
    count = count_sales_between(session, tenant_id, start_utc, end_utc)
    return format_ticket_number(local_date, count + 1)
