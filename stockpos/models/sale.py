"""Sale model."""
import enum
from decimal import Decimal
from sqlalchemy import (
    Column, BigInteger, String, Numeric, DateTime, Enum, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from stockpos.database import Base, BigIntId
from stockpos.utils.dates import utcnow


class SaleStatus(enum.Enum):
    """Sale status enum. PENDING is reserved; no operation produces it."""
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    PENDING = "PENDING"


class ReceiptChannel(enum.Enum):
    """How the customer got the receipt."""
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    NONE = "none"


class PaymentMethod(enum.Enum):
    """Payment method enum."""
    CASH = "CASH"
    TRANSFER = "TRANSFER"
    CARD = "CARD"


# Spanish aliases accepted from POS front-ends
_PAYMENT_ALIASES = {
    'EFECTIVO': PaymentMethod.CASH,
    'TRANSFERENCIA': PaymentMethod.TRANSFER,
    'TARJETA': PaymentMethod.CARD,
}


def normalize_payment_method(value) -> PaymentMethod:
    """
    Normalize a payment method to the PaymentMethod enum.

    Args:
        value: PaymentMethod enum or string ('cash', 'CARD', 'efectivo', ...)

    Returns:
        PaymentMethod

    Raises:
        ValueError: If value is missing or not a recognized method
    """
    if isinstance(value, PaymentMethod):
        return value

    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid payment method: {value!r}")

    normalized = value.upper().strip()
    if normalized in PaymentMethod.__members__:
        return PaymentMethod[normalized]
    if normalized in _PAYMENT_ALIASES:
        return _PAYMENT_ALIASES[normalized]

    raise ValueError(f"Invalid payment method: {value}. Must be 'cash', 'transfer' or 'card'.")


_RECEIPT_VALUES = {channel.value for channel in ReceiptChannel}


def normalize_receipt_channel(value) -> ReceiptChannel:
    """Normalize 'email' | 'whatsapp' | 'none' (None and '' mean none)."""
    if isinstance(value, ReceiptChannel):
        return value
    if value in (None, ''):
        return ReceiptChannel.NONE
    if isinstance(value, str) and value.strip().lower() in _RECEIPT_VALUES:
        return ReceiptChannel(value.strip().lower())
    raise ValueError(f"Invalid receipt channel: {value!r}. Must be 'email', 'whatsapp' or 'none'.")


class Sale(Base):
    """Sale (venta). Created with its lines in one commit; only its status and receipt channel change afterwards."""

    __tablename__ = 'sale'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'ticket_number', name='uq_sale_tenant_ticket'),
        Index('ix_sale_tenant_created', 'tenant_id', 'created_at'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    ticket_number = Column(String(20), nullable=False)  # YYYYMMDD-NNNN
    total = Column(Numeric(12, 2), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    payment_method = Column(Enum(PaymentMethod, name='payment_method'), nullable=False)
    receipt_sent = Column(Enum(ReceiptChannel, name='receipt_channel'), nullable=False, default=ReceiptChannel.NONE)
    status = Column(Enum(SaleStatus, name='sale_status'), nullable=False, default=SaleStatus.COMPLETED)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    cancelled_at = Column(DateTime, nullable=True)

    # Relationships
    tenant = relationship('Tenant')
    lines = relationship(
        'SaleLine',
        back_populates='sale',
        cascade='all, delete-orphan',
        order_by='SaleLine.position',
    )

    @property
    def lines_total(self) -> Decimal:
        """Sum of line subtotals; must always equal `total`."""
        return sum((line.line_total for line in self.lines), Decimal('0.00'))

    @property
    def units(self) -> int:
        return sum(line.qty for line in self.lines)

    def to_dict(self):
        return {
            'id': self.id,
            'ticket_number': self.ticket_number,
            'total': str(self.total),
            'customer': {
                'email': self.customer_email,
                'phone': self.customer_phone,
            },
            'payment_method': self.payment_method.value,
            'receipt_sent': (self.receipt_sent or ReceiptChannel.NONE).value,
            'status': self.status.value,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
            'lines': [line.to_dict() for line in self.lines],
        }

    def __repr__(self):
        return f"<Sale(id={self.id}, ticket='{self.ticket_number}', total={self.total}, status={self.status.value})>"
