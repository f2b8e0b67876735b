"""Sale Line model."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from stockpos.database import Base, BigIntId


class SaleLine(Base):
    """
    Sale Line (detalle de venta) - snapshot of the product at sale time.

    `product_id` is a weak reference (no foreign key): historical sales stay
    valid, and cancellable, after the product is deactivated or removed.
    """

    __tablename__ = 'sale_line'
    __table_args__ = (
        CheckConstraint('qty >= 1', name='ck_sale_line_qty_positive'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    sale_id = Column(BigInteger, ForeignKey('sale.id'), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # basket order
    product_id = Column(BigInteger, nullable=False)
    product_name = Column(String(150), nullable=False)
    barcode = Column(String(64), nullable=False)
    qty = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)

    # Relationships
    sale = relationship('Sale', back_populates='lines')

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'name': self.product_name,
            'barcode': self.barcode,
            'quantity': self.qty,
            'price': str(self.unit_price),
            'subtotal': str(self.line_total),
        }

    def __repr__(self):
        return f"<SaleLine(id={self.id}, product_id={self.product_id}, qty={self.qty})>"
