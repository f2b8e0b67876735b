"""Product model."""
import enum
from datetime import date
from typing import Optional
from sqlalchemy import (
    Column, BigInteger, Integer, String, Boolean, Numeric, Date, DateTime, Enum,
    ForeignKey, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from stockpos.database import Base, BigIntId
from stockpos.utils.dates import utcnow

NEAR_EXPIRATION_DAYS = 20


class ProductCategory(enum.Enum):
    """Catalog categories."""
    BEBIDAS = 'Bebidas'
    PANADERIA = 'Panadería'
    ALMACEN = 'Almacén'
    LACTEOS = 'Lácteos'
    SNACKS = 'Snacks'
    LIMPIEZA = 'Limpieza'
    OTROS = 'Otros'


def normalize_category(value) -> Optional[ProductCategory]:
    """Accept an enum, its value ('Lácteos') or its name ('LACTEOS'); None if unknown."""
    if isinstance(value, ProductCategory):
        return value
    if not value:
        return None
    text = str(value).strip()
    for category in ProductCategory:
        if text == category.value or text.upper() == category.name:
            return category
    return None


class Product(Base):
    """Product model. Stock lives on the product row and is never negative."""

    __tablename__ = 'product'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'barcode', name='uq_product_tenant_barcode'),
        CheckConstraint('stock >= 0', name='ck_product_stock_non_negative'),
        CheckConstraint('price >= 0', name='ck_product_price_non_negative'),
        Index('ix_product_tenant_expiration', 'tenant_id', 'expiration_date'),
    )

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    barcode = Column(String(64), nullable=False)
    name = Column(String(150), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=10)
    category = Column(Enum(ProductCategory, name='product_category'), nullable=False, default=ProductCategory.OTROS)
    image = Column(String(10), nullable=True)  # emoji/icon
    expiration_date = Column(Date, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    tenant = relationship('Tenant', back_populates='products')

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock

    def days_until_expiration(self, today: Optional[date] = None) -> Optional[int]:
        if not self.expiration_date:
            return None
        today = today or date.today()
        return (self.expiration_date - today).days

    def is_expired(self, today: Optional[date] = None) -> bool:
        days = self.days_until_expiration(today)
        return days is not None and days < 0

    def is_near_expiration(self, today: Optional[date] = None, days: int = NEAR_EXPIRATION_DAYS) -> bool:
        remaining = self.days_until_expiration(today)
        return remaining is not None and 0 <= remaining <= days

    def to_dict(self):
        return {
            'id': self.id,
            'barcode': self.barcode,
            'name': self.name,
            'price': str(self.price),
            'stock': self.stock,
            'min_stock': self.min_stock,
            'category': self.category.value if self.category else None,
            'image': self.image,
            'expiration_date': self.expiration_date.isoformat() if self.expiration_date else None,
            'active': self.active,
            'is_low_stock': self.is_low_stock,
            'is_expired': self.is_expired(),
            'is_near_expiration': self.is_near_expiration(),
            'days_until_expiration': self.days_until_expiration(),
        }

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', barcode='{self.barcode}')>"
