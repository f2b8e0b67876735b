"""Models package - exports all SQLAlchemy models."""
from stockpos.models.tenant import Tenant
from stockpos.models.product import Product, ProductCategory, normalize_category
from stockpos.models.sale import (
    Sale, SaleStatus, PaymentMethod, ReceiptChannel, normalize_payment_method, normalize_receipt_channel
)
from stockpos.models.sale_line import SaleLine

__all__ = [
    'Tenant',
    'Product', 'ProductCategory', 'normalize_category',
    'Sale', 'SaleStatus', 'PaymentMethod', 'ReceiptChannel',
    'normalize_payment_method', 'normalize_receipt_channel',
    'SaleLine',
]
