"""
Catalog service - Multi-Tenant.

Two groups of operations:
- scope helpers used by the sale engine inside its transaction (they never
  commit): locked reads and conditional stock updates;
- catalog maintenance used by the products blueprint (they commit).
"""
import logging
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import update, func, or_
from sqlalchemy.exc import IntegrityError

from stockpos.exceptions import ValidationError, NotFoundError, ConflictError, InsufficientStockError
from stockpos.models import Product, normalize_category, ProductCategory
from stockpos.utils.dates import utcnow

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


# =====================================================
# SCOPE HELPERS (sale engine, no commit)
# =====================================================

def get_product_for_update(session, tenant_id: int, product_id: int) -> Optional[Product]:
    """
    Read a product inside the current transaction, locking its row.

    populate_existing() discards any value cached in the identity map so the
    caller validates against the stock visible to this transaction.
    NOTE: SQLite ignores FOR UPDATE; conditional updates below still hold.
    """
    return (
        session.query(Product)
        .filter(Product.id == product_id, Product.tenant_id == tenant_id)
        .populate_existing()
        .with_for_update()
        .first()
    )


def decrement_stock(session, tenant_id: int, product_id: int, qty: int) -> bool:
    """
    Subtract `qty` units only if the result stays >= 0.

    Returns:
        True if the row was updated, False if stock was insufficient (or the
        product vanished) at write time.
    """
    result = session.execute(
        update(Product)
        .where(
            Product.id == product_id,
            Product.tenant_id == tenant_id,
            Product.stock >= qty
        )
        .values(stock=Product.stock - qty, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def increment_stock(session, tenant_id: int, product_id: int, qty: int) -> bool:
    """
    Add `qty` units back, regardless of the product's active flag or price.

    Returns:
        False when the product no longer exists (nothing to restore).
    """
    result = session.execute(
        update(Product)
        .where(Product.id == product_id, Product.tenant_id == tenant_id)
        .values(stock=Product.stock + qty, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def get_stock(session, tenant_id: int, product_id: int) -> Optional[int]:
    """Current stock as seen by this transaction (None if missing)."""
    return session.query(Product.stock).filter(
        Product.id == product_id,
        Product.tenant_id == tenant_id
    ).scalar()


# =====================================================
# CATALOG MAINTENANCE
# =====================================================

def _parse_price(value) -> Decimal:
    try:
        price = Decimal(str(value)).quantize(CENT)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError('El precio es inválido', field='price')
    if price < 0:
        raise ValidationError('El precio no puede ser negativo', field='price')
    return price


def _parse_non_negative_int(value, field: str, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{label} debe ser un número entero', field=field)
    if value < 0:
        raise ValidationError(f'{label} no puede ser negativo', field=field)
    return value


def _parse_category(value) -> ProductCategory:
    if value in (None, ''):
        return ProductCategory.OTROS
    category = normalize_category(value)
    if category is None:
        raise ValidationError('Categoría inválida', field='category')
    return category


def _parse_expiration(value) -> Optional[date]:
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError('Fecha de vencimiento inválida', field='expiration_date')


def get_product(session, tenant_id: int, product_id: int) -> Product:
    """Get product by ID (tenant-scoped), active or not."""
    product = session.query(Product).filter(
        Product.id == product_id,
        Product.tenant_id == tenant_id
    ).first()
    if not product:
        raise NotFoundError('Producto no encontrado', resource='product', resource_id=product_id)
    return product


def get_product_by_barcode(session, tenant_id: int, barcode: str) -> Product:
    """Find an active product by its barcode (tenant-scoped)."""
    product = session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.barcode == (barcode or '').strip(),
        Product.active.is_(True)
    ).first()
    if not product:
        raise NotFoundError(
            'Producto no encontrado con ese código de barras',
            resource='product', resource_id=barcode
        )
    return product


def list_products(session, tenant_id: int, search: str = '', category=None) -> List[Product]:
    """List active products, newest first, optionally filtered by name/barcode and category."""
    query = session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.active.is_(True)
    )

    if search:
        term = f'%{search[:100].lower()}%'
        query = query.filter(or_(
            func.lower(Product.name).like(term),
            Product.barcode.like(term)
        ))

    if category and category != 'Todos':
        parsed = normalize_category(category)
        if parsed is None:
            raise ValidationError('Categoría inválida', field='category')
        query = query.filter(Product.category == parsed)

    return query.order_by(Product.created_at.desc(), Product.id.desc()).all()


def _build_product(tenant_id: int, data: dict) -> Product:
    """Validate one product payload and build the (unsaved) Product."""
    barcode = (data.get('barcode') or '').strip()
    name = (data.get('name') or '').strip()
    if not barcode:
        raise ValidationError('El código de barras es requerido', field='barcode')
    if not name:
        raise ValidationError('El nombre del producto es requerido', field='name')
    if len(name) > 150:
        raise ValidationError('El nombre no puede exceder 150 caracteres', field='name')
    if 'price' not in data:
        raise ValidationError('El precio es requerido', field='price')

    return Product(
        tenant_id=tenant_id,
        barcode=barcode,
        name=name,
        price=_parse_price(data['price']),
        stock=_parse_non_negative_int(data.get('stock', 0), 'stock', 'El stock'),
        min_stock=_parse_non_negative_int(data.get('min_stock', 10), 'min_stock', 'El stock mínimo'),
        category=_parse_category(data.get('category')),
        image=data.get('image'),
        expiration_date=_parse_expiration(data.get('expiration_date')),
        active=True
    )


def create_product(session, tenant_id: int, data: dict) -> Product:
    """Create a product; the barcode must be unique within the tenant."""
    product = _build_product(tenant_id, data)
    barcode = product.barcode

    try:
        session.add(product)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError('Ya existe un producto con este código de barras', {'barcode': barcode})

    logger.info(f"[CATALOG] tenant={tenant_id} created product {product.id} ({barcode})")
    return product


def import_products(session, tenant_id: int, items, default_min_stock: int = 10) -> dict:
    """
    Bulk create products. Items whose barcode already exists (in the catalog
    or earlier in the same batch) or that fail validation are skipped; the
    rest are committed together.

    Returns:
        dict with 'inserted' (list of Product) and 'skipped'
        (list of {'index', 'barcode', 'reason'})
    """
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError('Debe proporcionar un array de productos', field='products')

    existing = {
        barcode for (barcode,) in session.query(Product.barcode).filter(Product.tenant_id == tenant_id)
    }

    inserted = []
    skipped = []
    for index, data in enumerate(items):
        if not isinstance(data, dict):
            skipped.append({'index': index, 'barcode': None, 'reason': 'Producto inválido'})
            continue

        barcode = (data.get('barcode') or '').strip() or None
        if barcode in existing:
            skipped.append({'index': index, 'barcode': barcode, 'reason': 'Código de barras existente'})
            continue

        try:
            product = _build_product(tenant_id, {'min_stock': default_min_stock, **data})
        except ValidationError as e:
            skipped.append({'index': index, 'barcode': barcode, 'reason': e.message})
            continue

        existing.add(product.barcode)
        inserted.append(product)

    if inserted:
        try:
            session.add_all(inserted)
            session.commit()
        except IntegrityError:
            # A concurrent create took one of the barcodes after the lookup
            session.rollback()
            raise ConflictError('Otro proceso creó productos con los mismos códigos de barras, reintente')

    logger.info(
        f"[CATALOG] tenant={tenant_id} imported {len(inserted)} products, skipped {len(skipped)}"
    )
    return {'inserted': inserted, 'skipped': skipped}


def update_product(session, tenant_id: int, product_id: int, data: dict) -> Product:
    """
    Update descriptive fields and price. Stock is only changed through
    adjust_stock() and the sale engine.
    """
    if 'stock' in data:
        raise ValidationError('El stock se modifica con el ajuste de stock', field='stock')

    product = get_product(session, tenant_id, product_id)
    try:
        _apply_product_changes(product, data)
    except ValidationError:
        session.rollback()
        raise

    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ConflictError('Ya existe otro producto con este código de barras')

    return product


def _apply_product_changes(product: Product, data: dict) -> None:
    if 'barcode' in data:
        barcode = (data.get('barcode') or '').strip()
        if not barcode:
            raise ValidationError('El código de barras es requerido', field='barcode')
        product.barcode = barcode
    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError('El nombre del producto es requerido', field='name')
        product.name = name
    if 'price' in data:
        product.price = _parse_price(data['price'])
    if 'min_stock' in data:
        product.min_stock = _parse_non_negative_int(data['min_stock'], 'min_stock', 'El stock mínimo')
    if 'category' in data:
        product.category = _parse_category(data['category'])
    if 'image' in data:
        product.image = data['image']
    if 'expiration_date' in data:
        product.expiration_date = _parse_expiration(data['expiration_date'])


def deactivate_product(session, tenant_id: int, product_id: int) -> Product:
    """Soft delete: products are never physically removed."""
    product = get_product(session, tenant_id, product_id)
    product.active = False
    session.commit()
    logger.info(f"[CATALOG] tenant={tenant_id} deactivated product {product_id}")
    return product


def adjust_stock(session, tenant_id: int, product_id: int, quantity, operation: str) -> Product:
    """
    Manual stock adjustment ('add' or 'subtract'), applied as a conditional
    update so it composes safely with in-flight sales.
    """
    qty = _parse_non_negative_int(quantity, 'quantity', 'La cantidad')
    if qty == 0:
        raise ValidationError('La cantidad debe ser mayor a 0', field='quantity')

    product = get_product(session, tenant_id, product_id)

    try:
        if operation == 'add':
            increment_stock(session, tenant_id, product_id, qty)
        elif operation == 'subtract':
            if not decrement_stock(session, tenant_id, product_id, qty):
                available = get_stock(session, tenant_id, product_id)
                raise InsufficientStockError(product.id, product.name, qty, available)
        else:
            raise ValidationError("La operación debe ser 'add' o 'subtract'", field='operation')
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(product)
    return product


def list_low_stock(session, tenant_id: int) -> List[Product]:
    """Active products at or below their minimum stock, lowest first."""
    return session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.active.is_(True),
        Product.stock <= Product.min_stock
    ).order_by(Product.stock.asc()).all()


def list_near_expiration(session, tenant_id: int, days: int = 20, today: Optional[date] = None) -> List[Product]:
    """Active products expiring within `days` days (today included)."""
    today = today or date.today()
    return session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.active.is_(True),
        Product.expiration_date.isnot(None),
        Product.expiration_date >= today,
        Product.expiration_date <= today + timedelta(days=days)
    ).order_by(Product.expiration_date.asc()).all()


def list_expired(session, tenant_id: int, today: Optional[date] = None) -> List[Product]:
    """Active products whose expiration date has passed."""
    today = today or date.today()
    return session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.active.is_(True),
        Product.expiration_date.isnot(None),
        Product.expiration_date < today
    ).order_by(Product.expiration_date.desc()).all()
