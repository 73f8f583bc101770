"""
Catalog service - warehouses, products and quantity on hand.
The note ledger is the only caller of decrement_quantity.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional

from flask import current_app, has_app_context
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, selectinload

from delivery_notes.models import NoteLine, Product, Warehouse
from delivery_notes.exceptions import (
    ValidationError, NotFoundError, UnknownProductError, NegativeStockError
)

logger = logging.getLogger(__name__)

DEFAULT_LOW_STOCK_THRESHOLD = 10


def _require_positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f'{field} must be a positive integer, got {value!r}')
    return value


def _low_stock_threshold() -> int:
    if has_app_context():
        return current_app.config.get('LOW_STOCK_THRESHOLD', DEFAULT_LOW_STOCK_THRESHOLD)
    return DEFAULT_LOW_STOCK_THRESHOLD


# =====================================================
# READS
# =====================================================

def get_product(session, product_id: int) -> Optional[Product]:
    """Get product by id, or None."""
    return session.get(Product, product_id)


def product_exists(session, product_id: int) -> bool:
    """Check whether a product id resolves."""
    return session.query(Product.id).filter(Product.id == product_id).first() is not None


def lock_products(session, product_ids: Iterable[int]) -> Dict[int, Product]:
    """
    Lock product rows FOR UPDATE and return them keyed by id.

    Rows are locked in id order so two transactions touching the same
    products queue up instead of deadlocking. Ids that do not resolve are
    simply absent from the result.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    products = session.query(Product).filter(
        Product.id.in_(ids)
    ).order_by(Product.id).with_for_update().populate_existing().all()
    return {p.id: p for p in products}


def list_products(session, search: str = None, low_stock: bool = False) -> List[Product]:
    """
    List products with their warehouse.

    Args:
        session: SQLAlchemy session
        search: Case-insensitive substring of the product name
        low_stock: Only products below LOW_STOCK_THRESHOLD
    """
    query = session.query(Product).options(joinedload(Product.warehouse))

    if search:
        query = query.filter(Product.name.ilike(f'%{search.strip()}%'))

    if low_stock:
        query = query.filter(Product.quantity < _low_stock_threshold())

    return query.order_by(Product.name, Product.id).all()


def count_low_stock(session) -> int:
    """Number of products below LOW_STOCK_THRESHOLD."""
    return session.query(Product).filter(Product.quantity < _low_stock_threshold()).count()


# =====================================================
# MUTATIONS
# =====================================================

def decrement_quantity(session, product_id: int, amount: int) -> Product:
    """
    Decrement quantity on hand by amount inside the caller's transaction.

    The check and the write are a single conditional UPDATE, so a concurrent
    decrement can never take the row below zero, even on backends without
    row locks. Rejects instead of clamping. Does not commit.

    Raises:
        ValidationError: amount is not a positive integer
        UnknownProductError: product does not exist
        NegativeStockError: the result would be negative
    """
    _require_positive_int(amount, 'amount')

    result = session.execute(
        update(Product)
        .where(Product.id == product_id, Product.quantity >= amount)
        .values(quantity=Product.quantity - amount)
        .execution_options(synchronize_session=False)
    )

    # Refresh the identity map copy so callers see the new quantity
    product = session.get(Product, product_id, populate_existing=True)
    if product is None:
        raise UnknownProductError(product_id)

    if result.rowcount != 1:
        raise NegativeStockError(product.name, amount, product.quantity, product_id=product.id)

    logger.debug(f"Product {product.id} ({product.code}) decremented by {amount}, now {product.quantity}")
    return product


def create_warehouse(session, name: str, address: str = None) -> Warehouse:
    """Register a warehouse and commit."""
    if not name or not name.strip():
        raise ValidationError('Warehouse name is required')

    warehouse = Warehouse(name=name.strip(), address=(address or '').strip() or None)
    try:
        session.add(warehouse)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationError(f"Warehouse '{name.strip()}' already exists")

    logger.info(f"Warehouse created: {warehouse.id} ({warehouse.name})")
    return warehouse


def create_product(session, warehouse_id: int, code: str, name: str, price, quantity: int = 0) -> Product:
    """
    Register a product in a warehouse and commit.

    Raises:
        ValidationError: blank code/name, negative price or quantity, code taken
        NotFoundError: warehouse does not exist
    """
    code = _require_text(code, 'Product code')
    name = _require_text(name, 'Product name')
    price = _parse_price(price)
    quantity = _require_non_negative_int(quantity)
    _require_warehouse(session, warehouse_id)

    product = Product(
        warehouse_id=warehouse_id,
        code=code,
        name=name,
        price=price,
        quantity=quantity
    )
    try:
        session.add(product)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationError(f"Product code '{code}' already exists")

    logger.info(f"Product created: {product.id} ({product.code}) qty={product.quantity}")
    return product


def update_product(session, product_id: int, code: str = None, name: str = None, price=None,
                   quantity: int = None, warehouse_id: int = None) -> Product:
    """
    Edit a product and commit. Only the given fields change.

    Setting quantity is how stock is replenished. Notes already recorded
    keep the price they were committed with.

    Raises:
        UnknownProductError: product does not exist
        NotFoundError: target warehouse does not exist
        ValidationError: blank code/name, negative price or quantity, code taken
    """
    changes = {}
    if code is not None:
        changes['code'] = _require_text(code, 'Product code')
    if name is not None:
        changes['name'] = _require_text(name, 'Product name')
    if price is not None:
        changes['price'] = _parse_price(price)
    if quantity is not None:
        changes['quantity'] = _require_non_negative_int(quantity)
    if warehouse_id is not None:
        _require_warehouse(session, warehouse_id)
        changes['warehouse_id'] = warehouse_id

    # Lock the row so a note being recorded does not interleave with the edit
    product = session.get(Product, product_id, with_for_update=True, populate_existing=True)
    if product is None:
        session.rollback()
        raise UnknownProductError(product_id)

    for field, value in changes.items():
        setattr(product, field, value)

    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationError(f"Product code '{changes.get('code')}' already exists")

    logger.info(f"Product updated: {product.id} ({product.code}) fields={sorted(changes)}")
    return product


def delete_product(session, product_id: int) -> None:
    """
    Delete a product and commit.

    Products that appear on a note cannot be deleted, the note lines
    reference them.

    Raises:
        UnknownProductError: product does not exist
        ValidationError: product is referenced by notes
    """
    product = session.get(Product, product_id)
    if product is None:
        raise UnknownProductError(product_id)

    note_count = session.query(func.count(func.distinct(NoteLine.note_id))).filter(
        NoteLine.product_id == product_id
    ).scalar()
    if note_count:
        raise ValidationError(
            f"Product '{product.code}' is on {note_count} note(s) and cannot be deleted",
            payload={'product_id': product_id, 'note_count': note_count}
        )

    code = product.code
    try:
        session.delete(product)
        session.commit()
    except IntegrityError:
        # A note referencing the product was committed after the check
        session.rollback()
        raise ValidationError(f"Product '{code}' is on a note and cannot be deleted")

    logger.info(f"Product deleted: {product_id} ({code})")


def list_warehouses(session) -> List[Warehouse]:
    """All warehouses by name, with their products loaded."""
    return session.query(Warehouse).options(
        selectinload(Warehouse.products)
    ).order_by(Warehouse.name, Warehouse.id).all()


# =====================================================
# VALIDATION HELPERS
# =====================================================

def _require_text(value, label: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f'{label} is required')
    return str(value).strip()


def _parse_price(price) -> Decimal:
    try:
        price = Decimal(str(price)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f'Invalid price: {price!r}')
    if price < 0:
        raise ValidationError('Price cannot be negative')
    return price


def _require_non_negative_int(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError(f'Quantity must be a non-negative integer, got {quantity!r}')
    return quantity


def _require_warehouse(session, warehouse_id: int) -> Warehouse:
    warehouse = session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError(f'Warehouse {warehouse_id} not found')
    return warehouse
