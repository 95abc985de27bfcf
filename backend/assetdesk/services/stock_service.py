# Overview: Atomic product quantity changes and stock history.

"""
Stock Counter

INVARIANT: Product.quantity never goes negative, and for every product
    quantity + sum(quantity of unreturned assignments) == total stock added

WHY a conditional UPDATE: Reading quantity, checking it in Python, and writing
it back lets two concurrent approvals both see enough stock. A single
    UPDATE products SET quantity = quantity - :n WHERE id = :id AND quantity >= :n
is atomic in every SQL backend; rowcount == 0 means the guard failed and
nothing changed.

None of these functions commit. They run inside the caller's transaction
so the quantity change and the workflow rows it belongs to commit together.
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import Product, StockHistory
from ..errors import InsufficientStockError, NotFoundError, ValidationError


STOCK_ACTION_ADD = "add"
STOCK_ACTION_ASSIGN = "assign"
STOCK_ACTION_RETURN = "return"


def adjust_quantity(product_id: int, delta: int) -> None:
    """
    Atomically add ``delta`` (may be negative) to a product's quantity.

    Raises:
        NotFoundError: Product does not exist
        InsufficientStockError: delta < 0 and on-hand stock is below -delta
    """
    if delta == 0:
        return

    stmt = update(Product).where(Product.id == product_id)
    if delta < 0:
        stmt = stmt.where(Product.quantity >= -delta)
    stmt = stmt.values(quantity=Product.quantity + delta).execution_options(synchronize_session=False)

    result = db.session.execute(stmt)

    if result.rowcount == 0:
        product = db.session.get(Product, product_id, populate_existing=True)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        raise InsufficientStockError(product_id, requested=-delta, available=product.quantity)

    # Identity map still holds the pre-UPDATE value
    product = db.session.get(Product, product_id)
    if product is not None:
        db.session.expire(product, ["quantity"])


def record_stock_history(product_id: int, action: str, quantity: int,
                         performed_by: int | None, notes: str | None = None) -> StockHistory:
    entry = StockHistory(
        product_id=product_id,
        action=action,
        quantity=quantity,
        performed_by=performed_by,
        notes=notes,
    )
    db.session.add(entry)
    return entry


def decrement_for_assignment(product_id: int, quantity: int, performed_by: int,
                             notes: str | None = None) -> None:
    adjust_quantity(product_id, -quantity)
    record_stock_history(product_id, STOCK_ACTION_ASSIGN, quantity, performed_by, notes)


def increment_for_return(product_id: int, quantity: int, performed_by: int,
                         notes: str | None = None) -> None:
    adjust_quantity(product_id, quantity)
    record_stock_history(product_id, STOCK_ACTION_RETURN, quantity, performed_by, notes)


def add_stock(product_id: int, quantity: int, performed_by: int, notes: str | None = None) -> None:
    """Receive new units into stock (no commit)."""
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    adjust_quantity(product_id, quantity)
    record_stock_history(product_id, STOCK_ACTION_ADD, quantity, performed_by, notes)


def get_stock_history(product_id: int | None = None, limit: int = 200) -> list[StockHistory]:
    query = db.session.query(StockHistory)
    if product_id is not None:
        query = query.filter(StockHistory.product_id == product_id)
    return query.order_by(StockHistory.performed_at.desc(), StockHistory.id.desc()).limit(limit).all()
