# backend/assetdesk/services/product_service.py
"""
Product Catalog Service

Catalog CRUD, search, stock receipts, and calibration bookkeeping.

STOCK: Product.quantity is set directly only when a product is created.
Afterwards it changes through stock_service (add stock, assignment, return),
so every change leaves a StockHistory row.

CALIBRATION: When a product requires calibration and no due date is given,
next_calibration_date is derived as last_calibration_date plus
calibration_frequency_months.
"""
from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import Product, ProductAssignment, ProductRequest
from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product, require_positive_int
from . import notification_service, stock_service
from .concurrency import run_in_transaction
from .workflow_service import load_actor
from assetdesk.time_utils import add_months, today


PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "category", "asset_type", "model_number", "serial_number",
    "requires_calibration", "calibration_frequency_months", "last_calibration_date",
    "next_calibration_date", "calibration_notes",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_MUTABLE_FIELDS | {"quantity"},
    required_on_create={"name"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(writable_fields=PRODUCT_MUTABLE_FIELDS)


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def apply_calibration_schedule(p: Product, explicit_next: bool = False) -> None:
    """Derive next_calibration_date unless the caller supplied one."""
    if not p.requires_calibration:
        return
    if explicit_next and p.next_calibration_date is not None:
        return
    if p.last_calibration_date and p.calibration_frequency_months:
        p.next_calibration_date = add_months(p.last_calibration_date, p.calibration_frequency_months)


def _ensure_serial_free(serial_number: str | None, product_id: int | None = None) -> None:
    if not serial_number:
        return
    query = db.session.query(Product).filter(Product.serial_number == serial_number)
    if product_id is not None:
        query = query.filter(Product.id != product_id)
    if query.first():
        raise ConflictError(f"Serial number '{serial_number}' is already in use")


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(
    search: str | None = None,
    category: str | None = None,
    asset_type: str | None = None,
    include_inactive: bool = False,
    available_only: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Catalog listing with optional search and pagination.

    Args:
        search: Case-insensitive match on name, model number, serial number, description
        category: Exact category filter
        asset_type: Exact asset type filter
        include_inactive: Include deactivated products
        available_only: Only products with quantity > 0
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product)
    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        base_query = base_query.filter(db.or_(
            Product.name.ilike(like),
            Product.model_number.ilike(like),
            Product.serial_number.ilike(like),
            Product.description.ilike(like),
        ))
    if category:
        base_query = base_query.filter(Product.category == category)
    if asset_type:
        base_query = base_query.filter(Product.asset_type == asset_type)
    if available_only:
        base_query = base_query.filter(Product.quantity > 0)
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_categories() -> list[str]:
    rows = db.session.query(Product.category).filter(
        Product.category.isnot(None), Product.is_active.is_(True)
    ).distinct().order_by(Product.category.asc()).all()
    return [r[0] for r in rows]


def create_product(payload: dict, actor_id: int, notify: bool = True) -> Product:
    """
    Create a product from a raw JSON payload.

    Initial quantity (if any) is recorded as an 'add' stock history row.

    Raises:
        PermissionDeniedError: Actor is not a monitor or admin
        ValidationError: Bad payload
        ConflictError: Duplicate serial number
    """
    actor = load_actor(actor_id, "manage_products")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    initial_quantity = patch.pop("quantity", None) or 0

    def _op():
        _ensure_serial_free(patch.get("serial_number"))
        product = Product(quantity=initial_quantity, added_by=actor.id, is_active=True)
        apply_product_patch(product, patch)
        apply_calibration_schedule(product, explicit_next="next_calibration_date" in patch)
        db.session.add(product)
        db.session.flush()
        if initial_quantity:
            stock_service.record_stock_history(product.id, stock_service.STOCK_ACTION_ADD,
                                               initial_quantity, actor.id, "Initial stock")
        return product

    product = run_in_transaction(_op)
    if notify:
        notification_service.product_added(product, actor)
    return product


def update_product(product_id: int, payload: dict, actor_id: int) -> Product:
    """
    Patch catalog fields. Quantity is not writable here (use add_stock).
    """
    actor = load_actor(actor_id, "manage_products")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        product = get_product(product_id)
        if "serial_number" in patch:
            _ensure_serial_free(patch["serial_number"], product_id=product.id)
        apply_product_patch(product, patch)
        apply_calibration_schedule(product, explicit_next="next_calibration_date" in patch)
        return product

    product = run_in_transaction(_op)
    notification_service.product_updated(product, actor, ", ".join(sorted(patch.keys())))
    return product


def add_stock(product_id: int, quantity, actor_id: int, notes: str | None = None) -> Product:
    """Receive units into stock atomically, with a StockHistory 'add' row."""
    actor = load_actor(actor_id, "manage_products")
    quantity = require_positive_int(quantity, "quantity")

    def _op():
        product = get_product(product_id)
        if not product.is_active:
            raise InvalidStateError(f"Product {product_id} is inactive")
        stock_service.add_stock(product.id, quantity, actor.id, notes)
        return product

    product = run_in_transaction(_op)
    notification_service.product_updated(product, actor, f"added {quantity} to stock")
    return product


def record_calibration(product_id: int, actor_id: int, calibrated_on=None, notes: str | None = None) -> Product:
    """Stamp a completed calibration and roll next_calibration_date forward."""
    actor = load_actor(actor_id, "manage_products")
    payload = {"last_calibration_date": calibrated_on or today().isoformat()}
    if notes is not None:
        payload["calibration_notes"] = notes
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)

    def _op():
        product = get_product(product_id)
        if not product.requires_calibration:
            raise InvalidStateError(f"Product {product_id} does not require calibration")
        apply_product_patch(product, patch)
        apply_calibration_schedule(product)
        return product

    product = run_in_transaction(_op)
    notification_service.product_updated(product, actor, "calibration recorded")
    return product


def deactivate_product(product_id: int, actor_id: int) -> Product:
    """
    Soft-delete a product.

    Refused while any unreturned assignment or pending request references it,
    so stock conservation can always be audited.
    """
    actor = load_actor(actor_id, "manage_products")

    def _op():
        product = get_product(product_id)
        outstanding = db.session.query(ProductAssignment).filter(
            ProductAssignment.product_id == product.id,
            ProductAssignment.is_returned.is_(False),
        ).count()
        if outstanding:
            raise InvalidStateError(f"Product {product_id} has {outstanding} unreturned assignment(s)")
        pending = db.session.query(ProductRequest).filter(
            ProductRequest.product_id == product.id,
            ProductRequest.status == "pending",
        ).count()
        if pending:
            raise InvalidStateError(f"Product {product_id} has {pending} pending request(s)")
        product.is_active = False
        return product

    product = run_in_transaction(_op)
    notification_service.product_updated(product, actor, "deactivated")
    return product


def reactivate_product(product_id: int, actor_id: int) -> Product:
    actor = load_actor(actor_id, "manage_products")

    def _op():
        product = get_product(product_id)
        if product.is_active:
            raise InvalidStateError(f"Product {product_id} is already active")
        product.is_active = True
        return product

    product = run_in_transaction(_op)
    notification_service.product_updated(product, actor, "reactivated")
    return product


def calibration_due(within_days: int = 30) -> list[Product]:
    """Active products whose next calibration falls within ``within_days`` (or is overdue)."""
    if within_days < 0:
        raise ValidationError("within_days must be >= 0")
    horizon = today() + timedelta(days=within_days)
    return db.session.query(Product).filter(
        Product.is_active.is_(True),
        Product.requires_calibration.is_(True),
        Product.next_calibration_date.isnot(None),
        Product.next_calibration_date <= horizon,
    ).order_by(Product.next_calibration_date.asc()).all()
