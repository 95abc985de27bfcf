from __future__ import annotations

from ..extensions import db
from assetdesk.time_utils import to_utc_z, to_iso_date


class Product(db.Model):
    """
    Catalog item.

    STOCK DESIGN DECISION:
    Product.quantity is the on-hand count and the single shared mutable
    counter in the system. It is never read-modified-written from Python;
    every change goes through stock_service.adjust_quantity, which issues one
    conditional UPDATE. The CHECK constraint is the last line of defence.

    CONSERVATION:
    quantity + sum(quantity of unreturned assignments) == total stock ever added
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_nonnegative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category_active", "category", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=True)
    asset_type = db.Column(db.String(64), nullable=True)
    model_number = db.Column(db.String(128), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True, unique=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    # Calibration metadata (optional)
    requires_calibration = db.Column(db.Boolean, nullable=False, default=False)
    calibration_frequency_months = db.Column(db.Integer, nullable=True)
    last_calibration_date = db.Column(db.Date, nullable=True)
    next_calibration_date = db.Column(db.Date, nullable=True, index=True)
    calibration_notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    added_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "asset_type": self.asset_type,
            "model_number": self.model_number,
            "serial_number": self.serial_number,
            "quantity": self.quantity,
            "requires_calibration": self.requires_calibration,
            "calibration_frequency_months": self.calibration_frequency_months,
            "last_calibration_date": to_iso_date(self.last_calibration_date),
            "next_calibration_date": to_iso_date(self.next_calibration_date),
            "calibration_notes": self.calibration_notes,
            "is_active": self.is_active,
            "added_by": self.added_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockHistory(db.Model):
    """
    Append-only log of quantity changes (add / assign / return).

    Written in the same transaction as the quantity change it records.
    Display only: Product.quantity stays authoritative.
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.CheckConstraint("action IN ('add', 'assign', 'return')", name="ck_stock_history_action"),
        db.Index("ix_stock_history_product_performed", "product_id", "performed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    action = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    performed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    performed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    notes = db.Column(db.Text, nullable=True)

    product = db.relationship("Product", backref=db.backref("stock_history", lazy=True))
    performer = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "action": self.action,
            "quantity": self.quantity,
            "performed_by": self.performed_by,
            "performed_by_name": self.performer.full_name if self.performer else None,
            "performed_at": to_utc_z(self.performed_at),
            "notes": self.notes,
        }


class ProductAttachment(db.Model):
    """Document stored on disk and attached to a product (manuals, certificates)."""
    __tablename__ = "product_attachments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    original_filename = db.Column(db.String(255), nullable=False)
    stored_filename = db.Column(db.String(255), nullable=False, unique=True)
    content_type = db.Column(db.String(128), nullable=True)
    size_bytes = db.Column(db.Integer, nullable=False, default=0)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("attachments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "original_filename": self.original_filename,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": to_utc_z(self.uploaded_at),
        }
