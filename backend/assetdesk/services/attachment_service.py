# Overview: Product document storage on local disk.

"""
Attachment Store

Files live under UPLOAD_FOLDER/products/<product_id>/ with a random stored
name; the original (sanitized) filename is kept on the ProductAttachment row.
The row is committed only after the file is on disk, and the file is
removed again if the commit fails.
"""

from __future__ import annotations

import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

from ..extensions import db
from ..models import ProductAttachment
from ..errors import NotFoundError, ValidationError
from . import activity_service
from .concurrency import run_in_transaction
from .product_service import get_product
from .workflow_service import load_actor


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def allowed_file(filename: str) -> bool:
    allowed = current_app.config.get("ALLOWED_ATTACHMENT_EXTENSIONS", set())
    return _extension(filename) in allowed


def product_dir(product_id: int) -> str:
    return os.path.join(current_app.config["UPLOAD_FOLDER"], "products", str(product_id))


def stored_path(attachment: ProductAttachment) -> str:
    return os.path.join(product_dir(attachment.product_id), attachment.stored_filename)


def save_attachment(product_id: int, file_storage, actor_id: int) -> ProductAttachment:
    """
    Persist an uploaded werkzeug FileStorage for a product.

    Raises:
        PermissionDeniedError: Actor is not a monitor or admin
        NotFoundError: Unknown product
        ValidationError: Missing file or disallowed extension
    """
    actor = load_actor(actor_id, "manage_attachments")
    get_product(product_id)

    original = secure_filename(file_storage.filename or "")
    if not original:
        raise ValidationError("A file is required")
    if not allowed_file(original):
        raise ValidationError(f"File type .{_extension(original) or '?'} is not allowed")

    directory = product_dir(product_id)
    os.makedirs(directory, exist_ok=True)
    stored_name = f"{uuid.uuid4().hex}.{_extension(original)}"
    path = os.path.join(directory, stored_name)
    file_storage.save(path)
    size = os.path.getsize(path)

    def _op():
        attachment = ProductAttachment(
            product_id=product_id,
            original_filename=original,
            stored_filename=stored_name,
            content_type=file_storage.mimetype,
            size_bytes=size,
            uploaded_by=actor.id,
        )
        db.session.add(attachment)
        db.session.flush()
        return attachment

    try:
        attachment = run_in_transaction(_op)
    except Exception:
        os.remove(path)
        raise

    activity_service.log_activity(actor.id, "attachment_uploaded", "product", product_id, original)
    return attachment


def list_attachments(product_id: int) -> list[ProductAttachment]:
    get_product(product_id)
    return db.session.query(ProductAttachment).filter_by(product_id=product_id).order_by(
        ProductAttachment.uploaded_at.desc(), ProductAttachment.id.desc()
    ).all()


def get_attachment(product_id: int, attachment_id: int) -> ProductAttachment:
    attachment = db.session.query(ProductAttachment).filter_by(id=attachment_id, product_id=product_id).first()
    if attachment is None:
        raise NotFoundError(f"Attachment {attachment_id} not found")
    return attachment


def delete_attachment(product_id: int, attachment_id: int, actor_id: int) -> None:
    actor = load_actor(actor_id, "manage_attachments")

    def _op():
        attachment = get_attachment(product_id, attachment_id)
        path = stored_path(attachment)
        name = attachment.original_filename
        db.session.delete(attachment)
        return path, name

    path, name = run_in_transaction(_op)
    if os.path.exists(path):
        os.remove(path)
    activity_service.log_activity(actor.id, "attachment_deleted", "product", product_id, name)
