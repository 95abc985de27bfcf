# Overview: Flask API routes for the product catalog, stock, CSV upload, and attachments.

from flask import Blueprint, request, jsonify, current_app, g, Response, send_file

from ..errors import WorkflowError
from ..decorators import require_auth, require_operation
from ..validation import parse_bool
from ..services import product_service, stock_service, import_service, attachment_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _error(e: WorkflowError):
    return jsonify(e.to_dict()), e.status_code


@products_bp.get("")
@require_auth
def list_products_route():
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    include_inactive = parse_bool(request.args.get("include_inactive")) and g.current_user.role != "employee"
    result = product_service.list_products(
        search=request.args.get("q"),
        category=request.args.get("category"),
        asset_type=request.args.get("asset_type"),
        include_inactive=include_inactive,
        available_only=parse_bool(request.args.get("available")),
        page=page,
        per_page=per_page,
    )
    return jsonify(result)


@products_bp.get("/categories")
@require_auth
def list_categories_route():
    return jsonify({"items": product_service.list_categories()})


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify({"product": product_service.get_product(product_id).to_dict()})
    except WorkflowError as e:
        return _error(e)


@products_bp.post("")
@require_auth
@require_operation("manage_products")
def create_product_route():
    payload = request.get_json(silent=True)
    try:
        product = product_service.create_product(payload, g.current_user.id)
        return jsonify({"product": product.to_dict()}), 201
    except WorkflowError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_operation("manage_products")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True)
    try:
        product = product_service.update_product(product_id, payload, g.current_user.id)
        return jsonify({"product": product.to_dict()})
    except WorkflowError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_operation("manage_products")
def deactivate_product_route(product_id: int):
    try:
        product = product_service.deactivate_product(product_id, g.current_user.id)
        return jsonify({"product": product.to_dict()})
    except WorkflowError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/reactivate")
@require_auth
@require_operation("manage_products")
def reactivate_product_route(product_id: int):
    try:
        product = product_service.reactivate_product(product_id, g.current_user.id)
        return jsonify({"product": product.to_dict()})
    except WorkflowError as e:
        return _error(e)


@products_bp.post("/<int:product_id>/stock")
@require_auth
@require_operation("manage_products")
def add_stock_route(product_id: int):
    data = request.get_json(silent=True) or {}
    try:
        product = product_service.add_stock(product_id, data.get("quantity"), g.current_user.id,
                                            notes=data.get("notes"))
        return jsonify({"product": product.to_dict()})
    except WorkflowError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to add stock to product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/history")
@require_auth
@require_operation("view_reports")
def stock_history_route(product_id: int):
    try:
        product_service.get_product(product_id)
    except WorkflowError as e:
        return _error(e)
    history = stock_service.get_stock_history(product_id, limit=request.args.get("limit", 200, type=int))
    return jsonify({"items": [h.to_dict() for h in history]})


@products_bp.post("/<int:product_id>/calibration")
@require_auth
@require_operation("manage_products")
def record_calibration_route(product_id: int):
    data = request.get_json(silent=True) or {}
    try:
        product = product_service.record_calibration(
            product_id, g.current_user.id,
            calibrated_on=data.get("calibrated_on"), notes=data.get("notes"),
        )
        return jsonify({"product": product.to_dict()})
    except WorkflowError as e:
        return _error(e)


# =============================================================================
# CSV BULK UPLOAD
# =============================================================================

@products_bp.get("/import/template")
@require_auth
@require_operation("manage_products")
def import_template_route():
    return Response(
        import_service.template_csv(),
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=product_template.csv"},
    )


@products_bp.post("/import")
@require_auth
@require_operation("manage_products")
def import_products_route():
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    file = request.files["file"]
    filename = file.filename or ""
    if not filename.lower().endswith(".csv"):
        return jsonify({"error": "Unsupported file format (CSV required)"}), 400

    try:
        text = import_service.decode_upload(file.stream.read())
        result = import_service.import_products_csv(text, g.current_user.id)
        return jsonify(result.to_dict()), 201
    except WorkflowError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to import products CSV")
        return jsonify({"error": "Failed to parse upload"}), 400


# =============================================================================
# ATTACHMENTS
# =============================================================================

@products_bp.get("/<int:product_id>/attachments")
@require_auth
def list_attachments_route(product_id: int):
    try:
        items = attachment_service.list_attachments(product_id)
        return jsonify({"items": [a.to_dict() for a in items]})
    except WorkflowError as e:
        return _error(e)


@products_bp.post("/<int:product_id>/attachments")
@require_auth
@require_operation("manage_attachments")
def upload_attachment_route(product_id: int):
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400
    try:
        attachment = attachment_service.save_attachment(product_id, request.files["file"], g.current_user.id)
        return jsonify({"attachment": attachment.to_dict()}), 201
    except WorkflowError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to upload attachment for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/attachments/<int:attachment_id>")
@require_auth
def download_attachment_route(product_id: int, attachment_id: int):
    try:
        attachment = attachment_service.get_attachment(product_id, attachment_id)
    except WorkflowError as e:
        return _error(e)
    return send_file(
        attachment_service.stored_path(attachment),
        mimetype=attachment.content_type,
        as_attachment=True,
        download_name=attachment.original_filename,
    )


@products_bp.delete("/<int:product_id>/attachments/<int:attachment_id>")
@require_auth
@require_operation("manage_attachments")
def delete_attachment_route(product_id: int, attachment_id: int):
    try:
        attachment_service.delete_attachment(product_id, attachment_id, g.current_user.id)
        return jsonify({"message": "Attachment deleted"})
    except WorkflowError as e:
        return _error(e)
