# Overview: CSV bulk product upload with a per-row error report.

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from typing import Any

from flask import current_app

from ..errors import ValidationError, WorkflowError
from . import product_service
from .workflow_service import load_actor


TEMPLATE_COLUMNS = [
    "name",
    "description",
    "category",
    "asset_type",
    "model_number",
    "serial_number",
    "quantity",
    "requires_calibration",
    "calibration_frequency_months",
    "last_calibration_date",
    "calibration_notes",
]

REQUIRED_COLUMNS = {"name"}

MAX_ROWS = 5000


@dataclass
class ImportResult:
    created: list[int] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    total_rows: int = 0

    def to_dict(self) -> dict:
        return {
            "total_rows": self.total_rows,
            "created_count": len(self.created),
            "error_count": len(self.errors),
            "created_product_ids": self.created,
            "errors": self.errors,
        }


def template_csv() -> str:
    """Header row plus one example row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(TEMPLATE_COLUMNS)
    writer.writerow([
        "Digital Multimeter", "Handheld DMM", "Test Equipment", "Instrument",
        "DMM-87V", "SN-0001", "5", "true", "12", "2024-01-15", "Annual calibration",
    ])
    return buffer.getvalue()


def _normalize_row(row: dict[str, Any]) -> dict[str, Any]:
    cleaned = {}
    for key, value in row.items():
        if key is None:
            continue
        column = key.strip().lower().replace(" ", "_")
        if column not in TEMPLATE_COLUMNS:
            continue
        cleaned[column] = value.strip() if isinstance(value, str) else value
    # Blank optional cells are simply not set
    return {k: v for k, v in cleaned.items() if v not in ("", None) or k in REQUIRED_COLUMNS}


def read_csv(text: str) -> list[dict[str, Any]]:
    reader = csv.DictReader(io.StringIO(text))
    headers = {(h or "").strip().lower().replace(" ", "_") for h in (reader.fieldnames or [])}
    missing = REQUIRED_COLUMNS - headers
    if missing:
        raise ValidationError(f"Missing required columns: {', '.join(sorted(missing))}")
    rows = list(reader)
    if len(rows) > MAX_ROWS:
        raise ValidationError(f"CSV exceeds {MAX_ROWS} rows")
    return rows


def import_products_csv(text: str, actor_id: int) -> ImportResult:
    """
    Create one product per CSV row.

    Each row is its own transaction: a bad row is reported (1-based line
    number, counting the header as line 1) and skipped while good rows are
    kept.

    Raises:
        PermissionDeniedError: Actor is not a monitor or admin
        ValidationError: Unreadable file or missing required columns
    """
    load_actor(actor_id, "manage_products")
    rows = read_csv(text)
    result = ImportResult(total_rows=len(rows))

    for index, raw in enumerate(rows, start=2):
        payload = _normalize_row(raw)
        try:
            product = product_service.create_product(payload, actor_id, notify=False)
        except WorkflowError as e:
            result.errors.append({"line": index, "name": payload.get("name"), "error": e.message})
            continue
        result.created.append(product.id)

    current_app.logger.info(
        "CSV product import by user %s: %s created, %s failed",
        actor_id, len(result.created), len(result.errors),
    )
    return result


def decode_upload(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded")
