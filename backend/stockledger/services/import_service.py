# Overview: Service-layer operations for stock imports; one batch of rows becomes movements in one transaction.

"""
Import Reconciler

Row numbers follow the spreadsheet view: the header is row 1, so the first
data row is row 2.

A batch is all or nothing. Row-level problems (blank product, quantity
that is not a positive whole number, unusable counter on a count) skip
the row and are reported; fatal problems (unknown product, distributed
quantity mismatch, storage failure) roll back every movement of the batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, BinaryIO

from flask import current_app

from ..extensions import db
from ..models import Counter
from ..validation import ValidationError
from .concurrency import run_in_transaction
from .daily_session_service import get_open_session, require_open_session
from .import_files import read_rows
from .import_schemas import (
    SCHEMAS,
    ImportContext,
    ImportHeaderError,
    QuantityMismatchError,
    StockImportError,
    UnknownProductError,
    normalize_headers,
)
from .movement_service import get_tenant, tenant_today

__all__ = [
    "ImportHeaderError",
    "ImportResult",
    "QuantityMismatchError",
    "StockImportError",
    "UnknownProductError",
    "commit",
    "import_file",
]

FIRST_DATA_ROW = 2


@dataclass
class ImportResult:
    import_type: str
    total_rows: int = 0
    movement_ids: list[int] = field(default_factory=list)
    skipped_rows: list[tuple[int, str]] = field(default_factory=list)

    @property
    def recorded(self) -> int:
        return len(self.movement_ids)

    @property
    def skipped(self) -> int:
        return len(self.skipped_rows)

    def to_dict(self) -> dict:
        return {
            "import_type": self.import_type,
            "total_rows": self.total_rows,
            "recorded": self.recorded,
            "skipped": self.skipped,
            "movement_ids": list(self.movement_ids),
            "skipped_rows": [
                {"row": row_number, "reason": reason}
                for row_number, reason in self.skipped_rows
            ],
        }


def _counters_by_key(tenant_id: int) -> dict[str, Counter]:
    counters = db.session.query(Counter).filter_by(tenant_id=tenant_id, is_active=True).all()
    return {c.name.strip().lower(): c for c in counters}


def commit(
    rows: list[dict[str, Any]],
    tenant_id: int,
    user_id: int | None,
    import_type: str,
    **options: Any,
) -> ImportResult:
    """
    Apply one batch of import rows.

    Options:
        strict_counter (physical_count, default True)

    Raises:
        ValidationError / ImportHeaderError: unknown kind, no rows, bad header
        NoOpenSessionError: physical counts without an open session
        UnknownProductError, QuantityMismatchError: fatal row problems
        StorageError: database failure (batch rolled back)
    """
    schema = SCHEMAS.get(import_type)
    if schema is None:
        raise ValidationError(f"Unsupported import_type: {import_type}")
    if not isinstance(rows, list):
        raise ValidationError("rows must be a list")
    if not rows:
        raise ValidationError("No rows to import")
    get_tenant(tenant_id)

    normalized = [normalize_headers(r) for r in rows]
    headers: set[str] = set()
    for r in normalized:
        headers.update(r)

    counters = _counters_by_key(tenant_id)
    schema.check_headers(headers, counters)

    if schema.requires_open_session:
        session = require_open_session(tenant_id)
    else:
        session = get_open_session(tenant_id)

    ctx = ImportContext(
        tenant_id=tenant_id,
        user_id=user_id,
        session=session,
        movement_date=session.session_date if session is not None else tenant_today(tenant_id),
        counters=counters,
        options=options,
    )
    result = ImportResult(import_type=import_type, total_rows=len(normalized))

    def _op():
        for row_number, raw in enumerate(normalized, start=FIRST_DATA_ROW):
            row = schema.normalize_row(raw, row_number)
            errors = schema.validate_row(row, ctx)
            if errors:
                result.skipped_rows.append((row_number, "; ".join(errors)))
                continue
            result.movement_ids.extend(schema.post_row(row, ctx))
        return result

    try:
        run_in_transaction(_op)
    except StockImportError as exc:
        current_app.logger.warning("Import %s for tenant %s rolled back: %s", import_type, tenant_id, exc)
        raise

    current_app.logger.info(
        "Imported %s for tenant %s: %d rows, %d movements, %d skipped",
        import_type, tenant_id, result.total_rows, result.recorded, result.skipped,
    )
    return result


def import_file(
    stream: BinaryIO,
    filename: str | None,
    *,
    tenant_id: int,
    user_id: int | None,
    import_type: str,
    **options: Any,
) -> ImportResult:
    """read_rows + commit for an uploaded CSV / JSON / Excel file."""
    return commit(read_rows(stream, filename), tenant_id, user_id, import_type, **options)
