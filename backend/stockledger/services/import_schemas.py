from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..models import (
    Counter,
    DailySession,
    Item,
    MOVEMENT_CLOSING,
    MOVEMENT_RESTOCK,
    MOVEMENT_SALE,
)
from ..validation import ValidationError, to_cents, to_int, to_text
from . import catalog_service
from .movement_service import record_movement


class StockImportError(Exception):
    """Fatal import problem; the whole batch is rolled back."""


class ImportHeaderError(ValidationError):
    """The header row cannot be imported as the requested kind."""


class UnknownProductError(StockImportError):
    def __init__(self, row_number: int, product: str | None):
        self.row_number = row_number
        self.product = product
        super().__init__(f"Row {row_number}: unknown product '{product}'")


class QuantityMismatchError(StockImportError):
    def __init__(self, row_number: int, expected: int, actual: int):
        self.row_number = row_number
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Row {row_number}: Quantity mismatch: total={expected}, distributed={actual}"
        )


PRODUCT_COLUMNS = ("product", "item", "name")
SKU_COLUMNS = ("sku", "code")
ADD_PREFIX = "add_"


def normalize_headers(raw_row: dict[str, Any]) -> dict[str, Any]:
    """Trim and lower-case column keys; drop unnamed columns."""
    out: dict[str, Any] = {}
    for key, value in raw_row.items():
        if key is None:
            continue
        name = str(key).strip().lower()
        if name:
            out[name] = value
    return out


def _first(raw_row: dict[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        if name in raw_row and raw_row[name] not in (None, ""):
            return raw_row[name]
    return None


@dataclass
class ImportRow:
    """One source row after header normalisation and cell typing."""
    row_number: int
    product: str | None = None
    sku: str | None = None
    counter: str | None = None
    quantity: int | None = None
    total_quantity: int | None = None
    notes: str | None = None
    brand: str | None = None
    category: str | None = None
    unit: str | None = None
    cost_price_cents: int | None = None
    selling_price_cents: int | None = None
    reorder_level: int | None = None
    # counter key (lower-cased name) -> quantity
    cells: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def label(self) -> str | None:
        return self.sku or self.product

    def item_attributes(self) -> dict:
        payload: dict[str, Any] = {"name": self.product}
        if self.sku:
            payload["code"] = self.sku
        for key in ("brand", "category", "unit", "cost_price_cents", "selling_price_cents", "reorder_level"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


@dataclass
class ImportContext:
    tenant_id: int
    user_id: int | None
    session: DailySession | None
    movement_date: date
    counters: dict[str, Counter]
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def session_id(self) -> int | None:
        return self.session.id if self.session is not None else None


def _parse_cell(row: ImportRow, value: Any, column: str) -> int | None:
    try:
        return to_int(value)
    except ValidationError:
        row.errors.append(f"{column}: '{value}' is not a whole number")
        return None


class BaseImportSchema:
    """
    One import kind.

    normalize_row types the cells, validate_row returns skip reasons (an
    empty list means the row is accepted) and post_row writes the row's
    movements. Fatal problems raise from validate_row or post_row.
    """
    movement_type: str = MOVEMENT_RESTOCK
    requires_open_session = False

    def check_headers(self, headers: set[str], counters: dict[str, Counter]) -> None:
        if not headers & set(PRODUCT_COLUMNS + SKU_COLUMNS):
            raise ImportHeaderError("Missing product column (product or sku)")

    def normalize_row(self, raw_row: dict[str, Any], row_number: int) -> ImportRow:
        raise NotImplementedError

    def validate_row(self, row: ImportRow, ctx: ImportContext) -> list[str]:
        raise NotImplementedError

    def post_row(self, row: ImportRow, ctx: ImportContext) -> list[int]:
        raise NotImplementedError

    def _base_row(self, raw_row: dict[str, Any], row_number: int) -> ImportRow:
        return ImportRow(
            row_number=row_number,
            product=to_text(_first(raw_row, PRODUCT_COLUMNS)),
            sku=to_text(_first(raw_row, SKU_COLUMNS)),
            notes=to_text(raw_row.get("notes")),
        )

    def resolve_item(self, row: ImportRow, ctx: ImportContext) -> Item:
        item = catalog_service.find_item(ctx.tenant_id, code=row.sku, name=row.product)
        if item is None:
            raise UnknownProductError(row.row_number, row.label)
        return item

    def _record(self, ctx: ImportContext, item: Item, quantity: int, counter: Counter | None, notes: str | None) -> int:
        return record_movement(
            tenant_id=ctx.tenant_id,
            item_id=item.id,
            counter_id=counter.id if counter is not None else None,
            session_id=ctx.session_id,
            movement_type=self.movement_type,
            quantity=quantity,
            movement_date=ctx.movement_date,
            notes=notes,
            actor_id=ctx.user_id,
            commit=False,
        )


class QuantitySchema(BaseImportSchema):
    """product / sku, counter, quantity: one movement per row."""

    def check_headers(self, headers: set[str], counters: dict[str, Counter]) -> None:
        super().check_headers(headers, counters)
        if "quantity" not in headers:
            raise ImportHeaderError("Missing quantity column")

    def normalize_row(self, raw_row: dict[str, Any], row_number: int) -> ImportRow:
        row = self._base_row(raw_row, row_number)
        row.counter = to_text(raw_row.get("counter"))
        row.quantity = _parse_cell(row, raw_row.get("quantity"), "quantity")
        return row

    def validate_row(self, row: ImportRow, ctx: ImportContext) -> list[str]:
        errors = list(row.errors)
        if not row.label:
            errors.append("product is required")
        if not row.errors:
            if row.quantity is None:
                errors.append("quantity is required")
            elif row.quantity <= 0:
                errors.append("quantity must be greater than zero")
        return errors

    def resolve_counter(self, row: ImportRow, ctx: ImportContext) -> Counter | None:
        if not row.counter:
            return None
        return ctx.counters.get(row.counter.strip().lower())

    def post_row(self, row: ImportRow, ctx: ImportContext) -> list[int]:
        item = self.resolve_item(row, ctx)
        counter = self.resolve_counter(row, ctx)
        return [self._record(ctx, item, row.quantity, counter, row.notes)]


class SalesSchema(QuantitySchema):
    movement_type = MOVEMENT_SALE


class RestockSchema(QuantitySchema):
    """Stock arrivals; unknown products are created from the row's attributes."""
    movement_type = MOVEMENT_RESTOCK

    def normalize_row(self, raw_row: dict[str, Any], row_number: int) -> ImportRow:
        row = super().normalize_row(raw_row, row_number)
        row.brand = to_text(raw_row.get("brand"))
        row.category = to_text(raw_row.get("category"))
        row.unit = to_text(raw_row.get("unit"))
        row.reorder_level = _parse_cell(row, raw_row.get("reorder_level"), "reorder_level")
        for column, attr in (("cost_price", "cost_price_cents"), ("selling_price", "selling_price_cents")):
            try:
                setattr(row, attr, to_cents(raw_row.get(column)))
            except ValidationError:
                row.errors.append(f"{column}: '{raw_row.get(column)}' is not a price")
        return row

    def validate_row(self, row: ImportRow, ctx: ImportContext) -> list[str]:
        errors = super().validate_row(row, ctx)
        if errors or not row.product:
            return errors
        # Attributes a new item would be created with; a bad one skips the row.
        try:
            catalog_service.check_item_payload(row.item_attributes())
        except ValidationError as exc:
            errors.append(str(exc))
        return errors

    def resolve_item(self, row: ImportRow, ctx: ImportContext) -> Item:
        item = catalog_service.find_item(ctx.tenant_id, code=row.sku, name=row.product)
        if item is not None:
            return item
        if not row.product:
            raise UnknownProductError(row.row_number, row.label)
        return catalog_service.create_item(
            tenant_id=ctx.tenant_id,
            payload=row.item_attributes(),
            actor_id=ctx.user_id,
            commit=False,
        )


class PhysicalCountSchema(QuantitySchema):
    """
    Closing counts against the open session. Zero is a valid count.

    strict_counter (default True): a blank or unknown counter skips the row.
    strict_counter=False: blank means no counter, unknown still skips.
    """
    movement_type = MOVEMENT_CLOSING
    requires_open_session = True

    def validate_row(self, row: ImportRow, ctx: ImportContext) -> list[str]:
        errors = list(row.errors)
        if not row.label:
            errors.append("product is required")
        if not row.errors:
            if row.quantity is None:
                errors.append("quantity is required")
            elif row.quantity < 0:
                errors.append("count cannot be negative")

        strict = ctx.options.get("strict_counter", True)
        if row.counter:
            if self.resolve_counter(row, ctx) is None:
                errors.append(f"unknown counter '{row.counter}'")
        elif strict:
            errors.append("counter is required")
        return errors


class CounterColumnsSchema(BaseImportSchema):
    """
    One column per counter (the sales template layout).

    Every extra column must name a counter. When total_quantity is given
    the counter cells must add up to it.
    """
    known_columns = frozenset(PRODUCT_COLUMNS + SKU_COLUMNS + ("total_quantity", "notes"))

    def _counter_columns(self, headers: set[str]) -> set[str]:
        return headers - self.known_columns

    def check_headers(self, headers: set[str], counters: dict[str, Counter]) -> None:
        super().check_headers(headers, counters)
        columns = self._counter_columns(headers)
        unknown = sorted(c for c in columns if c not in counters)
        if unknown:
            raise ImportHeaderError(f"Columns do not match any counter: {', '.join(unknown)}")
        if not columns:
            raise ImportHeaderError("No counter columns found")

    def normalize_row(self, raw_row: dict[str, Any], row_number: int) -> ImportRow:
        row = self._base_row(raw_row, row_number)
        row.total_quantity = _parse_cell(row, raw_row.get("total_quantity"), "total_quantity")
        for column in sorted(self._counter_columns(set(raw_row))):
            value = _parse_cell(row, raw_row.get(column), column)
            row.cells[column] = value or 0
        return row

    def validate_row(self, row: ImportRow, ctx: ImportContext) -> list[str]:
        errors = list(row.errors)
        if not row.label:
            errors.append("product is required")
        negative = sorted(k for k, v in row.cells.items() if v < 0)
        if negative:
            errors.append(f"negative quantity in: {', '.join(negative)}")
        if errors:
            return errors

        distributed = sum(row.cells.values())
        if row.total_quantity is not None and row.total_quantity != distributed:
            raise QuantityMismatchError(row.row_number, row.total_quantity, distributed)
        if distributed == 0:
            errors.append("no quantities")
        return errors

    def post_row(self, row: ImportRow, ctx: ImportContext) -> list[int]:
        item = self.resolve_item(row, ctx)
        ids = []
        for key, quantity in row.cells.items():
            if quantity == 0:
                continue
            ids.append(self._record(ctx, item, quantity, ctx.counters[key], row.notes))
        return ids


class CounterSalesSchema(CounterColumnsSchema):
    movement_type = MOVEMENT_SALE


class CounterRestockSchema(CounterColumnsSchema):
    movement_type = MOVEMENT_RESTOCK


class ReorderRestockSchema(CounterColumnsSchema):
    """
    Re-import of a below-reorder export: only ADD_<counter> cells are
    applied; reorder_level / current_* columns are informational.
    """
    movement_type = MOVEMENT_RESTOCK

    def _counter_columns(self, headers: set[str]) -> set[str]:
        return {h for h in headers if h.startswith(ADD_PREFIX)}

    def check_headers(self, headers: set[str], counters: dict[str, Counter]) -> None:
        BaseImportSchema.check_headers(self, headers, counters)
        columns = self._counter_columns(headers)
        unknown = sorted(c for c in columns if c[len(ADD_PREFIX):] not in counters)
        if unknown:
            raise ImportHeaderError(f"Columns do not match any counter: {', '.join(unknown)}")
        if not columns:
            raise ImportHeaderError("No ADD_<counter> columns found")

    def normalize_row(self, raw_row: dict[str, Any], row_number: int) -> ImportRow:
        row = self._base_row(raw_row, row_number)
        for column in sorted(self._counter_columns(set(raw_row))):
            value = _parse_cell(row, raw_row.get(column), column)
            row.cells[column[len(ADD_PREFIX):]] = value or 0
        return row


SCHEMAS: dict[str, BaseImportSchema] = {
    "sales": SalesSchema(),
    "restock": RestockSchema(),
    "physical_count": PhysicalCountSchema(),
    "counter_sales": CounterSalesSchema(),
    "counter_restock": CounterRestockSchema(),
    "reorder_restock": ReorderRestockSchema(),
}


def import_types() -> list[str]:
    return sorted(SCHEMAS)
