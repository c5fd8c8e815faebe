# Overview: Pytest coverage for stock imports (row schemas, batch atomicity, file parsing).

"""
Import Tests

- row-level problems skip the row and are reported with spreadsheet row numbers
- unknown products and distributed quantity mismatches roll back the whole batch
- restock imports create missing items
- physical counts need an open session and a usable counter
- exported sheets (sales template, reorder sheet) import back unchanged
"""

import io
from datetime import date

import pytest
from openpyxl import Workbook
from stockledger.models import Item, StockMovement, MOVEMENT_CLOSING, MOVEMENT_RESTOCK, MOVEMENT_SALE
from stockledger.services import export_service, import_service
from stockledger.services.daily_session_service import NoOpenSessionError, open_day
from stockledger.services.import_files import read_rows
from stockledger.services.import_schemas import import_types
from stockledger.services.import_service import (
    ImportHeaderError,
    QuantityMismatchError,
    UnknownProductError,
)
from stockledger.services.movement_service import record_movement
from stockledger.services.stock_service import get_current_stock, get_stock_levels
from stockledger.validation import ValidationError


DAY = date(2026, 3, 2)


def _csv_stream(text: str) -> io.BytesIO:
    return io.BytesIO(text.encode("utf-8"))


class TestSalesImport:
    def test_valid_rows_recorded(self, db_session, tenant_a, user_a, beer, soda, main_bar):
        result = import_service.commit(
            [
                {"Product": "Tusker 500ml", "Counter": "main bar", "Quantity": "3"},
                {"SKU": "CK300", "Quantity": 2},
            ],
            tenant_a.id, user_a.id, "sales",
        )

        assert result.recorded == 2
        assert result.skipped == 0
        moves = db_session.query(StockMovement).order_by(StockMovement.id).all()
        assert [(m.item_id, m.movement_type, m.quantity, m.counter_id) for m in moves] == [
            (beer.id, MOVEMENT_SALE, 3, main_bar.id),
            (soda.id, MOVEMENT_SALE, 2, None),
        ]
        assert all(m.created_by == user_a.id for m in moves)

    def test_row_problems_are_skipped(self, db_session, tenant_a, user_a, beer):
        result = import_service.commit(
            [
                {"product": "Tusker 500ml", "quantity": 1},
                {"product": "", "quantity": 5},
                {"product": "Tusker 500ml", "quantity": "abc"},
                {"product": "Tusker 500ml", "quantity": 0},
                {"product": "Tusker 500ml", "quantity": "2.5"},
                {"product": "Tusker 500ml", "quantity": ""},
            ],
            tenant_a.id, user_a.id, "sales",
        )

        assert result.recorded == 1
        assert [row for row, _ in result.skipped_rows] == [3, 4, 5, 6, 7]
        reasons = dict(result.skipped_rows)
        assert reasons[3] == "product is required"
        assert "not a whole number" in reasons[4]
        assert reasons[5] == "quantity must be greater than zero"
        assert reasons[7] == "quantity is required"
        assert result.to_dict()["skipped_rows"][0] == {"row": 3, "reason": "product is required"}

    def test_unknown_product_rolls_back_batch(self, db_session, tenant_a, user_a, beer):
        """Five good rows and one unknown product: nothing is written."""
        rows = [{"product": "Tusker 500ml", "quantity": 1} for _ in range(5)]
        rows.insert(3, {"product": "Mystery Gin", "quantity": 1})

        with pytest.raises(UnknownProductError) as excinfo:
            import_service.commit(rows, tenant_a.id, user_a.id, "sales")

        assert excinfo.value.row_number == 5
        assert "Mystery Gin" in str(excinfo.value)
        assert db_session.query(StockMovement).count() == 0

    def test_sku_miss_does_not_fall_back_to_name(self, db_session, tenant_a, user_a, beer):
        with pytest.raises(UnknownProductError):
            import_service.commit(
                [{"product": "Tusker 500ml", "sku": "WRONG", "quantity": 1}],
                tenant_a.id, user_a.id, "sales",
            )

    def test_items_of_other_tenants_are_unknown(self, db_session, tenant_a, user_a, item_b):
        with pytest.raises(UnknownProductError):
            import_service.commit([{"sku": "TSK500", "quantity": 1}], tenant_a.id, user_a.id, "sales")

    def test_dated_on_open_session(self, db_session, tenant_a, user_a, beer):
        session = open_day(tenant_a.id, user_a.id, DAY)

        import_service.commit([{"product": "Tusker 500ml", "quantity": 1}], tenant_a.id, user_a.id, "sales")

        movement = db_session.query(StockMovement).filter_by(movement_type=MOVEMENT_SALE).one()
        assert movement.movement_date == DAY
        assert movement.session_id == session.id


class TestBatchValidation:
    def test_unknown_type(self, db_session, tenant_a, user_a):
        with pytest.raises(ValidationError):
            import_service.commit([{"product": "x", "quantity": 1}], tenant_a.id, user_a.id, "transfers")

    def test_empty_rows(self, db_session, tenant_a, user_a):
        with pytest.raises(ValidationError):
            import_service.commit([], tenant_a.id, user_a.id, "sales")

    def test_missing_columns(self, db_session, tenant_a, user_a, main_bar):
        with pytest.raises(ImportHeaderError):
            import_service.commit([{"description": "x", "quantity": 1}], tenant_a.id, user_a.id, "sales")
        with pytest.raises(ImportHeaderError):
            import_service.commit([{"product": "x", "qty": 1}], tenant_a.id, user_a.id, "restock")

    def test_counter_columns_must_match_counters(self, db_session, tenant_a, user_a, beer, main_bar):
        with pytest.raises(ImportHeaderError) as excinfo:
            import_service.commit(
                [{"product": "Tusker 500ml", "Main Bar": 1, "Patio": 2}],
                tenant_a.id, user_a.id, "counter_sales",
            )
        assert "patio" in str(excinfo.value)

        with pytest.raises(ImportHeaderError):
            import_service.commit([{"product": "Tusker 500ml"}], tenant_a.id, user_a.id, "counter_sales")

    def test_import_types(self):
        assert import_types() == [
            "counter_restock", "counter_sales", "physical_count",
            "reorder_restock", "restock", "sales",
        ]


class TestRestockImport:
    def test_creates_missing_item_once(self, db_session, tenant_a, user_a, main_bar):
        result = import_service.commit(
            [
                {
                    "product": "Gilbeys 750ml", "sku": "GLB750", "quantity": "12",
                    "cost_price": "850.00", "selling_price": "1,200", "category": "spirits",
                    "counter": "Main Bar",
                },
                {"product": "Gilbeys 750ml", "sku": "GLB750", "quantity": 6},
            ],
            tenant_a.id, user_a.id, "restock",
        )

        assert result.recorded == 2
        item = db_session.query(Item).filter_by(tenant_id=tenant_a.id, code="GLB750").one()
        assert item.name == "Gilbeys 750ml"
        assert item.cost_price_cents == 85000
        assert item.selling_price_cents == 120000
        assert item.category == "SPIRITS"
        assert item.unit == "PCS"
        assert get_current_stock(tenant_a.id, item.id) == 18
        assert get_current_stock(tenant_a.id, item.id, counter_id=main_bar.id) == 12

    def test_sku_only_unknown_cannot_be_created(self, db_session, tenant_a, user_a):
        with pytest.raises(UnknownProductError):
            import_service.commit([{"sku": "NEW1", "quantity": 3}], tenant_a.id, user_a.id, "restock")
        assert db_session.query(Item).count() == 0

    def test_created_items_roll_back_with_batch(self, db_session, tenant_a, user_a, beer):
        with pytest.raises(UnknownProductError):
            import_service.commit(
                [
                    {"product": "Gilbeys 750ml", "quantity": 3},
                    {"sku": "NOPE", "quantity": 1},
                ],
                tenant_a.id, user_a.id, "restock",
            )
        assert db_session.query(Item).filter_by(name="Gilbeys 750ml").count() == 0

    def test_bad_item_attributes_skip_the_row(self, db_session, tenant_a, user_a, beer):
        result = import_service.commit(
            [
                {"product": "Tusker 500ml", "quantity": 5},
                {"product": "New Gin", "quantity": 3, "reorder_level": -4},
                {"product": "Cheap Gin", "quantity": 2, "cost_price": "-1.00"},
                {"product": "G" * 256, "quantity": 1},
            ],
            tenant_a.id, user_a.id, "restock",
        )

        assert result.recorded == 1
        reasons = dict(result.skipped_rows)
        assert reasons[3] == "reorder_level must be >= 0"
        assert reasons[4] == "cost_price_cents must be >= 0"
        assert reasons[5] == "name exceeds max length 255"
        assert get_current_stock(tenant_a.id, beer.id) == 5
        assert db_session.query(Item).filter_by(tenant_id=tenant_a.id).count() == 1


class TestPhysicalCountImport:
    def test_requires_open_session(self, db_session, tenant_a, user_a, beer, main_bar):
        with pytest.raises(NoOpenSessionError):
            import_service.commit(
                [{"product": "Tusker 500ml", "counter": "Main Bar", "quantity": 4}],
                tenant_a.id, user_a.id, "physical_count",
            )

    def test_strict_counter(self, db_session, tenant_a, user_a, beer, soda, main_bar):
        session = open_day(tenant_a.id, user_a.id, DAY)

        result = import_service.commit(
            [
                {"product": "Tusker 500ml", "counter": "MAIN BAR", "quantity": 0},
                {"product": "Coke 300ml", "counter": "", "quantity": 7},
                {"product": "Coke 300ml", "counter": "Patio", "quantity": 7},
                {"product": "Coke 300ml", "counter": "Main Bar", "quantity": -1},
            ],
            tenant_a.id, user_a.id, "physical_count",
        )

        assert result.recorded == 1
        reasons = dict(result.skipped_rows)
        assert reasons[3] == "counter is required"
        assert reasons[4] == "unknown counter 'Patio'"
        assert reasons[5] == "count cannot be negative"

        count = db_session.query(StockMovement).filter_by(movement_type=MOVEMENT_CLOSING).one()
        assert (count.item_id, count.counter_id, count.quantity) == (beer.id, main_bar.id, 0)
        assert count.session_id == session.id

    def test_lenient_counter(self, db_session, tenant_a, user_a, soda, main_bar):
        open_day(tenant_a.id, user_a.id, DAY)

        result = import_service.commit(
            [
                {"product": "Coke 300ml", "quantity": 7},
                {"product": "Coke 300ml", "counter": "Patio", "quantity": 7},
            ],
            tenant_a.id, user_a.id, "physical_count", strict_counter=False,
        )

        assert result.recorded == 1
        assert [row for row, _ in result.skipped_rows] == [3]
        count = db_session.query(StockMovement).filter_by(movement_type=MOVEMENT_CLOSING).one()
        assert count.counter_id is None

    def test_count_does_not_change_stock(self, db_session, tenant_a, user_a, beer, main_bar):
        open_day(tenant_a.id, user_a.id, DAY)
        record_movement(
            tenant_id=tenant_a.id, item_id=beer.id, movement_type=MOVEMENT_RESTOCK,
            quantity=30, actor_id=None,
        )

        import_service.commit(
            [{"product": "Tusker 500ml", "counter": "Main Bar", "quantity": 26}],
            tenant_a.id, user_a.id, "physical_count",
        )
        assert get_current_stock(tenant_a.id, beer.id) == 30


class TestCounterColumnImports:
    def test_restock_distributes_per_counter(self, db_session, tenant_a, user_a, beer, main_bar, lounge):
        result = import_service.commit(
            [{"product": "Tusker 500ml", "total_quantity": 90, "Main Bar": 40, "Lounge": 50}],
            tenant_a.id, user_a.id, "counter_restock",
        )

        assert result.recorded == 2
        levels = get_stock_levels(tenant_a.id, by_counter=True)
        assert levels[(beer.id, main_bar.id)] == 40
        assert levels[(beer.id, lounge.id)] == 50

    def test_total_mismatch_rolls_back(self, db_session, tenant_a, user_a, beer, soda, main_bar, lounge):
        with pytest.raises(QuantityMismatchError) as excinfo:
            import_service.commit(
                [
                    {"product": "Coke 300ml", "total_quantity": 10, "Main Bar": 10, "Lounge": 0},
                    {"product": "Tusker 500ml", "total_quantity": 100, "Main Bar": 40, "Lounge": 50},
                ],
                tenant_a.id, user_a.id, "counter_restock",
            )

        assert str(excinfo.value) == "Row 3: Quantity mismatch: total=100, distributed=90"
        assert db_session.query(StockMovement).count() == 0

    def test_zero_and_negative_rows_skipped(self, db_session, tenant_a, user_a, beer, soda, main_bar, lounge):
        result = import_service.commit(
            [
                {"product": "Tusker 500ml", "Main Bar": 0, "Lounge": ""},
                {"product": "Coke 300ml", "Main Bar": -2, "Lounge": 4},
            ],
            tenant_a.id, user_a.id, "counter_sales",
        )

        assert result.recorded == 0
        reasons = dict(result.skipped_rows)
        assert reasons[2] == "no quantities"
        assert reasons[3] == "negative quantity in: main bar"

    def test_sales_template_round_trip(self, db_session, tenant_a, user_a, beer, soda, main_bar, lounge):
        text = export_service.sales_template_csv(tenant_a.id)
        rows = read_rows(_csv_stream(text), "sales_template.csv")
        assert list(rows[0]) == ["product", "sku", "Lounge", "Main Bar"]

        for row in rows:
            if row["sku"] == "TSK500":
                row["Main Bar"] = "6"
                row["Lounge"] = "4"

        result = import_service.commit(rows, tenant_a.id, user_a.id, "counter_sales")

        assert result.recorded == 2
        assert result.skipped_rows == [(2, "no quantities")]
        levels = get_stock_levels(tenant_a.id, by_counter=True)
        assert levels[(beer.id, main_bar.id)] == -6
        assert levels[(beer.id, lounge.id)] == -4

    def test_reorder_sheet_round_trip(self, db_session, tenant_a, user_a, beer, soda, main_bar, lounge):
        record_movement(
            tenant_id=tenant_a.id, item_id=beer.id, counter_id=main_bar.id,
            movement_type=MOVEMENT_RESTOCK, quantity=5, actor_id=None,
        )
        record_movement(
            tenant_id=tenant_a.id, item_id=soda.id, counter_id=main_bar.id,
            movement_type=MOVEMENT_RESTOCK, quantity=20, actor_id=None,
        )

        text = "".join(export_service.export_below_reorder_csv(tenant_a.id))
        rows = read_rows(_csv_stream(text), "below_reorder.csv")
        assert [row["sku"] for row in rows] == ["TSK500"]

        rows[0]["ADD_Main Bar"] = "19"
        result = import_service.commit(rows, tenant_a.id, user_a.id, "reorder_restock")

        assert result.recorded == 1
        assert get_current_stock(tenant_a.id, beer.id) == 24
        assert get_current_stock(tenant_a.id, beer.id, counter_id=main_bar.id) == 24

    def test_reorder_sheet_needs_add_columns(self, db_session, tenant_a, user_a, beer, main_bar):
        with pytest.raises(ImportHeaderError):
            import_service.commit(
                [{"product": "Tusker 500ml", "current_total": 3}],
                tenant_a.id, user_a.id, "reorder_restock",
            )


class TestReadRows:
    def test_csv_with_bom_and_blank_rows(self):
        stream = io.BytesIO("\ufeffproduct,quantity\nTusker 500ml,3\n,\nCoke 300ml,2\n".encode("utf-8"))

        rows = read_rows(stream, "sales.CSV")

        assert rows == [
            {"product": "Tusker 500ml", "quantity": "3"},
            {"product": "Coke 300ml", "quantity": "2"},
        ]

    def test_json_forms(self):
        assert read_rows(io.BytesIO(b'{"rows": [{"product": "A", "quantity": 1}]}'), "x.json") == [
            {"product": "A", "quantity": 1}
        ]
        assert read_rows(io.BytesIO(b'[{"product": "B", "quantity": 2}]'), "x.json")[0]["product"] == "B"
        with pytest.raises(ValidationError):
            read_rows(io.BytesIO(b'{"rows": "nope"}'), "x.json")

    def test_excel_first_sheet(self):
        wb = Workbook()
        ws = wb.active
        ws.append(["Product", "Counter", "Quantity"])
        ws.append(["Tusker 500ml", "Main Bar", 12])
        ws.append([None, None, None])
        ws.append(["Coke 300ml", None, 4])
        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)

        rows = read_rows(buffer, "count.xlsx")

        assert rows == [
            {"Product": "Tusker 500ml", "Counter": "Main Bar", "Quantity": 12},
            {"Product": "Coke 300ml", "Counter": None, "Quantity": 4},
        ]

    def test_unsupported_extension(self):
        with pytest.raises(ValidationError):
            read_rows(io.BytesIO(b"data"), "sales.pdf")

    def test_non_utf8_csv(self):
        with pytest.raises(ValidationError):
            read_rows(io.BytesIO("product\nCafé".encode("latin-1")), "x.csv")

    def test_import_file(self, db_session, tenant_a, user_a, beer):
        stream = _csv_stream("product,quantity\nTusker 500ml,5\n")

        result = import_service.import_file(
            stream, "restock.csv", tenant_id=tenant_a.id, user_id=user_a.id, import_type="restock",
        )

        assert result.recorded == 1
        assert get_current_stock(tenant_a.id, beer.id) == 5
