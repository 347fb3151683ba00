"""
Invoice Payload Builder Tests

Unit validation, fulfillment-date splits, invoice numbering, the summary
rows and the secondary documents (return, GXT transfer, payments).
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from core.models.canonical import Order, PaymentRecord
from order_engine import (
    InvoicePayloadBuilder,
    MissingRequiredFieldError,
    OrderValidationError,
    ProductType,
    ResolvedLine,
    ResolvedOrder,
    build_summary,
    describe_order_type,
    require_units,
    split_by_fulfillment_date,
)


def line(number=1, unit="Hop", fulfilled=None, ptype=ProductType.ITEM, **kwargs) -> ResolvedLine:
    """Resolved line with sensible defaults."""
    defaults = dict(
        line_number=number,
        item_code=f"SP{number:02d}",
        material_code=f"VT{number:02d}",
        unit=unit,
        quantity=Decimal("1"),
        unit_price=Decimal("100000"),
        line_amount=Decimal("100000"),
        product_type=ptype,
        warehouse_code="K01",
        fulfillment_date=fulfilled,
    )
    defaults.update(kwargs)
    return ResolvedLine(**defaults)


def resolved(lines, label="01. Thường", **header) -> ResolvedOrder:
    data = {"doc_code": "SO001", "doc_date": "2025-03-15T10:00:00", "branch_code": "B01"}
    data.update(header)
    return ResolvedOrder(
        order=Order.model_validate(data),
        flags=describe_order_type(label),
        lines=lines,
        customer_code="KH001",
        company_code="TTM",
        department_code="D01",
    )


class TestRequireUnits:
    """Unit of measure validation."""

    def test_lines_without_unit_dropped(self):
        kept = require_units([line(1), line(2, unit=None), line(3, unit="  ")], "SO001")
        assert [l.line_number for l in kept] == [1]

    def test_no_line_left_raises(self):
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            require_units([line(1, unit=None)], "SO001")
        assert exc_info.value.field_name == "dvt"

    def test_missing_unit_is_validation_error(self):
        """Callers can catch the broader validation error."""
        with pytest.raises(OrderValidationError):
            require_units([], "SO001")


class TestSplitByFulfillmentDate:
    """Grouping by fulfillment date."""

    def test_groups_sorted_by_date(self):
        lines = [
            line(1, fulfilled=datetime(2025, 3, 16, 9)),
            line(2, fulfilled=datetime(2025, 3, 15, 18)),
        ]
        groups = split_by_fulfillment_date(lines)
        assert list(groups) == [date(2025, 3, 15), date(2025, 3, 16)]

    def test_undated_lines_join_earliest_group(self):
        lines = [
            line(1),
            line(2, fulfilled=datetime(2025, 3, 16)),
            line(3, fulfilled=datetime(2025, 3, 15)),
        ]
        groups = split_by_fulfillment_date(lines)
        assert [l.line_number for l in groups[date(2025, 3, 15)]] == [1, 3]
        assert [l.line_number for l in groups[date(2025, 3, 16)]] == [2]

    def test_all_undated_uses_today(self):
        groups = split_by_fulfillment_date([line(1), line(2)], today=date(2025, 1, 2))
        assert list(groups) == [date(2025, 1, 2)]
        assert len(groups[date(2025, 1, 2)]) == 2


class TestBuildSummary:
    """Reconciliation rows."""

    def test_summary_sums_discount_slots(self):
        l = line(1)
        l.discounts[1].amount = Decimal("1000")
        l.discounts[3].amount = Decimal("500")

        rows = build_summary([l])

        assert rows == [{
            "ma_vt": "VT01",
            "dvt": "Hop",
            "so_luong": 1.0,
            "ck_nt": 1500.0,
            "gia_nt": 100000.0,
            "tien_nt": 100000.0,
        }]


class TestInvoices:
    """Sales invoice payloads."""

    def test_single_split_keeps_doc_code(self):
        builder = InvoicePayloadBuilder(resolved([line(1, fulfilled=datetime(2025, 3, 15))]))

        invoices = builder.build_invoices()

        assert len(invoices) == 1
        split_date, payload = invoices[0]
        assert split_date == date(2025, 3, 15)
        assert payload["so_ct"] == "SO001"
        assert payload["ma_kh"] == "KH001"
        assert len(payload["detail"]) == 1
        assert len(payload["cbdetail"]) == 1

    def test_multiple_splits_numbered_by_date(self):
        builder = InvoicePayloadBuilder(resolved([
            line(1, fulfilled=datetime(2025, 3, 15)),
            line(2, fulfilled=datetime(2025, 3, 17)),
        ]))

        numbers = [payload["so_ct"] for _, payload in builder.build_invoices()]

        assert numbers == ["SO001_20250315", "SO001_20250317"]

    def test_detail_row_fields(self):
        l = line(1, lot_code="LOT1", transaction_type="12")
        row = InvoicePayloadBuilder(resolved([l])).build_sales_order()["detail"][0]

        assert row["ma_vt"] == "VT01"
        assert row["ma_lo"] == "LOT1"
        assert "so_serial" not in row
        assert row["loai_gd"] == "12"
        assert row["ck01_nt"] == 0.0
        assert row["ck22_nt"] == 0.0
        assert "ma_ck01" not in row

    def test_serial_row(self):
        row = InvoicePayloadBuilder(resolved([line(1, serial_code="SN1")])).build_sales_order()["detail"][0]
        assert row["so_serial"] == "SN1"
        assert "ma_lo" not in row

    def test_invalid_lines_excluded(self):
        payload = InvoicePayloadBuilder(resolved([line(1), line(2, unit=None)])).build_sales_order()
        assert [row["ma_vt"] for row in payload["detail"]] == ["VT01"]


class TestSecondaryDocuments:
    """Customer, return, GXT transfer and payments."""

    def test_customer_requires_code(self):
        order = resolved([line(1)])
        order.customer_code = None
        with pytest.raises(MissingRequiredFieldError):
            InvoicePayloadBuilder(order).build_customer()

    def test_sales_return_uses_return_movements(self):
        order = resolved(
            [line(1, quantity=Decimal("2"))],
            label="01. Thường",
            original_doc_code="SO000",
            movements=[{"doc_code": "SO001", "item_code": "SP01", "material_code": "VT01",
                        "qty": -1, "doc_source_type": "SALE_RETURN"}],
        )

        payload = InvoicePayloadBuilder(order).build_sales_return()

        assert payload["so_ct0"] == "SO000"
        assert payload["detail"][0]["so_luong"] == 1.0
        assert payload["detail"][0]["tk_dt"] == "511"

    def test_gxt_links_items_to_services(self):
        order = resolved([
            line(1, ptype=ProductType.SERVICE),
            line(2, ptype=ProductType.SERVICE),
            line(3, ptype=ProductType.ITEM, svc_code="VT02"),
            line(4, ptype=ProductType.ITEM),
        ], label="02. Làm dịch vụ")

        payload = InvoicePayloadBuilder(order).build_gxt_transfer()

        assert [row["ma_vt"] for row in payload["ndetail"]] == ["VT01", "VT02"]
        assert [row["dong_vt_goc"] for row in payload["detail"]] == [2, 1]

    def test_gxt_needs_items_and_services(self):
        order = resolved([line(1, ptype=ProductType.SERVICE)], label="02. Làm dịch vụ")
        assert InvoicePayloadBuilder(order).build_gxt_transfer() is None

    @pytest.mark.parametrize("method,is_cash", [("CASH", True), (" cash ", True), ("VISA", False), ("MOMO", False)])
    def test_payment_document_kind(self, method, is_cash):
        record = PaymentRecord(doc_code="SO001", method_code=method, amount=Decimal("50000"))
        cash, payload = InvoicePayloadBuilder(resolved([line(1)])).build_payment(record)
        assert cash is is_cash
        assert payload["detail"][0]["tien"] == 50000.0

    def test_payment_without_amount_rejected(self):
        record = PaymentRecord(doc_code="SO001", method_code="CASH", amount=0)
        with pytest.raises(OrderValidationError):
            InvoicePayloadBuilder(resolved([line(1)])).build_payment(record)
