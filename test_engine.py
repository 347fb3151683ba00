"""
Invoice Field Engine Tests

Whole-order resolution: classification, reallocation, account codes,
lot/serial and warehouse fields flowing into ResolvedLine.
"""

from decimal import Decimal

from core.models.canonical import CatalogItem, Department, Order
from order_engine import InvoiceFieldEngine, OrderCategory, ReferenceSnapshot, resolve_order
from order_engine.accounting import COST_FEE_PAIR_A, DEFAULT_ECOMMERCE_VOUCHER_CODE


def make_order(label="01. Thường", lines=None, movements=None, **header) -> Order:
    """Build an order from plain dicts."""
    data = {
        "doc_code": "SO001",
        "doc_date": "2025-03-15T10:00:00",
        "branch_code": "B01",
        "brand": "menard",
        "customer": {"code": "KH001", "name": "Nguyen Van A"},
        "lines": lines if lines is not None else [{
            "item_code": "SP01",
            "order_type_label": label,
            "qty": 2,
            "price": 100000,
            "revenue": 200000,
            "product_type": "I",
        }],
        "movements": movements or [],
    }
    data.update(header)
    return Order.model_validate(data)


def snapshot(**catalog_fields) -> ReferenceSnapshot:
    """Snapshot with one SP01 catalog entry and branch B01."""
    item = {"item_code": "SP01", "material_code": "VT01", "unit": "Hop", "product_category": "SKIN"}
    item.update(catalog_fields)
    return ReferenceSnapshot(
        catalog={"SP01": CatalogItem.model_validate(item)},
        department=Department(branch_code="B01", company_code="TTM", department_code="D01"),
    )


class TestNormalOrder:
    """Normal sale with partial fulfillment."""

    def test_partial_fulfillment(self):
        """Ordered 2 at 100000, one unit delivered."""
        order = make_order(movements=[{"doc_code": "SO001", "item_code": "SP01", "qty": 1, "stock_code": "K01"}])

        resolved = InvoiceFieldEngine().resolve_order(order, snapshot())

        line = resolved.lines[0]
        assert resolved.category == OrderCategory.NORMAL
        assert line.unit_price == Decimal("100000")
        assert line.line_amount == Decimal("100000")
        assert line.quantity == Decimal("1")
        assert line.transaction_type == "01"
        assert line.warehouse_code == "K01"
        assert line.material_code == "VT01"
        assert line.unit == "Hop"

    def test_discounts_and_tax_scaled(self):
        """Discount slots and tax follow the fulfillment ratio."""
        order = make_order(
            lines=[{
                "item_code": "SP01", "order_type_label": "01. Thường",
                "qty": 2, "price": 100000, "revenue": 180000, "product_type": "I",
                "other_discount": 20000, "tax_amount": 8000,
            }],
            movements=[{"doc_code": "SO001", "item_code": "SP01", "qty": 1}],
        )

        line = InvoiceFieldEngine().resolve_order(order, snapshot()).lines[0]

        assert line.discounts[1].amount == Decimal("10000")
        assert line.tax_amount == Decimal("4000")

    def test_full_fulfillment_keeps_revenue(self):
        order = make_order(movements=[{"doc_code": "SO001", "item_code": "SP01", "qty": 2}])
        line = InvoiceFieldEngine().resolve_order(order, snapshot()).lines[0]
        assert line.line_amount == Decimal("200000")
        assert line.quantity == Decimal("2")

    def test_missing_catalog_uses_line_values(self):
        """Without a catalog entry the line's own item code and unit are used."""
        order = make_order(lines=[{
            "item_code": "SP99", "order_type_label": "01. Thường",
            "qty": 1, "price": 10, "revenue": 10, "unit": "Cai",
        }])
        line = resolve_order(order).lines[0]
        assert line.material_code == "SP99"
        assert line.unit == "Cai"

    def test_lot_code_truncated(self):
        order = make_order(movements=[{
            "doc_code": "SO001", "item_code": "SP01", "qty": 2, "batch_serial": "2024ABCD12345678",
        }])
        line = InvoiceFieldEngine().resolve_order(
            order, snapshot(product_category="TPCN", track_batch=True),
        ).lines[0]
        assert line.lot_code == "12345678"
        assert line.serial_code is None

    def test_employee_prefix_stripped(self):
        order = make_order(customer={"code": "NV123"})
        assert resolve_order(order).customer_code == "123"

    def test_voucher_fallback_used(self):
        """Non-marketplace customers get the injected voucher calculation."""
        order = make_order(lines=[{
            "item_code": "SP01", "order_type_label": "01. Thường",
            "qty": 1, "price": 100, "revenue": 100, "product_type": "I", "voucher_paid": 50,
        }])
        engine = InvoiceFieldEngine(voucher_fallback=lambda brand, line, item, ptype: "CUSTOM")

        line = engine.resolve_order(order, snapshot()).lines[0]

        assert line.accounts.voucher_code == "CUSTOM"
        assert line.discounts[5].code == "CUSTOM"
        assert line.accounts.discount_account == "5211611"


class TestServiceOrder:
    """Partial fulfillment outside Normal orders."""

    def test_slots_and_tax_scaled_amount_kept(self):
        """Discounts and tax follow the ratio; the headline amount does not."""
        order = make_order(
            lines=[{
                "item_code": "SP01", "order_type_label": "02. Làm dịch vụ",
                "qty": 2, "price": 100000, "revenue": 200000, "product_type": "S",
                "other_discount": 20000, "tax_amount": 8000,
            }],
            movements=[{"doc_code": "SO001", "item_code": "SP01", "qty": 1}],
        )

        resolved = InvoiceFieldEngine().resolve_order(order, snapshot())
        line = resolved.lines[0]

        assert resolved.category == OrderCategory.SERVICE
        assert line.discounts[1].amount == Decimal("10000")
        assert line.tax_amount == Decimal("4000")
        assert line.quantity == Decimal("1")
        assert line.line_amount == Decimal("200000")

    def test_zero_fulfilled_leaves_slots(self):
        order = make_order(
            lines=[{
                "item_code": "SP01", "order_type_label": "02. Làm dịch vụ",
                "qty": 2, "price": 100000, "revenue": 200000, "product_type": "S",
                "other_discount": 20000,
            }],
            movements=[{"doc_code": "SO001", "item_code": "SP01", "qty": 0}],
        )

        line = InvoiceFieldEngine().resolve_order(order, snapshot()).lines[0]

        assert line.discounts[1].amount == Decimal("20000")
        assert line.quantity == Decimal("0")


class TestLoyaltyExchange:
    """Point redemption orders."""

    def test_zero_amounts_and_gift_code(self):
        order = make_order(
            lines=[{
                "item_code": "SP01", "order_type_label": "03. Đổi điểm",
                "qty": 1, "price": 100000, "revenue": 100000, "product_type": "I",
                "other_discount": 5000,
            }],
            movements=[{"doc_code": "SO001", "item_code": "SP01", "qty": 1, "stock_code": "K01"}],
        )

        resolved = InvoiceFieldEngine().resolve_order(order, ReferenceSnapshot())
        line = resolved.lines[0]

        assert resolved.category == OrderCategory.LOYALTY_POINT_EXCHANGE
        assert line.unit_price == 0
        assert line.line_amount == 0
        assert line.accounts.gift_code == "TTM.KMDIEM"
        assert line.accounts.promotion_code == ""
        assert (line.accounts.cost_account, line.accounts.fee_code) == COST_FEE_PAIR_A
        assert line.discounts[1].amount == 0
        assert line.warehouse_code == "K01"


class TestCardSeparation:
    """Card separation orders."""

    def test_warehouse_prefix_and_customer(self):
        order = make_order(lines=[
            {
                "item_code": "SP01", "order_type_label": "08. Tách thẻ",
                "qty": -1, "price": 100, "revenue": -100, "product_type": "S",
                "issue_partner_code": "KH777",
            },
            {
                "item_code": "SP02", "order_type_label": "08. Tách thẻ",
                "qty": 1, "price": 100, "revenue": 100, "product_type": "S",
            },
        ])

        resolved = InvoiceFieldEngine().resolve_order(order, snapshot())

        assert resolved.category == OrderCategory.CARD_SEPARATION
        assert resolved.customer_code == "KH777"
        assert [l.warehouse_code for l in resolved.lines] == ["BD01", "BD01"]
        assert [l.transaction_type for l in resolved.lines] == ["11", "12"]


class TestMarketplace:
    """Marketplace voucher slot."""

    def test_voucher_moves_to_marketplace_slot(self):
        order = make_order(
            lines=[{
                "item_code": "SP01", "order_type_label": "9. Sàn TMĐT",
                "qty": 1, "price": 100, "revenue": 100, "product_type": "I", "voucher_paid": 30,
            }],
            customer={"code": "KH1", "ecommerce_name": "Shopee"},
        )

        line = InvoiceFieldEngine().resolve_order(order, snapshot()).lines[0]

        assert line.discounts[15].code == DEFAULT_ECOMMERCE_VOUCHER_CODE
        assert line.discounts[15].amount == Decimal("30")
        assert line.discounts[5].amount == 0


class TestSkippedLines:
    """Item codes excluded from documents."""

    def test_trutonkeep_skipped(self):
        order = make_order(lines=[
            {"item_code": "TRUTONKEEP", "order_type_label": "01. Thường", "qty": 1, "price": 1, "revenue": 1},
            {"item_code": "SP01", "order_type_label": "01. Thường", "qty": 1, "price": 1, "revenue": 1},
        ])

        resolved = resolve_order(order)

        assert [l.item_code for l in resolved.lines] == ["SP01"]
        assert resolved.skipped_lines == ["TRUTONKEEP"]
        assert resolved.lines[0].line_number == 1

    def test_sale_return_from_source_type(self):
        order = make_order(doc_source_type="SALE_RETURN")
        assert resolve_order(order).category == OrderCategory.SALE_RETURN
