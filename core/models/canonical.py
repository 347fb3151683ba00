"""Core canonical data models - upstream POS order and reference data.

These models represent the orders, stock movements and reference records read
from the upstream retail and loyalty APIs in a standardized format that is
independent of the accounting system the documents are submitted to.

Accounting-specific field resolution is handled in /order_engine/ and the
wire format is produced by /order_engine/payload.py.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers (handle the various formats the upstream APIs send)
# =============================================================================

def _parse_decimal(value):
    """Parse decimal from various formats (strings with commas, floats, etc.)."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        s = s.replace(",", "")
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        return Decimal(s)
    return value


def _parse_zero_decimal(value):
    """Like _parse_decimal, but missing amounts become zero."""
    parsed = _parse_decimal(value)
    return Decimal("0") if parsed is None else parsed


def _parse_datetime(value):
    """Parse datetime from ISO strings or plain dates."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(s)
        except ValueError:
            pass
        for fmt in ("%d/%m/%Y %H:%M:%S", "%d/%m/%Y", "%Y%m%d"):
            try:
                return datetime.strptime(s, fmt)
            except ValueError:
                continue
        raise ValueError(f"Cannot parse datetime: {s}")
    return value


def _parse_code(value):
    """Normalize optional codes: numbers become strings, blanks become None."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        s = value.strip()
        return s or None
    return value


# Annotated types for automatic parsing
DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
AmountValue = Annotated[Decimal, BeforeValidator(_parse_zero_decimal)]
DateTimeValue = Annotated[datetime, BeforeValidator(_parse_datetime)]
CodeValue = Annotated[str, BeforeValidator(_parse_code)]


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)


# =============================================================================
# Reference Data (loyalty API)
# =============================================================================

class CatalogItem(CanonicalBase):
    """Product catalog entry looked up by item code."""
    item_code: str
    material_code: Optional[CodeValue] = None
    unit: Optional[CodeValue] = None
    # Loyalty product type: TPCN, SKIN, GIFT, DIVU, VOUC, ...
    product_category: Optional[CodeValue] = None
    material_type: Optional[CodeValue] = None
    track_batch: bool = False
    track_serial: bool = False
    track_inventory: bool = True


class Department(CanonicalBase):
    """Branch to accounting company/department mapping."""
    branch_code: str
    company_code: Optional[CodeValue] = None
    department_code: Optional[CodeValue] = None


# =============================================================================
# Order Data (upstream POS API)
# =============================================================================

class Customer(CanonicalBase):
    """Customer attached to an order."""
    code: Optional[CodeValue] = None
    name: Optional[str] = None
    phone: Optional[CodeValue] = None
    address: Optional[str] = None
    tax_code: Optional[CodeValue] = None
    # Marketplace name for e-commerce customers (shopee, lazada, tiktok)
    ecommerce_name: Optional[str] = None


class SaleLine(CanonicalBase):
    """One item/service line of a POS order, as read from upstream."""
    item_code: str
    item_name: Optional[str] = None
    order_type_label: Optional[str] = None
    doc_source_type: Optional[CodeValue] = None

    qty: AmountValue = Decimal("0")
    price: AmountValue = Decimal("0")
    revenue: AmountValue = Decimal("0")
    line_total: AmountValue = Decimal("0")
    unit: Optional[CodeValue] = None

    # I = item, S = service, V = voucher
    product_type: Optional[CodeValue] = None
    promotion_code: Optional[CodeValue] = None

    other_discount: AmountValue = Decimal("0")
    policy_discount: AmountValue = Decimal("0")
    vip_discount: AmountValue = Decimal("0")
    coupon_discount: AmountValue = Decimal("0")
    voucher_paid: AmountValue = Decimal("0")
    voucher_dp1: AmountValue = Decimal("0")
    voucher_dp2: AmountValue = Decimal("0")
    voucher_dp3: AmountValue = Decimal("0")
    ecoin_paid: AmountValue = Decimal("0")
    extra_discounts: Dict[int, AmountValue] = Field(default_factory=dict)

    tax_code: Optional[CodeValue] = None
    tax_rate: AmountValue = Decimal("0")
    tax_amount: AmountValue = Decimal("0")

    serial: Optional[CodeValue] = None
    ma_vt_ref: Optional[CodeValue] = None
    warehouse_code: Optional[CodeValue] = None
    issue_partner_code: Optional[CodeValue] = None
    svc_code: Optional[CodeValue] = None

    # Legacy account values carried over when no rule applies
    discount_account: Optional[CodeValue] = None
    cost_account: Optional[CodeValue] = None
    fee_code: Optional[CodeValue] = None

    @property
    def is_gift(self) -> bool:
        """Gift lines carry neither a price nor revenue."""
        return abs(self.price) < Decimal("0.01") and abs(self.revenue) < Decimal("0.01")


class StockMovement(CanonicalBase):
    """Warehouse movement that physically fulfilled (part of) a line."""
    doc_code: str
    item_code: str
    material_code: Optional[CodeValue] = None
    qty: AmountValue = Decimal("0")
    batch_serial: Optional[CodeValue] = None
    stock_code: Optional[CodeValue] = None
    trans_date: Optional[DateTimeValue] = None
    doc_source_type: Optional[CodeValue] = None


class Order(CanonicalBase):
    """A POS order with its lines and fulfillment records."""
    doc_code: str
    doc_date: DateTimeValue
    branch_code: Optional[CodeValue] = None
    brand: Optional[str] = None
    shift_code: Optional[CodeValue] = None
    doc_source_type: Optional[CodeValue] = None

    customer: Customer = Field(default_factory=Customer)
    lines: List[SaleLine] = Field(default_factory=list)
    movements: List[StockMovement] = Field(default_factory=list)

    # Sales returns reference the invoice being returned
    original_doc_code: Optional[CodeValue] = None
    original_doc_date: Optional[DateTimeValue] = None

    @property
    def header_label(self) -> Optional[str]:
        """Order-type label used for header-level classification."""
        return self.lines[0].order_type_label if self.lines else None


class PaymentRecord(CanonicalBase):
    """Cash/voucher payment method recorded against an order."""
    doc_code: str
    method_code: str
    amount: AmountValue = Decimal("0")
    payment_type: Optional[str] = None
    doc_date: Optional[DateTimeValue] = None
    branch_code: Optional[CodeValue] = None
