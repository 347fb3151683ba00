"""
Order Engine Models

Defines data structures for:
- Order categories and product types
- Classification flags
- Per-line resolution results (batch/serial, pricing, accounts, discounts)
- Resolved orders and the per-order reference snapshot
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from core.models.canonical import CatalogItem, Department, Order


DISCOUNT_SLOT_COUNT = 22


class OrderCategory(str, Enum):
    """Canonical order categories derived from the order-type label."""
    NORMAL = "Normal"
    NORMAL_EXCHANGE = "NormalExchange"
    SERVICE = "Service"
    LOYALTY_POINT_EXCHANGE = "LoyaltyPointExchange"
    BIRTHDAY_GIFT = "BirthdayGift"
    INVESTMENT = "Investment"
    CARD_SEPARATION = "CardSeparation"
    BOTTLE_EXCHANGE = "BottleExchange"
    SALE_RETURN = "SaleReturn"


class ProductType(str, Enum):
    """Line product category flag."""
    ITEM = "I"
    SERVICE = "S"
    VOUCHER = "V"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ProductType"]:
        """Parse a raw flag, returning None for unknown values."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


# =============================================================================
# Classification
# =============================================================================

@dataclass(frozen=True)
class OrderTypeFlags:
    """Primary category plus the derived predicates that travel with it."""
    category: OrderCategory
    is_service: bool = False
    is_account_sale: bool = False
    is_marketplace: bool = False
    is_normal_label: bool = False

    @property
    def is_loyalty(self) -> bool:
        return self.category == OrderCategory.LOYALTY_POINT_EXCHANGE

    @property
    def is_sale_return(self) -> bool:
        return self.category == OrderCategory.SALE_RETURN


# =============================================================================
# Line Resolution Results
# =============================================================================

@dataclass(frozen=True)
class BatchSerial:
    """Mutually exclusive lot/serial identifiers for a line."""
    lot_code: Optional[str] = None
    serial_code: Optional[str] = None


@dataclass(frozen=True)
class PriceAllocation:
    """Unit price, line amount and fulfillment ratio for one line."""
    unit_price: Decimal
    line_amount: Decimal
    ratio: Decimal = Decimal("1")
    reallocated: bool = False


@dataclass
class DiscountSlot:
    """One (code, amount) pair of the 22 discount slots."""
    code: Optional[str] = None
    amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class AccountCodes:
    """Discount/cost/fee accounts for a line."""
    discount_account: Optional[str] = None
    cost_account: Optional[str] = None
    fee_code: Optional[str] = None


@dataclass(frozen=True)
class PromotionCodes:
    """Promotion display code and gift promotion code for a line."""
    promotion_code: Optional[str] = None
    gift_code: Optional[str] = None
    rewritten: bool = False


@dataclass(frozen=True)
class AccountingFields:
    """Everything the accounting field resolver produces for a line."""
    discount_account: Optional[str] = None
    cost_account: Optional[str] = None
    fee_code: Optional[str] = None
    promotion_code: Optional[str] = None
    gift_code: Optional[str] = None
    voucher_code: Optional[str] = None


def empty_discount_slots() -> Dict[int, DiscountSlot]:
    return {idx: DiscountSlot() for idx in range(1, DISCOUNT_SLOT_COUNT + 1)}


@dataclass
class ResolvedLine:
    """
    A sale line translated into accounting fields.

    Derived from a SaleLine; the source line is never mutated.
    """
    line_number: int
    item_code: str
    material_code: str
    unit: Optional[str]
    quantity: Decimal
    unit_price: Decimal
    line_amount: Decimal
    product_type: Optional[ProductType] = None

    discounts: Dict[int, DiscountSlot] = field(default_factory=empty_discount_slots)
    accounts: AccountingFields = field(default_factory=AccountingFields)

    tax_code: str = "00"
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")

    warehouse_code: str = ""
    department_code: Optional[str] = None
    card_code: Optional[str] = None
    lot_code: Optional[str] = None
    serial_code: Optional[str] = None
    transaction_type: str = "01"

    is_gift: bool = False
    km_yn: int = 0
    fulfillment_date: Optional[datetime] = None
    issue_partner_code: Optional[str] = None
    svc_code: Optional[str] = None

    @property
    def net_discount(self) -> Decimal:
        """Sum of all 22 discount slots."""
        return sum((slot.amount for slot in self.discounts.values()), Decimal("0"))


# =============================================================================
# Order-Level Results
# =============================================================================

@dataclass
class ReferenceSnapshot:
    """
    Reference data fetched once for a single order.

    Catalog entries are keyed by item code; a None value records a lookup
    that came back NotFound so it is not repeated for the same order.
    """
    catalog: Dict[str, Optional[CatalogItem]] = field(default_factory=dict)
    department: Optional[Department] = None

    def catalog_for(self, item_code: str) -> Optional[CatalogItem]:
        return self.catalog.get(item_code)


@dataclass
class ResolvedOrder:
    """An order with its header classification and resolved lines."""
    order: Order
    flags: OrderTypeFlags
    lines: List[ResolvedLine]
    customer_code: Optional[str] = None
    company_code: Optional[str] = None
    department_code: Optional[str] = None
    skipped_lines: List[str] = field(default_factory=list)

    @property
    def category(self) -> OrderCategory:
        return self.flags.category

    @property
    def transaction_type(self) -> str:
        return self.lines[0].transaction_type if self.lines else "01"

    @property
    def service_lines(self) -> List[ResolvedLine]:
        return [l for l in self.lines if l.product_type == ProductType.SERVICE]

    @property
    def item_lines(self) -> List[ResolvedLine]:
        return [l for l in self.lines if l.product_type == ProductType.ITEM]
