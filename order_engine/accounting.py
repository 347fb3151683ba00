"""
Accounting Field Resolver

Resolves the accounting fields of a single line:
- Discount / cost / fee accounts (ordered precedence chain)
- Promotion display code and gift promotion code
- Voucher display code
- Discount slot codes (VIP, coupon, e-coin, ...)
- Transaction-type code (loai_gd) and warehouse code

All tables are data; rules read them in the documented order.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple

from .models import (
    AccountCodes,
    OrderCategory,
    OrderTypeFlags,
    ProductType,
    PromotionCodes,
)

logger = logging.getLogger(__name__)

CODE_MAX_LENGTH = 32


# =============================================================================
# Account Tables
# =============================================================================

# (cost account, fee code)
COST_FEE_PAIR_A: Tuple[str, str] = ("64191", "161010")
COST_FEE_PAIR_B: Tuple[str, str] = ("64192", "162010")

PAIR_A_CATEGORIES = frozenset({
    OrderCategory.BOTTLE_EXCHANGE,
    OrderCategory.LOYALTY_POINT_EXCHANGE,
    OrderCategory.INVESTMENT,
})

VIP_DISCOUNT_ACCOUNTS = {
    ProductType.ITEM: "521113",
    ProductType.SERVICE: "521132",
}

VOUCHER_GIFT_PRODUCT_ACCOUNT = "5211631"
VOUCHER_DISCOUNT_ACCOUNTS = {
    ProductType.ITEM: "5211611",
    ProductType.SERVICE: "5211621",
}

GENERIC_DISCOUNT_ACCOUNTS = {
    ProductType.SERVICE: "521131",
    ProductType.ITEM: "521111",
}

GIFT_PRODUCT_CATEGORY = "GIFT"


# =============================================================================
# Promotion / Voucher Tables
# =============================================================================

CANONICAL_PROMOTION_PREFIXES = {
    "PRMN": "RMN",
}

LOYALTY_GIFT_CODES = {
    "TTM": "TTM.KMDIEM",
    "AMA": "TTM.KMDIEM",
    "TSG": "TTM.KMDIEM",
    "FBV": "FBV.KMDIEM",
    "BTH": "BTH.KMDIEM",
    "CDV": "CDV.KMDIEM",
    "LHV": "LHV.KMDIEM",
}
DEFAULT_LOYALTY_GIFT_CODE = "TTM.KMDIEM"

INVESTMENT_GIFT_CODE = "TT DAU TU"

MARKETPLACE_PROMOTION_CODES = {
    "menard": "TTM.R601ECOM",
    "yaman": "BTH.R601ECOM",
}

ECOMMERCE_CHANNELS = ("shopee", "lazada", "tiktok")
ECOMMERCE_VOUCHER_CODES = {
    "menard": "TTM.R601ECOM",
    "yaman": "BTH.R601ECOM",
    "chando": "CDV.R601ECOM",
}
DEFAULT_ECOMMERCE_VOUCHER_CODE = "VC CTKM SÀN"
GENERIC_VOUCHER_CODE = "VOUCHER"

# (brand, product type, gift product) -> voucher code; None matches any gift flag
BRAND_VOUCHER_CODES: Dict[Tuple[str, ProductType, Optional[bool]], str] = {
    ("yaman", ProductType.ITEM, None): "YVC.HB",
    ("yaman", ProductType.SERVICE, None): "YVC.DV",
    ("facialbar", ProductType.ITEM, None): "FBV TT VCDV",
    ("facialbar", ProductType.SERVICE, None): "FBV TT VCHH",
    ("labhair", ProductType.ITEM, True): "LHVTT.VCKM",
    ("labhair", ProductType.ITEM, False): "LHVTT.VCHB",
    ("labhair", ProductType.SERVICE, None): "LHVTT.VCDV",
    ("menard", ProductType.ITEM, True): "VC KM",
    ("menard", ProductType.ITEM, False): "VC HB",
    ("menard", ProductType.SERVICE, None): "VC DV",
    ("menard", ProductType.VOUCHER, None): "VC KM",
}

BRAND_CODES = {
    "menard": "MN",
    "facialbar": "FBV",
    "chando": "CDV",
    "labhair": "LHV",
    "yaman": "BTH",
}
DEFAULT_BRAND_CODE = "MN"

BRAND_ALIASES = {
    "f3": "facialbar",
}

SERVICE_PRODUCT_CATEGORY = "DIVU"
VOUCHER_PRODUCT_CATEGORY = "VOUC"

_TYPE_SUFFIX = re.compile(r"\.(I|S|V)$", re.IGNORECASE)


# =============================================================================
# Small Helpers
# =============================================================================

def normalize_brand(brand: Optional[str]) -> str:
    key = (brand or "").strip().lower()
    return BRAND_ALIASES.get(key, key)


def limit_code(code: Optional[str], max_length: int = CODE_MAX_LENGTH) -> Optional[str]:
    """Cut a code to the gateway's field length."""
    if code is None:
        return None
    return code[:max_length]


def brand_code(brand: Optional[str]) -> str:
    return BRAND_CODES.get(normalize_brand(brand), DEFAULT_BRAND_CODE)


# =============================================================================
# Account Precedence
# =============================================================================

@dataclass(frozen=True)
class AccountContext:
    """Inputs to the account-code precedence chain."""
    category: OrderCategory
    product_type: Optional[ProductType]
    vip_amount: Decimal = Decimal("0")
    voucher_amount: Decimal = Decimal("0")
    other_discount: Decimal = Decimal("0")
    is_gift_line: bool = False
    is_gift_product: bool = False
    has_promotion_code: bool = False
    gift_promotion_active: bool = False
    existing: AccountCodes = AccountCodes()


def resolve_accounts(ctx: AccountContext) -> AccountCodes:
    """
    Resolve discount/cost/fee accounts; first matching branch wins.

    1. Bottle exchange, point exchange, investment: cost/fee pair A
    2. Birthday gift: cost/fee pair B
    3. Gift promotion on a gift line: pair A, discount account carried over
    4. VIP discount on item/service lines
    5. Voucher payment: gift product, then item/service
    6. Generic discount on service/item lines
    7. Promotion code (unless a gift promotion on a gift line)
    8. Carry over the line's existing values

    Voucher-flagged lines fall through branches keyed on product type.
    """
    existing = ctx.existing
    ptype = ctx.product_type

    def discount(account: str) -> AccountCodes:
        return AccountCodes(
            discount_account=account,
            cost_account=existing.cost_account,
            fee_code=existing.fee_code,
        )

    if ctx.category in PAIR_A_CATEGORIES:
        return AccountCodes(None, *COST_FEE_PAIR_A)

    if ctx.category == OrderCategory.BIRTHDAY_GIFT:
        return AccountCodes(None, *COST_FEE_PAIR_B)

    if ctx.gift_promotion_active and ctx.is_gift_line:
        return AccountCodes(existing.discount_account, *COST_FEE_PAIR_A)

    if ctx.vip_amount > 0 and ptype in VIP_DISCOUNT_ACCOUNTS:
        return discount(VIP_DISCOUNT_ACCOUNTS[ptype])

    if ctx.voucher_amount > 0:
        if ctx.is_gift_product:
            return discount(VOUCHER_GIFT_PRODUCT_ACCOUNT)
        if ptype in VOUCHER_DISCOUNT_ACCOUNTS:
            return discount(VOUCHER_DISCOUNT_ACCOUNTS[ptype])

    if ctx.other_discount > 0 and ptype in GENERIC_DISCOUNT_ACCOUNTS:
        return discount(GENERIC_DISCOUNT_ACCOUNTS[ptype])

    if ctx.has_promotion_code and not (ctx.gift_promotion_active and ctx.is_gift_line):
        if ptype == ProductType.SERVICE:
            return discount(GENERIC_DISCOUNT_ACCOUNTS[ProductType.SERVICE])
        return discount(GENERIC_DISCOUNT_ACCOUNTS[ProductType.ITEM])

    return existing


# =============================================================================
# Promotion Codes
# =============================================================================

def rewrite_promotion_prefix(code: str) -> Tuple[str, bool]:
    """Replace an alternate prefix by its canonical one (case-insensitive)."""
    upper = code.upper()
    for prefix, canonical in CANONICAL_PROMOTION_PREFIXES.items():
        if upper.startswith(prefix):
            return canonical + code[len(prefix):], True
    return code, False


def display_segment(code: str) -> str:
    """Leading dash-delimited segment of a promotion code."""
    return code.split("-")[0].strip()


def strip_type_suffix(code: str) -> str:
    return _TYPE_SUFFIX.sub("", code)


def append_type_suffix(code: str, product_type: Optional[ProductType]) -> str:
    """Append .I/.S/.V exactly once; already-suffixed codes are returned as-is."""
    if not code or product_type is None:
        return code
    if _TYPE_SUFFIX.search(code):
        return code
    return f"{code}.{product_type.value}"


def resolve_promotion_codes(
    raw_code: Optional[str],
    flags: OrderTypeFlags,
    product_type: Optional[ProductType],
    is_gift_line: bool,
    brand: Optional[str] = None,
    company_code: Optional[str] = None,
) -> PromotionCodes:
    """
    Resolve the promotion display code and the gift promotion code.

    Args:
        raw_code: Promotion code as sent upstream
        flags: Header classification
        product_type: Line product type flag
        is_gift_line: True when price and revenue are both zero
        brand: Order brand
        company_code: Accounting company code of the branch

    Returns:
        PromotionCodes
    """
    if flags.category == OrderCategory.LOYALTY_POINT_EXCHANGE:
        gift = LOYALTY_GIFT_CODES.get((company_code or "").strip().upper(), DEFAULT_LOYALTY_GIFT_CODE)
        return PromotionCodes(promotion_code="", gift_code=gift)

    if is_gift_line and flags.category == OrderCategory.INVESTMENT:
        return PromotionCodes(gift_code=INVESTMENT_GIFT_CODE)

    code = (raw_code or "").strip()
    if not code:
        return PromotionCodes()

    code, rewritten = rewrite_promotion_prefix(code)

    if is_gift_line and flags.category == OrderCategory.NORMAL:
        return PromotionCodes(
            gift_code=strip_type_suffix(display_segment(code)),
            rewritten=rewritten,
        )

    if flags.is_marketplace:
        fixed = MARKETPLACE_PROMOTION_CODES.get(normalize_brand(brand))
        if fixed:
            return PromotionCodes(promotion_code=fixed, rewritten=rewritten)

    display = display_segment(code)
    if not rewritten and not flags.is_marketplace:
        display = append_type_suffix(display, product_type)
    return PromotionCodes(promotion_code=display, rewritten=rewritten)


# =============================================================================
# Voucher Codes
# =============================================================================

def is_ecommerce_customer(ecommerce_name: Optional[str]) -> bool:
    name = (ecommerce_name or "").strip().lower()
    return any(channel in name for channel in ECOMMERCE_CHANNELS)


def brand_voucher_code(
    brand: Optional[str],
    product_type: Optional[ProductType],
    revenue: Decimal,
    line_total: Decimal,
    is_gift_product: bool = False,
) -> Optional[str]:
    """Generic voucher code from brand and product type."""
    if revenue == 0 and line_total == 0:
        return None

    key = normalize_brand(brand)
    if product_type is not None:
        for gift_flag in (is_gift_product, None):
            code = BRAND_VOUCHER_CODES.get((key, product_type, gift_flag))
            if code:
                return code
    return GENERIC_VOUCHER_CODE


def resolve_voucher_code(
    brand: Optional[str],
    ecommerce_name: Optional[str],
    fallback: Callable[[], Optional[str]],
) -> Optional[str]:
    """
    Voucher display code.

    E-commerce customers get a brand-fixed code; everyone else gets the
    result of the fallback calculation.
    """
    if is_ecommerce_customer(ecommerce_name):
        return ECOMMERCE_VOUCHER_CODES.get(normalize_brand(brand), DEFAULT_ECOMMERCE_VOUCHER_CODE)
    return fallback()


# =============================================================================
# Discount Slot Codes
# =============================================================================

def vip_discount_code(
    brand: Optional[str],
    product_category: Optional[str],
    material_code: Optional[str],
    track_inventory: bool = True,
    track_serial: bool = False,
) -> str:
    """Code for the VIP/grade discount slot (ck03)."""
    category = (product_category or "").strip().upper()
    if normalize_brand(brand) == "facialbar":
        return "FBV CKVIP DV" if category == SERVICE_PRODUCT_CATEGORY else "FBV CKVIP SP"

    if category == SERVICE_PRODUCT_CATEGORY:
        return "VIP DV MAT"
    if category == VOUCHER_PRODUCT_CATEGORY:
        return "VIP VC MP"

    material = (material_code or "").upper()
    if material.startswith("E.") or "VC" in material or (not track_inventory and track_serial):
        return "VIP VC MP"
    return "VIP MP"


def ecoin_discount_code(brand: Optional[str], doc_date: datetime) -> str:
    """Code for the e-coin slot (ck11): YYMM + brand code + .TKDV."""
    return f"{doc_date.strftime('%y%m')}{brand_code(brand)}.TKDV"


# =============================================================================
# Transaction Type / Warehouse
# =============================================================================

def resolve_transaction_type(
    category: OrderCategory,
    product_type: Optional[ProductType],
    quantity: Decimal,
) -> str:
    """Transaction-type code (loai_gd)."""
    if category in (OrderCategory.NORMAL_EXCHANGE, OrderCategory.CARD_SEPARATION):
        return "11" if quantity < 0 else "12"
    if category == OrderCategory.SERVICE and product_type == ProductType.SERVICE and quantity > 0:
        return "01"
    return "01"


def resolve_warehouse_code(
    category: OrderCategory,
    department_code: Optional[str],
    movement_stock_code: Optional[str],
    line_warehouse_code: Optional[str],
) -> str:
    """
    Warehouse code for a line.

    Card separation always uses "B" + department code; otherwise the stock
    movement's code, then the line's own code, then empty.
    """
    if category == OrderCategory.CARD_SEPARATION:
        return f"B{department_code or ''}"
    for candidate in (movement_stock_code, line_warehouse_code):
        if candidate:
            return candidate
    return ""
