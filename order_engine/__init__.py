"""
Order Engine Package

Accounting-system-agnostic rule engine that turns POS orders into
accounting documents.

Features:
- Order-type classification from free-text labels
- Lot/serial resolution with category truncation
- Partial-fulfillment price reallocation
- Discount/cost/fee account precedence, promotion and voucher codes
- Invoice, sales return, GXT transfer and payment payloads

Usage:
    from order_engine import InvoiceFieldEngine, InvoicePayloadBuilder

    resolved = InvoiceFieldEngine().resolve_order(order, snapshot)
    invoices = InvoicePayloadBuilder(resolved).build_invoices()
"""

from .models import (
    # Enums
    OrderCategory,
    ProductType,

    # Data classes
    OrderTypeFlags,
    BatchSerial,
    PriceAllocation,
    DiscountSlot,
    AccountCodes,
    PromotionCodes,
    AccountingFields,
    ResolvedLine,
    ResolvedOrder,
    ReferenceSnapshot,
    DISCOUNT_SLOT_COUNT,
)

from .errors import (
    OrderValidationError,
    MissingRequiredFieldError,
)

from .classifier import (
    classify_order_type,
    describe_order_type,
    is_service_label,
    normalize_label,
)

from .batch_serial import (
    resolve_batch_serial,
    pick_raw_identifier,
)

from .pricing import (
    allocate,
    allocation_ratio,
    scale_discounts,
)

from .accounting import (
    AccountContext,
    resolve_accounts,
    resolve_promotion_codes,
    resolve_voucher_code,
    brand_voucher_code,
    resolve_transaction_type,
    resolve_warehouse_code,
)

from .engine import (
    InvoiceFieldEngine,
    resolve_order,
)

from .payload import (
    InvoicePayloadBuilder,
    build_summary,
    split_by_fulfillment_date,
    require_units,
    is_cash_payment,
)

__all__ = [
    # Enums
    "OrderCategory",
    "ProductType",

    # Data classes
    "OrderTypeFlags",
    "BatchSerial",
    "PriceAllocation",
    "DiscountSlot",
    "AccountCodes",
    "PromotionCodes",
    "AccountingFields",
    "ResolvedLine",
    "ResolvedOrder",
    "ReferenceSnapshot",
    "DISCOUNT_SLOT_COUNT",

    # Errors
    "OrderValidationError",
    "MissingRequiredFieldError",

    # Classification
    "classify_order_type",
    "describe_order_type",
    "is_service_label",
    "normalize_label",

    # Line resolvers
    "resolve_batch_serial",
    "pick_raw_identifier",
    "allocate",
    "allocation_ratio",
    "scale_discounts",
    "AccountContext",
    "resolve_accounts",
    "resolve_promotion_codes",
    "resolve_voucher_code",
    "brand_voucher_code",
    "resolve_transaction_type",
    "resolve_warehouse_code",

    # Engine
    "InvoiceFieldEngine",
    "resolve_order",

    # Payloads
    "InvoicePayloadBuilder",
    "build_summary",
    "split_by_fulfillment_date",
    "require_units",
    "is_cash_payment",
]
