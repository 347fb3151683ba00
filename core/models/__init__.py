"""Core data models - accounting-neutral canonical types.

This package contains the canonical order and reference models read from
the upstream POS and loyalty APIs.
"""

from core.models.canonical import (
    # Base
    CanonicalBase,
    DecimalValue,
    AmountValue,
    DateTimeValue,
    CodeValue,
    
    # Reference data
    CatalogItem,
    Department,
    
    # Order data
    Customer,
    SaleLine,
    StockMovement,
    Order,
    PaymentRecord,
)

__all__ = [
    # Base
    "CanonicalBase",
    "DecimalValue",
    "AmountValue",
    "DateTimeValue",
    "CodeValue",
    
    # Reference data
    "CatalogItem",
    "Department",
    
    # Order data
    "Customer",
    "SaleLine",
    "StockMovement",
    "Order",
    "PaymentRecord",
]
