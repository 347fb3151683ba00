"""
Batch / Serial Resolver

Decides whether a line is submitted with a lot code (batch-tracked goods) or
a serial code, and derives the value from the raw identifier.
"""

from typing import Optional

from .models import BatchSerial


# Product categories whose lot codes are cut to their trailing characters
TRUNCATION_RULES = {
    "TPCN": 8,
    "SKIN": 4,
    "GIFT": 4,
}

CARD_MATERIAL_TYPE = "94"


def truncate_lot_code(raw_value: str, product_category: Optional[str]) -> str:
    """Keep the trailing characters configured for the category, if any."""
    keep = TRUNCATION_RULES.get((product_category or "").strip().upper())
    if keep and len(raw_value) >= keep:
        return raw_value[-keep:]
    return raw_value


def resolve_batch_serial(
    track_batch: bool,
    track_serial: bool,
    raw_value: Optional[str],
    product_category: Optional[str] = None,
) -> BatchSerial:
    """
    Resolve the lot/serial pair for a line.

    Batch tracking wins over serial tracking; lines tracking neither fall back
    to serial output. Never returns both values populated.

    Args:
        track_batch: Catalog batch-tracking flag
        track_serial: Catalog serial-tracking flag
        raw_value: Raw identifier from the movement or line
        product_category: Catalog product category (TPCN, SKIN, GIFT, ...)

    Returns:
        BatchSerial with at most one field set
    """
    value = (raw_value or "").strip()
    if not value:
        return BatchSerial()

    if track_batch:
        return BatchSerial(lot_code=truncate_lot_code(value, product_category))

    return BatchSerial(serial_code=value)


def pick_raw_identifier(
    movement_value: Optional[str],
    line_value: Optional[str],
    material_type: Optional[str] = None,
    ref_value: Optional[str] = None,
) -> Optional[str]:
    """
    Choose the raw lot/serial value for a line.

    Order: stock movement value, the line's own serial, then (for card
    materials only) the line's reference material code.
    """
    for candidate in (movement_value, line_value):
        if candidate and candidate.strip():
            return candidate.strip()
    if material_type == CARD_MATERIAL_TYPE and ref_value and ref_value.strip():
        return ref_value.strip()
    return None
