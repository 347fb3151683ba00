"""
Price Allocation Calculator

Recomputes unit price and line amount when a line was only partly
fulfilled, and scales every monetary slot by the same fulfillment ratio.
"""

from decimal import Decimal
from typing import Dict, Optional

from .models import DiscountSlot, OrderCategory, PriceAllocation

ZERO = Decimal("0")
ONE = Decimal("1")

# Categories whose line amount is recomputed from the fulfilled quantity
REALLOCATING_CATEGORIES = frozenset({OrderCategory.NORMAL})


def allocation_ratio(ordered_qty: Decimal, fulfilled_qty: Optional[Decimal]) -> Decimal:
    """
    Shipped magnitude over the signed ordered quantity.

    1 when no movement exists or the ordered quantity is zero. The
    result may be zero (nothing shipped) or negative (a return line with
    a shipped movement); scale_amount leaves values untouched for both.
    """
    if fulfilled_qty is None or ordered_qty == 0:
        return ONE
    return abs(fulfilled_qty) / ordered_qty


def allocate(
    ordered_qty: Decimal,
    fulfilled_qty: Optional[Decimal],
    unit_price: Decimal,
    line_revenue: Decimal,
    category: OrderCategory,
) -> PriceAllocation:
    """
    Compute unit price and allocated line amount.

    Args:
        ordered_qty: Quantity on the order line
        fulfilled_qty: Quantity actually shipped, if a movement exists
        unit_price: Upstream unit price
        line_revenue: Upstream line revenue
        category: Header order category

    Returns:
        PriceAllocation carrying the fulfillment ratio for every category;
        both amounts are zero for point redemptions
    """
    ratio = allocation_ratio(ordered_qty, fulfilled_qty)
    if category == OrderCategory.LOYALTY_POINT_EXCHANGE:
        return PriceAllocation(unit_price=ZERO, line_amount=ZERO, ratio=ratio)

    price = unit_price
    if price == 0 and line_revenue > 0 and ordered_qty != 0:
        price = line_revenue / abs(ordered_qty)

    # Only the headline amount is recomputed per category
    if (
        category in REALLOCATING_CATEGORIES
        and fulfilled_qty is not None
        and abs(fulfilled_qty) != abs(ordered_qty)
    ):
        fulfilled = abs(fulfilled_qty)
        if fulfilled > 0 and price > 0:
            amount = fulfilled * price
        else:
            amount = line_revenue * ratio
        return PriceAllocation(unit_price=price, line_amount=amount, ratio=ratio, reallocated=True)

    return PriceAllocation(unit_price=price, line_amount=line_revenue, ratio=ratio)


def scale_amount(value: Decimal, ratio: Decimal) -> Decimal:
    # Zero and negative ratios never scale
    if ratio == ONE or ratio <= 0:
        return value
    return value * ratio


def scale_discounts(slots: Dict[int, DiscountSlot], ratio: Decimal) -> Dict[int, DiscountSlot]:
    """Scale every discount slot amount by ratio; codes are kept."""
    return {
        idx: DiscountSlot(code=slot.code, amount=scale_amount(slot.amount, ratio))
        for idx, slot in slots.items()
    }
