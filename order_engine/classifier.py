"""
Order Type Classifier

Maps the free-text order-type label of a POS order to a canonical
OrderCategory. Labels arrive in several localized spellings (with or
without the numeric prefix, extra whitespace, with or without diacritics),
so the label is normalized first and then matched against a priority-ordered
variant table. The first category whose variants match wins.
"""

import logging
import re
import unicodedata
from typing import List, Optional, Tuple

from .models import OrderCategory, OrderTypeFlags

logger = logging.getLogger(__name__)

SALE_RETURN_SOURCE = "SALE_RETURN"


# =============================================================================
# Label Normalization
# =============================================================================

_WHITESPACE = re.compile(r"\s+")


def normalize_label(label: Optional[str]) -> str:
    """
    Normalize an order-type label for matching.

    NFC-composes, case-folds, collapses internal whitespace and trims.
    """
    if not label:
        return ""
    text = unicodedata.normalize("NFC", label).casefold()
    return _WHITESPACE.sub(" ", text).strip()


def _normalized(*variants: str) -> Tuple[str, ...]:
    return tuple(normalize_label(v) for v in variants)


# =============================================================================
# Variant Table (priority order, highest first)
# =============================================================================

ORDER_TYPE_VARIANTS: List[Tuple[OrderCategory, Tuple[str, ...]]] = [
    (OrderCategory.LOYALTY_POINT_EXCHANGE, _normalized("03. Đổi điểm", "03.Đổi điểm", "doi diem")),
    (OrderCategory.NORMAL_EXCHANGE, _normalized("04. Đổi DV", "04.Đổi DV", "doi dv")),
    (OrderCategory.BIRTHDAY_GIFT, _normalized(
        "05. Tặng sinh nhật", "05.Tặng sinh nhật", "Tặng sinh nhật", "tang sinh nhat",
    )),
    (OrderCategory.INVESTMENT, _normalized("06. Đầu tư", "06.Đầu tư", "Đầu tư", "dau tu")),
    (OrderCategory.CARD_SEPARATION, _normalized("08. Tách thẻ", "08.Tách thẻ", "tach the")),
    (OrderCategory.BOTTLE_EXCHANGE, _normalized("Đổi vỏ", "doi vo")),
    (OrderCategory.SERVICE, _normalized(
        "02. Làm dịch vụ", "02.Làm dịch vụ", "Làm dịch vụ", "lam dich vu",
    )),
]

# Labels that count as service without being classified as Service
LEGACY_SERVICE_LABELS = _normalized("Đổi thẻ KEEP->Thẻ DV")

SERVICE_FAMILY = frozenset({
    OrderCategory.SERVICE,
    OrderCategory.NORMAL_EXCHANGE,
    OrderCategory.CARD_SEPARATION,
})

ACCOUNT_SALE_VARIANTS = _normalized("07. Bán tài khoản", "07.Bán tài khoản")
MARKETPLACE_VARIANTS = _normalized("9. Sàn TMĐT", "9.Sàn TMĐT", "9. sàn tmdt", "9.sàn tmdt")
NORMAL_LABEL_PREFIXES = ("01.", "01 ")
NORMAL_LABELS = _normalized("Thường", "thuong")


def _matches(normalized: str, variants: Tuple[str, ...]) -> bool:
    return any(v and v in normalized for v in variants)


# =============================================================================
# Classification
# =============================================================================

def classify_order_type(label: Optional[str]) -> OrderCategory:
    """
    Classify an order-type label.

    Args:
        label: Free-text order-type label

    Returns:
        The first matching category in priority order, or NORMAL
    """
    normalized = normalize_label(label)
    if not normalized:
        return OrderCategory.NORMAL

    for category, variants in ORDER_TYPE_VARIANTS:
        if _matches(normalized, variants):
            return category

    return OrderCategory.NORMAL


def is_service_label(label: Optional[str]) -> bool:
    """Service predicate: Service, NormalExchange, CardSeparation or the legacy label."""
    normalized = normalize_label(label)
    if _matches(normalized, LEGACY_SERVICE_LABELS):
        return True
    return classify_order_type(label) in SERVICE_FAMILY


def describe_order_type(
    label: Optional[str],
    doc_source_type: Optional[str] = None,
) -> OrderTypeFlags:
    """
    Classify a label and compute the derived flags.

    A doc_source_type of SALE_RETURN overrides the label entirely.

    Args:
        label: Free-text order-type label
        doc_source_type: Upstream document source type, if known

    Returns:
        OrderTypeFlags with the primary category and derived predicates
    """
    normalized = normalize_label(label)

    if doc_source_type and doc_source_type.strip().upper() == SALE_RETURN_SOURCE:
        category = OrderCategory.SALE_RETURN
    else:
        category = classify_order_type(label)

    flags = OrderTypeFlags(
        category=category,
        is_service=category in SERVICE_FAMILY or _matches(normalized, LEGACY_SERVICE_LABELS),
        is_account_sale=_matches(normalized, ACCOUNT_SALE_VARIANTS),
        is_marketplace=_matches(normalized, MARKETPLACE_VARIANTS),
        is_normal_label=normalized.startswith(NORMAL_LABEL_PREFIXES) or normalized in NORMAL_LABELS,
    )
    logger.debug("Classified label %r as %s", label, flags.category.value)
    return flags
