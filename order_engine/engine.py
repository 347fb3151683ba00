"""
Invoice Field Engine

Main engine that resolves a whole order into accounting lines.

The engine is pure: catalog and department data arrive in a
ReferenceSnapshot fetched by the caller once per order.
"""

import logging
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from core.models.canonical import CatalogItem, Order, SaleLine, StockMovement

from .accounting import (
    AccountContext,
    DEFAULT_ECOMMERCE_VOUCHER_CODE,
    GIFT_PRODUCT_CATEGORY,
    INVESTMENT_GIFT_CODE,
    brand_voucher_code,
    ecoin_discount_code,
    limit_code,
    resolve_accounts,
    resolve_promotion_codes,
    resolve_transaction_type,
    resolve_voucher_code,
    resolve_warehouse_code,
    vip_discount_code,
)
from .batch_serial import CARD_MATERIAL_TYPE, pick_raw_identifier, resolve_batch_serial
from .classifier import SALE_RETURN_SOURCE, describe_order_type
from .models import (
    AccountCodes,
    AccountingFields,
    DiscountSlot,
    OrderCategory,
    OrderTypeFlags,
    ProductType,
    ReferenceSnapshot,
    ResolvedLine,
    ResolvedOrder,
    empty_discount_slots,
)
from .pricing import allocate, scale_amount, scale_discounts

logger = logging.getLogger(__name__)

SKIPPED_ITEM_CODES = frozenset({"TRUTONKEEP"})
EMPLOYEE_CUSTOMER_PREFIX = "NV"
MARKETPLACE_VOUCHER_SLOT = 15

# Voucher code fallback: (brand, line, catalog item, product type) -> code
VoucherFallback = Callable[
    [Optional[str], SaleLine, Optional[CatalogItem], Optional[ProductType]],
    Optional[str],
]


def normalize_customer_code(code: Optional[str]) -> Optional[str]:
    """Strip the employee prefix from customer codes."""
    if code and len(code) > 2 and code.upper().startswith(EMPLOYEE_CUSTOMER_PREFIX):
        return code[2:]
    return code


class InvoiceFieldEngine:
    """
    Resolves the accounting fields of every line of an order.

    Usage:
        engine = InvoiceFieldEngine()
        resolved = engine.resolve_order(order, snapshot)
    """

    def __init__(self, voucher_fallback: Optional[VoucherFallback] = None):
        """
        Initialize the engine.

        Args:
            voucher_fallback: Voucher code calculation used for customers
                outside the e-commerce channels; defaults to the brand table
        """
        self.voucher_fallback = voucher_fallback or self._brand_voucher_fallback

    def resolve_order(self, order: Order, snapshot: ReferenceSnapshot) -> ResolvedOrder:
        """
        Resolve every line of an order.

        Args:
            order: Upstream order
            snapshot: Reference data fetched for this order

        Returns:
            ResolvedOrder; lines are not validated here (see payload builder)
        """
        first_line_source = order.lines[0].doc_source_type if order.lines else None
        flags = describe_order_type(
            order.header_label,
            order.doc_source_type or first_line_source,
        )

        department = snapshot.department
        department_code = department.department_code if department else None
        company_code = department.company_code if department else None

        movements = self._index_movements(order.movements)

        resolved: List[ResolvedLine] = []
        skipped: List[str] = []
        for line in order.lines:
            if line.item_code.strip().upper() in SKIPPED_ITEM_CODES:
                skipped.append(line.item_code)
                continue
            resolved.append(self._resolve_line(
                line=line,
                line_number=len(resolved) + 1,
                order=order,
                flags=flags,
                catalog=snapshot.catalog_for(line.item_code),
                movement=movements.get(line.item_code),
                department_code=department_code,
                company_code=company_code,
            ))

        customer_code = normalize_customer_code(order.customer.code)
        if flags.category == OrderCategory.CARD_SEPARATION:
            for line in order.lines:
                if line.qty < 0 and line.issue_partner_code:
                    customer_code = line.issue_partner_code
                    break

        logger.info(
            "Resolved order %s as %s: %d lines, %d skipped",
            order.doc_code, flags.category.value, len(resolved), len(skipped),
        )

        return ResolvedOrder(
            order=order,
            flags=flags,
            lines=resolved,
            customer_code=customer_code,
            company_code=company_code,
            department_code=department_code,
            skipped_lines=skipped,
        )

    # =========================================================================
    # Line Resolution
    # =========================================================================

    def _resolve_line(
        self,
        line: SaleLine,
        line_number: int,
        order: Order,
        flags: OrderTypeFlags,
        catalog: Optional[CatalogItem],
        movement: Optional[StockMovement],
        department_code: Optional[str],
        company_code: Optional[str],
    ) -> ResolvedLine:
        """Resolve one line."""
        category = flags.category
        ptype = ProductType.parse(line.product_type)
        product_category = catalog.product_category if catalog else None
        material_code = (catalog.material_code if catalog else None) or line.item_code
        unit = (catalog.unit if catalog else None) or line.unit
        is_gift_line = line.is_gift
        is_gift_product = (product_category or "").upper() == GIFT_PRODUCT_CATEGORY

        # Price allocation
        fulfilled = abs(movement.qty) if movement is not None else None
        allocation = allocate(line.qty, fulfilled, line.price, line.revenue, category)
        quantity = fulfilled if fulfilled is not None and line.qty != 0 else line.qty

        # Promotion, voucher and accounts
        promo = resolve_promotion_codes(
            raw_code=line.promotion_code,
            flags=flags,
            product_type=ptype,
            is_gift_line=is_gift_line,
            brand=order.brand,
            company_code=company_code,
        )
        voucher_code = None
        if category != OrderCategory.LOYALTY_POINT_EXCHANGE:
            voucher_code = resolve_voucher_code(
                order.brand,
                order.customer.ecommerce_name,
                lambda: self.voucher_fallback(order.brand, line, catalog, ptype),
            )

        accounts = resolve_accounts(AccountContext(
            category=category,
            product_type=ptype,
            vip_amount=line.vip_discount,
            voucher_amount=line.voucher_paid,
            other_discount=line.other_discount,
            is_gift_line=is_gift_line,
            is_gift_product=is_gift_product,
            has_promotion_code=bool(line.promotion_code),
            gift_promotion_active=bool(promo.gift_code),
            existing=AccountCodes(line.discount_account, line.cost_account, line.fee_code),
        ))

        # Discount slots
        discounts = self._build_discounts(
            line, order, flags, catalog, material_code, promo.promotion_code, voucher_code,
        )
        tax_amount = line.tax_amount
        discounts = scale_discounts(discounts, allocation.ratio)
        tax_amount = scale_amount(tax_amount, allocation.ratio)

        # Lot / serial
        raw_identifier = pick_raw_identifier(
            movement.batch_serial if movement else None,
            line.serial,
            catalog.material_type if catalog else None,
            line.ma_vt_ref,
        )
        batch_serial = resolve_batch_serial(
            catalog.track_batch if catalog else False,
            catalog.track_serial if catalog else False,
            raw_identifier,
            product_category,
        )

        card_code = None
        material_type = catalog.material_type if catalog else None
        if batch_serial.serial_code and (
            material_type == CARD_MATERIAL_TYPE
            or (flags.is_normal_label and ptype in (ProductType.SERVICE, ProductType.VOUCHER))
        ):
            card_code = batch_serial.serial_code

        km_yn = 1 if is_gift_line and promo.gift_code != INVESTMENT_GIFT_CODE else 0

        return ResolvedLine(
            line_number=line_number,
            item_code=line.item_code,
            material_code=material_code,
            unit=unit,
            quantity=quantity,
            unit_price=allocation.unit_price,
            line_amount=allocation.line_amount,
            product_type=ptype,
            discounts=discounts,
            accounts=AccountingFields(
                discount_account=accounts.discount_account,
                cost_account=accounts.cost_account,
                fee_code=accounts.fee_code,
                promotion_code=limit_code(promo.promotion_code),
                gift_code=limit_code(promo.gift_code),
                voucher_code=limit_code(voucher_code),
            ),
            tax_code=line.tax_code or "00",
            tax_rate=line.tax_rate,
            tax_amount=tax_amount,
            warehouse_code=resolve_warehouse_code(
                category,
                department_code,
                movement.stock_code if movement else None,
                line.warehouse_code,
            ),
            department_code=department_code,
            card_code=card_code,
            lot_code=batch_serial.lot_code,
            serial_code=batch_serial.serial_code,
            transaction_type=resolve_transaction_type(category, ptype, line.qty),
            is_gift=is_gift_line,
            km_yn=km_yn,
            fulfillment_date=movement.trans_date if movement else None,
            issue_partner_code=line.issue_partner_code,
            svc_code=line.svc_code,
        )

    def _build_discounts(
        self,
        line: SaleLine,
        order: Order,
        flags: OrderTypeFlags,
        catalog: Optional[CatalogItem],
        material_code: str,
        promotion_code: Optional[str],
        voucher_code: Optional[str],
    ) -> Dict[int, DiscountSlot]:
        """Fill the 22 discount slots from the line amounts."""
        slots = empty_discount_slots()
        loyalty = flags.is_loyalty

        for idx, amount in line.extra_discounts.items():
            if idx in slots:
                slots[idx].amount = amount

        slots[1] = DiscountSlot(
            code=limit_code(promotion_code),
            amount=Decimal("0") if loyalty else line.other_discount,
        )
        slots[2] = DiscountSlot(amount=line.policy_discount)
        slots[3] = DiscountSlot(amount=line.vip_discount)
        if line.vip_discount > 0:
            slots[3].code = limit_code(vip_discount_code(
                order.brand,
                catalog.product_category if catalog else None,
                material_code,
                catalog.track_inventory if catalog else True,
                catalog.track_serial if catalog else False,
            ))
        slots[4] = DiscountSlot(
            code="COUPON" if line.coupon_discount > 0 else None,
            amount=line.coupon_discount,
        )
        slots[5] = DiscountSlot(
            code="" if loyalty else limit_code(voucher_code),
            amount=Decimal("0") if loyalty else line.voucher_paid,
        )
        slots[6] = DiscountSlot(amount=line.voucher_dp1)
        slots[7] = DiscountSlot(
            code="VOUCHER_DP2" if line.voucher_dp2 > 0 else None,
            amount=line.voucher_dp2,
        )
        slots[8] = DiscountSlot(
            code="VOUCHER_DP3" if line.voucher_dp3 > 0 else None,
            amount=line.voucher_dp3,
        )
        slots[11] = DiscountSlot(
            code=limit_code(ecoin_discount_code(order.brand, order.doc_date)) if line.ecoin_paid > 0 else None,
            amount=line.ecoin_paid,
        )

        if flags.is_marketplace and slots[5].amount > 0:
            slots[MARKETPLACE_VOUCHER_SLOT] = DiscountSlot(
                code=DEFAULT_ECOMMERCE_VOUCHER_CODE,
                amount=slots[5].amount,
            )
            slots[5] = DiscountSlot()
            slots[6] = DiscountSlot()

        return slots

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _index_movements(movements: List[StockMovement]) -> Dict[str, StockMovement]:
        """Index sale-side movements by item and material code; first movement wins."""
        index: Dict[str, StockMovement] = {}
        for mv in movements:
            if (mv.doc_source_type or "").upper() == SALE_RETURN_SOURCE:
                continue
            index.setdefault(mv.item_code, mv)
            if mv.material_code:
                index.setdefault(mv.material_code, mv)
        return index

    @staticmethod
    def _brand_voucher_fallback(
        brand: Optional[str],
        line: SaleLine,
        catalog: Optional[CatalogItem],
        ptype: Optional[ProductType],
    ) -> Optional[str]:
        return brand_voucher_code(
            brand=brand,
            product_type=ptype,
            revenue=line.revenue,
            line_total=line.line_total,
            is_gift_product=(catalog.product_category or "").upper() == GIFT_PRODUCT_CATEGORY
            if catalog else False,
        )


def resolve_order(order: Order, snapshot: Optional[ReferenceSnapshot] = None) -> ResolvedOrder:
    """
    Convenience function to resolve an order with the default engine.

    Args:
        order: Upstream order
        snapshot: Reference data for the order (empty if omitted)

    Returns:
        ResolvedOrder
    """
    return InvoiceFieldEngine().resolve_order(order, snapshot or ReferenceSnapshot())
