"""
Invoice Payload Builder

Assembles resolved lines into the submission documents sent to the
accounting gateway:
- Customer upsert
- Sales order and sales invoice (header + detail + summary)
- Sales return
- GXT service transfer (service orders with item lines)
- Cash receipt / credit advice per payment record

Lines without a unit of measure are dropped before any document is built;
an order with no remaining lines raises MissingRequiredFieldError.
"""

import logging
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from core.models.canonical import Order, PaymentRecord

from .errors import MissingRequiredFieldError, OrderValidationError
from .models import DISCOUNT_SLOT_COUNT, ProductType, ResolvedLine, ResolvedOrder

logger = logging.getLogger(__name__)

CURRENCY = "VND"
EXCHANGE_RATE = 1.0
CHANNEL_CODE = "ONLINE"
DEFAULT_SERIES = "DEFAULT"
TRANSACTION_KIND = "1"
TAX_DEBIT_ACCOUNT = "131111"
RETURN_CREDIT_ACCOUNT = "131"
RETURN_REVENUE_ACCOUNT = "511"
RETURN_COST_ACCOUNT = "632"
GXT_TRANSFER_CODE = "NX01"
CASH_METHOD_CODE = "CASH"
PAYMENT_DOC_KIND = "2"

# Keys kept in a detail row even when empty
KEEP_EMPTY_KEYS = frozenset({"ma_lo", "so_serial"})


# =============================================================================
# Formatting Helpers
# =============================================================================

def _num(value: Optional[Decimal]) -> float:
    return float(value) if value is not None else 0.0


def _fmt_date(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%dT%H:%M:%S")
    return datetime(value.year, value.month, value.day).strftime("%Y-%m-%dT%H:%M:%S")


def _clean(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None and empty-string fields."""
    return {
        k: v for k, v in data.items()
        if k in KEEP_EMPTY_KEYS or (v is not None and v != "")
    }


def slot_key(idx: int) -> str:
    return f"{idx:02d}"


# =============================================================================
# Line Validation and Splitting
# =============================================================================

def require_units(lines: List[ResolvedLine], doc_code: str = "") -> List[ResolvedLine]:
    """
    Drop lines without a unit of measure.

    Raises:
        MissingRequiredFieldError: If no line remains
    """
    kept = []
    for line in lines:
        if line.unit and line.unit.strip():
            kept.append(line)
        else:
            logger.warning("Dropping line %s of %s: no unit of measure", line.item_code, doc_code)
    if not kept:
        raise MissingRequiredFieldError("dvt", f"Order {doc_code} has no line with a unit of measure")
    return kept


def split_by_fulfillment_date(
    lines: List[ResolvedLine],
    today: Optional[date] = None,
) -> "OrderedDict[date, List[ResolvedLine]]":
    """
    Group lines by fulfillment date, earliest first.

    Lines without a fulfillment date join the earliest date's group, or
    today's group when no line has a fulfillment record.
    """
    groups: Dict[date, List[ResolvedLine]] = {}
    undated: List[ResolvedLine] = []
    for line in lines:
        if line.fulfillment_date is None:
            undated.append(line)
        else:
            groups.setdefault(line.fulfillment_date.date(), []).append(line)

    if undated:
        target = min(groups) if groups else (today or date.today())
        groups.setdefault(target, []).extend(undated)
        # Keep original line order inside a group
        groups[target].sort(key=lambda l: l.line_number)

    return OrderedDict(sorted(groups.items()))


def is_cash_payment(record: PaymentRecord) -> bool:
    """Cash methods post a cash receipt; any other method posts a credit advice."""
    return (record.method_code or "").strip().upper() == CASH_METHOD_CODE


def build_summary(lines: List[ResolvedLine]) -> List[Dict[str, Any]]:
    """One reconciliation row per line with the 22 discount slots summed."""
    return [
        {
            "ma_vt": line.material_code,
            "dvt": line.unit or "",
            "so_luong": _num(line.quantity),
            "ck_nt": _num(line.net_discount),
            "gia_nt": _num(line.unit_price),
            "tien_nt": _num(line.line_amount),
        }
        for line in lines
    ]


# =============================================================================
# Payload Builder
# =============================================================================

class InvoicePayloadBuilder:
    """
    Builds gateway documents from a resolved order.

    Usage:
        builder = InvoicePayloadBuilder(resolved)
        for split_date, payload in builder.build_invoices():
            ...
    """

    def __init__(self, resolved: ResolvedOrder):
        self.resolved = resolved
        self.order: Order = resolved.order

    # -------------------------------------------------------------------------
    # Shared pieces
    # -------------------------------------------------------------------------

    @property
    def series(self) -> str:
        return self.order.branch_code or DEFAULT_SERIES

    def valid_lines(self) -> List[ResolvedLine]:
        return require_units(self.resolved.lines, self.order.doc_code)

    def _header(self, doc_date: datetime, doc_number: str) -> Dict[str, Any]:
        customer = self.order.customer
        return {
            "action": 0,
            "ma_dvcs": self.resolved.company_code,
            "ma_kh": self.resolved.customer_code,
            "ong_ba": customer.name,
            "ma_gd": TRANSACTION_KIND,
            "ngay_ct": _fmt_date(doc_date),
            "ngay_lct": _fmt_date(doc_date),
            "so_ct": doc_number,
            "so_seri": self.series,
            "ma_nt": CURRENCY,
            "ty_gia": EXCHANGE_RATE,
            "ma_bp": self.resolved.department_code,
        }

    def _detail_row(self, line: ResolvedLine, row_number: int) -> Dict[str, Any]:
        accounts = line.accounts
        row: Dict[str, Any] = {
            "dong": row_number,
            "ma_vt": line.material_code,
            "dvt": line.unit,
            "so_luong": _num(line.quantity),
            "gia_ban": _num(line.unit_price),
            "tien_hang": _num(line.line_amount),
            "tk_chiet_khau": accounts.discount_account,
            "tk_chi_phi": accounts.cost_account,
            "ma_phi": accounts.fee_code,
            "ma_ctkm_th": accounts.gift_code,
            "km_yn": line.km_yn,
            "ma_thue": line.tax_code,
            "thue_suat": _num(line.tax_rate),
            "tien_thue": _num(line.tax_amount),
            "ma_kho": line.warehouse_code,
            "ma_the": line.card_code,
            "loai_gd": line.transaction_type,
            "ma_bp": line.department_code,
            "ma_kh_i": line.issue_partner_code,
        }
        for idx in range(1, DISCOUNT_SLOT_COUNT + 1):
            slot = line.discounts[idx]
            row[f"ck{slot_key(idx)}_nt"] = _num(slot.amount)
            row[f"ma_ck{slot_key(idx)}"] = slot.code

        row = _clean(row)
        if line.lot_code:
            row["ma_lo"] = line.lot_code
        elif line.serial_code:
            row["so_serial"] = line.serial_code
        return row

    def _document(
        self,
        lines: List[ResolvedLine],
        doc_date: datetime,
        doc_number: str,
    ) -> Dict[str, Any]:
        payload = self._header(doc_date, doc_number)
        payload.update({
            "ma_ca": self.order.shift_code,
            "hinh_thuc": "0",
            "dien_giai": self.order.doc_code,
            "tk_thue_no": TAX_DEBIT_ACCOUNT,
            "ma_kenh": CHANNEL_CODE,
            "loai_gd": lines[0].transaction_type if lines else self.resolved.transaction_type,
        })
        payload = _clean(payload)
        payload["detail"] = [self._detail_row(line, i + 1) for i, line in enumerate(lines)]
        payload["cbdetail"] = build_summary(lines)
        return payload

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def build_customer(self) -> Dict[str, Any]:
        """Customer upsert payload."""
        customer = self.order.customer
        if not self.resolved.customer_code:
            raise MissingRequiredFieldError("ma_kh")
        return _clean({
            "ma_kh": self.resolved.customer_code,
            "ten_kh": customer.name,
            "dien_thoai": customer.phone,
            "dia_chi": customer.address,
            "ma_so_thue": customer.tax_code,
            "ma_dvcs": self.resolved.company_code,
        })

    def build_sales_order(self) -> Dict[str, Any]:
        """Sales order payload covering every valid line."""
        return self._document(self.valid_lines(), self.order.doc_date, self.order.doc_code)

    def build_invoices(self, today: Optional[date] = None) -> List[Tuple[date, Dict[str, Any]]]:
        """
        One invoice payload per fulfillment date.

        A single split keeps the order's document number; several splits
        get a _YYYYMMDD suffix so each is a distinct document.

        Returns:
            List of (split date, payload), earliest first
        """
        splits = split_by_fulfillment_date(self.valid_lines(), today=today)
        multiple = len(splits) > 1
        invoices = []
        for split_date, lines in splits.items():
            doc_number = self.invoice_number(split_date) if multiple else self.order.doc_code
            doc_date = datetime(split_date.year, split_date.month, split_date.day)
            invoices.append((split_date, self._document(lines, doc_date, doc_number)))
        return invoices

    def invoice_number(self, split_date: date) -> str:
        return f"{self.order.doc_code}_{split_date.strftime('%Y%m%d')}"

    def build_sales_return(self) -> Dict[str, Any]:
        """Sales return payload; quantities come from return movements when present."""
        lines = self.valid_lines()
        returned: Dict[str, Decimal] = {}
        for mv in self.order.movements:
            if (mv.doc_source_type or "").upper() == "SALE_RETURN":
                key = mv.material_code or mv.item_code
                returned[key] = returned.get(key, Decimal("0")) + abs(mv.qty)

        payload = self._header(self.order.doc_date, self.order.doc_code)
        payload.update({
            "tk_co": RETURN_CREDIT_ACCOUNT,
            "ma_kenh": CHANNEL_CODE,
            "so_ct0": self.order.original_doc_code,
            "ngay_ct0": _fmt_date(self.order.original_doc_date),
            "dien_giai": self.order.doc_code,
        })
        payload = _clean(payload)

        detail = []
        for i, line in enumerate(lines):
            row = self._detail_row(line, i + 1)
            qty = returned.get(line.material_code, returned.get(line.item_code))
            if qty is not None:
                row["so_luong"] = _num(qty)
            row["tk_dt"] = RETURN_REVENUE_ACCOUNT
            row["tk_gv"] = RETURN_COST_ACCOUNT
            detail.append(row)
        payload["detail"] = detail
        return payload

    def build_gxt_transfer(self) -> Optional[Dict[str, Any]]:
        """
        Service-to-item transfer for service orders.

        Returns None unless the order has both service and item lines.
        Each item row links (dong_vt_goc) to the service row whose service
        code matches its material or item code, else to the first service row.
        """
        lines = self.valid_lines()
        services = [l for l in lines if l.product_type == ProductType.SERVICE]
        items = [l for l in lines if l.product_type == ProductType.ITEM]
        if not services or not items:
            return None

        ndetail = []
        service_rows: Dict[str, int] = {}
        for i, line in enumerate(services):
            row_number = i + 1
            ndetail.append(_clean({
                "dong": row_number,
                "ma_vt": line.material_code,
                "dvt": line.unit,
                "so_luong": _num(abs(line.quantity)),
                "ma_kho": line.warehouse_code,
                "ma_nx": GXT_TRANSFER_CODE,
            }))
            for key in (line.material_code, line.item_code):
                service_rows.setdefault(key, row_number)

        detail = []
        for i, line in enumerate(items):
            link = service_rows.get(line.svc_code or "", 1)
            row = _clean({
                "dong": i + 1,
                "ma_vt": line.material_code,
                "dvt": line.unit,
                "so_luong": _num(abs(line.quantity)),
                "ma_kho": line.warehouse_code,
                "ma_nx": GXT_TRANSFER_CODE,
                "dong_vt_goc": link,
            })
            if line.lot_code:
                row["ma_lo"] = line.lot_code
            elif line.serial_code:
                row["so_serial"] = line.serial_code
            detail.append(row)

        payload = _clean({
            "action": 0,
            "ma_dvcs": self.resolved.company_code,
            "ma_gd": TRANSACTION_KIND,
            "ngay_ct": _fmt_date(self.order.doc_date),
            "so_ct": self.order.doc_code,
            "ma_kho_n": services[0].warehouse_code,
            "ma_kho_x": items[0].warehouse_code,
            "dien_giai": self.order.doc_code,
        })
        payload["ndetail"] = ndetail
        payload["detail"] = detail
        return payload

    def build_payment(self, record: PaymentRecord) -> Tuple[bool, Dict[str, Any]]:
        """
        Payment posting payload.

        Returns:
            (is_cash, payload); cash methods post a cash receipt, any other
            method posts a credit advice
        """
        if record.amount <= 0:
            raise OrderValidationError(
                f"Payment {record.method_code} of {record.doc_code} has no amount"
            )
        is_cash = is_cash_payment(record)
        description = f"Thu tiền cho chứng từ {self.order.doc_code}"
        payload = self._header(record.doc_date or self.order.doc_date, self.order.doc_code)
        payload.update({
            "loai_ct": PAYMENT_DOC_KIND,
            "httt": record.method_code,
            "dien_giai": description,
        })
        payload = _clean(payload)
        payload["detail"] = [_clean({
            "ma_kh_i": self.resolved.customer_code,
            "tien": _num(record.amount),
            "dien_giai": description,
            "ma_bp": self.resolved.department_code,
        })]
        return is_cash, payload
