"""shipment_etl.transform

Maps one workbook row onto a ShipmentRecord.

HEADER_MAP lists every header spelling the incoming-goods workbook has used
for a column.  When two spellings of the same field are both filled in one
row, the one declared first wins.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable

from shipment_etl.normalize import (
    REFERENCE_YEAR,
    is_blank,
    normalize_space,
    parse_amount,
    parse_int,
    parse_sheet_date,
)
from shipment_etl.status import DELIVERED, map_status

HEADER_MAP: tuple[tuple[str, str], ...] = (
    # Template headers
    ("SN", "sn"),
    ("نوع البضاعة", "product_text"),
    ("عدد الحاويات", "container_count"),
    ("الوزن/طن", "weight_ton"),
    ("التثبيت $", "price_per_ton"),
    ("POL", "pol"),
    ("POD", "pod"),
    ("ETA", "eta"),
    ("FREE TIME / السماح", "free_time_days"),
    ("الحالة", "status"),
    ("الآوراق", "paperwork_status"),
    ("شركة الشحن", "shipping_line"),
    ("التعقب", "booking_no"),
    ("رقم البوليصة", "bl_no"),
    ("تاريخ الرعبون", "deposit_date"),
    ("تاريخ الشحن حسب العقد", "contract_ship_date"),
    ("تاريخ البوليصة", "bl_date"),
    # Headers found in the live workbook
    ("رقم العقد", "sn"),
    ("نوع البضاعة ", "product_text"),  # trailing space in the sheet
    ("حاوية", "container_count"),
    ("الكمية طن", "weight_ton"),
    ("سعر الطن", "price_per_ton"),
    ("المنشأ", "pol"),
    ("الجهة", "pod"),
    ("الشركة المصدرة", "shipping_line"),
)

TEXT_FIELDS = frozenset({
    "sn", "product_text", "paperwork_status", "booking_no", "bl_no",
    "pol", "pod", "shipping_line",
})
INT_FIELDS = frozenset({"container_count", "free_time_days"})
AMOUNT_FIELDS = frozenset({"weight_ton", "price_per_ton"})
DATE_FIELDS = frozenset({"eta", "deposit_date", "contract_ship_date", "bl_date"})


@dataclass
class ShipmentRecord:
    """Normalized shipment row.  None means the field is absent."""

    sn: str | None = None
    product_text: str | None = None
    container_count: int | None = None
    free_time_days: int | None = None
    weight_ton: Decimal | None = None
    price_per_ton: Decimal | None = None
    total_value: Decimal | None = None
    eta: date | None = None
    deposit_date: date | None = None
    contract_ship_date: date | None = None
    bl_date: date | None = None
    status: str | None = None
    paperwork_status: str | None = None
    booking_no: str | None = None
    bl_no: str | None = None
    pol: str | None = None
    pod: str | None = None
    shipping_line: str | None = None
    # Filled in by master-data resolution
    pol_id: str | None = None
    pod_id: str | None = None
    shipping_line_id: str | None = None

    @property
    def is_blank(self) -> bool:
        return self.sn is None and self.product_text is None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _coercer(
    field_name: str,
    reference_year: int,
    epoch: datetime | None,
) -> Callable[[Any], Any]:
    if field_name in TEXT_FIELDS:
        return normalize_space
    if field_name in INT_FIELDS:
        return parse_int
    if field_name in AMOUNT_FIELDS:
        return parse_amount
    if field_name in DATE_FIELDS:
        return lambda v: parse_sheet_date(v, reference_year, epoch)
    if field_name == "status":
        return map_status
    raise KeyError(f"no coercion rule for field {field_name!r}")


def transform_row(
    values: dict[str, Any],
    delivered: bool = False,
    reference_year: int = REFERENCE_YEAR,
    epoch: datetime | None = None,
    header_map: tuple[tuple[str, str], ...] = HEADER_MAP,
) -> ShipmentRecord:
    """Build a ShipmentRecord from a header -> cell value mapping.

    Bad numbers, dates and statuses become None rather than errors.
    A *delivered* row always ends with status "delivered".
    """
    record = ShipmentRecord()
    claimed: set[str] = set()

    for label, field_name in header_map:
        value = values.get(label)
        if is_blank(value) or field_name in claimed:
            continue
        claimed.add(field_name)
        coerce = _coercer(field_name, reference_year, epoch)
        setattr(record, field_name, coerce(value))

    if record.weight_ton is not None and record.price_per_ton is not None:
        record.total_value = record.weight_ton * record.price_per_ton

    if delivered:
        record.status = DELIVERED

    return record
