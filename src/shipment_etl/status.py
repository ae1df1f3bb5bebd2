"""shipment_etl.status

Controlled vocabulary for the workbook's free-text status column.
"""

from __future__ import annotations

from typing import Any

from shipment_etl.normalize import normalize_space

DELIVERED = "delivered"

SHIPMENT_STATUSES = (
    "planning", "booked", "gate_in", "loaded",
    "sailed", "arrived", "delivered", "invoiced",
)

# Order matters: substring matching scans this table top to bottom.
STATUS_LABELS: tuple[tuple[str, str], ...] = (
    ("محجوز", "booked"),
    ("دخل الميناء", "gate_in"),
    ("تحميل", "loaded"),
    ("أبحرت", "sailed"),
    ("وصلت", "arrived"),
    ("مُسلمة", DELIVERED),
    ("مفوترة", "invoiced"),
    ("تخطيط", "planning"),
)

_EXACT = dict(STATUS_LABELS)


def map_status(label: Any) -> str | None:
    """Translate a status label into a shipment status, or None.

    An exact label match wins over any substring match.  Unknown labels
    return None; callers must not substitute a default.
    """
    text = normalize_space(label)
    if text is None:
        return None
    exact = _EXACT.get(text)
    if exact is not None:
        return exact
    for arabic, status in STATUS_LABELS:
        if arabic in text:
            return status
    return None
