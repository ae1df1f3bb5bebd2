"""shipment_etl.styles

Grey-row detection.  The logistics team marks cleared/delivered shipments
by shading the row grey; the shading is read from the fill of the SN and
product cells, which always carry the sheet's formatting.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Theme index 0 is the workbook background (white); a negative tint darkens it.
BACKGROUND_THEME = 0
GREY_TINT_THRESHOLD = -0.3

GREY_RGB = frozenset({"c0c0c0", "d3d3d3", "999999", "808080", "a9a9a9", "969696"})
GREY_INDEXED = frozenset({22, 56})


@dataclass(frozen=True)
class FillInfo:
    """Foreground fill colour of one cell, in whichever form the file used."""

    theme: int | None = None
    tint: float = 0.0
    rgb: str | None = None
    indexed: int | None = None

    @classmethod
    def from_cell(cls, cell: Any) -> FillInfo | None:
        """Read the fill of an openpyxl cell; None when it carries no style."""
        if cell is None or not getattr(cell, "has_style", False):
            return None
        fill = getattr(cell, "fill", None)
        color = getattr(fill, "fgColor", None)
        if color is None:
            return None
        kind = getattr(color, "type", None)
        if kind == "theme":
            return cls(theme=color.theme, tint=float(color.tint or 0.0))
        if kind == "indexed":
            return cls(indexed=color.indexed, tint=float(color.tint or 0.0))
        if kind == "rgb" and isinstance(color.rgb, str):
            return cls(rgb=color.rgb, tint=float(color.tint or 0.0))
        return None


def _rgb_hex(rgb: str) -> str:
    # openpyxl stores ARGB ("FFC0C0C0"); compare on the RGB part only.
    v = rgb.strip().lower()
    return v[-6:] if len(v) == 8 else v


def is_delivered_fill(fill: FillInfo | None) -> bool:
    if fill is None:
        return False
    if fill.theme == BACKGROUND_THEME and fill.tint < GREY_TINT_THRESHOLD:
        return True
    if fill.rgb and _rgb_hex(fill.rgb) in GREY_RGB:
        return True
    if fill.indexed is not None and fill.indexed in GREY_INDEXED:
        return True
    return False


def is_delivered_row(fills: list[FillInfo | None]) -> bool:
    """True if any designated cell of the row is shaded grey."""
    return any(is_delivered_fill(f) for f in fills)
