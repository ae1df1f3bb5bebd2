"""shipment_etl.config

Optional YAML overrides for the workbook import.

Usage:
    from pathlib import Path
    from shipment_etl.config import load_settings

    settings = load_settings(Path("config/import_shipments.yml"))

Every key is optional; omitted keys keep the defaults below.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml
from openpyxl.utils import column_index_from_string

from shipment_etl.normalize import REFERENCE_YEAR

TARGET_SHEET = "جدول وصول البضائع"
DIRECTION = "incoming"
WRITER_TAG = "etl-excel"
DESIGNATED_COLUMNS = ("A", "B")

ALLOWED_KEYS = frozenset({
    "target_sheet",
    "reference_year",
    "direction",
    "writer_tag",
    "designated_columns",
})

VALID_DIRECTIONS = ("incoming", "outgoing")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigValidationError(ValueError):
    """Raised when a YAML settings file fails validation."""


# ---------------------------------------------------------------------------
# ImportSettings dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImportSettings:
    target_sheet: str = TARGET_SHEET
    reference_year: int = REFERENCE_YEAR
    direction: str = DIRECTION
    writer_tag: str = WRITER_TAG
    designated_columns: tuple[str, ...] = DESIGNATED_COLUMNS
    yaml_hash: str | None = None


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_settings(yaml_path: Path | None) -> ImportSettings:
    """Load and validate settings; defaults when *yaml_path* is None.

    Raises:
        ConfigValidationError: unreadable file, bad YAML, or invalid values.
    """
    if yaml_path is None:
        return ImportSettings()
    try:
        raw = yaml_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigValidationError(f"cannot read config {yaml_path}: {exc}") from exc
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"invalid YAML in {yaml_path}: {exc}") from exc
    if data is None:
        data = {}
    validate_settings(data)

    settings = replace(
        ImportSettings(),
        yaml_hash=hashlib.sha256(raw.encode("utf-8")).hexdigest(),
    )
    if "target_sheet" in data:
        settings = replace(settings, target_sheet=str(data["target_sheet"]))
    if "reference_year" in data:
        settings = replace(settings, reference_year=int(data["reference_year"]))
    if "direction" in data:
        settings = replace(settings, direction=data["direction"])
    if "writer_tag" in data:
        settings = replace(settings, writer_tag=str(data["writer_tag"]))
    if "designated_columns" in data:
        settings = replace(
            settings,
            designated_columns=tuple(c.strip().upper() for c in data["designated_columns"]),
        )
    return settings


def validate_settings(data: Any) -> None:
    """Raise ConfigValidationError if *data* is not a valid settings mapping."""
    if not isinstance(data, dict):
        raise ConfigValidationError("config root must be a mapping")

    unknown = set(data) - ALLOWED_KEYS
    if unknown:
        raise ConfigValidationError(f"unknown config keys: {sorted(unknown)}")

    for key in ("target_sheet", "writer_tag"):
        if key in data and not (isinstance(data[key], str) and data[key].strip()):
            raise ConfigValidationError(f"{key} must be a non-empty string")

    if "reference_year" in data:
        year = data["reference_year"]
        if isinstance(year, bool) or not isinstance(year, int) or not 2000 <= year <= 2100:
            raise ConfigValidationError(
                f"reference_year must be an integer in 2000-2100, got {year!r}"
            )

    if "direction" in data and data["direction"] not in VALID_DIRECTIONS:
        raise ConfigValidationError(
            f"direction must be one of {VALID_DIRECTIONS}, got {data['direction']!r}"
        )

    if "designated_columns" in data:
        cols = data["designated_columns"]
        if (
            not isinstance(cols, list)
            or not cols
            or not all(isinstance(c, str) and _is_column_letter(c) for c in cols)
        ):
            raise ConfigValidationError(
                "designated_columns must be a non-empty list of column letters"
            )


def _is_column_letter(value: str) -> bool:
    col = value.strip().upper()
    if not (col.isascii() and col.isalpha()):
        return False
    try:
        column_index_from_string(col)
    except ValueError:
        return False
    return True
