"""shipment_etl.shared

Run bookkeeping and database helpers for the workbook import.
Includes RejectWriter, RunCounters, master-data get-or-create, the
shipment insert, import_log bookkeeping and report writing.
"""

from __future__ import annotations

import csv
import hashlib
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import psycopg

from shipment_etl.normalize import normalize_space
from shipment_etl.transform import ShipmentRecord


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rows that failed to import."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    @property
    def path(self) -> Path:
        return self._path

    def write(self, row: dict[str, Any], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RowError:
    row_number: int
    sn: str | None
    message: str


@dataclass
class RunCounters:
    sheet_name: str | None = None
    sheet_fallback: bool = False
    rows_read: int = 0
    rows_skipped_blank: int = 0
    rows_skipped_no_sn: int = 0
    rows_delivered: int = 0
    rows_inserted: int = 0
    rows_errored: int = 0
    ports_resolved: int = 0
    shipping_lines_resolved: int = 0
    row_errors: list[RowError] = field(default_factory=list)

    def record_error(self, row_number: int, sn: str | None, message: str) -> None:
        self.rows_errored += 1
        self.row_errors.append(RowError(row_number, sn, message))

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["row_errors"] = d["row_errors"][:200]
        return d


# ---------------------------------------------------------------------------
# Master data: ports / shipping lines
# ---------------------------------------------------------------------------

def upsert_port(
    conn: psycopg.Connection,
    name: str | None,
    country: str | None = None,
) -> str | None:
    """Get-or-create a port by (lower(name), lower(country)); None for a blank name."""
    norm = normalize_space(name)
    if not norm:
        return None
    row = conn.execute(
        """
        INSERT INTO master_data.ports (name, country)
        VALUES (%s, %s)
        ON CONFLICT (lower(name), coalesce(lower(country), ''))
        DO UPDATE SET updated_at = now()
        RETURNING id
        """,
        (norm, normalize_space(country) or ""),
    ).fetchone()
    return str(row[0])


def upsert_shipping_line(
    conn: psycopg.Connection,
    name: str | None,
    country: str | None = None,
) -> str | None:
    """Get-or-create a company flagged as a shipping line."""
    norm = normalize_space(name)
    if not norm:
        return None
    row = conn.execute(
        """
        INSERT INTO master_data.companies (name, country, is_shipping_line)
        VALUES (%s, %s, true)
        ON CONFLICT (lower(name), coalesce(lower(country), ''))
        DO UPDATE SET is_shipping_line = true, updated_at = now()
        RETURNING id
        """,
        (norm, normalize_space(country) or ""),
    ).fetchone()
    return str(row[0])


# ---------------------------------------------------------------------------
# Shipments
# ---------------------------------------------------------------------------

def insert_shipment(
    conn: psycopg.Connection,
    record: ShipmentRecord,
    direction: str = "incoming",
    writer_tag: str = "etl-excel",
) -> str | None:
    """Append one shipment row.  Records without an SN are skipped (None).

    Duplicate SNs are expected: one contract can ship in several lots.
    """
    if not record.sn:
        return None
    row = conn.execute(
        """
        INSERT INTO logistics.shipments (
          sn, direction, product_text, container_count, weight_ton,
          price_per_ton, total_value, pol_id, pod_id, shipping_line_id,
          eta, free_time_days, status, paperwork_status, booking_no, bl_no,
          deposit_date, contract_ship_date, bl_date, created_by, updated_by
        )
        VALUES (%s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            record.sn, direction, record.product_text, record.container_count,
            record.weight_ton, record.price_per_ton, record.total_value,
            record.pol_id, record.pod_id, record.shipping_line_id,
            record.eta, record.free_time_days, record.status,
            record.paperwork_status, record.booking_no, record.bl_no,
            record.deposit_date, record.contract_ship_date, record.bl_date,
            writer_tag, writer_tag,
        ),
    ).fetchone()
    return str(row[0])


# ---------------------------------------------------------------------------
# Import log
# ---------------------------------------------------------------------------

def file_sha256(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def begin_import(conn: psycopg.Connection, path: Path) -> int:
    """Open an import_log entry for this file.  Caller manages transaction."""
    row = conn.execute(
        """
        INSERT INTO security.import_log (file_name, file_sha256, started_at)
        VALUES (%s, %s, now())
        RETURNING id
        """,
        (path.name, file_sha256(path)),
    ).fetchone()
    return int(row[0])


def finish_import(
    conn: psycopg.Connection,
    import_id: int,
    counters: RunCounters,
    notes: str | None = None,
) -> None:
    conn.execute(
        """
        UPDATE security.import_log
        SET row_count = %s,
            ok_count = %s,
            err_count = %s,
            finished_at = now(),
            notes = %s
        WHERE id = %s
        """,
        (counters.rows_read, counters.rows_inserted, counters.rows_errored,
         notes, import_id),
    )


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    dry_run: bool,
    source_paths: dict[str, str | None],
    counters: RunCounters,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str, ensure_ascii=False))
    return report_path
