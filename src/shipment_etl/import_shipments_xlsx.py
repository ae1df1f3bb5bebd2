"""shipment_etl.import_shipments_xlsx

CLI entrypoint for the incoming-goods workbook
("البضاعة القادمة محدث.xlsx") -> logistics.shipments.

Usage:
    python -m shipment_etl.import_shipments_xlsx \\
        "rawEvidence/البضاعة القادمة محدث.xlsx" \\
        --db-dsn "$DATABASE_URL" \\
        --rejects-path "artifacts/rejects/shipments_rejects.csv"

Each data row becomes one shipment.  Ports and shipping lines are
resolved get-or-create style before the insert.  A row that raises is
rolled back, counted and written to the rejects CSV; the batch carries on
and still exits 0.
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

import click
import psycopg
from openpyxl.worksheet.worksheet import Worksheet

from shipment_etl.config import ConfigValidationError, ImportSettings, load_settings
from shipment_etl.shared import (
    RejectWriter,
    RunCounters,
    begin_import,
    finish_import,
    insert_shipment,
    upsert_port,
    upsert_shipping_line,
    write_run_report,
)
from shipment_etl.transform import ShipmentRecord, transform_row
from shipment_etl.workbook import (
    SheetLayout,
    SourceRow,
    WorkbookReadError,
    iter_source_rows,
    locate_sheet,
    open_workbook,
    resolve_layout,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-row processing
# ---------------------------------------------------------------------------

def _resolve_references(conn: psycopg.Connection, record: ShipmentRecord) -> tuple[int, int]:
    """Fill the record's FK slots.  Returns (ports resolved, lines resolved)."""
    ports = lines = 0
    if record.pol:
        record.pol_id = upsert_port(conn, record.pol)
        ports += record.pol_id is not None
    if record.pod:
        record.pod_id = upsert_port(conn, record.pod)
        ports += record.pod_id is not None
    if record.shipping_line:
        record.shipping_line_id = upsert_shipping_line(conn, record.shipping_line)
        lines += record.shipping_line_id is not None
    return ports, lines


def _process_row(
    conn: psycopg.Connection,
    record: ShipmentRecord,
    settings: ImportSettings,
    counters: RunCounters,
) -> None:
    """Resolve references and write one record.  Raises on any failure.

    The upserts and the insert share one transaction, so a failed insert
    leaves no orphaned ports or companies behind.
    """
    if record.is_blank:
        counters.rows_skipped_blank += 1
        return

    with conn.transaction():
        ports, lines = _resolve_references(conn, record)
        shipment_id = insert_shipment(
            conn, record,
            direction=settings.direction,
            writer_tag=settings.writer_tag,
        )

    counters.ports_resolved += ports
    counters.shipping_lines_resolved += lines
    if shipment_id is None:
        counters.rows_skipped_no_sn += 1
    else:
        counters.rows_inserted += 1


def _reject_row(source: SourceRow) -> dict[str, Any]:
    return {"_row_number": source.row_number, **source.values}


def run_rows(
    conn: psycopg.Connection,
    sheet: Worksheet,
    layout: SheetLayout,
    settings: ImportSettings,
    counters: RunCounters,
    rejects: RejectWriter,
    run_id: str,
    epoch: datetime | None = None,
) -> RunCounters:
    """Process every data row in order; one bad row never stops the batch.

    A broken connection is not a row problem and is re-raised.
    """
    for source in iter_source_rows(sheet, layout, settings.designated_columns):
        counters.rows_read += 1
        if source.delivered:
            counters.rows_delivered += 1
        record = None
        try:
            record = transform_row(
                source.values,
                delivered=source.delivered,
                reference_year=settings.reference_year,
                epoch=epoch,
            )
            _process_row(conn, record, settings, counters)
        except Exception as exc:
            if conn.broken:
                raise
            sn = record.sn if record is not None else None
            counters.record_error(source.row_number, sn, str(exc))
            rejects.write(_reject_row(source), f"row_error: {exc}")
            click.echo(f"[{run_id}] Error processing row {source.row_number}: {exc}", err=True)
            log.debug("row %s failed", source.row_number, exc_info=True)
    return counters


def run_import(
    conn: psycopg.Connection,
    workbook_path: Path,
    sheet: Worksheet,
    layout: SheetLayout,
    settings: ImportSettings,
    counters: RunCounters,
    rejects: RejectWriter,
    run_id: str,
    epoch: datetime | None = None,
) -> RunCounters:
    """Log the run in security.import_log around the row loop."""
    with conn.transaction():
        import_id = begin_import(conn, workbook_path)

    run_rows(conn, sheet, layout, settings, counters, rejects, run_id, epoch)

    notes = f"sheet={sheet.title}"
    if counters.sheet_fallback:
        notes += " (fallback: first sheet)"
    if settings.yaml_hash:
        notes += f" config_sha256={settings.yaml_hash}"
    with conn.transaction():
        finish_import(conn, import_id, counters, notes)
    return counters


def _echo_summary(run_id: str, counters: RunCounters) -> None:
    if counters.rows_delivered:
        click.echo(
            f"[{run_id}] Detected {counters.rows_delivered} cleared/delivered "
            "shipments (grey highlight)"
        )
    click.echo(
        f"[{run_id}] Rows: {counters.rows_read} read, "
        f"{counters.rows_skipped_blank} blank, "
        f"{counters.rows_skipped_no_sn} without SN, "
        f"{counters.rows_inserted} inserted, "
        f"{counters.rows_errored} errors"
    )
    click.echo(
        f"[{run_id}] Import complete: {counters.rows_inserted} successful, "
        f"{counters.rows_errored} errors"
    )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command()
@click.argument(
    "workbook_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--db-dsn",
    required=True,
    envvar="DATABASE_URL",
    help="PostgreSQL DSN (defaults to $DATABASE_URL)",
)
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML overrides (target_sheet, reference_year, ...)",
)
@click.option("--dry-run", is_flag=True, default=False)
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/shipments_rejects.csv",
    show_default=True,
)
@click.option(
    "--report-dir",
    default="./artifacts/reports",
    show_default=True,
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--verbose", is_flag=True, default=False, help="Debug logging")
def main(
    workbook_path: Path,
    db_dsn: str,
    config_path: Path | None,
    dry_run: bool,
    rejects_path: str,
    report_dir: str,
    run_id: str | None,
    verbose: bool,
) -> None:
    """Import the incoming-goods workbook into logistics.shipments."""
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()
    if verbose:
        logging.basicConfig(level=logging.DEBUG)

    click.echo(f"[{run_id}] Loading workbook: {workbook_path} (dry_run={dry_run})")

    try:
        settings = load_settings(config_path)
    except ConfigValidationError as exc:
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        sys.exit(1)

    try:
        workbook = open_workbook(workbook_path)
        sheet, fallback = locate_sheet(workbook, settings.target_sheet)
    except WorkbookReadError as exc:
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        sys.exit(1)

    if fallback:
        click.echo(
            f"[{run_id}] Sheet {settings.target_sheet!r} not found. "
            f"Available sheets: {', '.join(workbook.sheetnames)}"
        )
        click.echo(f"[{run_id}] Using first sheet: {sheet.title}")
    else:
        click.echo(f"[{run_id}] Reading sheet: {sheet.title}")

    layout = resolve_layout(sheet, matched=not fallback)
    data_rows = max(0, sheet.max_row - layout.first_data_row + 1)
    click.echo(
        f"[{run_id}] Found {data_rows} rows "
        f"(headers on row {layout.header_row}, data from row {layout.first_data_row})"
    )

    counters = RunCounters(sheet_name=sheet.title, sheet_fallback=fallback)
    rejects = RejectWriter(Path(rejects_path))

    try:
        conn = psycopg.connect(db_dsn, autocommit=False)
    except psycopg.OperationalError as exc:
        click.echo(f"[{run_id}] FATAL: database connection failed: {exc}", err=True)
        workbook.close()
        sys.exit(1)

    try:
        if dry_run:
            with conn.transaction(force_rollback=True):
                run_import(
                    conn, workbook_path, sheet, layout, settings,
                    counters, rejects, run_id, workbook.epoch,
                )
            click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
        else:
            run_import(
                conn, workbook_path, sheet, layout, settings,
                counters, rejects, run_id, workbook.epoch,
            )
    except psycopg.OperationalError as exc:
        click.echo(f"[{run_id}] FATAL: database failure, run aborted: {exc}", err=True)
        sys.exit(1)
    finally:
        conn.close()
        rejects.close()
        workbook.close()

    _echo_summary(run_id, counters)

    report_path = write_run_report(
        run_id, started_at, dry_run,
        {
            "workbook_path": str(workbook_path),
            "rejects_path": str(rejects_path),
            "config_path": str(config_path) if config_path else None,
            "config_sha256": settings.yaml_hash,
        },
        counters,
        report_dir=Path(report_dir),
    )
    click.echo(f"[{run_id}] Run report: {report_path}")


if __name__ == "__main__":
    main()
