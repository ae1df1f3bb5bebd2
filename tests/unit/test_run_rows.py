"""Unit tests for the row loop: partial failure, counters and rejects.

The database is a MagicMock; insert_shipment is patched per test.
"""

from __future__ import annotations

import csv
from contextlib import nullcontext
from unittest.mock import MagicMock, patch

import openpyxl
import pytest

from shipment_etl.config import ImportSettings
from shipment_etl.import_shipments_xlsx import run_import, run_rows
from shipment_etl.shared import RejectWriter, RunCounters
from shipment_etl.workbook import resolve_layout


def _mock_conn():
    conn = MagicMock()
    conn.broken = False
    conn.transaction.side_effect = lambda *a, **k: nullcontext()
    return conn


def _sheet(rows):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["SN", "نوع البضاعة", "ملاحظات"])
    for r in rows:
        ws.append(r)
    return ws


def _fake_insert(failing_sn=None):
    """Insert stand-in; raises only for *failing_sn* when one is given."""
    def insert(conn, record, direction="incoming", writer_tag="etl-excel"):
        if failing_sn is not None and record.sn == failing_sn:
            raise ValueError("integer out of range")
        if not record.sn:
            return None
        return f"id-{record.sn}"
    return insert


@pytest.fixture
def rejects(tmp_path):
    writer = RejectWriter(tmp_path / "rejects.csv")
    yield writer
    writer.close()


def _run(sheet, rejects, conn=None):
    conn = conn or _mock_conn()
    counters = RunCounters(sheet_name=sheet.title, sheet_fallback=True)
    layout = resolve_layout(sheet, matched=False)
    run_rows(conn, sheet, layout, ImportSettings(), counters, rejects, "test-run")
    return counters


class TestRunRows:
    def test_one_failing_row_does_not_stop_batch(self, rejects):
        sheet = _sheet([
            ["C-1", "أرز", None],
            ["C-2", "سكر", None],
            ["C-3", "شاي", None],
        ])
        with patch(
            "shipment_etl.import_shipments_xlsx.insert_shipment",
            side_effect=_fake_insert("C-2"),
        ):
            counters = _run(sheet, rejects)

        assert counters.rows_read == 3
        assert counters.rows_inserted == 2
        assert counters.rows_errored == 1
        err = counters.row_errors[0]
        assert err.row_number == 3
        assert err.sn == "C-2"
        assert "out of range" in err.message

    def test_failed_row_written_to_rejects(self, rejects):
        sheet = _sheet([["C-1", "أرز", None], ["C-2", "سكر", "late"]])
        with patch(
            "shipment_etl.import_shipments_xlsx.insert_shipment",
            side_effect=_fake_insert("C-2"),
        ):
            _run(sheet, rejects)
        rejects.close()

        with rejects.path.open(encoding="utf-8") as fh:
            rows = list(csv.DictReader(fh))
        assert len(rows) == 1
        assert rows[0]["_row_number"] == "3"
        assert rows[0]["SN"] == "C-2"
        assert rows[0]["_reject_reason"].startswith("row_error:")

    def test_blank_row_skipped_without_error(self, rejects):
        sheet = _sheet([["C-1", "أرز", None], [None, None, "فارغ"]])
        with patch(
            "shipment_etl.import_shipments_xlsx.insert_shipment",
            side_effect=_fake_insert(),
        ) as insert:
            counters = _run(sheet, rejects)

        assert counters.rows_read == 2
        assert counters.rows_skipped_blank == 1
        assert counters.rows_errored == 0
        assert insert.call_count == 1

    def test_row_without_sn_counted_separately(self, rejects):
        sheet = _sheet([[None, "أرز", None]])
        with patch(
            "shipment_etl.import_shipments_xlsx.insert_shipment",
            side_effect=_fake_insert(),
        ):
            counters = _run(sheet, rejects)

        assert counters.rows_skipped_no_sn == 1
        assert counters.rows_inserted == 0
        assert counters.rows_errored == 0

    def test_broken_connection_is_fatal(self, rejects):
        conn = _mock_conn()
        conn.broken = True
        sheet = _sheet([["C-1", "أرز", None]])
        with patch(
            "shipment_etl.import_shipments_xlsx.insert_shipment",
            side_effect=_fake_insert("C-1"),
        ):
            with pytest.raises(ValueError):
                _run(sheet, rejects, conn)

    def test_each_row_gets_its_own_transaction(self, rejects):
        conn = _mock_conn()
        sheet = _sheet([["C-1", "أرز", None], ["C-2", "سكر", None]])
        with patch(
            "shipment_etl.import_shipments_xlsx.insert_shipment",
            side_effect=_fake_insert(),
        ):
            _run(sheet, rejects, conn)
        assert conn.transaction.call_count == 2


class TestRunImport:
    def _run_import(self, sheet, rejects, settings):
        counters = RunCounters(sheet_name=sheet.title, sheet_fallback=True)
        layout = resolve_layout(sheet, matched=False)
        with patch(
            "shipment_etl.import_shipments_xlsx.insert_shipment",
            side_effect=_fake_insert(),
        ), patch(
            "shipment_etl.import_shipments_xlsx.begin_import", return_value=7,
        ), patch(
            "shipment_etl.import_shipments_xlsx.finish_import",
        ) as finish:
            run_import(
                _mock_conn(), None, sheet, layout, settings,
                counters, rejects, "test-run",
            )
        return finish

    def test_config_hash_recorded_in_notes(self, rejects):
        sheet = _sheet([["C-1", "أرز", None]])
        settings = ImportSettings(yaml_hash="ab12cd")
        finish = self._run_import(sheet, rejects, settings)

        _, import_id, counters, notes = finish.call_args.args
        assert import_id == 7
        assert counters.rows_inserted == 1
        assert "config_sha256=ab12cd" in notes
        assert "fallback" in notes

    def test_no_config_no_hash_in_notes(self, rejects):
        sheet = _sheet([["C-1", "أرز", None]])
        finish = self._run_import(sheet, rejects, ImportSettings())
        notes = finish.call_args.args[3]
        assert "config_sha256" not in notes
