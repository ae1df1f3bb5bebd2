"""Unit tests for row -> ShipmentRecord transformation."""

from datetime import date
from decimal import Decimal

from shipment_etl.transform import HEADER_MAP, ShipmentRecord, transform_row


class TestTransformRow:
    def test_documented_example(self):
        record = transform_row({
            "SN": "C-100 ",
            "الوزن/طن": "12.5",
            "التثبيت $": "$100.00",
            "الحالة": "دخل الميناء",
        })
        assert record.sn == "C-100"
        assert record.weight_ton == Decimal("12.5")
        assert record.price_per_ton == 100
        assert record.total_value == 1250
        assert record.status == "gate_in"

    def test_live_workbook_headers(self):
        record = transform_row({
            "رقم العقد": "SC-2025/014",
            "نوع البضاعة ": "  أرز   بسمتي ",
            "حاوية": "4",
            "الكمية طن": 100,
            "سعر الطن": "$1,050",
            "المنشأ": "Mundra",
            "الجهة": "Mersin",
            "الشركة المصدرة": "MSC",
        })
        assert record.sn == "SC-2025/014"
        assert record.product_text == "أرز بسمتي"
        assert record.container_count == 4
        assert record.total_value == Decimal("105000")
        assert (record.pol, record.pod, record.shipping_line) == ("Mundra", "Mersin", "MSC")

    def test_total_value_absent_without_price(self):
        record = transform_row({"SN": "C-1", "الوزن/طن": "20"})
        assert record.weight_ton == 20
        assert record.total_value is None

    def test_total_value_absent_when_price_not_positive(self):
        record = transform_row({"SN": "C-1", "الوزن/طن": "20", "التثبيت $": "0"})
        assert record.price_per_ton is None
        assert record.total_value is None

    def test_unit_suffixed_weight_still_totals(self):
        record = transform_row({"SN": "C-1", "الوزن/طن": "25 طن", "التثبيت $": "$100"})
        assert record.weight_ton == 25
        assert record.total_value == Decimal("2500")

    def test_total_value_is_exact_product(self):
        record = transform_row({"SN": "C-1", "الوزن/طن": "23.456", "التثبيت $": "987.65"})
        assert record.total_value == Decimal("23.456") * Decimal("987.65")

    def test_delivered_flag_overrides_status(self):
        record = transform_row({"SN": "C-1", "الحالة": "أبحرت"}, delivered=True)
        assert record.status == "delivered"

    def test_delivered_flag_without_status_column(self):
        record = transform_row({"SN": "C-1"}, delivered=True)
        assert record.status == "delivered"

    def test_unknown_status_stays_absent(self):
        record = transform_row({"SN": "C-1", "الحالة": "؟"})
        assert record.status is None

    def test_bad_values_degrade_to_absent(self):
        record = transform_row({
            "SN": "C-1",
            "عدد الحاويات": "غير معروف",
            "الوزن/طن": "n/a",
            "ETA": "2031-13-40",
        })
        assert record.sn == "C-1"
        assert record.container_count is None
        assert record.weight_ton is None
        assert record.eta is None

    def test_dates(self):
        record = transform_row({
            "SN": "C-1",
            "ETA": "شهر 10",
            "تاريخ الرعبون": 45658,
            "تاريخ البوليصة": "2025-02-03",
        })
        assert record.eta == date(2025, 10, 1)
        assert record.deposit_date == date(2025, 1, 1)
        assert record.bl_date == date(2025, 2, 3)
        assert record.contract_ship_date is None

    def test_reference_year_override(self):
        record = transform_row({"SN": "C-1", "ETA": "شهر 2"}, reference_year=2026)
        assert record.eta == date(2026, 2, 1)

    def test_numeric_sn_rendered_as_text(self):
        record = transform_row({"رقم العقد": 1001.0})
        assert record.sn == "1001"

    def test_first_declared_synonym_wins(self):
        record = transform_row({"SN": "TEMPLATE-1", "رقم العقد": "LIVE-1"})
        assert record.sn == "TEMPLATE-1"

    def test_later_synonym_used_when_first_is_blank(self):
        record = transform_row({"SN": "  ", "رقم العقد": "LIVE-1"})
        assert record.sn == "LIVE-1"

    def test_claimed_field_not_refilled_by_later_synonym(self):
        # The first filled label claims the field even if its value is unusable.
        record = transform_row({"SN": "C-1", "الوزن/طن": "abc", "الكمية طن": "12"})
        assert record.weight_ton is None

    def test_unmapped_columns_ignored(self):
        record = transform_row({"SN": "C-1", "الإجمالي": 5000, "الرقم": 7})
        assert record == ShipmentRecord(sn="C-1")

    def test_blank_row(self):
        record = transform_row({"SN": None, "نوع البضاعة": ""})
        assert record.is_blank


class TestHeaderMap:
    def test_every_field_has_a_record_attribute(self):
        fields = set(ShipmentRecord.__dataclass_fields__)
        assert {f for _, f in HEADER_MAP} <= fields

    def test_labels_unique(self):
        labels = [label for label, _ in HEADER_MAP]
        assert len(labels) == len(set(labels))
