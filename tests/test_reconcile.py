"""Tests for resolving stored invoices of every schema generation."""

import json

from maxtt_billing.core.enums import FieldSource, TaxMode, VehicleClass
from maxtt_billing.models.invoice import AuditSnapshot, InvoiceRecord, OverrideRecord
from maxtt_billing.services import audit_codec
from maxtt_billing.services.pricing import price
from maxtt_billing.services.reconcile import (
    parse_fitment_locations,
    parse_tread_depths,
    reconcile,
    resolve_tax_mode,
)

FOUR_WHEELER = VehicleClass.FOUR_WHEELER.value


def _legacy_record(**overrides) -> InvoiceRecord:
    """A first-generation row: one GST column, no installed count, gst_rate naming."""
    data = {
        "id": 5,
        "created_at": "2025-03-01T04:30:00Z",
        "vehicle_type": "4-Wheeler (Car)",
        "tyre_count": 4,
        "tyre_width_mm": 185,
        "aspect_ratio": 65,
        "rim_diameter_in": 15,
        "fitment_locations": "Front Left, Front Right, Rear Left, Rear Right",
        "tread_depth_mm": 3.2,
        "dosage_ml": 2000,
        "price_per_ml": 4.5,
        "discount": 0,
        "total_before_gst": 9000,
        "gst_rate": 18,
        "gst_amount": 1620,
        "total_with_gst": 10620,
        "remarks": "Customer consented",
    }
    data.update(overrides)
    return InvoiceRecord.model_validate(data)


def _snapshot() -> AuditSnapshot:
    return AuditSnapshot(
        computed_per_tyre_ml=500,
        computed_total_ml=1500,
        override=OverrideRecord(
            manual_per_tyre_ml=525, chart_version="2025-07", reason="Chart", acknowledged=True
        ),
        tyre_count_selected=4,
        tyre_count_installed=3,
        created_at_display="14/08/2025, 11:30 IST",
        signed_at_display="14/08/2025, 11:15 IST",
        pricing_snapshot=price(1575, 4.5, 0, 0, TaxMode.SPLIT_DOMESTIC, 18),
    )


def _snapshot_only_record(**overrides) -> InvoiceRecord:
    """A row whose dosage and money live only in the remarks snapshot."""
    data = {
        "id": 9,
        "vehicle_type": FOUR_WHEELER,
        "tyre_width_mm": 185,
        "aspect_ratio": 65,
        "rim_diameter_in": 15,
        "fitment_locations": "Front Left, Front Right, Rear Left",
        "remarks": audit_codec.encode(_snapshot()),
    }
    data.update(overrides)
    return InvoiceRecord.model_validate(data)


class TestParsers:
    def test_fitment_locations(self):
        assert parse_fitment_locations("Front Left, Rear Right ,") == ["Front Left", "Rear Right"]
        assert parse_fitment_locations(None) == []

    def test_tread_depths_keep_numbers_only(self):
        raw = json.dumps({"Front Left": 3.2, "Front Right": "", "Rear Left": None, "Rear Right": "abc"})
        assert parse_tread_depths(raw) == {"Front Left": 3.2}

    def test_tread_depths_junk(self):
        assert parse_tread_depths("not json") == {}
        assert parse_tread_depths("[1, 2]") == {}
        assert parse_tread_depths(None) == {}

    def test_tax_mode_order(self):
        assert resolve_tax_mode(_legacy_record(tax_mode="IGST"), None) is TaxMode.SINGLE_INTERSTATE
        assert resolve_tax_mode(_legacy_record(igst_amount=1620), None) is TaxMode.SINGLE_INTERSTATE
        assert resolve_tax_mode(_legacy_record(), None) is TaxMode.SPLIT_DOMESTIC


class TestLegacyRows:
    def test_single_gst_column(self, settings):
        record = _legacy_record()
        assert record.schema_version == 1
        effective = reconcile(record, settings=settings)

        assert effective.vehicle_class is VehicleClass.FOUR_WHEELER
        assert effective.tyre_count_selected.value == 4
        assert effective.tyre_count_installed.value == 4
        assert effective.tyre_count_installed.source is FieldSource.RECOMPUTED
        assert effective.per_tyre_ml.value == 500
        assert effective.per_tyre_ml.source is FieldSource.RECOMPUTED
        assert effective.total_ml.value == 2000

        money = effective.pricing.value
        assert effective.pricing.source is FieldSource.EXPLICIT
        assert money.gst_percent == 18
        assert money.cgst_inr == money.sgst_inr == 810.0
        assert money.igst_inr == 0
        assert money.grand_total_inr == 10620.0

    def test_legacy_tread_applied_to_installed_labels(self, settings):
        effective = reconcile(_legacy_record(fitment_locations="Front Left, Rear Right"), settings=settings)
        assert effective.treads.value == {"Front Left": 3.2, "Rear Right": 3.2}
        assert effective.treads.source is FieldSource.DEFAULT
        assert effective.tyre_count_installed.value == 2

    def test_odd_gst_total_split(self, settings):
        money = reconcile(_legacy_record(gst_amount=1620.01), settings=settings).pricing.value
        assert money.cgst_inr == 810.01
        assert money.sgst_inr == 810.0

    def test_display_fields(self, settings):
        effective = reconcile(_legacy_record(), settings=settings)
        assert effective.created_at_display == "01/03/2025, 10:00 IST"
        assert effective.signed_at_display == "-"
        assert effective.hsn_code == "3403.19.00"
        assert effective.consent_statement == audit_codec.CONSENT_STATEMENT


class TestSnapshotFallback:
    def test_values_from_snapshot(self, settings):
        effective = reconcile(_snapshot_only_record(), settings=settings)
        assert effective.audit == _snapshot()
        assert effective.tyre_count_selected.source is FieldSource.SNAPSHOT
        assert effective.tyre_count_installed.value == 3
        assert effective.per_tyre_ml.value == 525
        assert effective.total_ml.value == 1575
        assert effective.pricing.source is FieldSource.SNAPSHOT
        assert effective.pricing.value == _snapshot().pricing_snapshot
        assert effective.sources["per_tyre_ml"] is FieldSource.SNAPSHOT
        assert effective.created_at_display == "14/08/2025, 11:30 IST"
        assert effective.signed_at_display == "14/08/2025, 11:15 IST"

    def test_explicit_columns_win(self, settings):
        record = _snapshot_only_record(installed_tyre_count=2, per_tyre_dosage_ml=500, dosage_ml=1000)
        assert record.schema_version == 3
        effective = reconcile(record, settings=settings)
        assert effective.tyre_count_installed.value == 2
        assert effective.per_tyre_ml.value == 500
        assert effective.per_tyre_ml.source is FieldSource.EXPLICIT
        assert effective.total_ml.value == 1000

    def test_snapshot_passed_in(self, settings):
        record = _snapshot_only_record(remarks="plain text")
        effective = reconcile(record, snapshot=_snapshot(), settings=settings)
        assert effective.per_tyre_ml.value == 525

    def test_reprint_as_interstate(self, settings):
        effective = reconcile(_snapshot_only_record(tax_mode="IGST"), settings=settings)
        money = effective.pricing.value
        assert money.tax_mode is TaxMode.SINGLE_INTERSTATE
        assert money.cgst_inr == money.sgst_inr == 0
        assert money.igst_inr == 1275.75
        assert money.amount_before_tax_inr == 7087.5


class TestRecompute:
    def test_from_geometry(self, settings):
        record = InvoiceRecord(vehicle_type="4w", tyre_count=4, tyre_width_mm=185, aspect_ratio=65, rim_diameter_in=15)
        effective = reconcile(record, settings=settings)
        assert effective.tyre_count_installed.source is FieldSource.DEFAULT
        assert effective.per_tyre_ml.value == 500
        assert effective.total_ml.value == 2000
        assert effective.pricing.source is FieldSource.RECOMPUTED
        assert effective.pricing.value.grand_total_inr == 10620.0

    def test_empty_row(self, settings):
        effective = reconcile(InvoiceRecord(), settings=settings)
        assert effective.vehicle_class is None
        assert effective.total_ml.value == 0
        assert effective.pricing.source is FieldSource.DEFAULT
        assert effective.pricing.value.grand_total_inr == 0
        assert effective.treads.value == {}


class TestTreads:
    def test_only_installed_positions(self, settings):
        depths = {"Front Left": 3.0, "Front Right": 2.8, "Rear Left": 2.5, "Rear Right": 2.6}
        record = _legacy_record(
            fitment_locations="Front Left, Rear Left", tread_depths_json=json.dumps(depths)
        )
        effective = reconcile(record, settings=settings)
        assert effective.treads.value == {"Front Left": 3.0, "Rear Left": 2.5}
        assert effective.treads.source is FieldSource.EXPLICIT

    def test_grouped_labels_match_without_suffix(self, settings):
        record = InvoiceRecord(
            vehicle_type=VehicleClass.HTV.value,
            tyre_count=10,
            fitment_locations="Front Left, Rear Left ×4",
            tread_depths_json=json.dumps({"Front Left": 4.0, "Rear Left ×4": 3.5, "Rear Right ×4": 3.1}),
        )
        effective = reconcile(record, settings=settings)
        assert effective.treads.value == {"Front Left": 4.0, "Rear Left ×4": 3.5}
        assert effective.tyre_count_installed.value == 5

    def test_no_fitment_locations_prints_no_treads(self, settings):
        depths = {"Front Left": 3.0, "Front Right": 2.8, "Rear Left": 2.5, "Rear Right": 2.6}
        record = _legacy_record(fitment_locations=None, tread_depths_json=json.dumps(depths))
        effective = reconcile(record, settings=settings)
        assert effective.treads.value == {}
        assert effective.treads.source is FieldSource.DEFAULT
