"""Resolve a stored invoice into printable values, once.

Rows written by different releases carry different columns. Every fallback
lives here so nothing downstream reads optional fields itself. For each
value the order is:

    1. explicit column on the record
    2. the audit snapshot embedded in the remarks
    3. recomputation from what the record does carry
    4. a default

The source used is kept next to each value (`Resolved.source`).
"""

import json
import logging
from decimal import Decimal

from ..config import Settings, get_settings
from ..core.enums import FieldSource, TaxMode, VehicleClass
from ..models.invoice import (
    AuditSnapshot,
    EffectiveInvoice,
    InvoiceRecord,
    PricingBreakdown,
    Resolved,
    TyreGeometry,
)
from ..models.vehicle import strip_group_suffix
from ..utils.converters import round_half_up, safe_float, safe_int, to_decimal
from ..utils.formatting import PLACEHOLDER, format_ist, money
from . import audit_codec, dosage, pricing
from .vehicle_registry import fitment_schema, spec_for

logger = logging.getLogger(__name__)


def parse_fitment_locations(value: str | None) -> list[str]:
    """'Front Left, Rear Right' -> ['Front Left', 'Rear Right']."""
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def parse_tread_depths(value: str | None) -> dict[str, float]:
    """Numeric entries of the tread_depths_json column; blanks and junk dropped."""
    if not value:
        return {}
    try:
        data = json.loads(value)
    except (TypeError, ValueError):
        logger.debug("tread_depths_json is not valid JSON")
        return {}
    if not isinstance(data, dict):
        return {}
    depths = {}
    for label, depth in data.items():
        reading = safe_float(depth, -1.0)
        if reading >= 0 and depth not in (None, ""):
            depths[str(label)] = reading
    return depths


def resolve_tax_mode(
    record: InvoiceRecord, snapshot: AuditSnapshot | None
) -> TaxMode:
    mode = TaxMode.from_string(record.tax_mode)
    if mode is not None:
        return mode
    if snapshot is not None and snapshot.pricing_snapshot is not None:
        return snapshot.pricing_snapshot.tax_mode
    if safe_float(record.igst_amount) > 0:
        return TaxMode.SINGLE_INTERSTATE
    return TaxMode.SPLIT_DOMESTIC


def _explicit_pricing(
    record: InvoiceRecord,
    snapshot: AuditSnapshot | None,
    total_ml: int,
    tax_mode: TaxMode,
    settings: Settings,
) -> PricingBreakdown:
    """Breakdown from stored amount columns, filling gaps from the rest of the row."""
    price_per_ml = record.price_per_ml if record.price_per_ml is not None else settings.price_per_ml
    gst_percent = record.gst_percentage if record.gst_percentage is not None else settings.gst_percent
    discount = to_decimal(record.discount)
    installation = to_decimal(record.installation_fee)
    before = to_decimal(record.total_before_gst)

    if record.dosage_ml is not None:
        gross = Decimal(total_ml) * to_decimal(price_per_ml)
    elif snapshot is not None and snapshot.pricing_snapshot is not None:
        gross = to_decimal(snapshot.pricing_snapshot.gross_inr)
    else:
        gross = before + discount - installation

    heads = (record.cgst_amount, record.sgst_amount, record.igst_amount)
    if any(v is not None for v in heads):
        cgst, sgst, igst = (round_half_up(v or 0, 2) for v in heads)
    elif record.gst_amount is not None:
        gst = round_half_up(record.gst_amount, 2)
        if tax_mode is TaxMode.SINGLE_INTERSTATE:
            cgst, sgst, igst = Decimal(0), Decimal(0), gst
        else:
            cgst = round_half_up(gst / 2, 2)
            cgst, sgst, igst = cgst, gst - cgst, Decimal(0)
    else:
        cgst, sgst, igst = (round_half_up(v, 2) for v in pricing.split_tax(before, gst_percent, tax_mode))

    gst_total = cgst + sgst + igst
    if record.total_with_gst is not None:
        grand = round_half_up(record.total_with_gst, 2)
    else:
        grand = round_half_up(before, 2) + gst_total

    return PricingBreakdown(
        total_ml=total_ml,
        price_per_ml=safe_float(price_per_ml),
        gst_percent=safe_float(gst_percent),
        tax_mode=tax_mode,
        gross_inr=money(gross),
        discount_cap_inr=float(pricing.discount_cap(gross, settings.discount_max_pct)),
        discount_inr=money(discount),
        installation_fee_inr=money(installation),
        amount_before_tax_inr=money(before),
        cgst_inr=float(cgst),
        sgst_inr=float(sgst),
        igst_inr=float(igst),
        gst_total_inr=float(gst_total),
        grand_total_inr=float(grand),
    )


def reconcile(
    record: InvoiceRecord,
    snapshot: AuditSnapshot | None = None,
    settings: Settings | None = None,
) -> EffectiveInvoice:
    """Resolve every printable value of a stored invoice.

    When `snapshot` is not given it is decoded from the record's remarks.
    """
    settings = settings or get_settings()
    if snapshot is None:
        snapshot = audit_codec.decode(record.remarks)

    vehicle_class = VehicleClass.from_string(record.vehicle_type)
    geometry = TyreGeometry(
        width_mm=safe_float(record.tyre_width_mm),
        aspect_pct=safe_float(record.aspect_ratio),
        rim_in=safe_float(record.rim_diameter_in),
    )
    fitment_labels = parse_fitment_locations(record.fitment_locations)

    # Tyre counts
    if record.tyre_count is not None:
        selected = Resolved[int](value=record.tyre_count, source=FieldSource.EXPLICIT)
    elif snapshot is not None:
        selected = Resolved[int](value=snapshot.tyre_count_selected, source=FieldSource.SNAPSHOT)
    else:
        default = spec_for(vehicle_class).default_tyre_count if vehicle_class else 0
        selected = Resolved[int](value=default, source=FieldSource.DEFAULT)

    if record.installed_tyre_count is not None:
        installed = Resolved[int](value=record.installed_tyre_count, source=FieldSource.EXPLICIT)
    elif snapshot is not None:
        installed = Resolved[int](value=snapshot.tyre_count_installed, source=FieldSource.SNAPSHOT)
    elif vehicle_class is not None and fitment_labels:
        schema = fitment_schema(vehicle_class, selected.value)
        selection = {}
        for label in fitment_labels:
            position = schema.position(label)
            if position is not None:
                selection[position.label] = True
        installed = Resolved[int](
            value=schema.implied_installed_count(selection), source=FieldSource.RECOMPUTED
        )
    else:
        installed = Resolved[int](value=selected.value, source=FieldSource.DEFAULT)

    # Dosage
    if record.per_tyre_dosage_ml is not None:
        per_tyre = Resolved[int](value=safe_int(record.per_tyre_dosage_ml), source=FieldSource.EXPLICIT)
    elif snapshot is not None:
        value = snapshot.override.manual_per_tyre_ml if snapshot.override else snapshot.computed_per_tyre_ml
        per_tyre = Resolved[int](value=value, source=FieldSource.SNAPSHOT)
    elif record.dosage_ml is not None and installed.value > 0:
        per_tyre = Resolved[int](
            value=safe_int(record.dosage_ml) // installed.value, source=FieldSource.RECOMPUTED
        )
    elif vehicle_class is not None:
        per_tyre = Resolved[int](
            value=dosage.per_tyre_ml(vehicle_class, geometry.width_mm, geometry.aspect_pct, geometry.rim_in),
            source=FieldSource.RECOMPUTED,
        )
    else:
        per_tyre = Resolved[int](value=0, source=FieldSource.DEFAULT)

    if record.dosage_ml is not None:
        total = Resolved[int](value=safe_int(record.dosage_ml), source=FieldSource.EXPLICIT)
    elif snapshot is not None and snapshot.pricing_snapshot is not None:
        total = Resolved[int](value=snapshot.pricing_snapshot.total_ml, source=FieldSource.SNAPSHOT)
    else:
        total = Resolved[int](
            value=dosage.total_ml(per_tyre.value, installed.value), source=FieldSource.RECOMPUTED
        )

    # Money
    tax_mode = resolve_tax_mode(record, snapshot)
    if record.total_before_gst is not None:
        breakdown = Resolved[PricingBreakdown](
            value=_explicit_pricing(record, snapshot, total.value, tax_mode, settings),
            source=FieldSource.EXPLICIT,
        )
    elif snapshot is not None and snapshot.pricing_snapshot is not None:
        breakdown = Resolved[PricingBreakdown](
            value=pricing.with_tax_mode(snapshot.pricing_snapshot, tax_mode),
            source=FieldSource.SNAPSHOT,
        )
    else:
        recomputed = pricing.price(
            total_ml=total.value,
            price_per_ml=record.price_per_ml if record.price_per_ml is not None else settings.price_per_ml,
            discount_requested_inr=record.discount,
            installation_fee_inr=record.installation_fee,
            tax_mode=tax_mode,
            gst_percent=record.gst_percentage if record.gst_percentage is not None else settings.gst_percent,
            discount_max_pct=settings.discount_max_pct,
        )
        source = FieldSource.RECOMPUTED if total.value > 0 else FieldSource.DEFAULT
        breakdown = Resolved[PricingBreakdown](value=recomputed, source=source)

    # Treads, installed positions only
    wanted = {strip_group_suffix(label) for label in fitment_labels}
    stored = parse_tread_depths(record.tread_depths_json)
    if stored and wanted:
        stored = {k: v for k, v in stored.items() if strip_group_suffix(k) in wanted}
        treads = Resolved[dict[str, float]](value=stored, source=FieldSource.EXPLICIT)
    elif record.tread_depth_mm is not None and fitment_labels:
        legacy = safe_float(record.tread_depth_mm)
        treads = Resolved[dict[str, float]](
            value={label: legacy for label in fitment_labels}, source=FieldSource.DEFAULT
        )
    else:
        treads = Resolved[dict[str, float]](value={}, source=FieldSource.DEFAULT)

    # Times
    created_at_display = format_ist(record.created_at)
    if created_at_display == PLACEHOLDER and snapshot is not None and snapshot.created_at_display:
        created_at_display = snapshot.created_at_display
    signed_at_display = format_ist(record.consent_signed_at or record.signed_at)
    if signed_at_display == PLACEHOLDER and snapshot is not None and snapshot.signed_at_display:
        signed_at_display = snapshot.signed_at_display

    return EffectiveInvoice(
        record=record,
        vehicle_class=vehicle_class,
        vehicle_label=record.vehicle_type or "",
        geometry=geometry,
        tyre_count_selected=selected,
        tyre_count_installed=installed,
        per_tyre_ml=per_tyre,
        total_ml=total,
        pricing=breakdown,
        fitment_labels=fitment_labels,
        treads=treads,
        audit=snapshot,
        created_at_display=created_at_display,
        signed_at_display=signed_at_display,
        consent_statement=record.consent_snapshot or audit_codec.CONSENT_STATEMENT,
        signature=record.customer_signature or record.consent_signature,
        hsn_code=record.hsn_code or settings.hsn_code,
    )
