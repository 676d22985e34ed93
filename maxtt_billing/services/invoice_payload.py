"""Create-invoice request body for the billing API.

Built only from a CONFIRMED run, so every number comes from the frozen
final values. The legacy single-column tax fields are written alongside the
split ones for readers that predate them.
"""

import json

from ..core.enums import WorkflowState
from ..core.exceptions import InvalidTransitionError
from ..models.workflow import WorkflowRun
from ..utils.converters import safe_float
from .audit_codec import CONSENT_STATEMENT
from .context import SessionContext
from .vehicle_registry import fitment_schema


def _or_none(value: str | None) -> str | None:
    return value.strip() if value and value.strip() else None


def installed_treads(run: WorkflowRun) -> dict[str, float]:
    """Tread depth per installed position, in schema order."""
    visit = run.visit
    schema = fitment_schema(visit.vehicle_class, visit.tyre_count)
    treads = schema.canonical(visit.treads)
    return {
        p.label: safe_float(treads.get(p.label))
        for p in schema.selected_positions(visit.fitment)
    }


def build_create_payload(run: WorkflowRun, context: SessionContext) -> dict:
    """Flat record for POST /api/invoices."""
    if run.state not in (WorkflowState.CONFIRMED, WorkflowState.PERSISTED) or run.final is None:
        raise InvalidTransitionError(run.state.value, "build_create_payload")

    visit = run.visit
    customer = visit.customer
    final = run.final
    money = final.pricing
    consent = visit.consent
    treads = installed_treads(run)
    signature = consent.signature if consent else None
    signed_at = consent.signed_at if consent else None
    statement = consent.statement if consent and consent.statement else CONSENT_STATEMENT

    return {
        # Customer & vehicle
        "customer_name": customer.customer_name.strip(),
        "customer_address": _or_none(customer.customer_address),
        "mobile_number": _or_none(customer.mobile_number),
        "vehicle_number": customer.vehicle_number.strip(),
        "odometer": safe_float(customer.odometer),
        "installer_name": _or_none(customer.installer_name),
        "customer_gstin": _or_none(customer.customer_gstin),
        "customer_code": _or_none(customer.customer_code),
        # Fitment
        "vehicle_type": visit.vehicle_class.value,
        "tyre_count": visit.tyre_count,
        "installed_tyre_count": final.count_used,
        "tyre_width_mm": safe_float(visit.geometry.width_mm),
        "aspect_ratio": safe_float(visit.geometry.aspect_pct),
        "rim_diameter_in": safe_float(visit.geometry.rim_in),
        "fitment_locations": ", ".join(treads) or None,
        "tread_depth_mm": min(treads.values()) if treads else None,
        "tread_depths_json": json.dumps(treads, ensure_ascii=False),
        # Dosage
        "dosage_ml": final.total_ml,
        "per_tyre_dosage_ml": final.per_tyre_ml,
        # Pricing & tax
        "price_per_ml": money.price_per_ml,
        "discount": money.discount_inr,
        "installation_fee": money.installation_fee_inr,
        "tax_mode": money.tax_mode.value,
        "gst_percentage": money.gst_percent,
        "total_before_gst": money.amount_before_tax_inr,
        "gst_amount": money.gst_total_inr,
        "total_with_gst": money.grand_total_inr,
        "cgst_amount": money.cgst_inr,
        "sgst_amount": money.sgst_inr,
        "igst_amount": money.igst_inr,
        "hsn_code": context.settings.hsn_code,
        # Consent
        "consent_signature": signature,
        "consent_signed_at": signed_at,
        "consent_snapshot": statement,
        "customer_signature": signature,
        "signed_at": signed_at,
        "remarks": final.remarks,
        "gps_lat": visit.gps_lat,
        "gps_lng": visit.gps_lng,
    }
