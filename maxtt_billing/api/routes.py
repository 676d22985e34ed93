"""FastAPI route definitions for the billing core.

The routes only translate HTTP to core calls and core errors to status
codes. All numbers come from the services.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from maxtt_billing.api.deps import get_context
from maxtt_billing.core.enums import OutlierLevel, TaxMode, VehicleClass, WorkflowState
from maxtt_billing.core.exceptions import (
    BlockingValidationError,
    ConfirmationBlockedError,
    InvalidTransitionError,
    PersistenceError,
)
from maxtt_billing.models.invoice import (
    AuditSnapshot,
    DosageResult,
    FranchiseeProfile,
    InvoiceRecord,
    MismatchException,
    OverrideRecord,
    PricingBreakdown,
    ServiceVisit,
)
from maxtt_billing.models.layout import InvoiceDocumentPlan
from maxtt_billing.models.vehicle import FitmentSchema
from maxtt_billing.models.workflow import FinalValues, WorkflowRun
from maxtt_billing.services import audit_codec, dosage, pricing, workflow
from maxtt_billing.services.billing_api import BillingApiClient
from maxtt_billing.services.context import SessionContext
from maxtt_billing.services.document_planner import InvoiceDocumentPlanner
from maxtt_billing.services.invoice_payload import build_create_payload
from maxtt_billing.services.vehicle_registry import (
    REGISTRY,
    fitment_schema,
    is_allowed_tyre_count,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request / Response Models
# ---------------------------------------------------------------------------


class DosagePreviewRequest(BaseModel):
    vehicle_class: str
    width_mm: float
    aspect_pct: float
    rim_in: float
    installed_count: int


class DosagePreviewResponse(BaseModel):
    dosage: DosageResult
    outlier_level: OutlierLevel


class PricingPreviewRequest(BaseModel):
    total_ml: int
    discount_requested_inr: float = 0
    installation_fee_inr: float = 0
    tax_mode: TaxMode = TaxMode.SPLIT_DOMESTIC


class AuditDecodeRequest(BaseModel):
    remarks: str


class AuditDecodeResponse(BaseModel):
    snapshot: Optional[AuditSnapshot] = None
    referral_code: Optional[str] = None
    text: str = ""


class PlanRequest(BaseModel):
    invoice: InvoiceRecord
    profile: Optional[FranchiseeProfile] = None
    tax_mode: Optional[TaxMode] = None


class ConfirmRequest(BaseModel):
    visit: ServiceVisit
    override: Optional[OverrideRecord] = None
    mismatch: Optional[MismatchException] = None
    double_confirm: bool = False


class ConfirmResponse(BaseModel):
    final: FinalValues
    payload: dict


class SaveResponse(BaseModel):
    invoice_id: int
    final: FinalValues


def _parse_class(value: str) -> VehicleClass:
    vehicle_class = VehicleClass.from_string(value)
    if vehicle_class is None:
        raise HTTPException(status_code=404, detail=f"Unknown vehicle category: {value}")
    return vehicle_class


def _validation_detail(e: BlockingValidationError) -> list[dict]:
    return [
        {"field": issue.field, "position": issue.position, "message": issue.message}
        for issue in e.issues
    ]


def _confirmed_run(req: ConfirmRequest, context: SessionContext) -> WorkflowRun:
    """Drive a visit from DRAFT to CONFIRMED, mapping core errors to HTTP."""
    try:
        run = workflow.submit_draft(workflow.start(req.visit), context.now())
        workflow.raise_for_issues(run)
        if run.state is not WorkflowState.PENDING_CONSENT:
            raise HTTPException(status_code=409, detail="Customer consent is required")
        run = workflow.open_review(run, context)
        run = workflow.resolve_exception(run, req.override, req.mismatch, req.double_confirm)
        return workflow.confirm(run, context)
    except BlockingValidationError as e:
        raise HTTPException(status_code=422, detail=_validation_detail(e))
    except ConfirmationBlockedError as e:
        raise HTTPException(status_code=409, detail=e.reasons)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@router.get("/vehicle-classes")
async def get_vehicle_classes():
    """All vehicle categories with their dosage and validation parameters."""
    return {"vehicle_classes": [spec.model_dump(mode="json") for spec in REGISTRY.values()]}


@router.get("/fitment/{vehicle_class}/{tyre_count}", response_model=FitmentSchema)
async def get_fitment(vehicle_class: str, tyre_count: int):
    """Wheel positions for a category and tyre count."""
    cls = _parse_class(vehicle_class)
    if not is_allowed_tyre_count(cls, tyre_count):
        raise HTTPException(
            status_code=422,
            detail=f"Number of tyres {tyre_count} is not offered for {cls.value}",
        )
    return fitment_schema(cls, tyre_count)


# ---------------------------------------------------------------------------
# Previews
# ---------------------------------------------------------------------------


@router.post("/dosage/preview", response_model=DosagePreviewResponse)
async def preview_dosage(req: DosagePreviewRequest):
    cls = _parse_class(req.vehicle_class)
    result = dosage.calculate(cls, req.width_mm, req.aspect_pct, req.rim_in, req.installed_count)
    return DosagePreviewResponse(
        dosage=result,
        outlier_level=dosage.classify_outlier(cls, result.per_tyre_ml),
    )


@router.post("/pricing/preview", response_model=PricingBreakdown)
async def preview_pricing(req: PricingPreviewRequest, context: SessionContext = Depends(get_context)):
    settings = context.settings
    return pricing.price(
        total_ml=req.total_ml,
        price_per_ml=settings.price_per_ml,
        discount_requested_inr=req.discount_requested_inr,
        installation_fee_inr=req.installation_fee_inr,
        tax_mode=req.tax_mode,
        gst_percent=settings.gst_percent,
        discount_max_pct=settings.discount_max_pct,
    )


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


@router.post("/workflow/review", response_model=WorkflowRun)
async def review_visit(visit: ServiceVisit, context: SessionContext = Depends(get_context)):
    """Save attempt: validation, consent gate and the computed preview.

    A missing signature is not an error; the run comes back in DRAFT with
    the consent_required signal.
    """
    run = workflow.submit_draft(workflow.start(visit), context.now())
    try:
        workflow.raise_for_issues(run)
    except BlockingValidationError as e:
        raise HTTPException(status_code=422, detail=_validation_detail(e))
    if run.state is WorkflowState.PENDING_CONSENT:
        run = workflow.open_review(run, context)
    return run


@router.post("/workflow/confirm", response_model=ConfirmResponse)
async def confirm_visit(req: ConfirmRequest, context: SessionContext = Depends(get_context)):
    """Final values and the create-invoice payload, without saving."""
    run = _confirmed_run(req, context)
    return ConfirmResponse(final=run.final, payload=build_create_payload(run, context))


@router.post("/workflow/save", response_model=SaveResponse)
async def save_visit(req: ConfirmRequest, context: SessionContext = Depends(get_context)):
    """Confirm and save through the billing API."""
    run = _confirmed_run(req, context)
    client = BillingApiClient(context)
    try:
        run = await workflow.persist(run, client, context)
    except PersistenceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    finally:
        await client.close()
    return SaveResponse(invoice_id=run.invoice_id, final=run.final)


# ---------------------------------------------------------------------------
# Stored invoices
# ---------------------------------------------------------------------------


@router.post("/audit/decode", response_model=AuditDecodeResponse)
async def decode_audit(req: AuditDecodeRequest):
    """Audit snapshot and referral code embedded in an invoice's remarks."""
    return AuditDecodeResponse(
        snapshot=audit_codec.decode(req.remarks),
        referral_code=audit_codec.parse_referral_code(req.remarks),
        text=audit_codec.human_text(req.remarks),
    )


@router.post("/invoices/plan", response_model=InvoiceDocumentPlan)
async def plan_invoice(req: PlanRequest, context: SessionContext = Depends(get_context)):
    """Printable page plan for a stored invoice."""
    planner = InvoiceDocumentPlanner(context)
    return planner.plan(req.invoice, profile=req.profile, tax_mode=req.tax_mode)


@router.get("/invoices/{invoice_id}/plan", response_model=InvoiceDocumentPlan)
async def plan_stored_invoice(
    invoice_id: int,
    tax_mode: Optional[TaxMode] = None,
    context: SessionContext = Depends(get_context),
):
    """Fetch an invoice and the franchisee profile, then plan its pages."""
    client = BillingApiClient(context)
    try:
        record = await client.get_invoice(invoice_id)
        profile = await client.get_profile()
    except PersistenceError as e:
        status_code = e.status_code if e.status_code in (401, 404) else 502
        raise HTTPException(status_code=status_code, detail=str(e))
    finally:
        await client.close()
    return InvoiceDocumentPlanner(context).plan(record, profile=profile, tax_mode=tax_mode)
