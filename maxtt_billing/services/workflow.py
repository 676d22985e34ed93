"""
Service Visit Workflow State Machine

This module is the SINGLE SOURCE OF TRUTH for how a visit becomes an invoice.

    DRAFT -> PENDING_CONSENT -> UNDER_REVIEW -> CONFIRMED -> PERSISTED

DRAFT and UNDER_REVIEW can be cancelled back to DRAFT. PERSISTED is terminal.

Every transition is a plain function that takes a run and returns a new
one; the input run is never mutated. A failed save leaves the caller holding
the CONFIRMED run, so the identical payload can be resubmitted.

Soft signals (consent missing, validation issues) keep a run in DRAFT and are
reported on `run.signal`. Only a transition the current state does not allow
(InvalidTransitionError) or an unmet confirmation guard
(ConfirmationBlockedError) raises.
"""

import logging
from datetime import datetime, timezone

from ..core.enums import OutlierLevel, VehicleClass, WorkflowSignal, WorkflowState
from ..core.exceptions import (
    BlockingValidationError,
    ConfirmationBlockedError,
    InvalidTransitionError,
    PersistenceError,
)
from ..core.logging import log_error, log_gate, log_transition
from ..models.invoice import (
    AuditSnapshot,
    ConsentArtifact,
    MismatchException,
    OverrideRecord,
    ServiceVisit,
)
from ..models.workflow import FinalValues, ReviewPreview, TransitionRecord, WorkflowRun
from ..utils.converters import is_blank
from ..utils.formatting import format_ist
from . import audit_codec, dosage, pricing
from .billing_api import BillingApiClient
from .context import SessionContext
from .invoice_payload import build_create_payload
from .validation import validate_visit
from .vehicle_registry import fitment_schema

logger = logging.getLogger(__name__)


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_state -> [allowed next states]
TRANSITIONS: dict[WorkflowState, list[WorkflowState]] = {
    WorkflowState.DRAFT: [
        WorkflowState.PENDING_CONSENT,  # Save attempt with consent captured
        WorkflowState.DRAFT,            # Cancel (reset operator decisions)
    ],
    WorkflowState.PENDING_CONSENT: [
        WorkflowState.UNDER_REVIEW,     # Open computed preview
    ],
    WorkflowState.UNDER_REVIEW: [
        WorkflowState.CONFIRMED,        # Guard satisfied
        WorkflowState.DRAFT,            # Cancel back to editing
    ],
    WorkflowState.CONFIRMED: [
        WorkflowState.PERSISTED,        # Saved by the billing API
    ],
    WorkflowState.PERSISTED: [],        # Terminal state
}

# Mismatch of this many tyres or more needs the high-risk acknowledgement
LARGE_MISMATCH_TYRES = 2


def can_transition(current: WorkflowState, new: WorkflowState) -> bool:
    """Check if a transition is allowed."""
    return new in TRANSITIONS.get(current, [])


def get_allowed_transitions(current: WorkflowState) -> list[WorkflowState]:
    return list(TRANSITIONS.get(current, []))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _advance(
    run: WorkflowRun,
    to_state: WorkflowState,
    now: datetime | None = None,
    **update,
) -> WorkflowRun:
    if not can_transition(run.state, to_state):
        raise InvalidTransitionError(run.state.value, to_state.value)
    at = (now or _utc_now()).isoformat()
    record = TransitionRecord(from_state=run.state, to_state=to_state, at=at)
    log_transition(run.run_id, run.state.value, to_state.value)
    return run.model_copy(update={**update, "state": to_state, "history": [*run.history, record]})


def _require_state(run: WorkflowRun, state: WorkflowState, action: str) -> None:
    if run.state is not state:
        raise InvalidTransitionError(run.state.value, action)


# =============================================================================
# DRAFT
# =============================================================================


def start(visit: ServiceVisit) -> WorkflowRun:
    """A fresh DRAFT run for a visit."""
    return WorkflowRun(visit=visit)


def update_visit(run: WorkflowRun, visit: ServiceVisit) -> WorkflowRun:
    """Replace the draft inputs. Only allowed while editing."""
    _require_state(run, WorkflowState.DRAFT, "update_visit")
    return run.model_copy(update={"visit": visit, "signal": None, "issues": []})


def capture_consent(run: WorkflowRun, consent: ConsentArtifact) -> WorkflowRun:
    """Attach the customer's signature artifact to the draft."""
    _require_state(run, WorkflowState.DRAFT, "capture_consent")
    visit = run.visit.model_copy(update={"consent": consent})
    return run.model_copy(update={"visit": visit, "signal": None})


def has_consent(visit: ServiceVisit) -> bool:
    return visit.consent is not None and not is_blank(visit.consent.signature)


def submit_draft(run: WorkflowRun, now: datetime | None = None) -> WorkflowRun:
    """Save attempt: DRAFT -> PENDING_CONSENT.

    Blocking validation issues keep the run in DRAFT with VALIDATION_FAILED.
    A missing signature keeps it in DRAFT with CONSENT_REQUIRED.
    """
    _require_state(run, WorkflowState.DRAFT, "submit_draft")

    issues = validate_visit(run.visit)
    if issues:
        log_gate(run.run_id, run.state.value, WorkflowSignal.VALIDATION_FAILED.value, issues=len(issues))
        return run.model_copy(update={"signal": WorkflowSignal.VALIDATION_FAILED, "issues": issues})

    if not has_consent(run.visit):
        log_gate(run.run_id, run.state.value, WorkflowSignal.CONSENT_REQUIRED.value)
        return run.model_copy(update={"signal": WorkflowSignal.CONSENT_REQUIRED, "issues": []})

    return _advance(run, WorkflowState.PENDING_CONSENT, now, signal=None, issues=[])


def raise_for_issues(run: WorkflowRun) -> None:
    """Raise BlockingValidationError when the last save attempt found issues."""
    if run.signal is WorkflowSignal.VALIDATION_FAILED and run.issues:
        raise BlockingValidationError(run.issues)


# =============================================================================
# REVIEW
# =============================================================================


def build_preview(visit: ServiceVisit, context: SessionContext) -> ReviewPreview:
    """Computed dosage and pricing for a visit, with its risk banners.

    Totals use the installed count implied by the fitment selection.
    """
    settings = context.settings
    schema = fitment_schema(visit.vehicle_class, visit.tyre_count)
    implied = schema.implied_installed_count(visit.fitment)
    selected = visit.tyre_count

    result = dosage.calculate(
        visit.vehicle_class,
        visit.geometry.width_mm,
        visit.geometry.aspect_pct,
        visit.geometry.rim_in,
        implied,
    )
    breakdown = pricing.price(
        total_ml=result.total_ml,
        price_per_ml=settings.price_per_ml,
        discount_requested_inr=visit.discount_requested_inr,
        installation_fee_inr=visit.installation_fee_inr,
        tax_mode=visit.tax_mode,
        gst_percent=settings.gst_percent,
        discount_max_pct=settings.discount_max_pct,
    )
    outlier = dosage.classify_outlier(visit.vehicle_class, result.per_tyre_ml)
    mismatch_raised = implied != selected
    high_risk_mismatch = mismatch_raised and (
        abs(selected - implied) >= LARGE_MISMATCH_TYRES
        or visit.vehicle_class is VehicleClass.HTV
    )

    return ReviewPreview(
        dosage=result,
        pricing=breakdown,
        outlier_level=outlier,
        tyre_count_selected=selected,
        tyre_count_installed=implied,
        mismatch_raised=mismatch_raised,
        double_confirm_required=high_risk_mismatch or outlier is OutlierLevel.RED,
    )


def open_review(run: WorkflowRun, context: SessionContext) -> WorkflowRun:
    """PENDING_CONSENT -> UNDER_REVIEW with the computed preview attached."""
    _require_state(run, WorkflowState.PENDING_CONSENT, "open_review")
    preview = build_preview(run.visit, context)
    if preview.outlier_level is not OutlierLevel.NONE or preview.mismatch_raised:
        logger.info(
            f"Review banners run={run.run_id} outlier={preview.outlier_level.value} "
            f"selected={preview.tyre_count_selected} installed={preview.tyre_count_installed}"
        )
    return _advance(run, WorkflowState.UNDER_REVIEW, context.now(), preview=preview)


def resolve_exception(
    run: WorkflowRun,
    override: OverrideRecord | None = None,
    mismatch: MismatchException | None = None,
    double_confirm: bool | None = None,
) -> WorkflowRun:
    """Record the operator's override, mismatch acknowledgement and double confirmation.

    Stays in UNDER_REVIEW. Passing None leaves the current value untouched.
    """
    _require_state(run, WorkflowState.UNDER_REVIEW, "resolve_exception")
    update = {}
    if override is not None:
        update["override"] = override
    if mismatch is not None:
        update["mismatch"] = mismatch
    if double_confirm is not None:
        update["double_confirm"] = double_confirm
    return run.model_copy(update=update)


def clear_override(run: WorkflowRun) -> WorkflowRun:
    _require_state(run, WorkflowState.UNDER_REVIEW, "clear_override")
    return run.model_copy(update={"override": None})


def blocking_reasons(run: WorkflowRun) -> list[str]:
    """Unmet conditions for UNDER_REVIEW -> CONFIRMED. Empty when confirmable."""
    preview = run.preview
    if preview is None:
        return ["Review has not been opened"]

    reasons = []
    override = run.override
    mismatch = run.mismatch

    if preview.mismatch_raised:
        mismatch_ok = (
            override is not None
            and mismatch is not None
            and mismatch.acknowledged
            and not is_blank(mismatch.reason)
        )
        if not mismatch_ok:
            reasons.append(
                f"Tyre count mismatch: {preview.tyre_count_selected} selected but "
                f"{preview.tyre_count_installed} installed. Enter a dosage override and "
                "acknowledge the mismatch with a reason"
            )

    if preview.double_confirm_required and not run.double_confirm:
        if preview.outlier_level is OutlierLevel.RED:
            reasons.append("Dosage is in the red range. Double confirmation is required")
        else:
            reasons.append("High-risk tyre count mismatch. Double confirmation is required")

    if override is not None:
        if override.manual_per_tyre_ml <= 0:
            reasons.append("Override dosage per tyre must be greater than 0 ml")
        if is_blank(override.reason):
            reasons.append("Override reason is required")
        if is_blank(override.chart_version):
            reasons.append("Override chart version is required")
        if not override.acknowledged:
            reasons.append("Override must be acknowledged")

    return reasons


def can_confirm(run: WorkflowRun) -> bool:
    return run.state is WorkflowState.UNDER_REVIEW and not blocking_reasons(run)


def compute_final(run: WorkflowRun, context: SessionContext) -> FinalValues:
    """The values actually written: override wins, mismatch uses the installed count."""
    preview = run.preview
    visit = run.visit
    settings = context.settings

    computed = preview.dosage.per_tyre_ml
    per_tyre = run.override.manual_per_tyre_ml if run.override else computed
    count_used = preview.tyre_count_installed if preview.mismatch_raised else preview.tyre_count_selected
    total = dosage.total_ml(per_tyre, count_used)

    breakdown = pricing.price(
        total_ml=total,
        price_per_ml=settings.price_per_ml,
        discount_requested_inr=visit.discount_requested_inr,
        installation_fee_inr=visit.installation_fee_inr,
        tax_mode=visit.tax_mode,
        gst_percent=settings.gst_percent,
        discount_max_pct=settings.discount_max_pct,
    )

    consent = visit.consent
    snapshot = AuditSnapshot(
        outlier_level=preview.outlier_level,
        computed_per_tyre_ml=computed,
        computed_total_ml=preview.dosage.total_ml,
        override=run.override,
        mismatch=run.mismatch if preview.mismatch_raised else None,
        tyre_count_selected=preview.tyre_count_selected,
        tyre_count_installed=preview.tyre_count_installed,
        created_at_display=format_ist(context.now()),
        signed_at_display=format_ist(consent.signed_at if consent else None),
        pricing_snapshot=breakdown,
    )
    statement = consent.statement if consent and consent.statement else audit_codec.CONSENT_STATEMENT
    remarks = audit_codec.encode(snapshot, statement=statement, note=visit.remarks_note)

    return FinalValues(
        per_tyre_ml=per_tyre,
        count_used=count_used,
        total_ml=total,
        pricing=breakdown,
        audit=snapshot,
        remarks=remarks,
    )


def confirm(run: WorkflowRun, context: SessionContext) -> WorkflowRun:
    """UNDER_REVIEW -> CONFIRMED, freezing the final values and audit snapshot."""
    _require_state(run, WorkflowState.UNDER_REVIEW, "confirm")
    reasons = blocking_reasons(run)
    if reasons:
        log_gate(run.run_id, run.state.value, "confirmation_blocked", reasons=len(reasons))
        raise ConfirmationBlockedError(reasons)
    final = compute_final(run, context)
    return _advance(run, WorkflowState.CONFIRMED, context.now(), final=final)


def cancel(run: WorkflowRun, now: datetime | None = None) -> WorkflowRun:
    """Abandon review or reset a draft. Operator decisions are discarded."""
    return _advance(
        run,
        WorkflowState.DRAFT,
        now,
        signal=None,
        issues=[],
        preview=None,
        override=None,
        mismatch=None,
        double_confirm=False,
        final=None,
    )


# =============================================================================
# PERSISTENCE
# =============================================================================


async def persist(
    run: WorkflowRun, client: BillingApiClient, context: SessionContext
) -> WorkflowRun:
    """CONFIRMED -> PERSISTED through a single create call.

    On failure the PersistenceError propagates and the caller still holds the
    CONFIRMED run; resubmitting sends the same payload.
    """
    _require_state(run, WorkflowState.CONFIRMED, "persist")
    payload = build_create_payload(run, context)
    try:
        saved = await client.create_invoice(payload)
    except PersistenceError as e:
        log_error(
            "Invoice save failed",
            run=run.run_id,
            retryable=e.retryable,
            status=e.status_code,
        )
        raise
    return _advance(run, WorkflowState.PERSISTED, context.now(), invoice_id=saved.id)


class ExceptionWorkflow:
    """Convenience holder for one visit's run, for callers that prefer an object.

    Each method applies the matching transition function and keeps the
    resulting run. Failed transitions leave the held run unchanged.
    """

    def __init__(self, visit: ServiceVisit, context: SessionContext):
        self.context = context
        self.run = start(visit)

    @property
    def state(self) -> WorkflowState:
        return self.run.state

    def capture_consent(self, consent: ConsentArtifact) -> WorkflowRun:
        self.run = capture_consent(self.run, consent)
        return self.run

    def submit(self) -> WorkflowRun:
        """Save attempt; opens the review straight away when consent is captured."""
        self.run = submit_draft(self.run, self.context.now())
        if self.run.state is WorkflowState.PENDING_CONSENT:
            self.run = open_review(self.run, self.context)
        return self.run

    def resolve(
        self,
        override: OverrideRecord | None = None,
        mismatch: MismatchException | None = None,
        double_confirm: bool | None = None,
    ) -> WorkflowRun:
        self.run = resolve_exception(self.run, override, mismatch, double_confirm)
        return self.run

    def confirm(self) -> WorkflowRun:
        self.run = confirm(self.run, self.context)
        return self.run

    def cancel(self) -> WorkflowRun:
        self.run = cancel(self.run, self.context.now())
        return self.run

    async def persist(self, client: BillingApiClient) -> WorkflowRun:
        self.run = await persist(self.run, client, self.context)
        return self.run
