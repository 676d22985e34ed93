import uuid
from typing import Optional

from pydantic import BaseModel, Field

from ..core.enums import OutlierLevel, WorkflowSignal, WorkflowState
from ..core.exceptions import ValidationIssue
from .invoice import (
    AuditSnapshot,
    DosageResult,
    MismatchException,
    OverrideRecord,
    PricingBreakdown,
    ServiceVisit,
)


class ReviewPreview(BaseModel):
    """Computed values and risk banners shown to the operator before confirming."""

    dosage: DosageResult
    pricing: PricingBreakdown
    outlier_level: OutlierLevel
    tyre_count_selected: int
    tyre_count_installed: int
    mismatch_raised: bool
    double_confirm_required: bool

    @property
    def count_difference(self) -> int:
        return abs(self.tyre_count_selected - self.tyre_count_installed)


class FinalValues(BaseModel):
    """What gets written: computed or overridden, frozen at confirmation."""

    per_tyre_ml: int
    count_used: int
    total_ml: int
    pricing: PricingBreakdown
    audit: AuditSnapshot
    remarks: str


class TransitionRecord(BaseModel):
    from_state: WorkflowState
    to_state: WorkflowState
    at: str


class WorkflowRun(BaseModel):
    """One in-progress service visit. Transitions return a new run."""

    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    state: WorkflowState = WorkflowState.DRAFT
    visit: ServiceVisit
    signal: Optional[WorkflowSignal] = None
    issues: list[ValidationIssue] = Field(default_factory=list)
    preview: Optional[ReviewPreview] = None
    override: Optional[OverrideRecord] = None
    mismatch: Optional[MismatchException] = None
    double_confirm: bool = False
    final: Optional[FinalValues] = None
    invoice_id: Optional[int] = None
    history: list[TransitionRecord] = Field(default_factory=list)
