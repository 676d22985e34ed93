"""Invoice, pricing and audit models.

`InvoiceRecord` is the flat shape exchanged with the billing API. Rows
written by older releases lack some columns; never read them directly for
printing, go through `services.reconcile.reconcile` instead.
"""

from typing import Any, Generic, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from ..core.enums import FieldSource, OutlierLevel, TaxMode, VehicleClass

T = TypeVar("T")


class TyreGeometry(BaseModel):
    width_mm: float = 0
    aspect_pct: float = 0
    rim_in: float = 0

    @property
    def size_label(self) -> str:
        """Printed tyre size, e.g. '185/65 R15'."""
        return f"{_num(self.width_mm)}/{_num(self.aspect_pct)} R{_num(self.rim_in)}"


class DosageResult(BaseModel):
    per_tyre_ml: int
    total_ml: int


class PricingBreakdown(BaseModel):
    """Money for one invoice. Amounts are rupees rounded to paise."""

    total_ml: int
    price_per_ml: float
    gst_percent: float
    tax_mode: TaxMode
    gross_inr: float
    discount_cap_inr: float
    discount_inr: float
    installation_fee_inr: float
    amount_before_tax_inr: float
    cgst_inr: float = 0.0
    sgst_inr: float = 0.0
    igst_inr: float = 0.0
    gst_total_inr: float
    grand_total_inr: float


class OverrideRecord(BaseModel):
    """Operator replacement of the computed per-tyre dosage."""

    manual_per_tyre_ml: int
    chart_version: str = ""
    reason: str = ""
    operator_note: str = ""
    acknowledged: bool = False


class MismatchException(BaseModel):
    """Operator acknowledgement that fewer/more tyres were fitted than selected."""

    reason: str = ""
    operator_note: str = ""
    acknowledged: bool = False


class AuditSnapshot(BaseModel):
    """How the saved dosage and pricing were derived, frozen at save time."""

    outlier_level: OutlierLevel = OutlierLevel.NONE
    computed_per_tyre_ml: int
    computed_total_ml: int
    override: Optional[OverrideRecord] = None
    mismatch: Optional[MismatchException] = None
    tyre_count_selected: int
    tyre_count_installed: int
    created_at_display: str = ""
    signed_at_display: str = ""
    pricing_snapshot: Optional[PricingBreakdown] = None


class FranchiseeProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    franchisee_id: str = ""
    name: str = ""
    address: str = ""
    gstin: str = ""
    franchisee_state: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _none_as_blank(cls, v: Any) -> Any:
        """The profile API returns null for unset fields and numeric ids."""
        if v is None:
            return ""
        return str(v) if isinstance(v, (int, float)) else v


class CustomerDetails(BaseModel):
    customer_name: str = ""
    vehicle_number: str = ""
    customer_address: Optional[str] = None
    mobile_number: Optional[str] = None
    odometer: float = 0
    installer_name: Optional[str] = None
    customer_gstin: Optional[str] = None
    customer_code: Optional[str] = None


class ConsentArtifact(BaseModel):
    """Captured customer signature and when consent was given (ISO-8601 UTC)."""

    signature: str
    signed_at: str
    statement: str = ""


class ServiceVisit(BaseModel):
    """Raw measurements and selections collected for one service visit."""

    customer: CustomerDetails = Field(default_factory=CustomerDetails)
    vehicle_class: VehicleClass = VehicleClass.FOUR_WHEELER
    tyre_count: int = 4
    geometry: TyreGeometry = Field(default_factory=TyreGeometry)
    fitment: dict[str, bool] = Field(default_factory=dict)
    treads: dict[str, Optional[float]] = Field(default_factory=dict)
    discount_requested_inr: float = 0
    installation_fee_inr: float = 0
    tax_mode: TaxMode = TaxMode.SPLIT_DOMESTIC
    remarks_note: str = ""
    consent: Optional[ConsentArtifact] = None
    gps_lat: Optional[float] = None
    gps_lng: Optional[float] = None


class InvoiceRecord(BaseModel):
    """An invoice row as stored by the billing API (any schema generation)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[int] = None
    created_at: Optional[str] = None

    customer_name: Optional[str] = None
    customer_address: Optional[str] = None
    mobile_number: Optional[str] = None
    vehicle_number: Optional[str] = None
    odometer: Optional[float] = None
    installer_name: Optional[str] = None
    customer_gstin: Optional[str] = None
    customer_code: Optional[str] = None

    vehicle_type: Optional[str] = None
    tyre_count: Optional[int] = None
    installed_tyre_count: Optional[int] = None
    tyre_width_mm: Optional[float] = None
    aspect_ratio: Optional[float] = None
    rim_diameter_in: Optional[float] = None
    fitment_locations: Optional[str] = None
    tread_depth_mm: Optional[float] = None
    tread_depths_json: Optional[str] = None

    dosage_ml: Optional[float] = None
    per_tyre_dosage_ml: Optional[float] = None
    price_per_ml: Optional[float] = None
    discount: Optional[float] = None
    installation_fee: Optional[float] = None
    tax_mode: Optional[str] = None
    gst_percentage: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("gst_percentage", "gst_rate")
    )
    total_before_gst: Optional[float] = None
    gst_amount: Optional[float] = None
    total_with_gst: Optional[float] = None
    cgst_amount: Optional[float] = None
    sgst_amount: Optional[float] = None
    igst_amount: Optional[float] = None
    hsn_code: Optional[str] = None

    consent_signature: Optional[str] = None
    consent_signed_at: Optional[str] = None
    consent_snapshot: Optional[str] = None
    customer_signature: Optional[str] = None
    signed_at: Optional[str] = None
    remarks: Optional[str] = None

    @property
    def schema_version(self) -> int:
        """1: single GST column only, 2: split tax columns, 3: installed count stored."""
        if self.installed_tyre_count is not None or self.per_tyre_dosage_ml is not None:
            return 3
        if any(v is not None for v in (self.cgst_amount, self.sgst_amount, self.igst_amount)):
            return 2
        return 1


class Resolved(BaseModel, Generic[T]):
    """A value together with where it was resolved from."""

    value: T
    source: FieldSource


class EffectiveInvoice(BaseModel):
    """An invoice with every printable value resolved exactly once."""

    record: InvoiceRecord
    vehicle_class: Optional[VehicleClass] = None
    vehicle_label: str = ""
    geometry: TyreGeometry
    tyre_count_selected: Resolved[int]
    tyre_count_installed: Resolved[int]
    per_tyre_ml: Resolved[int]
    total_ml: Resolved[int]
    pricing: Resolved[PricingBreakdown]
    fitment_labels: list[str] = Field(default_factory=list)
    treads: Resolved[dict[str, float]]
    audit: Optional[AuditSnapshot] = None
    created_at_display: str
    signed_at_display: str
    consent_statement: str = ""
    signature: Optional[str] = None
    hsn_code: str = ""

    @property
    def sources(self) -> dict[str, FieldSource]:
        return {
            "tyre_count_selected": self.tyre_count_selected.source,
            "tyre_count_installed": self.tyre_count_installed.source,
            "per_tyre_ml": self.per_tyre_ml.source,
            "total_ml": self.total_ml.source,
            "pricing": self.pricing.source,
            "treads": self.treads.source,
        }


def _num(value: Any) -> str:
    """Print 185.0 as '185' and 22.5 as '22.5'."""
    try:
        f = float(value)
    except (TypeError, ValueError):
        return ""
    return str(int(f)) if f.is_integer() else str(f)
