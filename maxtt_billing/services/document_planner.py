"""Single-page invoice layout planning.

The planner turns a stored invoice into an ordered list of positioned
blocks. It does all the numeric work (amounts, dosage, times, invoice
code) so a renderer only has to draw.

## Page
    A4 portrait in points, 36 pt margin. Header at the top, customer panel
    (left) and vehicle panel plus tread table (right) from y=100, then the
    amounts table, confirmation note, declaration and terms. The two
    signature boxes sit on a fixed band at the bottom of the page.

## Tight mode
If the text above would run into the signature band, the declaration,
terms and confirmation note are set one step smaller (font -0.5 pt, line
height -1 pt) and the gaps between zones shrink by 4 pt. This repeats until
the page fits or every value is at its floor. At the floor, the signature
boxes give up a fixed 16 pt as a last resort.
"""

import logging
import re
import textwrap
from datetime import datetime

from ..core.enums import BlockKind, TaxMode
from ..models.invoice import EffectiveInvoice, FranchiseeProfile, InvoiceRecord, PricingBreakdown
from ..models.layout import InvoiceDocumentPlan, LayoutBlock, LayoutMetrics, TableRow
from ..models.vehicle import strip_group_suffix
from ..utils.formatting import IST, PLACEHOLDER, format_inr, format_ist, to_ist
from . import audit_codec, pricing
from .context import SessionContext
from .reconcile import reconcile

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

PAGE_WIDTH_PT = 595.28
PAGE_HEIGHT_PT = 841.89
MARGIN_PT = 36.0

HEADER_TOP_PT = 24.0
HEADER_TITLE_PT = 18.0
HEADER_LINE_PT = 12.0
PANEL_TOP_PT = 100.0
PANEL_TITLE_PT = 16.0
PANEL_LINE_PT = 14.0
TABLE_ROW_PT = 18.0
ITEM_GAP_PT = 2.0
# Hanging indent for "00. " plus the gap after the number
NUMBER_INDENT_PT = 24.0
# Average Helvetica glyph width as a fraction of the font size
CHAR_WIDTH_EM = 0.5

NORMAL_METRICS = LayoutMetrics()
FONT_STEP_PT = 0.5
LINE_STEP_PT = 1.0
GAP_STEP_PT = 4.0
MIN_FONT_PT = 8.0
MIN_LINE_HEIGHT_PT = 9.0
MIN_GAP_PT = 4.0
SIGNATURE_SHRINK_PT = 16.0

UNKNOWN_STATE = "XX"
DEFAULT_FRANCHISEE_CODE = "FR"

DECLARATION_ITEMS = (
    "I hereby acknowledge that the MaxTT Tyre Sealant installation has been completed on my "
    "vehicle to my satisfaction, as per my earlier consent to proceed.",
    "I have read, understood, and accepted the Terms & Conditions stated herein.",
    "I acknowledge that the total amount shown is correct and payable to the "
    "franchisee/installer of Treadstone Solutions.",
)

TERMS_ITEMS = (
    "The MaxTT Tyre Sealant, developed in New Zealand and supplied by Treadstone Solutions, is a "
    "preventive safety solution designed to reduce tyre-related risks and virtually eliminate "
    "punctures and blowouts.",
    "Effectiveness is assured only when the vehicle is operated within the speed limits "
    "prescribed by the competent traffic/transport authorities (RTO/Transport Department) in India.",
    "By signing/accepting this invoice, the customer affirms that the installation has been "
    "carried out to their satisfaction and agrees to abide by these conditions.",
)

GST_STATE_NUM_TO_ABBR = {
    "01": "JK", "02": "HP", "03": "PB", "04": "CH", "05": "UT", "06": "HR", "07": "DL",
    "08": "RJ", "09": "UP", "10": "BR", "11": "SK", "12": "AR", "13": "NL", "14": "MN",
    "15": "MZ", "16": "TR", "17": "ML", "18": "AS", "19": "WB", "20": "JH", "21": "OR",
    "22": "CT", "23": "MP", "24": "GJ", "26": "DD", "27": "MH", "28": "AP", "29": "KA",
    "30": "GA", "31": "LD", "32": "KL", "33": "TN", "34": "PY", "35": "AN", "36": "TS",
    "37": "ANP", "97": "Other", "99": "Center",
}

# Order matters for address matching: first name found wins
INDIA_STATE_ABBR = {
    "JAMMU AND KASHMIR": "JK", "HIMACHAL PRADESH": "HP", "PUNJAB": "PB", "CHANDIGARH": "CH",
    "UTTARAKHAND": "UT", "HARYANA": "HR", "DELHI": "DL", "RAJASTHAN": "RJ",
    "UTTAR PRADESH": "UP", "BIHAR": "BR", "SIKKIM": "SK", "ARUNACHAL PRADESH": "AR",
    "NAGALAND": "NL", "MANIPUR": "MN", "MIZORAM": "MZ", "TRIPURA": "TR", "MEGHALAYA": "ML",
    "ASSAM": "AS", "WEST BENGAL": "WB", "JHARKHAND": "JH", "ODISHA": "OR",
    "CHHATTISGARH": "CT", "MADHYA PRADESH": "MP", "GUJARAT": "GJ", "DAMAN AND DIU": "DD",
    "MAHARASHTRA": "MH", "ANDHRA PRADESH": "AP", "KARNATAKA": "KA", "GOA": "GA",
    "LAKSHADWEEP": "LD", "KERALA": "KL", "TAMIL NADU": "TN", "PUDUCHERRY": "PY",
    "ANDAMAN AND NICOBAR ISLANDS": "AN", "TELANGANA": "TS", "ANDHRA PRADESH (NEW)": "ANP",
}

_KNOWN_ABBRS = frozenset(INDIA_STATE_ABBR.values())


# =============================================================================
# INVOICE CODE
# =============================================================================


def resolve_state_abbr(profile: FranchiseeProfile | None) -> str:
    """Franchisee state code: explicit state, else GSTIN prefix, else address, else 'XX'.

    Examples:
        >>> resolve_state_abbr(FranchiseeProfile(franchisee_state="Karnataka"))
        'KA'
        >>> resolve_state_abbr(FranchiseeProfile(gstin="07ABCDE1234F1Z5"))
        'DL'
        >>> resolve_state_abbr(None)
        'XX'
    """
    if profile is None:
        return UNKNOWN_STATE

    state = profile.franchisee_state.strip().upper()
    if state in INDIA_STATE_ABBR:
        return INDIA_STATE_ABBR[state]
    if state in _KNOWN_ABBRS:
        return state

    gstin = profile.gstin.strip()
    if len(gstin) >= 2 and gstin[:2] in GST_STATE_NUM_TO_ABBR:
        return GST_STATE_NUM_TO_ABBR[gstin[:2]]

    address = profile.address.upper()
    for name, abbr in INDIA_STATE_ABBR.items():
        if name in address:
            return abbr
    return UNKNOWN_STATE


def display_invoice_code(
    record: InvoiceRecord, profile: FranchiseeProfile | None, now: datetime
) -> str:
    """FRANCHISEE/STATE/SEQ/MMYY, with the month taken in IST.

    An unreadable creation time falls back to `now`.
    """
    franchisee = re.sub(r"\s+", "", profile.franchisee_id if profile else "") or DEFAULT_FRANCHISEE_CODE
    state = resolve_state_abbr(profile)
    created = to_ist(record.created_at) or now.astimezone(IST)
    sequence = str(record.id or 1).zfill(4)
    return f"{franchisee}/{state}/{sequence}/{created:%m%y}"


# =============================================================================
# CONTENT
# =============================================================================


def _or_placeholder(value) -> str:
    if value is None:
        return PLACEHOLDER
    text = str(value).strip()
    return text or PLACEHOLDER


def header_lines(profile: FranchiseeProfile, display_code: str, created_display: str) -> list[str]:
    address = [part for part in re.split(r"\n|, ", profile.address or "") if part.strip()]
    lines = [profile.name or "Franchisee"]
    lines.extend(address[:3] or ["Address not set"])
    lines.append(f"Franchisee ID: {profile.franchisee_id}")
    lines.append(f"GSTIN: {profile.gstin}")
    lines.append(f"Invoice No: {display_code}")
    lines.append(f"Date: {created_display}")
    return lines


def customer_lines(effective: EffectiveInvoice) -> list[str]:
    record = effective.record
    return [
        f"Name: {_or_placeholder(record.customer_name)}",
        f"Mobile: {_or_placeholder(record.mobile_number)}",
        f"Vehicle: {_or_placeholder(record.vehicle_number)}",
        f"Customer GSTIN: {_or_placeholder(record.customer_gstin)}",
        f"Address: {_or_placeholder(record.customer_address)}",
        f"Installer: {_or_placeholder(record.installer_name)}",
        f"Customer Code (Seal & Earn): {_or_placeholder(record.customer_code)}",
        f"HSN Code: {effective.hsn_code}",
    ]


def vehicle_lines(effective: EffectiveInvoice) -> list[str]:
    selected = effective.tyre_count_selected.value
    installed = effective.tyre_count_installed.value
    tyres = f"{selected}" if selected == installed else f"{selected} selected, {installed} installed"
    fitment = ", ".join(strip_group_suffix(label) for label in effective.fitment_labels)
    return [
        f"Vehicle Category: {_or_placeholder(effective.vehicle_label)}",
        f"Tyres: {tyres}",
        f"Tyre Size: {effective.geometry.size_label}",
        f"Fitment: {_or_placeholder(fitment)}",
        f"Per-tyre Dosage: {effective.per_tyre_ml.value} ml",
        f"Total Dosage: {effective.total_ml.value} ml",
    ]


def tread_rows(effective: EffectiveInvoice) -> list[TableRow]:
    """Installed positions only, in stored order."""
    return [
        TableRow(label=strip_group_suffix(label), value=f"{depth:g} mm")
        for label, depth in effective.treads.value.items()
    ]


def amount_rows(breakdown: PricingBreakdown, discount_max_pct: float) -> list[TableRow]:
    half = breakdown.gst_percent / 2
    return [
        TableRow(label="Total Dosage (ml)", value=str(breakdown.total_ml)),
        TableRow(label="MRP per ml", value=format_inr(breakdown.price_per_ml)),
        TableRow(label="Gross (dosage × price)", value=format_inr(breakdown.gross_inr)),
        TableRow(
            label="Discount (Rs.)",
            value=f"-{format_inr(breakdown.discount_inr)} (cap {discount_max_pct:g}%)",
        ),
        TableRow(label="Installation Charges (Rs.)", value=format_inr(breakdown.installation_fee_inr)),
        TableRow(label="Tax Mode", value=breakdown.tax_mode.label),
        TableRow(label=f"CGST ({half:g}%)", value=format_inr(breakdown.cgst_inr)),
        TableRow(label=f"SGST ({half:g}%)", value=format_inr(breakdown.sgst_inr)),
        TableRow(label=f"IGST ({breakdown.gst_percent:g}%)", value=format_inr(breakdown.igst_inr)),
        TableRow(label="Amount (before GST)", value=format_inr(breakdown.amount_before_tax_inr)),
        TableRow(label="GST Total", value=format_inr(breakdown.gst_total_inr)),
        TableRow(label="Total (with GST)", value=format_inr(breakdown.grand_total_inr)),
    ]


def confirmation_lines(effective: EffectiveInvoice) -> list[str]:
    """Consent, signing time and any exception the operator accepted."""
    lines = [effective.consent_statement, f"Signed at: {effective.signed_at_display}"]
    audit = effective.audit
    if audit is not None and audit.override is not None:
        override = audit.override
        lines.append(
            f"Manual dosage override: {override.manual_per_tyre_ml} ml per tyre "
            f"(computed {audit.computed_per_tyre_ml} ml), chart {override.chart_version}. "
            f"Reason: {override.reason}"
        )
    if audit is not None and audit.mismatch is not None:
        lines.append(
            f"Tyre count mismatch: {audit.tyre_count_selected} selected, "
            f"{audit.tyre_count_installed} installed. Reason: {audit.mismatch.reason}"
        )
    referral = audit_codec.parse_referral_code(effective.record.remarks)
    if referral:
        lines.append(f"Referral: {referral}")
    return lines


# =============================================================================
# PLANNER
# =============================================================================


def _wrap(text: str, width_pt: float, font_pt: float) -> list[str]:
    chars = max(10, int(width_pt / (font_pt * CHAR_WIDTH_EM)))
    return textwrap.wrap(text, width=chars) or [""]


def tighter(metrics: LayoutMetrics) -> LayoutMetrics:
    """One compression step, clamped at the floors."""
    return metrics.model_copy(
        update={
            "text_font_pt": max(MIN_FONT_PT, metrics.text_font_pt - FONT_STEP_PT),
            "text_line_height_pt": max(MIN_LINE_HEIGHT_PT, metrics.text_line_height_pt - LINE_STEP_PT),
            "zone_gap_pt": max(MIN_GAP_PT, metrics.zone_gap_pt - GAP_STEP_PT),
            "tight_steps": metrics.tight_steps + 1,
        }
    )


def at_floor(metrics: LayoutMetrics) -> bool:
    return (
        metrics.text_font_pt <= MIN_FONT_PT
        and metrics.text_line_height_pt <= MIN_LINE_HEIGHT_PT
        and metrics.zone_gap_pt <= MIN_GAP_PT
    )


class InvoiceDocumentPlanner:
    """Plans the printable page for stored invoices within one session."""

    def __init__(
        self,
        context: SessionContext,
        page_width_pt: float = PAGE_WIDTH_PT,
        page_height_pt: float = PAGE_HEIGHT_PT,
        margin_pt: float = MARGIN_PT,
    ):
        self.context = context
        self.page_width = page_width_pt
        self.page_height = page_height_pt
        self.margin = margin_pt

    @property
    def content_width(self) -> float:
        return self.page_width - 2 * self.margin

    @property
    def right_column_left(self) -> float:
        return self.page_width / 2 + 10

    def plan(
        self,
        record: InvoiceRecord,
        profile: FranchiseeProfile | None = None,
        tax_mode: TaxMode | None = None,
    ) -> InvoiceDocumentPlan:
        """Plan one invoice. `tax_mode` re-splits GST for a reprint."""
        settings = self.context.settings
        profile = profile or self.context.profile
        effective = reconcile(record, settings=settings)

        breakdown = effective.pricing.value
        if tax_mode is not None:
            breakdown = pricing.with_tax_mode(breakdown, tax_mode)

        display_code = display_invoice_code(record, profile, self.context.now())
        created_display = effective.created_at_display
        if created_display == PLACEHOLDER:
            created_display = format_ist(self.context.now())

        content = {
            "header": header_lines(profile, display_code, created_display),
            "customer": customer_lines(effective),
            "vehicle": vehicle_lines(effective),
            "treads": tread_rows(effective),
            "amounts": amount_rows(breakdown, settings.discount_max_pct),
            "confirmation": confirmation_lines(effective),
            "signature": effective.signature,
            "signed_at": effective.signed_at_display,
        }

        metrics = NORMAL_METRICS
        blocks, fits = self._layout(content, metrics)
        while not fits and not at_floor(metrics):
            metrics = tighter(metrics)
            blocks, fits = self._layout(content, metrics)
        if not fits:
            metrics = metrics.model_copy(
                update={
                    "signature_box_height_pt": metrics.signature_box_height_pt - SIGNATURE_SHRINK_PT,
                    "signature_shrunk": True,
                }
            )
            blocks, fits = self._layout(content, metrics)
            if not fits:
                logger.warning(f"Invoice {record.id} overflows the page even at minimum sizes")

        has_image = self.context.watermark_image is not None
        return InvoiceDocumentPlan(
            invoice_id=record.id,
            display_code=display_code,
            page_width_pt=self.page_width,
            page_height_pt=self.page_height,
            margin_pt=self.margin,
            tax_mode=breakdown.tax_mode,
            blocks=blocks,
            metrics=metrics,
            fits=fits,
            watermark_text=None if has_image else settings.watermark_text,
            watermark_image=has_image,
        )

    def _layout(self, content: dict, metrics: LayoutMetrics) -> tuple[list[LayoutBlock], bool]:
        """Position every block for the given metrics; True when nothing reaches the signatures."""
        gap = metrics.zone_gap_pt
        half_width = self.page_width / 2 - self.margin - 10

        header = LayoutBlock(
            kind=BlockKind.HEADER,
            lines=content["header"],
            left_pt=self.margin,
            top_pt=HEADER_TOP_PT,
            width_pt=self.content_width,
            height_pt=HEADER_TITLE_PT + (len(content["header"]) - 3) * HEADER_LINE_PT,
            font_pt=15,
            line_height_pt=HEADER_LINE_PT,
        )

        panel_top = max(PANEL_TOP_PT, header.bottom_pt + gap)
        customer = LayoutBlock(
            kind=BlockKind.CUSTOMER_PANEL,
            title="Customer Details",
            lines=content["customer"],
            left_pt=self.margin,
            top_pt=panel_top,
            width_pt=half_width,
            height_pt=PANEL_TITLE_PT + len(content["customer"]) * PANEL_LINE_PT,
            line_height_pt=PANEL_LINE_PT,
        )
        vehicle = LayoutBlock(
            kind=BlockKind.VEHICLE_PANEL,
            title="Tyre / Vehicle",
            lines=content["vehicle"],
            left_pt=self.right_column_left,
            top_pt=panel_top,
            width_pt=self.page_width - self.margin - self.right_column_left,
            height_pt=PANEL_TITLE_PT + len(content["vehicle"]) * PANEL_LINE_PT,
            line_height_pt=PANEL_LINE_PT,
        )
        treads = LayoutBlock(
            kind=BlockKind.TREAD_TABLE,
            title="Tread Depths",
            rows=content["treads"],
            left_pt=vehicle.left_pt,
            top_pt=vehicle.bottom_pt + gap,
            width_pt=vehicle.width_pt,
            height_pt=(len(content["treads"]) + 1) * TABLE_ROW_PT,
            font_pt=10,
            line_height_pt=TABLE_ROW_PT,
        )
        amounts = LayoutBlock(
            kind=BlockKind.AMOUNTS_TABLE,
            rows=content["amounts"],
            left_pt=self.margin,
            top_pt=max(customer.bottom_pt, treads.bottom_pt) + gap,
            width_pt=self.content_width,
            height_pt=(len(content["amounts"]) + 1) * TABLE_ROW_PT,
            font_pt=10,
            line_height_pt=TABLE_ROW_PT,
        )

        blocks = [header, customer, vehicle, treads, amounts]
        y = amounts.bottom_pt + gap
        for kind, title, paragraphs, numbered in (
            (BlockKind.CONFIRMATION_NOTE, "Mid-Install Confirmation", content["confirmation"], False),
            (BlockKind.DECLARATION, "Customer Declaration", list(DECLARATION_ITEMS), True),
            (BlockKind.TERMS, "Terms & Conditions", list(TERMS_ITEMS), True),
        ):
            block = self._text_block(kind, title, paragraphs, numbered, y, metrics)
            blocks.append(block)
            y = block.bottom_pt + gap

        box_height = metrics.signature_box_height_pt
        signature_top = self.page_height - self.margin - box_height
        box_width = 220.0
        signer_lines = ["Customer Signature"]
        if content["signed_at"] != PLACEHOLDER:
            signer_lines.append(f"Signed at: {content['signed_at']}")
        blocks.append(
            LayoutBlock(
                kind=BlockKind.SIGNATURES,
                title="Installer Sign & Stamp",
                lines=["Installer Sign & Stamp"],
                left_pt=self.margin,
                top_pt=signature_top,
                width_pt=box_width,
                height_pt=box_height,
                font_pt=10,
            )
        )
        blocks.append(
            LayoutBlock(
                kind=BlockKind.SIGNATURES,
                title="Customer Signature",
                lines=signer_lines,
                left_pt=self.page_width - self.margin - box_width,
                top_pt=signature_top,
                width_pt=box_width,
                height_pt=box_height,
                font_pt=10,
                image_ref=content["signature"],
            )
        )
        return blocks, y <= signature_top

    def _text_block(
        self,
        kind: BlockKind,
        title: str,
        paragraphs: list[str],
        numbered: bool,
        top: float,
        metrics: LayoutMetrics,
    ) -> LayoutBlock:
        font = metrics.text_font_pt
        line_height = metrics.text_line_height_pt
        indent = NUMBER_INDENT_PT if numbered else 0
        lines = []
        line_count = 1
        for index, paragraph in enumerate(paragraphs, start=1):
            wrapped = _wrap(paragraph, self.content_width - indent, font)
            prefix = f"{index}. " if numbered else ""
            lines.append(prefix + " ".join(wrapped))
            line_count += len(wrapped)
        extra = ITEM_GAP_PT * len(paragraphs) if numbered else 0
        return LayoutBlock(
            kind=kind,
            title=title,
            lines=lines,
            left_pt=self.margin,
            top_pt=top,
            width_pt=self.content_width,
            height_pt=line_count * line_height + extra,
            font_pt=font,
            line_height_pt=line_height,
        )
