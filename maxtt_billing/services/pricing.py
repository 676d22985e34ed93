"""Invoice pricing: gross, capped discount, installation fee and GST split.

    gross            = total_ml × price_per_ml
    discount_cap     = round(gross × cap%)
    discount_used    = min(max(0, round(requested)), discount_cap)
    amount_before    = max(0, gross − discount_used + max(0, round(installation_fee)))
    CGST_SGST mode   : cgst = sgst = amount_before × gst% / 200
    IGST mode        : igst = amount_before × gst% / 100
    grand_total      = amount_before + cgst + sgst + igst

Requested discounts above the cap are clamped, never rejected. The
installation fee has no upper bound. Arithmetic runs on Decimal and is
rounded to paise only when the breakdown is assembled.
"""

from decimal import Decimal
from typing import Any

from ..core.enums import TaxMode
from ..models.invoice import PricingBreakdown
from ..utils.converters import round_half_up, safe_int, to_decimal
from ..utils.formatting import money

DEFAULT_DISCOUNT_MAX_PCT = 30.0


def discount_cap(gross: Any, max_pct: float = DEFAULT_DISCOUNT_MAX_PCT) -> Decimal:
    """Largest discount allowed on a gross amount, in whole rupees."""
    return round_half_up(to_decimal(gross) * to_decimal(max_pct) / 100)


def clamp_discount(
    requested: Any, gross: Any, max_pct: float = DEFAULT_DISCOUNT_MAX_PCT
) -> Decimal:
    """Discount actually applied.

    Examples:
        >>> clamp_discount(5000, 9000)
        Decimal('2700')
        >>> clamp_discount(-50, 9000)
        Decimal('0')
    """
    asked = max(Decimal(0), round_half_up(requested))
    return min(asked, discount_cap(gross, max_pct))


def split_tax(
    amount_before_tax: Any, gst_percent: Any, tax_mode: TaxMode
) -> tuple[Decimal, Decimal, Decimal]:
    """(cgst, sgst, igst) for a taxable amount; unused heads are zero."""
    base = to_decimal(amount_before_tax)
    rate = to_decimal(gst_percent)
    if tax_mode is TaxMode.SINGLE_INTERSTATE:
        return Decimal(0), Decimal(0), base * rate / 100
    half = base * rate / 200
    return half, half, Decimal(0)


def assemble(
    total_ml: int,
    price_per_ml: Any,
    gross: Decimal,
    cap: Decimal,
    discount: Decimal,
    installation: Decimal,
    amount_before_tax: Decimal,
    tax_mode: TaxMode,
    gst_percent: Any,
) -> PricingBreakdown:
    """Round the unrounded pieces to paise and build the breakdown.

    GST totals are summed from the rounded heads so CGST + SGST always
    equals the printed GST total.
    """
    cgst, sgst, igst = split_tax(amount_before_tax, gst_percent, tax_mode)
    cgst_q = round_half_up(cgst, 2)
    sgst_q = round_half_up(sgst, 2)
    igst_q = round_half_up(igst, 2)
    before_q = round_half_up(amount_before_tax, 2)
    gst_total = cgst_q + sgst_q + igst_q

    return PricingBreakdown(
        total_ml=total_ml,
        price_per_ml=float(to_decimal(price_per_ml)),
        gst_percent=float(to_decimal(gst_percent)),
        tax_mode=tax_mode,
        gross_inr=money(gross),
        discount_cap_inr=float(cap),
        discount_inr=money(discount),
        installation_fee_inr=money(installation),
        amount_before_tax_inr=float(before_q),
        cgst_inr=float(cgst_q),
        sgst_inr=float(sgst_q),
        igst_inr=float(igst_q),
        gst_total_inr=float(gst_total),
        grand_total_inr=float(before_q + gst_total),
    )


def price(
    total_ml: int,
    price_per_ml: Any,
    discount_requested_inr: Any,
    installation_fee_inr: Any,
    tax_mode: TaxMode,
    gst_percent: Any,
    discount_max_pct: float = DEFAULT_DISCOUNT_MAX_PCT,
) -> PricingBreakdown:
    """Price a dosage.

    Example:
        >>> b = price(2000, 4.5, 5000, 0, TaxMode.SPLIT_DOMESTIC, 18)
        >>> (b.gross_inr, b.discount_inr, b.cgst_inr, b.grand_total_inr)
        (9000.0, 2700.0, 567.0, 7434.0)
    """
    total = max(0, safe_int(total_ml))
    gross = Decimal(total) * to_decimal(price_per_ml)
    cap = discount_cap(gross, discount_max_pct)
    discount = clamp_discount(discount_requested_inr, gross, discount_max_pct)
    installation = max(Decimal(0), round_half_up(installation_fee_inr))
    amount_before_tax = max(Decimal(0), gross - discount + installation)

    return assemble(
        total_ml=total,
        price_per_ml=price_per_ml,
        gross=gross,
        cap=cap,
        discount=discount,
        installation=installation,
        amount_before_tax=amount_before_tax,
        tax_mode=tax_mode,
        gst_percent=gst_percent,
    )


def with_tax_mode(breakdown: PricingBreakdown, tax_mode: TaxMode) -> PricingBreakdown:
    """Re-split an existing breakdown under another tax mode (reprints)."""
    if breakdown.tax_mode is tax_mode:
        return breakdown
    return assemble(
        total_ml=breakdown.total_ml,
        price_per_ml=breakdown.price_per_ml,
        gross=to_decimal(breakdown.gross_inr),
        cap=to_decimal(breakdown.discount_cap_inr),
        discount=to_decimal(breakdown.discount_inr),
        installation=to_decimal(breakdown.installation_fee_inr),
        amount_before_tax=to_decimal(breakdown.amount_before_tax_inr),
        tax_mode=tax_mode,
        gst_percent=breakdown.gst_percent,
    )
