"""Sealant dosage calculations.

This module is the single source of truth for dosage math.

## Formula

    width_in        = width_mm × 0.03937
    total_height_in = width_in × (aspect_pct / 100) × 2 + rim_in
    raw_ml          = width_in × total_height_in × k × (1 + buffer)
    per_tyre_ml     = raw_ml rounded to the nearest 25 ml (halves up)
    total_ml        = per_tyre_ml × installed tyres

`k` and `buffer` come from the vehicle class registry. Non-finite or missing
geometry reads as 0 and yields a dosage of 0; rejecting bad geometry is the
validator's job, not the calculator's.
"""

from typing import Any

from ..core.enums import OutlierLevel, VehicleClass
from ..models.invoice import DosageResult
from ..utils.converters import round_to_multiple, safe_float, safe_int
from .vehicle_registry import spec_for

# =============================================================================
# CONSTANTS
# =============================================================================

INCHES_PER_MM = 0.03937
DOSAGE_STEP_ML = 25


# =============================================================================
# CORE CALCULATION FUNCTIONS
# =============================================================================


def raw_dosage_ml(
    vehicle_class: VehicleClass,
    width_mm: Any,
    aspect_pct: Any,
    rim_in: Any,
) -> float:
    """Unrounded per-tyre dosage in ml, buffer included.

    Example:
        >>> round(raw_dosage_ml(VehicleClass.FOUR_WHEELER, 185, 65, 15), 1)
        492.7
    """
    spec = spec_for(vehicle_class)
    width_in = max(0.0, safe_float(width_mm)) * INCHES_PER_MM
    aspect = max(0.0, safe_float(aspect_pct))
    rim = max(0.0, safe_float(rim_in))

    total_height_in = width_in * (aspect / 100) * 2 + rim
    dosage = width_in * total_height_in * spec.dosage_constant
    return dosage * (1 + spec.buffer_fraction)


def per_tyre_ml(
    vehicle_class: VehicleClass,
    width_mm: Any,
    aspect_pct: Any,
    rim_in: Any,
) -> int:
    """Per-tyre dosage in ml, always a non-negative multiple of 25.

    Example:
        >>> per_tyre_ml(VehicleClass.FOUR_WHEELER, 185, 65, 15)
        500
    """
    return round_to_multiple(
        raw_dosage_ml(vehicle_class, width_mm, aspect_pct, rim_in), DOSAGE_STEP_ML
    )


def total_ml(per_tyre: int, installed_count: int) -> int:
    """Total dosage for the tyres treated this visit."""
    return max(0, safe_int(per_tyre)) * max(0, safe_int(installed_count))


def calculate(
    vehicle_class: VehicleClass,
    width_mm: Any,
    aspect_pct: Any,
    rim_in: Any,
    installed_count: int,
) -> DosageResult:
    per_tyre = per_tyre_ml(vehicle_class, width_mm, aspect_pct, rim_in)
    return DosageResult(per_tyre_ml=per_tyre, total_ml=total_ml(per_tyre, installed_count))


def classify_outlier(vehicle_class: VehicleClass, per_tyre: int) -> OutlierLevel:
    """Classify a per-tyre dosage against the class thresholds.

    Above red is RED, above yellow (up to and including red) is YELLOW.
    """
    thresholds = spec_for(vehicle_class).outlier_thresholds
    if per_tyre > thresholds.red_ml:
        return OutlierLevel.RED
    if per_tyre > thresholds.yellow_ml:
        return OutlierLevel.YELLOW
    return OutlierLevel.NONE
