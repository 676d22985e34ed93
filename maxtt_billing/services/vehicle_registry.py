"""Vehicle class registry and fitment schema.

The registry holds the per-class dosage constants, buffer, tyre-count
options, accepted tyre sizes, minimum tread and outlier thresholds. It is
built once at import and never mutated.

Fitment labels are fixed per wheel for 2/3/4-wheelers. Six-wheelers and HTVs
collapse the rear axles into two grouped labels:

    rear_each = max(2, floor((tyre_count - 2) / 2))
    labels    = Front Left, Front Right, Rear Left ×rear_each, Rear Right ×rear_each

Selecting a grouped label implies `rear_each` physical tyres.
"""

from types import MappingProxyType

from ..core.enums import VehicleClass
from ..models.vehicle import (
    FitmentPosition,
    FitmentSchema,
    NumericRange,
    OutlierThresholds,
    SizeLimits,
    VehicleClassSpec,
)

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_MIN_TREAD_MM = 1.5

_REGISTRY: dict[VehicleClass, VehicleClassSpec] = {
    VehicleClass.TWO_WHEELER: VehicleClassSpec(
        vehicle_class=VehicleClass.TWO_WHEELER,
        dosage_constant=2.6,
        buffer_fraction=0.03,
        default_tyre_count=2,
        allowed_tyre_counts=(2,),
        size_limits=SizeLimits(
            width_mm=NumericRange(min=60, max=240),
            aspect_pct=NumericRange(min=40, max=100),
            rim_in=NumericRange(min=8, max=21),
        ),
        min_tread_mm=DEFAULT_MIN_TREAD_MM,
        outlier_thresholds=OutlierThresholds(yellow_ml=400, red_ml=600),
    ),
    VehicleClass.THREE_WHEELER: VehicleClassSpec(
        vehicle_class=VehicleClass.THREE_WHEELER,
        dosage_constant=2.2,
        buffer_fraction=0.03,
        default_tyre_count=3,
        allowed_tyre_counts=(3,),
        size_limits=SizeLimits(
            width_mm=NumericRange(min=80, max=200),
            aspect_pct=NumericRange(min=50, max=100),
            rim_in=NumericRange(min=8, max=14),
        ),
        min_tread_mm=DEFAULT_MIN_TREAD_MM,
        outlier_thresholds=OutlierThresholds(yellow_ml=350, red_ml=500),
    ),
    VehicleClass.FOUR_WHEELER: VehicleClassSpec(
        vehicle_class=VehicleClass.FOUR_WHEELER,
        dosage_constant=2.56,
        buffer_fraction=0.08,
        default_tyre_count=4,
        allowed_tyre_counts=(4,),
        size_limits=SizeLimits(
            width_mm=NumericRange(min=135, max=335),
            aspect_pct=NumericRange(min=25, max=85),
            rim_in=NumericRange(min=12, max=22),
        ),
        min_tread_mm=DEFAULT_MIN_TREAD_MM,
        outlier_thresholds=OutlierThresholds(yellow_ml=1000, red_ml=1400),
    ),
    VehicleClass.SIX_WHEELER: VehicleClassSpec(
        vehicle_class=VehicleClass.SIX_WHEELER,
        dosage_constant=3.0,
        buffer_fraction=0.05,
        default_tyre_count=6,
        allowed_tyre_counts=(6,),
        size_limits=SizeLimits(
            width_mm=NumericRange(min=175, max=315),
            aspect_pct=NumericRange(min=60, max=100),
            rim_in=NumericRange(min=15, max=22.5),
        ),
        min_tread_mm=DEFAULT_MIN_TREAD_MM,
        outlier_thresholds=OutlierThresholds(yellow_ml=1500, red_ml=2200),
    ),
    VehicleClass.HTV: VehicleClassSpec(
        vehicle_class=VehicleClass.HTV,
        dosage_constant=3.0,
        buffer_fraction=0.05,
        default_tyre_count=8,
        allowed_tyre_counts=(8, 10, 12, 14, 16, 18),
        size_limits=SizeLimits(
            width_mm=NumericRange(min=195, max=445),
            aspect_pct=NumericRange(min=50, max=100),
            rim_in=NumericRange(min=15, max=24.5),
        ),
        min_tread_mm=DEFAULT_MIN_TREAD_MM,
        outlier_thresholds=OutlierThresholds(yellow_ml=2500, red_ml=3500),
    ),
}

REGISTRY = MappingProxyType(_REGISTRY)

_PER_WHEEL_LABELS: dict[VehicleClass, tuple[str, ...]] = {
    VehicleClass.TWO_WHEELER: ("Front", "Rear"),
    VehicleClass.THREE_WHEELER: ("Front", "Rear Left", "Rear Right"),
    VehicleClass.FOUR_WHEELER: ("Front Left", "Front Right", "Rear Left", "Rear Right"),
}


# =============================================================================
# LOOKUPS
# =============================================================================


def spec_for(vehicle_class: VehicleClass) -> VehicleClassSpec:
    """Registry entry for a class."""
    return REGISTRY[vehicle_class]


def limits_for(vehicle_class: VehicleClass) -> SizeLimits:
    return REGISTRY[vehicle_class].size_limits


def min_tread_for(vehicle_class: VehicleClass) -> float:
    return REGISTRY[vehicle_class].min_tread_mm


def is_allowed_tyre_count(vehicle_class: VehicleClass, tyre_count: int) -> bool:
    return tyre_count in REGISTRY[vehicle_class].allowed_tyre_counts


def rear_each_for(tyre_count: int) -> int:
    """Tyres behind each grouped rear label."""
    return max(2, (tyre_count - 2) // 2)


def fitment_schema(vehicle_class: VehicleClass, tyre_count: int) -> FitmentSchema:
    """Ordered wheel positions for a class and selected tyre count.

    Examples:
        >>> fitment_schema(VehicleClass.HTV, 10).labels
        ['Front Left', 'Front Right', 'Rear Left ×4', 'Rear Right ×4']
        >>> fitment_schema(VehicleClass.FOUR_WHEELER, 4).rear_each is None
        True
    """
    labels = _PER_WHEEL_LABELS.get(vehicle_class)
    if labels is not None:
        return FitmentSchema(
            vehicle_class=vehicle_class,
            tyre_count=tyre_count,
            positions=tuple(FitmentPosition(label=label) for label in labels),
        )

    rear_each = rear_each_for(tyre_count)
    return FitmentSchema(
        vehicle_class=vehicle_class,
        tyre_count=tyre_count,
        positions=(
            FitmentPosition(label="Front Left"),
            FitmentPosition(label="Front Right"),
            FitmentPosition(label=f"Rear Left ×{rear_each}", units=rear_each),
            FitmentPosition(label=f"Rear Right ×{rear_each}", units=rear_each),
        ),
        rear_each=rear_each,
    )
