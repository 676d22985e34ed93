import re
from typing import Mapping, TypeVar

from pydantic import BaseModel, ConfigDict

from ..core.enums import VehicleClass

_GROUP_SUFFIX = re.compile(r"\s*×\s*\d+\s*$")

V = TypeVar("V")


class NumericRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


class SizeLimits(BaseModel):
    """Accepted tyre geometry for a vehicle class."""

    model_config = ConfigDict(frozen=True)

    width_mm: NumericRange
    aspect_pct: NumericRange
    rim_in: NumericRange


class OutlierThresholds(BaseModel):
    """Per-tyre dosage (ml) above which a value is flagged."""

    model_config = ConfigDict(frozen=True)

    yellow_ml: int
    red_ml: int


class VehicleClassSpec(BaseModel):
    """Static dosage and validation parameters for one vehicle class."""

    model_config = ConfigDict(frozen=True)

    vehicle_class: VehicleClass
    dosage_constant: float
    buffer_fraction: float
    default_tyre_count: int
    allowed_tyre_counts: tuple[int, ...]
    size_limits: SizeLimits
    min_tread_mm: float
    outlier_thresholds: OutlierThresholds


class FitmentPosition(BaseModel):
    """A named wheel slot. Grouped rear-axle slots stand for `units` tyres."""

    model_config = ConfigDict(frozen=True)

    label: str
    units: int = 1

    @property
    def display_label(self) -> str:
        """Label without the '×N' group suffix ('Rear Left ×3' -> 'Rear Left')."""
        return strip_group_suffix(self.label)


class FitmentSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    vehicle_class: VehicleClass
    tyre_count: int
    positions: tuple[FitmentPosition, ...]
    rear_each: int | None = None

    @property
    def mode(self) -> str:
        return "grouped" if self.rear_each is not None else "list"

    @property
    def labels(self) -> list[str]:
        return [p.label for p in self.positions]

    def position(self, label: str) -> FitmentPosition | None:
        """Slot for a label, or None.

        A bare label (no "×N") matches its grouped slot; a label carrying a
        different group count does not.
        """
        label = label.strip()
        for p in self.positions:
            if p.label == label:
                return p
        if _GROUP_SUFFIX.search(label):
            return None
        for p in self.positions:
            if p.display_label == label:
                return p
        return None

    def canonical(self, values: Mapping[str, V]) -> dict[str, V]:
        """Re-key a per-position mapping to schema labels. Unknown labels are dropped.

        When both a bare and an exact label are present, the exact one wins.
        """
        result: dict[str, V] = {}
        for label, value in values.items():
            p = self.position(label)
            if p is None:
                continue
            if p.label not in result or label.strip() == p.label:
                result[p.label] = value
        return result

    def selected_positions(self, selection: Mapping[str, bool]) -> list[FitmentPosition]:
        """Positions marked installed, in schema order."""
        chosen = {label for label, installed in self.canonical(selection).items() if installed}
        return [p for p in self.positions if p.label in chosen]

    def implied_installed_count(self, selection: Mapping[str, bool]) -> int:
        """Physical tyres implied by the selection (grouped slots count rear_each)."""
        return sum(p.units for p in self.selected_positions(selection))


def strip_group_suffix(label: str) -> str:
    return _GROUP_SUFFIX.sub("", label).strip()
