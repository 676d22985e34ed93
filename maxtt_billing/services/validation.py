"""Blocking validation of a service visit before it may leave Draft.

Every issue names the field (and wheel position where relevant) so the form
can point at it. Soft risk signals (outliers, tyre-count mismatch) are not
validated here; the review step gates those.
"""

from ..core.exceptions import ValidationIssue
from ..models.invoice import ServiceVisit
from ..models.vehicle import NumericRange
from ..utils.converters import is_blank, safe_float
from .vehicle_registry import fitment_schema, is_allowed_tyre_count, spec_for


def _check_range(
    field: str, label: str, value: float, limits: NumericRange, unit: str
) -> ValidationIssue | None:
    if limits.contains(value):
        return None
    return ValidationIssue(
        field=field,
        message=(
            f"{label} {value:g}{unit} is outside the allowed range "
            f"{limits.min:g}-{limits.max:g}{unit} for this vehicle category"
        ),
    )


def validate_customer(visit: ServiceVisit) -> list[ValidationIssue]:
    issues = []
    if is_blank(visit.customer.customer_name):
        issues.append(ValidationIssue(field="customer_name", message="Customer name is required"))
    if is_blank(visit.customer.vehicle_number):
        issues.append(ValidationIssue(field="vehicle_number", message="Vehicle number is required"))
    return issues


def validate_geometry(visit: ServiceVisit) -> list[ValidationIssue]:
    """Tyre size must sit inside the class limits."""
    limits = spec_for(visit.vehicle_class).size_limits
    checks = [
        _check_range("tyre_width_mm", "Tyre width", safe_float(visit.geometry.width_mm), limits.width_mm, "mm"),
        _check_range("aspect_ratio", "Aspect ratio", safe_float(visit.geometry.aspect_pct), limits.aspect_pct, "%"),
        _check_range("rim_diameter_in", "Rim diameter", safe_float(visit.geometry.rim_in), limits.rim_in, "in"),
    ]
    return [issue for issue in checks if issue is not None]


def validate_fitment(visit: ServiceVisit) -> list[ValidationIssue]:
    """Tyre count must be offered for the class and at least one tyre installed.

    Tread depth is required, and must meet the class minimum, only for the
    positions marked installed.
    """
    spec = spec_for(visit.vehicle_class)
    issues = []

    if not is_allowed_tyre_count(visit.vehicle_class, visit.tyre_count):
        options = ", ".join(str(n) for n in spec.allowed_tyre_counts)
        issues.append(
            ValidationIssue(
                field="tyre_count",
                message=f"Number of tyres {visit.tyre_count} is not offered for this category (choose {options})",
            )
        )

    schema = fitment_schema(visit.vehicle_class, visit.tyre_count)
    unknown = [label for label, on in visit.fitment.items() if on and schema.position(label) is None]
    for label in unknown:
        issues.append(
            ValidationIssue(
                field="fitment",
                position=label,
                message=f"Fitment position '{label}' does not exist for this vehicle",
            )
        )

    installed = schema.selected_positions(visit.fitment)
    treads = schema.canonical(visit.treads)
    if not installed:
        issues.append(
            ValidationIssue(field="fitment", message="Select at least one installed tyre position")
        )

    for position in installed:
        depth = treads.get(position.label)
        if depth is None or safe_float(depth, -1.0) < 0:
            issues.append(
                ValidationIssue(
                    field="tread_depth",
                    position=position.label,
                    message=f"Enter tread depth for: {position.label}",
                )
            )
        elif safe_float(depth) < spec.min_tread_mm:
            issues.append(
                ValidationIssue(
                    field="tread_depth",
                    position=position.label,
                    message=(
                        f'Installation blocked: Tread depth at "{position.label}" '
                        f"is below {spec.min_tread_mm:g} mm"
                    ),
                )
            )
    return issues


def validate_visit(visit: ServiceVisit) -> list[ValidationIssue]:
    """All blocking issues for a visit, customer first, then geometry, then fitment."""
    return validate_customer(visit) + validate_geometry(visit) + validate_fitment(visit)
