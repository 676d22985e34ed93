"""Enums for vehicle, tax and workflow constants."""

from enum import Enum


class VehicleClass(str, Enum):
    """Vehicle categories offered on the service form."""

    TWO_WHEELER = "2-Wheeler (Scooter/Motorcycle)"
    THREE_WHEELER = "3-Wheeler (Auto)"
    FOUR_WHEELER = "4-Wheeler (Passenger Car/Van/SUV)"
    SIX_WHEELER = "6-Wheeler (Bus/LTV)"
    HTV = "HTV (>6 wheels: Trucks/Trailers/Mining)"

    @classmethod
    def from_string(cls, value: str | None) -> "VehicleClass | None":
        """Convert a stored label or a short alias to the enum."""
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            pass
        value_lower = value.strip().lower()
        mappings = {
            "2w": cls.TWO_WHEELER,
            "2-wheeler": cls.TWO_WHEELER,
            "two_wheeler": cls.TWO_WHEELER,
            "twowheeler": cls.TWO_WHEELER,
            "3w": cls.THREE_WHEELER,
            "3-wheeler": cls.THREE_WHEELER,
            "three_wheeler": cls.THREE_WHEELER,
            "threewheeler": cls.THREE_WHEELER,
            "4w": cls.FOUR_WHEELER,
            "4-wheeler": cls.FOUR_WHEELER,
            "four_wheeler": cls.FOUR_WHEELER,
            "fourwheeler": cls.FOUR_WHEELER,
            "6w": cls.SIX_WHEELER,
            "6-wheeler": cls.SIX_WHEELER,
            "six_wheeler": cls.SIX_WHEELER,
            "sixwheeler": cls.SIX_WHEELER,
            "htv": cls.HTV,
        }
        if value_lower in mappings:
            return mappings[value_lower]
        # Older rows stored "4-Wheeler (Car)" style labels
        for prefix, member in (
            ("2-wheeler", cls.TWO_WHEELER),
            ("3-wheeler", cls.THREE_WHEELER),
            ("4-wheeler", cls.FOUR_WHEELER),
            ("6-wheeler", cls.SIX_WHEELER),
            ("htv", cls.HTV),
        ):
            if value_lower.startswith(prefix):
                return member
        return None


class TaxMode(str, Enum):
    """GST split. Stored values match the billing API's tax_mode column."""

    SPLIT_DOMESTIC = "CGST_SGST"
    SINGLE_INTERSTATE = "IGST"

    @classmethod
    def from_string(cls, value: str | None) -> "TaxMode | None":
        if not value:
            return None
        normalized = value.strip().upper().replace("+", "_")
        if normalized == "IGST":
            return cls.SINGLE_INTERSTATE
        if normalized in ("CGST_SGST", "CGSTSGST", "SPLIT"):
            return cls.SPLIT_DOMESTIC
        return None

    @property
    def label(self) -> str:
        return "IGST" if self is TaxMode.SINGLE_INTERSTATE else "CGST+SGST"


class OutlierLevel(str, Enum):
    """Risk classification of a per-tyre dosage."""

    NONE = "none"
    YELLOW = "yellow"
    RED = "red"


class WorkflowState(str, Enum):
    """Lifecycle of a single service visit."""

    DRAFT = "draft"
    PENDING_CONSENT = "pending_consent"
    UNDER_REVIEW = "under_review"
    CONFIRMED = "confirmed"
    PERSISTED = "persisted"


class WorkflowSignal(str, Enum):
    """Non-error outcomes that keep a run where it is."""

    CONSENT_REQUIRED = "consent_required"
    VALIDATION_FAILED = "validation_failed"


class FieldSource(str, Enum):
    """Where a reconciled invoice value came from."""

    EXPLICIT = "explicit"
    SNAPSHOT = "snapshot"
    RECOMPUTED = "recomputed"
    DEFAULT = "default"


class BlockKind(str, Enum):
    """Layout blocks of the printable invoice, in page order."""

    HEADER = "header"
    CUSTOMER_PANEL = "customer_panel"
    VEHICLE_PANEL = "vehicle_panel"
    TREAD_TABLE = "tread_table"
    AMOUNTS_TABLE = "amounts_table"
    CONFIRMATION_NOTE = "confirmation_note"
    DECLARATION = "declaration"
    TERMS = "terms"
    SIGNATURES = "signatures"


# Audit snapshot payload version written by this release
AUDIT_SNAPSHOT_VERSION = 1

# Display offset for every printed timestamp (IST)
IST_OFFSET_MINUTES = 330
