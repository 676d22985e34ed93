"""Shared fixtures: fixed clock, default settings and a valid 4-wheeler visit."""

from datetime import datetime, timezone

import pytest

from maxtt_billing.config import Settings
from maxtt_billing.core.enums import TaxMode, VehicleClass
from maxtt_billing.models.invoice import (
    ConsentArtifact,
    CustomerDetails,
    FranchiseeProfile,
    ServiceVisit,
    TyreGeometry,
)
from maxtt_billing.services.context import SessionContext

FIXED_NOW = datetime(2025, 8, 14, 6, 0, tzinfo=timezone.utc)
FOUR_WHEELER_LABELS = ["Front Left", "Front Right", "Rear Left", "Rear Right"]


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, BILLING_API_KEY="test-key")


@pytest.fixture
def profile() -> FranchiseeProfile:
    return FranchiseeProfile(
        franchisee_id="MAXTT-DEL-001",
        name="Treadstone Delhi",
        address="12 Ring Road, New Delhi",
        gstin="07ABCDE1234F1Z5",
    )


@pytest.fixture
def context(settings, profile) -> SessionContext:
    return SessionContext(
        settings=settings,
        token="operator-token",
        profile=profile,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def make_visit():
    """Factory for a valid 185/65 R15 car visit; override any field by keyword."""

    def _make(
        installed=None,
        vehicle_class=VehicleClass.FOUR_WHEELER,
        tyre_count=4,
        geometry=(185, 65, 15),
        signed=True,
        **overrides,
    ) -> ServiceVisit:
        labels = FOUR_WHEELER_LABELS if installed is None else installed
        width, aspect, rim = geometry
        data = dict(
            customer=CustomerDetails(
                customer_name="Asha Verma",
                vehicle_number="DL01AB1234",
                mobile_number="9876543210",
                installer_name="Ravi",
            ),
            vehicle_class=vehicle_class,
            tyre_count=tyre_count,
            geometry=TyreGeometry(width_mm=width, aspect_pct=aspect, rim_in=rim),
            fitment={label: True for label in labels},
            treads={label: 3.0 for label in labels},
            tax_mode=TaxMode.SPLIT_DOMESTIC,
            consent=(
                ConsentArtifact(signature="data:image/png;base64,AAAA", signed_at="2025-08-14T05:45:00Z")
                if signed
                else None
            ),
        )
        data.update(overrides)
        return ServiceVisit(**data)

    return _make
