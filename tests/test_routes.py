"""Tests for the HTTP routes."""

import httpx
import pytest
from fastapi.testclient import TestClient

from maxtt_billing.api import routes
from maxtt_billing.api.deps import get_context
from maxtt_billing.main import app
from maxtt_billing.services import audit_codec
from maxtt_billing.services.billing_api import BillingApiClient

OVERRIDE = {
    "manual_per_tyre_ml": 500,
    "chart_version": "2025-07",
    "reason": "Matches the printed chart",
    "acknowledged": True,
}
MISMATCH = {"reason": "Spare already treated", "acknowledged": True}

STORED_INVOICE = {
    "id": 42,
    "created_at": "2025-08-14T05:50:00Z",
    "vehicle_type": "4w",
    "tyre_count": 4,
    "tyre_width_mm": 185,
    "aspect_ratio": 65,
    "rim_diameter_in": 15,
    "dosage_ml": 2000,
    "remarks": audit_codec.CONSENT_STATEMENT,
}


@pytest.fixture
def client(context):
    app.dependency_overrides[get_context] = lambda: context
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def visit_json(make_visit):
    def _json(**kwargs):
        return make_visit(**kwargs).model_dump(mode="json")

    return _json


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "maxtt-billing-core"}


class TestRegistryRoutes:
    def test_vehicle_classes(self, client):
        data = client.get("/api/vehicle-classes").json()
        assert len(data["vehicle_classes"]) == 5

    def test_grouped_fitment(self, client):
        data = client.get("/api/fitment/htv/10").json()
        assert [p["label"] for p in data["positions"]] == [
            "Front Left",
            "Front Right",
            "Rear Left ×4",
            "Rear Right ×4",
        ]
        assert data["rear_each"] == 4

    def test_tyre_count_not_offered(self, client):
        assert client.get("/api/fitment/4w/6").status_code == 422

    def test_unknown_class(self, client):
        assert client.get("/api/fitment/boat/4").status_code == 404


class TestPreviews:
    def test_dosage(self, client):
        response = client.post(
            "/api/dosage/preview",
            json={"vehicle_class": "4w", "width_mm": 185, "aspect_pct": 65, "rim_in": 15, "installed_count": 4},
        )
        data = response.json()
        assert data["dosage"] == {"per_tyre_ml": 500, "total_ml": 2000}
        assert data["outlier_level"] == "none"

    def test_pricing_caps_discount(self, client):
        data = client.post(
            "/api/pricing/preview", json={"total_ml": 2000, "discount_requested_inr": 5000}
        ).json()
        assert data["discount_inr"] == 2700.0
        assert data["grand_total_inr"] == 7434.0


class TestWorkflowRoutes:
    def test_review(self, client, visit_json):
        data = client.post("/api/workflow/review", json=visit_json()).json()
        assert data["state"] == "under_review"
        assert data["preview"]["dosage"]["total_ml"] == 2000

    def test_review_without_consent(self, client, visit_json):
        data = client.post("/api/workflow/review", json=visit_json(signed=False)).json()
        assert data["state"] == "draft"
        assert data["signal"] == "consent_required"

    def test_review_invalid(self, client, visit_json):
        response = client.post("/api/workflow/review", json=visit_json(installed=[]))
        assert response.status_code == 422
        assert response.json()["detail"][0]["field"] == "fitment"

    def test_confirm_blocked(self, client, visit_json):
        response = client.post(
            "/api/workflow/confirm", json={"visit": visit_json(installed=["Front Left", "Front Right", "Rear Left"])}
        )
        assert response.status_code == 409
        assert "Tyre count mismatch" in response.json()["detail"][0]

    def test_confirm(self, client, visit_json):
        response = client.post(
            "/api/workflow/confirm",
            json={
                "visit": visit_json(installed=["Front Left", "Front Right", "Rear Left"]),
                "override": OVERRIDE,
                "mismatch": MISMATCH,
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert data["final"]["total_ml"] == 1500
        assert data["payload"]["installed_tyre_count"] == 3

    def test_save(self, client, visit_json, monkeypatch):
        def handler(request):
            return httpx.Response(201, json={"id": 101})

        monkeypatch.setattr(
            routes,
            "BillingApiClient",
            lambda context: BillingApiClient(context, transport=httpx.MockTransport(handler)),
        )
        response = client.post("/api/workflow/save", json={"visit": visit_json()})
        assert response.status_code == 200
        assert response.json()["invoice_id"] == 101

    def test_save_failure(self, client, visit_json, monkeypatch):
        def handler(request):
            return httpx.Response(503, json={"error": "Service unavailable"})

        monkeypatch.setattr(
            routes,
            "BillingApiClient",
            lambda context: BillingApiClient(context, transport=httpx.MockTransport(handler)),
        )
        response = client.post("/api/workflow/save", json={"visit": visit_json()})
        assert response.status_code == 502


class TestInvoiceRoutes:
    def test_audit_decode(self, client):
        remarks = "Consent given\nREF: MAXTT-DEL-001-0042"
        data = client.post("/api/audit/decode", json={"remarks": remarks}).json()
        assert data["snapshot"] is None
        assert data["referral_code"] == "MAXTT-DEL-001-0042"
        assert data["text"] == remarks

    def test_plan(self, client):
        data = client.post("/api/invoices/plan", json={"invoice": STORED_INVOICE, "tax_mode": "IGST"}).json()
        assert data["display_code"] == "MAXTT-DEL-001/DL/0042/0825"
        assert data["tax_mode"] == "IGST"
        assert data["watermark_text"] == "Treadstone Solutions"

    def test_plan_stored_invoice(self, client, monkeypatch):
        seen = []

        def handler(request):
            seen.append((request.url.path, request.headers["authorization"]))
            if request.url.path == "/api/invoices/42":
                return httpx.Response(200, json=STORED_INVOICE)
            return httpx.Response(
                200,
                json={"franchisee_id": "MAXTT-MUM-007", "name": "Treadstone Mumbai", "gstin": "27ABCDE1234F1Z5"},
            )

        monkeypatch.setattr(
            routes,
            "BillingApiClient",
            lambda context: BillingApiClient(context, transport=httpx.MockTransport(handler)),
        )
        response = client.get("/api/invoices/42/plan", params={"tax_mode": "IGST"})
        assert response.status_code == 200
        data = response.json()
        assert data["display_code"] == "MAXTT-MUM-007/MH/0042/0825"
        assert data["tax_mode"] == "IGST"
        assert seen == [
            ("/api/invoices/42", "Bearer operator-token"),
            ("/api/profile", "Bearer operator-token"),
        ]

    def test_plan_stored_invoice_not_found(self, client, monkeypatch):
        def handler(request):
            return httpx.Response(404, json={"error": "Invoice not found"})

        monkeypatch.setattr(
            routes,
            "BillingApiClient",
            lambda context: BillingApiClient(context, transport=httpx.MockTransport(handler)),
        )
        assert client.get("/api/invoices/7/plan").status_code == 404

    def test_plan_stored_invoice_expired_session(self, client, monkeypatch):
        def handler(request):
            return httpx.Response(401, json={"error": "Unauthorized"})

        monkeypatch.setattr(
            routes,
            "BillingApiClient",
            lambda context: BillingApiClient(context, transport=httpx.MockTransport(handler)),
        )
        assert client.get("/api/invoices/42/plan").status_code == 401
