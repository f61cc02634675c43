from datetime import date, timedelta

import pytest

from app.domain.invoices.schemas import InvoiceLineCreate
from app.domain.invoices.service import build_lines, calculate_totals
from app.models import Gig, GigType, Invoice
from app.security_utils import generate_api_key, is_valid_api_key_format


def bearer(key: str) -> dict:
    return {"Authorization": f"Bearer {key}"}


class TestApiKeyFormat:
    def test_generated_keys_are_valid(self):
        key = generate_api_key()
        assert key.startswith("ak_")
        assert len(key) == 67
        assert is_valid_api_key_format(key)

    @pytest.mark.parametrize(
        "key",
        [None, "", "ak_short", "sk_" + "a" * 64, "ak_" + "a" * 65],
    )
    def test_invalid_formats(self, key):
        assert not is_valid_api_key_format(key)


class TestAuthentication:
    def test_missing_header(self, client):
        response = client.get("/api/v1/gigs")
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"].startswith("Missing or invalid Authorization header")

    def test_malformed_key(self, client):
        response = client.get("/api/v1/gigs", headers=bearer("ak_not-a-real-key"))
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Invalid API key format"}

    def test_unknown_key(self, client):
        response = client.get("/api/v1/gigs", headers=bearer(generate_api_key()))
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid or inactive API key"

    def test_missing_scope(self, client, make_api_key):
        key = make_api_key(["read:clients"])
        response = client.get("/api/v1/gigs", headers=bearer(key))
        assert response.status_code == 403
        assert response.json() == {
            "success": False,
            "error": "Insufficient permissions. Required scope: read:gigs",
        }

    def test_read_scope_does_not_allow_writes(self, client, make_api_key):
        key = make_api_key(["read:clients"])
        response = client.post("/api/v1/clients", json={"name": "Konserthuset"}, headers=bearer(key))
        assert response.status_code == 403

    def test_rate_limited_per_key(self, client, make_api_key):
        key = make_api_key(["read:clients"])
        for _ in range(60):
            assert client.get("/api/v1/clients", headers=bearer(key)).status_code == 200

        response = client.get("/api/v1/clients", headers=bearer(key))
        assert response.status_code == 429
        assert response.json() == {"error": "Too many requests. Please try again later."}


class TestClients:
    def test_create_and_list_with_pagination(self, client, make_api_key):
        key = make_api_key(["read:clients", "write:clients"])
        for name in ("Konserthuset", "Malmö Opera", "Kungliga Operan"):
            response = client.post("/api/v1/clients", json={"name": name}, headers=bearer(key))
            assert response.status_code == 201
            assert response.json()["success"] is True

        response = client.get("/api/v1/clients?limit=2", headers=bearer(key))
        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data["clients"]) == 2
        assert data["pagination"] == {"total": 3, "limit": 2, "offset": 0, "has_more": True}

    def test_limit_is_capped(self, client, make_api_key):
        key = make_api_key(["read:clients"])
        response = client.get("/api/v1/clients?limit=10000", headers=bearer(key))
        assert response.json()["data"]["pagination"]["limit"] == 500

    def test_validation_errors_use_envelope(self, client, make_api_key):
        key = make_api_key(["write:clients"])
        response = client.post("/api/v1/clients", json={"name": ""}, headers=bearer(key))
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Validation failed"
        assert "name" in body["fieldErrors"]

    def test_not_found(self, client, make_api_key):
        key = make_api_key(["read:clients"])
        response = client.get("/api/v1/clients/999", headers=bearer(key))
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Client not found"}


class TestGigs:
    @pytest.fixture
    def gig_type(self, db, user):
        record = GigType(user_id=user.id, name="Konsert", vat_rate=6.0)
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    def test_create_derives_date_fields(self, client, make_api_key, gig_type, music_client):
        key = make_api_key(["read:gigs", "write:gigs"])
        response = client.post(
            "/api/v1/gigs",
            json={
                "gig_type_id": gig_type.id,
                "client_id": music_client.id,
                "fee": 5200,
                "dates": ["2024-06-14", "2024-06-12", "2024-06-13"],
            },
            headers=bearer(key),
        )
        assert response.status_code == 201
        gig = response.json()["data"]
        assert gig["date"] == "2024-06-12"
        assert gig["start_date"] == "2024-06-12"
        assert gig["end_date"] == "2024-06-14"
        assert gig["total_days"] == 3
        assert [d["date"] for d in gig["gig_dates"]] == ["2024-06-12", "2024-06-13", "2024-06-14"]

    def test_dates_are_required(self, client, make_api_key, gig_type):
        key = make_api_key(["write:gigs"])
        response = client.post(
            "/api/v1/gigs", json={"gig_type_id": gig_type.id, "dates": []}, headers=bearer(key)
        )
        assert response.status_code == 400
        assert "dates" in response.json()["fieldErrors"]

    def test_delete(self, client, make_api_key, gig_type):
        key = make_api_key(["read:gigs", "write:gigs"])
        created = client.post(
            "/api/v1/gigs",
            json={"gig_type_id": gig_type.id, "dates": ["2024-06-12"]},
            headers=bearer(key),
        ).json()["data"]

        response = client.delete(f"/api/v1/gigs/{created['id']}", headers=bearer(key))
        assert response.json() == {"success": True, "data": {"deleted": True}}
        assert client.get(f"/api/v1/gigs/{created['id']}", headers=bearer(key)).status_code == 404


class TestInvoices:
    def test_totals(self):
        lines = [
            InvoiceLineCreate(description="Konsert", quantity=2, unit_price=3000),
            InvoiceLineCreate(description="Repetition", quantity=1.5, unit_price=333.33),
        ]
        totals = calculate_totals(lines, 25)
        assert totals["subtotal"] == pytest.approx(6499.995)
        assert totals["vat_amount"] == 1625.0
        assert totals["total"] == pytest.approx(8124.995)

    def test_zero_vat(self):
        totals = calculate_totals([InvoiceLineCreate(description="Gig", unit_price=1000)], 0)
        assert totals == {"subtotal": 1000, "vat_amount": 0, "total": 1000}

    def test_lines_take_invoice_vat_by_default(self):
        lines = build_lines(
            [
                InvoiceLineCreate(description="Arvode", quantity=2, unit_price=100),
                InvoiceLineCreate(description="Resa", unit_price=50, vat_rate=6),
            ],
            25,
        )
        assert [(line["amount"], line["vat_rate"], line["sort_order"]) for line in lines] == [
            (200, 25, 1),
            (50, 6, 2),
        ]

    def test_create_numbers_sequentially(self, client, db, user, make_api_key, music_client):
        db.add(
            Invoice(
                user_id=user.id,
                client_id=music_client.id,
                invoice_number=41,
                invoice_date=date.today(),
                due_date=date.today(),
            )
        )
        db.commit()
        key = make_api_key(["read:invoices", "write:invoices"])

        response = client.post(
            "/api/v1/invoices",
            json={
                "client_id": music_client.id,
                "lines": [{"description": "Konsert 14 juni", "quantity": 1, "unit_price": 8000}],
            },
            headers=bearer(key),
        )
        assert response.status_code == 201
        invoice = response.json()["data"]
        assert invoice["invoice_number"] == 42
        assert invoice["status"] == "draft"
        assert invoice["subtotal"] == 8000
        assert invoice["vat_amount"] == 2000
        assert invoice["total"] == 10000
        # Falls back to the client's payment terms
        assert invoice["due_date"] == (date.today() + timedelta(days=20)).isoformat()
        assert invoice["invoice_lines"][0]["amount"] == 8000

    def test_unknown_client(self, client, make_api_key):
        key = make_api_key(["write:invoices"])
        response = client.post(
            "/api/v1/invoices",
            json={"client_id": 999, "lines": [{"description": "Gig", "unit_price": 100}]},
            headers=bearer(key),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Client not found"

    def test_free_plan_limit(self, client, make_api_key, music_client):
        key = make_api_key(["write:invoices"])
        payload = {"client_id": music_client.id, "lines": [{"description": "Gig", "unit_price": 100}]}
        for _ in range(5):
            assert client.post("/api/v1/invoices", json=payload, headers=bearer(key)).status_code == 201

        response = client.post("/api/v1/invoices", json=payload, headers=bearer(key))
        assert response.status_code == 403
        assert response.json()["success"] is False


class TestSummary:
    def test_any_valid_key_reads_summary(self, client, db, user, make_api_key, music_client):
        gig_type = GigType(user_id=user.id, name="Konsert", vat_rate=6.0)
        db.add(gig_type)
        db.commit()
        soon = date.today() + timedelta(days=5)
        db.add(
            Gig(
                user_id=user.id,
                client_id=music_client.id,
                gig_type_id=gig_type.id,
                date=soon,
                start_date=soon,
                end_date=soon,
                total_days=1,
                fee=3000,
                status="accepted",
            )
        )
        db.add(
            Invoice(
                user_id=user.id,
                client_id=music_client.id,
                invoice_number=1,
                invoice_date=date.today(),
                due_date=date.today() + timedelta(days=30),
                subtotal=1000,
                vat_amount=250,
                total=1250,
                status="sent",
            )
        )
        db.commit()

        key = make_api_key([])
        response = client.get("/api/v1/summary", headers=bearer(key))
        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data["upcoming_gigs"]) == 1
        assert data["unpaid_invoices"]["count"] == 1
        assert data["unpaid_invoices"]["total"] == 1250
        assert data["recent_expenses"]["count"] == 0
        assert data["stats"]["year"] == date.today().year
        assert data["stats"]["total_invoiced"] == 1250
        assert data["stats"]["total_paid"] == 0
        assert "generated_at" in data
