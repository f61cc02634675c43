from datetime import date

import pytest

from app.domain.expenses import service as expense_service
from app.models import Expense, Gig, GigType
from app.plan_limits import increment_usage
from app.services.receipt_parser import ReceiptData


@pytest.fixture
def expense(db, user):
    record = Expense(
        user_id=user.id,
        date=date(2024, 3, 15),
        supplier="Spotify AB",
        amount=119.0,
        currency="SEK",
        amount_base=119.0,
        category="Prenumeration",
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


class TestCalendarFeed:
    @pytest.fixture
    def feed_user(self, db, user, music_client):
        gig_type = GigType(user_id=user.id, name="Konsert", vat_rate=6.0)
        db.add(gig_type)
        db.commit()
        db.add(
            Gig(
                user_id=user.id,
                client_id=music_client.id,
                gig_type_id=gig_type.id,
                date=date(2024, 6, 14),
                start_date=date(2024, 6, 14),
                end_date=date(2024, 6, 14),
                total_days=1,
                fee=5200,
                status="accepted",
            )
        )
        user.calendar_token = "c" * 64
        db.commit()
        return user

    def test_missing_token(self, client):
        response = client.get("/calendar/feed?user=1")
        assert response.status_code == 400
        assert response.json() == {"error": "Missing user or token"}

    def test_wrong_token(self, client, feed_user):
        response = client.get(f"/calendar/feed?user={feed_user.id}&token={'d' * 64}")
        assert response.status_code == 403
        assert response.json() == {"error": "Invalid token"}

    def test_feed_lists_gigs(self, client, feed_user):
        response = client.get(f"/calendar/feed?user={feed_user.id}&token={'c' * 64}")
        assert response.status_code == 200
        assert response.headers["content-type"] == "text/calendar; charset=utf-8"
        assert "BEGIN:VCALENDAR" in response.text
        assert response.text.count("BEGIN:VEVENT") == 1

    def test_rotating_token_invalidates_old_feed(self, client, feed_user, auth_headers):
        old_path = f"/calendar/feed?user={feed_user.id}&token={'c' * 64}"

        response = client.post("/calendar/feed/token", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert len(body["token"]) == 64
        assert body["feedPath"].endswith(f"token={body['token']}")

        assert client.get(old_path).status_code == 403
        assert client.get(body["feedPath"]).status_code == 200


class TestExpenses:
    def test_requires_session(self, client):
        assert client.get("/expenses").status_code == 401

    def test_sek_expense_keeps_amount_as_base(self, client, auth_headers):
        response = client.post(
            "/expenses",
            json={"date": "2024-03-15", "supplier": "SJ", "amount": 625, "category": "Resa"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        expense = response.json()
        assert expense["currency"] == "SEK"
        assert expense["amount_base"] == 625

    def test_validation_errors_use_dashboard_envelope(self, client, auth_headers):
        response = client.post(
            "/expenses",
            json={"date": "2024-03-15", "supplier": "", "amount": 625},
            headers=auth_headers,
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "Validation failed"
        assert "success" not in body
        assert "supplier" in body["fieldErrors"]


class TestDuplicateCheck:
    def test_single_duplicate(self, client, auth_headers, expense):
        response = client.post(
            "/expenses/check-duplicate",
            json={"date": "2024-03-15", "supplier": "spotify", "amount": 119.0},
            headers=auth_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["isDuplicate"] is True
        assert body["matchType"] == "exact"
        assert body["existingExpense"]["id"] == expense.id

    def test_other_date_is_not_duplicate(self, client, auth_headers, expense):
        response = client.post(
            "/expenses/check-duplicate",
            json={"date": "2024-03-16", "supplier": "Spotify", "amount": 119.0},
            headers=auth_headers,
        )
        assert response.json() == {"isDuplicate": False, "existingExpense": None, "matchType": None}

    def test_single_requires_fields(self, client, auth_headers):
        response = client.post(
            "/expenses/check-duplicate", json={"supplier": "Spotify"}, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Date, supplier, and amount are required"}

    def test_batch(self, client, auth_headers, expense):
        response = client.put(
            "/expenses/check-duplicate",
            json={
                "expenses": [
                    {"date": "2024-03-15", "supplier": "Spotify Premium", "amount": 119.0},
                    {"date": "2024-03-15", "supplier": "ICA Maxi", "amount": 119.0},
                ]
            },
            headers=auth_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["duplicateCount"] == 1
        assert [r["isDuplicate"] for r in body["results"]] == [True, False]
        assert body["results"][0]["matchType"] == "contains"

    def test_batch_requires_expenses(self, client, auth_headers):
        response = client.put(
            "/expenses/check-duplicate", json={"expenses": []}, headers=auth_headers
        )
        assert response.status_code == 400
        assert response.json() == {"error": "List of expenses is required"}


class TestReceiptScan:
    @pytest.fixture
    def scanned(self, monkeypatch):
        calls = []

        async def fake_parse_receipt(content, mime_type, db=None, user_id=None):
            calls.append(mime_type)
            return ReceiptData(
                date="2024-03-15", supplier="Pressbyrån", amount=45, category="Mat", confidence=0.9
            )

        monkeypatch.setattr(expense_service, "parse_receipt", fake_parse_receipt)
        return calls

    def test_no_file(self, client, auth_headers, scanned):
        response = client.post("/expenses/scan", headers=auth_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "No file attached"}

    def test_unsupported_type(self, client, auth_headers, scanned):
        response = client.post(
            "/expenses/scan",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert scanned == []

    def test_scan_returns_receipt_and_counts_usage(self, client, db, user, auth_headers, scanned):
        response = client.post(
            "/expenses/scan",
            files={"file": ("kvitto.png", b"\x89PNG fake", "image/png")},
            headers=auth_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["supplier"] == "Pressbyrån"
        assert body["data"]["currency"] == "SEK"
        assert scanned == ["image/png"]

        usage = client.get("/billing/usage", headers=auth_headers).json()
        assert usage["receiptScans"]["current"] == 1

    def test_free_plan_scan_limit(self, client, db, user, auth_headers, scanned):
        for _ in range(3):
            increment_usage(user, db, "receipt_scan")

        response = client.post(
            "/expenses/scan",
            files={"file": ("kvitto.png", b"\x89PNG fake", "image/png")},
            headers=auth_headers,
        )
        assert response.status_code == 403
        assert "3 receipt scans" in response.json()["error"]
        assert scanned == []


class TestExpenseExport:
    @pytest.fixture
    def travel_expense(self, db, user, expense):
        gig_type = GigType(user_id=user.id, name="Konsert", vat_rate=6.0)
        db.add(gig_type)
        db.commit()
        gig = Gig(
            user_id=user.id,
            gig_type_id=gig_type.id,
            date=date(2024, 3, 2),
            start_date=date(2024, 3, 2),
            end_date=date(2024, 3, 2),
            project_name="Vårkonsert",
        )
        db.add(gig)
        db.commit()
        record = Expense(
            user_id=user.id,
            gig_id=gig.id,
            date=date(2024, 3, 2),
            supplier="SJ",
            amount=49.5,
            currency="EUR",
            amount_base=565.29,
            category="Resor",
            notes="Tåg till Berlin",
        )
        db.add(record)
        db.commit()
        return record

    def test_month_as_semicolon_csv(self, client, auth_headers, travel_expense):
        response = client.get("/expenses/export?year=2024&month=3", headers=auth_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == "attachment; filename=2024-03-Utgifter.csv"

        rows = [line.split(";") for line in response.text.strip().splitlines()]
        assert rows[0] == [
            "Datum",
            "Leverantör",
            "Belopp",
            "Valuta",
            "Belopp SEK",
            "Kategori",
            "Anteckningar",
            "Uppdrag",
        ]
        assert rows[1] == ["2024-03-02", "SJ", "49.5", "EUR", "565.29", "Resor", "Tåg till Berlin", "Vårkonsert"]
        assert rows[2] == ["2024-03-15", "Spotify AB", "119", "SEK", "119", "Prenumeration", "", ""]

    def test_empty_month(self, client, auth_headers, expense):
        response = client.get("/expenses/export?year=2024&month=4", headers=auth_headers)
        assert response.status_code == 404
        assert response.json() == {"error": "No expenses found for the selected month"}

    def test_month_out_of_range(self, client, auth_headers):
        response = client.get("/expenses/export?year=2024&month=13", headers=auth_headers)
        assert response.status_code == 422
        assert "month" in response.json()["fieldErrors"]
