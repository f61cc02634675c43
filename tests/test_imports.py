import json
from datetime import date

import pytest

from app.domain.imports import service as import_service
from app.models import Client, Expense, Invoice
from app.services import document_classifier, invoice_parser
from app.services.anthropic_client import DocumentParseError
from app.services.invoice_parser import extract_invoice_number_from_filename, parse_invoice_text

INVOICE_TEXT = "FAKTURA\nKund: Göteborgs Symfoniker\nFakturadatum 2024-03-01\n" + "Konsert 14 juni " * 10

PARSED_INVOICE = {
    "invoiceNumber": 127,
    "clientName": "Göteborgs Symfoniker",
    "invoiceDate": "2024-03-01",
    "dueDate": "2024-03-31",
    "subtotal": 8000,
    "vatRate": 25,
    "vatAmount": 2000,
    "total": 10000,
    "confidence": 0.92,
}


@pytest.fixture
def invoice_replies(monkeypatch):
    """Replace the completion call used by the invoice parser"""
    calls = []

    def install(reply: dict):
        async def fake_complete(system_prompt, content, usage_type, **kwargs):
            calls.append({"usage_type": usage_type, "metadata": kwargs.get("metadata")})
            return json.dumps(reply)

        monkeypatch.setattr(invoice_parser, "complete", fake_complete)
        return calls

    return install


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("Faktura-123.pdf", 123),
        ("faktura_45.PDF", 45),
        ("Faktura7.pdf", 7),
        ("kvitto-12.pdf", None),
        ("Faktura-12.docx", None),
    ],
)
def test_invoice_number_from_filename(filename, expected):
    assert extract_invoice_number_from_filename(filename) == expected


class TestInvoiceParser:
    async def test_number_text_is_reduced_to_digits(self, invoice_replies):
        calls = invoice_replies(dict(PARSED_INVOICE, invoiceNumber="Faktura nr 127"))

        parsed = await parse_invoice_text(INVOICE_TEXT, filename="scan.pdf")

        assert parsed.invoiceNumber == 127
        assert calls[0]["usage_type"] == "invoice_parse"
        assert calls[0]["metadata"] == {"filename": "scan.pdf"}

    async def test_filename_fills_missing_number(self, invoice_replies):
        invoice_replies(dict(PARSED_INVOICE, invoiceNumber=None))
        parsed = await parse_invoice_text(INVOICE_TEXT, filename="Faktura-88.pdf")
        assert parsed.invoiceNumber == 88

    async def test_missing_number_without_filename_fails(self, invoice_replies):
        invoice_replies(dict(PARSED_INVOICE, invoiceNumber="utan nummer"))
        with pytest.raises(DocumentParseError):
            await parse_invoice_text(INVOICE_TEXT)

    @pytest.mark.parametrize("field, value", [("vatRate", 12), ("total", 0), ("invoiceDate", "1 mars")])
    async def test_invalid_values(self, invoice_replies, field, value):
        invoice_replies(dict(PARSED_INVOICE, **{field: value}))
        with pytest.raises(DocumentParseError):
            await parse_invoice_text(INVOICE_TEXT, filename="Faktura-127.pdf")


class TestAnalyzeEndpoint:
    REPLY = {
        "type": "invoice",
        "confidence": 0.9,
        "data": {"invoiceNumber": 42, "clientName": "Göteborgs Symfoniker AB", "total": 10000},
        "suggestedFilename": "2024-03-20_GSO_Faktura42",
    }

    @pytest.fixture
    def classifier_reply(self, monkeypatch):
        async def fake_complete(system_prompt, content, usage_type, **kwargs):
            return json.dumps(self.REPLY)

        monkeypatch.setattr(document_classifier, "complete", fake_complete)

    def upload(self, client, auth_headers):
        return client.post(
            "/import/analyze",
            files={"file": ("faktura.png", b"\x89PNG fake", "image/png")},
            headers=auth_headers,
        )

    def test_invoice_gets_client_match(self, client, auth_headers, music_client, classifier_reply):
        response = self.upload(client, auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["filename"] == "faktura.png"
        assert body["type"] == "invoice"
        assert body["data"]["invoiceNumber"] == 42
        assert body["clientMatch"]["client_id"] == music_client.id
        assert body["clientMatch"]["method"] == "exact"

    def test_client_match_failure_is_not_fatal(
        self, client, auth_headers, music_client, classifier_reply, monkeypatch
    ):
        def broken_match(name, clients):
            raise RuntimeError("matcher down")

        monkeypatch.setattr(import_service, "match_client", broken_match)

        response = self.upload(client, auth_headers)
        assert response.status_code == 200
        assert response.json()["clientMatch"] is None

    def test_requires_file(self, client, auth_headers):
        response = client.post("/import/analyze", headers=auth_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "No file attached"}


class TestParseInvoiceEndpoint:
    @pytest.fixture
    def pdf_text(self, monkeypatch):
        text = {"value": INVOICE_TEXT}
        monkeypatch.setattr(import_service, "extract_pdf_text", lambda content: text["value"])
        return text

    def upload(self, client, auth_headers, filename="Faktura-88.pdf", data=None, mime="application/pdf"):
        return client.post(
            "/import/parse-invoice",
            files={"file": (filename, b"%PDF-1.4 fake", mime)},
            data=data or {},
            headers=auth_headers,
        )

    def test_filename_number_is_used_when_reply_has_none(
        self, client, auth_headers, music_client, pdf_text, invoice_replies
    ):
        invoice_replies(dict(PARSED_INVOICE, invoiceNumber=None))

        response = self.upload(client, auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["invoiceNumber"] == 88
        assert data["clientMatch"]["client_id"] == music_client.id
        assert data["rawText"] == INVOICE_TEXT[:500]

    def test_form_number_overrides_parsed_number(self, client, auth_headers, pdf_text, invoice_replies):
        invoice_replies(PARSED_INVOICE)
        response = self.upload(client, auth_headers, data={"invoiceNumber": "90"})
        assert response.json()["data"]["invoiceNumber"] == 90

    def test_only_pdfs(self, client, auth_headers, pdf_text):
        response = self.upload(client, auth_headers, filename="faktura.png", mime="image/png")
        assert response.status_code == 400
        assert response.json() == {"error": "Only PDF invoices can be parsed"}

    def test_short_text_needs_ocr(self, client, auth_headers, pdf_text):
        pdf_text["value"] = "FAKTURA"
        response = self.upload(client, auth_headers)
        assert response.status_code == 422
        assert "May need OCR" in response.json()["error"]

    def test_invalid_reply_is_422(self, client, auth_headers, pdf_text, invoice_replies):
        invoice_replies(dict(PARSED_INVOICE, vatRate=19))
        response = self.upload(client, auth_headers)
        assert response.status_code == 422


RECEIPT = {
    "date": "2024-03-15",
    "supplier": "Spotify AB",
    "subtotal": 95.2,
    "vatRate": 25,
    "vatAmount": 23.8,
    "total": 119.0,
    "currency": "SEK",
    "category": "Prenumeration",
}


class TestBatchImport:
    @pytest.fixture
    def stored(self, monkeypatch):
        keys = []

        def fake_upload(key, content, content_type):
            keys.append((key, content_type))
            return key

        monkeypatch.setattr(import_service, "upload_file", fake_upload)
        return keys

    @pytest.fixture
    def spotify(self, db, user):
        record = Expense(
            user_id=user.id,
            date=date(2024, 3, 15),
            supplier="Spotify",
            amount=119.0,
            currency="SEK",
            amount_base=119.0,
            category="Prenumeration",
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    def post(self, client, auth_headers, items, files=None, skip_duplicates=False):
        if files is None:
            files = {f"file_{item['id']}": (f"{item['id']}.pdf", b"%PDF-1.4 fake", "application/pdf") for item in items}
        return client.post(
            "/import/batch",
            data={"metadata": json.dumps(items), "skipDuplicates": "true" if skip_duplicates else "false"},
            files=files,
            headers=auth_headers,
        )

    def test_expense_is_created_with_original(self, client, db, user, auth_headers, stored):
        item = {"id": "a", "type": "expense", "data": RECEIPT, "suggestedFilename": "2024-03-15 Spotify Åby"}

        response = self.post(client, auth_headers, [item])

        assert response.status_code == 200
        body = response.json()
        result = body["results"][0]
        assert result["success"] is True
        assert result["fileId"] == "a"
        assert result["filename"] == "2024-03-15 Spotify Åby"
        assert stored == [(f"{user.id}/receipts/2024/2024-03-15_Spotify_Aby.pdf", "application/pdf")]

        expense = db.query(Expense).filter(Expense.id == result["id"]).one()
        assert expense.amount == 119.0
        assert expense.amount_base == 119.0
        assert expense.attachment_key == stored[0][0]
        assert body["summary"]["expenses"] == 1

    def test_duplicate_is_skipped(self, client, db, auth_headers, stored, spotify):
        item = {"id": "a", "type": "expense", "data": RECEIPT, "suggestedFilename": "spotify"}

        response = self.post(client, auth_headers, [item], skip_duplicates=True)

        result = response.json()["results"][0]
        assert result["success"] is False
        assert result["skippedAsDuplicate"] is True
        assert result["existingExpense"]["id"] == spotify.id
        assert response.json()["summary"]["skipped"] == 1
        assert response.json()["summary"]["failed"] == 0
        assert db.query(Expense).count() == 1
        assert stored == []

    def test_duplicate_imported_with_warning(self, client, db, auth_headers, stored, spotify):
        item = {"id": "a", "type": "expense", "data": RECEIPT, "suggestedFilename": "spotify"}

        result = self.post(client, auth_headers, [item]).json()["results"][0]

        assert result["success"] is True
        assert result["existingExpense"]["id"] == spotify.id
        assert db.query(Expense).count() == 2

    def test_invoice_is_matched_to_client(self, client, db, auth_headers, stored, music_client):
        item = {"id": "inv", "type": "invoice", "data": PARSED_INVOICE, "suggestedFilename": "Faktura-127"}

        result = self.post(client, auth_headers, [item]).json()["results"][0]

        assert result["success"] is True
        assert "createdClient" not in result
        invoice = db.query(Invoice).filter(Invoice.id == result["id"]).one()
        assert invoice.client_id == music_client.id
        assert invoice.invoice_number == 127
        assert invoice.status == "paid"
        assert invoice.imported_from_pdf is True
        assert invoice.invoice_lines == []
        assert invoice.original_pdf_key.endswith("/invoices/2024/Faktura-127.pdf")

    def test_unknown_client_is_created(self, client, db, auth_headers, stored):
        data = dict(PARSED_INVOICE, clientName="Malmö Opera", dueDate=None)
        item = {"id": "inv", "type": "invoice", "data": data, "suggestedFilename": "Faktura-127"}

        body = self.post(client, auth_headers, [item]).json()

        assert body["results"][0]["createdClient"] == "Malmö Opera"
        assert body["summary"]["createdClients"] == ["Malmö Opera"]
        invoice = db.query(Invoice).one()
        assert invoice.client.name == "Malmö Opera"
        assert invoice.due_date == date(2024, 3, 31)

    def test_explicit_new_client(self, client, db, auth_headers, stored, music_client):
        data = dict(PARSED_INVOICE, selectedClientId=None)
        item = {"id": "inv", "type": "invoice", "data": data, "suggestedFilename": "Faktura-127"}

        result = self.post(client, auth_headers, [item]).json()["results"][0]

        assert result["createdClient"] == "Göteborgs Symfoniker"
        assert db.query(Client).count() == 2

    def test_items_fail_independently(self, client, db, user, auth_headers, stored, music_client):
        db.add(
            Invoice(
                user_id=user.id,
                client_id=music_client.id,
                invoice_number=127,
                invoice_date=date(2024, 3, 1),
                due_date=date(2024, 3, 31),
                total=10000,
            )
        )
        db.commit()
        items = [
            {"id": "dup", "type": "invoice", "data": PARSED_INVOICE, "suggestedFilename": "Faktura-127"},
            {"id": "gone", "type": "expense", "data": RECEIPT, "suggestedFilename": "kvitto"},
            {"id": "bad", "type": "expense", "data": dict(RECEIPT, vatRate=19), "suggestedFilename": "kvitto"},
            {"id": "ok", "type": "expense", "data": RECEIPT, "suggestedFilename": "kvitto"},
        ]
        files = {
            "file_dup": ("dup.pdf", b"%PDF", "application/pdf"),
            "file_bad": ("bad.pdf", b"%PDF", "application/pdf"),
            "file_ok": ("ok.jpg", b"\xff\xd8 fake", "image/jpeg"),
        }

        body = self.post(client, auth_headers, items, files=files).json()

        assert [r["success"] for r in body["results"]] == [False, False, False, True]
        assert body["results"][0]["error"] == "Invoice number 127 already exists"
        assert body["results"][1]["error"] == "File missing"
        assert body["results"][2]["error"] == "Invalid expense data: 1 errors"
        assert stored[0][0].endswith("/receipts/2024/kvitto.jpg")
        assert body["summary"] == {
            "total": 4,
            "succeeded": 1,
            "failed": 3,
            "skipped": 0,
            "expenses": 1,
            "invoices": 0,
            "createdClients": [],
        }

    def test_failed_upload_keeps_record(self, client, db, auth_headers, monkeypatch):
        def broken_upload(key, content, content_type):
            raise RuntimeError("bucket unavailable")

        monkeypatch.setattr(import_service, "upload_file", broken_upload)
        item = {"id": "a", "type": "expense", "data": RECEIPT, "suggestedFilename": "spotify"}

        result = self.post(client, auth_headers, [item]).json()["results"][0]

        assert result["success"] is True
        assert db.query(Expense).one().attachment_key is None

    def test_metadata_required(self, client, auth_headers):
        response = client.post(
            "/import/batch",
            data={"skipDuplicates": "true"},
            files={"file_a": ("a.pdf", b"%PDF", "application/pdf")},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Metadata required"}

    @pytest.mark.parametrize("metadata", ["not json", "[]", json.dumps([{"id": "a", "type": "contract"}])])
    def test_invalid_metadata(self, client, auth_headers, metadata):
        response = client.post(
            "/import/batch",
            data={"metadata": metadata},
            files={"file_a": ("a.pdf", b"%PDF", "application/pdf")},
            headers=auth_headers,
        )
        assert response.status_code == 400

    def test_unsupported_file_type(self, client, auth_headers, stored):
        item = {"id": "a", "type": "expense", "data": RECEIPT, "suggestedFilename": "kvitto"}
        response = self.post(
            client, auth_headers, [item], files={"file_a": ("a.txt", b"hej", "text/plain")}
        )
        assert response.status_code == 400
