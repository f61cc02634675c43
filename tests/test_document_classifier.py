import json

import pytest

from app.services import document_classifier
from app.services.anthropic_client import (
    DocumentParseError,
    UnsupportedDocumentError,
    parse_json_response,
)
from app.services.document_classifier import (
    apply_expense_defaults,
    apply_invoice_defaults,
    classify_document,
    parse_classification,
)

RECEIPT_REPLY = {
    "type": "expense",
    "confidence": 0.95,
    "data": {
        "date": "2024-03-15",
        "supplier": "SJ",
        "total": 625,
        "vatRate": 6,
        "currency": "SEK",
        "category": "Resa",
        "notes": "Train Stockholm-Göteborg",
    },
    "suggestedFilename": "2024-03-15_SJ_Tåg Göteborg",
}


@pytest.fixture
def model_replies(monkeypatch):
    """Replace the completion call; records what was sent"""
    calls = []

    def install(reply: str):
        async def fake_complete(system_prompt, content, usage_type, **kwargs):
            calls.append({"content": content, "usage_type": usage_type})
            return reply

        monkeypatch.setattr(document_classifier, "complete", fake_complete)
        return calls

    return install


def test_parse_json_response_strips_code_fence():
    assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}


@pytest.mark.parametrize("reply", [None, "", "not json", "[1, 2]"])
def test_parse_json_response_rejects_bad_replies(reply):
    with pytest.raises(DocumentParseError):
        parse_json_response(reply)


def test_expense_defaults_derive_vat_from_total():
    data = apply_expense_defaults({"total": 625, "vatRate": 25})
    assert data["subtotal"] == 500
    assert data["vatAmount"] == 125
    assert data["supplier"] == "Unknown supplier"
    assert data["currency"] == "SEK"
    assert data["category"] == "Övrigt"


def test_expense_defaults_keep_explicit_amounts():
    data = apply_expense_defaults({"supplier": "Thomann", "subtotal": 800, "vatAmount": 200, "total": 1000})
    assert (data["subtotal"], data["vatAmount"], data["total"], data["vatRate"]) == (800, 200, 1000, 25)


def test_invoice_defaults_coerce_invoice_number():
    data = apply_invoice_defaults({"invoiceNumber": "Faktura nr 127", "clientName": None})
    assert data["invoiceNumber"] == 127
    assert data["clientName"] == "Unknown client"
    assert data["total"] == 0
    assert data["vatRate"] == 25


def test_parse_classification_sanitizes_filename():
    document = parse_classification(json.dumps(RECEIPT_REPLY))
    assert document.type == "expense"
    assert document.data.supplier == "SJ"
    assert document.data.subtotal == pytest.approx(589.62)
    assert document.suggestedFilename == "2024-03-15_SJ_Tag-Goteborg"


def test_parse_classification_rejects_invalid_values():
    reply = dict(RECEIPT_REPLY, data=dict(RECEIPT_REPLY["data"], vatRate=19))
    with pytest.raises(DocumentParseError):
        parse_classification(json.dumps(reply))


async def test_images_are_sent_as_image_blocks(model_replies):
    calls = model_replies(json.dumps(RECEIPT_REPLY))

    document = await classify_document(b"\x89PNG fake", "image/png", "receipt.png")

    assert document.type == "expense"
    assert calls[0]["usage_type"] == "document_classify_vision"
    assert calls[0]["content"][0]["type"] == "image"


async def test_unreadable_pdf_falls_back_to_document_block(model_replies):
    calls = model_replies(
        json.dumps(
            {
                "type": "invoice",
                "confidence": 0.9,
                "data": {"invoiceNumber": 42, "clientName": "Malmö Opera", "total": 10000},
                "suggestedFilename": "2024-03-20_Malmo-Opera_Faktura42",
            }
        )
    )

    document = await classify_document(b"not really a pdf", "application/pdf", "faktura.pdf")

    assert document.type == "invoice"
    assert document.data.invoiceNumber == 42
    assert calls[0]["usage_type"] == "document_classify_vision"
    assert calls[0]["content"][0]["type"] == "document"


async def test_unsupported_type(model_replies):
    model_replies("{}")
    with pytest.raises(UnsupportedDocumentError):
        await classify_document(b"PK", "application/zip", "archive.zip")


def test_unknown_document_type_is_a_parse_error():
    reply = dict(RECEIPT_REPLY, type="unknown")
    with pytest.raises(DocumentParseError):
        parse_classification(json.dumps(reply))
