import base64
import io
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException
from PIL import Image

from app.domain.contracts import service as contract_service
from app.domain.contracts.pdf_service import (
    ContractPDFService,
    compute_document_hash,
    format_amount,
)
from app.domain.contracts.schemas import ContractCreate, SignContractRequest
from app.domain.contracts.service import (
    ContractService,
    decode_signature_image,
    generate_contract_number,
)
from app.models import Contract, ContractAudit

UNSIGNED_PDF = b"%PDF-1.4 unsigned agreement"


def signature_png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (240, 80), "white").save(buffer, format="PNG")
    return buffer.getvalue()


def signature_data_url() -> str:
    return "data:image/png;base64," + base64.b64encode(signature_png()).decode("ascii")


@pytest.fixture
def outbox(monkeypatch):
    """Fake storage, PDF rendering and email for the contract service"""
    sent = {"emails": [], "uploads": {}, "renders": []}

    def fake_render(self, signature_png=None, signed_at=None, signer_ip=None, original_hash=None):
        sent["renders"].append({"signed": signature_png is not None, "original_hash": original_hash})
        if signature_png is None:
            return UNSIGNED_PDF
        return b"%PDF-1.4 signed from " + (original_hash or "").encode("ascii")

    def fake_upload(key, content, content_type):
        sent["uploads"][key] = content
        return key

    def recorder(kind):
        async def _send(*args, **kwargs):
            sent["emails"].append((kind, args))
            return {"success": True}

        return _send

    monkeypatch.setattr(ContractPDFService, "render", fake_render)
    monkeypatch.setattr(contract_service, "upload_file", fake_upload)
    monkeypatch.setattr(contract_service, "generate_presigned_url", lambda key, *a, **kw: f"https://files.test/{key}")
    monkeypatch.setattr(contract_service, "send_contract_review_request", recorder("review"))
    monkeypatch.setattr(contract_service, "send_contract_signing_request", recorder("signing"))
    monkeypatch.setattr(contract_service, "send_contract_signed_confirmation", recorder("confirmation"))
    return sent


@pytest.fixture
def service(db):
    return ContractService(db)


def new_contract(service, user, **overrides):
    fields = {
        "tier": "Pro",
        "annual_price": 12000,
        "signer_name": "Anna Andersson",
        "signer_email": "Anna@Example.com",
        "custom_terms": {"Support": "Priority email support"},
    }
    fields.update(overrides)
    return service.create_contract(ContractCreate(**fields), user)


def audit_trail(db, contract) -> list[str]:
    rows = (
        db.query(ContractAudit)
        .filter(ContractAudit.contract_id == contract.id)
        .order_by(ContractAudit.id)
        .all()
    )
    return [row.event_type for row in rows]


def test_generate_contract_number():
    assert generate_contract_number(None, 2024) == "SS-2024-001"
    assert generate_contract_number("SS-2024-009", 2024) == "SS-2024-010"
    assert generate_contract_number("SS-2023-041", 2024) == "SS-2024-001"


def test_decode_signature_image_strips_data_url():
    assert decode_signature_image(signature_data_url()) == signature_png()
    with pytest.raises(HTTPException) as exc_info:
        decode_signature_image("not base64!!" * 10)
    assert exc_info.value.status_code == 400


def test_format_amount():
    assert format_amount(12000, "SEK") == "12 000,00 SEK"


def test_signer_email_is_required():
    with pytest.raises(ValueError):
        ContractCreate(tier="Pro", annual_price=100, signer_name="Anna", signer_email="")


def test_create_stores_unsigned_document(db, service, user, outbox):
    contract = new_contract(service, user)

    assert contract.status == "draft"
    assert contract.contract_number == f"SS-{datetime.utcnow().year}-001"
    assert contract.signer_email == "anna@example.com"
    assert contract.document_hash_sha256 == compute_document_hash(UNSIGNED_PDF)
    assert contract.unsigned_pdf_path == f"{user.company_id}/{contract.id}/unsigned.pdf"
    assert outbox["uploads"][contract.unsigned_pdf_path] == UNSIGNED_PDF
    assert audit_trail(db, contract) == ["created"]

    second = new_contract(service, user)
    assert second.contract_number.endswith("-002")


async def test_send_view_sign_keeps_hash_chain(db, service, user, outbox):
    contract = new_contract(service, user)
    original_hash = contract.document_hash_sha256

    contract = await service.send_contract(contract.id, user)
    assert contract.status == "sent"
    assert len(contract.signing_token) == 64
    assert outbox["emails"][-1][0] == "signing"
    token = contract.signing_token

    view = service.view_for_signing(token, "203.0.113.7", "pytest")
    assert view["status"] == "viewed"
    assert view["document_hash"] == original_hash

    result = await service.sign_contract(
        token,
        SignContractRequest(signer_name="Anna Andersson", signer_title="CEO", signature_image=signature_data_url()),
        "203.0.113.7",
        "pytest",
    )
    assert result["success"] is True

    db.expire_all()
    contract = db.query(Contract).filter(Contract.id == contract.id).first()
    signed_pdf = outbox["uploads"][contract.signed_pdf_path]

    assert contract.status == "signed"
    assert contract.signing_token is None
    assert contract.signer_ip == "203.0.113.7"
    assert contract.document_hash_sha256 == original_hash
    assert contract.signed_document_hash_sha256 == compute_document_hash(signed_pdf)
    assert original_hash.encode("ascii") in signed_pdf
    assert outbox["renders"][-1] == {"signed": True, "original_hash": original_hash}
    assert outbox["uploads"][contract.signature_image_path] == signature_png()

    assert audit_trail(db, contract) == ["created", "sent", "viewed", "signed"]
    signed_event = (
        db.query(ContractAudit)
        .filter(ContractAudit.contract_id == contract.id, ContractAudit.event_type == "signed")
        .one()
    )
    assert signed_event.document_hash_sha256 == contract.signed_document_hash_sha256
    assert signed_event.event_metadata["original_hash"] == original_hash
    assert outbox["emails"][-1][0] == "confirmation"


async def test_resend_is_audited_as_resent(db, service, user, outbox):
    contract = new_contract(service, user)
    await service.send_contract(contract.id, user)
    first_token = contract.signing_token

    contract = await service.send_contract(contract.id, user)

    assert contract.signing_token != first_token
    assert audit_trail(db, contract) == ["created", "sent", "resent"]


async def test_expired_link_marks_contract_expired(db, service, user, outbox):
    contract = new_contract(service, user)
    contract = await service.send_contract(contract.id, user)
    contract.token_expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(HTTPException) as exc_info:
        service.view_for_signing(contract.signing_token)
    assert exc_info.value.status_code == 410

    db.expire_all()
    contract = db.query(Contract).filter(Contract.id == contract.id).first()
    assert contract.status == "expired"
    assert audit_trail(db, contract)[-1] == "expired"


async def test_sign_requires_sent_or_viewed(db, service, user, outbox):
    contract = new_contract(service, user)
    contract = await service.send_contract(contract.id, user)
    contract.status = "draft"
    db.commit()

    with pytest.raises(HTTPException) as exc_info:
        await service.sign_contract(
            contract.signing_token,
            SignContractRequest(signer_name="Anna", signature_image=signature_data_url()),
        )
    assert exc_info.value.status_code == 400


def test_unknown_signing_token(service):
    with pytest.raises(HTTPException) as exc_info:
        service.view_for_signing("f" * 64)
    assert exc_info.value.status_code == 404


async def test_review_flow(db, service, user, outbox):
    contract = new_contract(
        service, user, reviewer_name="Lars Lindqvist", reviewer_email="lars@example.com"
    )

    contract = await service.send_for_review(contract.id, user)
    assert contract.status == "sent_to_reviewer"
    assert outbox["emails"][-1][0] == "review"
    reviewer_token = contract.reviewer_token

    assert service.view_for_review(reviewer_token)["status"] == "reviewed"

    result = await service.approve_review(reviewer_token)
    assert result == {"success": True, "status": "sent"}

    db.expire_all()
    contract = db.query(Contract).filter(Contract.id == contract.id).first()
    assert contract.reviewer_token is None
    assert contract.signing_token is not None
    assert audit_trail(db, contract) == ["created", "sent_to_reviewer", "reviewed", "approved", "sent"]

    # The reviewer link is single use
    with pytest.raises(HTTPException) as exc_info:
        await service.approve_review(reviewer_token)
    assert exc_info.value.status_code == 404


async def test_send_for_review_requires_reviewer(service, user, outbox):
    contract = new_contract(service, user)
    with pytest.raises(HTTPException) as exc_info:
        await service.send_for_review(contract.id, user)
    assert exc_info.value.status_code == 400


async def test_cancel(db, service, user, outbox):
    contract = new_contract(service, user)
    contract = await service.send_contract(contract.id, user)

    contract = service.cancel_contract(contract.id, user)
    assert contract.status == "cancelled"
    assert contract.signing_token is None
    assert audit_trail(db, contract)[-1] == "cancelled"

    with pytest.raises(HTTPException) as exc_info:
        service.cancel_contract(contract.id, user)
    assert exc_info.value.status_code == 400


def test_download_prefers_signed_document(db, service, user, outbox):
    contract = new_contract(service, user)
    download = service.get_download_url(contract.id, user)
    assert download["signed"] is False
    assert download["url"].endswith("unsigned.pdf")

    contract.signed_pdf_path = f"{user.company_id}/{contract.id}/signed.pdf"
    contract.signed_document_hash_sha256 = "a" * 64
    db.commit()

    download = service.get_download_url(contract.id, user)
    assert download == {
        "url": f"https://files.test/{contract.signed_pdf_path}",
        "signed": True,
        "document_hash": "a" * 64,
    }


def test_contracts_are_scoped_to_owner(db, service, user, outbox):
    contract = new_contract(service, user)
    other = type(user)(auth_uid="someone-else", email="other@example.com")
    db.add(other)
    db.commit()

    with pytest.raises(HTTPException) as exc_info:
        service.get_contract(contract.id, other)
    assert exc_info.value.status_code == 404


class TestPdfRendering:
    @pytest.fixture
    def contract(self, company):
        return Contract(
            id=1,
            contract_number="SS-2024-001",
            tier="Pro & Team",
            annual_price=12000,
            currency="SEK",
            billing_interval="annual",
            vat_rate_pct=25,
            duration_months=12,
            custom_terms={"Support": "<b>Priority</b> email"},
            signer_name="Anna Andersson",
            signer_email="anna@example.com",
            signer_title="CEO",
        )

    def test_unsigned_render_is_reproducible(self, contract, company):
        first = ContractPDFService(contract, company).render()
        second = ContractPDFService(contract, company).render()

        assert first.startswith(b"%PDF")
        assert compute_document_hash(first) == compute_document_hash(second)

    def test_signed_render_differs_from_unsigned(self, contract, company):
        unsigned = ContractPDFService(contract, company).render()
        signed = ContractPDFService(contract, company).render(
            signature_png=signature_png(),
            signed_at=datetime(2024, 3, 1, 12, 0),
            signer_ip="203.0.113.7",
            original_hash=compute_document_hash(unsigned),
        )

        assert signed.startswith(b"%PDF")
        assert compute_document_hash(signed) != compute_document_hash(unsigned)
