"""
Contract service - Subscription agreement lifecycle

draft -> (sent_to_reviewer -> reviewed ->) sent -> viewed -> signed
Any non-final status can be cancelled; an expired signing link marks the contract expired.
Every transition appends a ContractAudit row carrying the relevant document hash.
"""

import base64
import binascii
import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...activity import log_activity
from ...email_service import (
    send_contract_review_request,
    send_contract_signed_confirmation,
    send_contract_signing_request,
)
from ...models import Contract, User
from ...security_utils import generate_secure_token
from ...storage import contract_storage_path, generate_presigned_url, upload_file
from .pdf_service import ContractPDFService, compute_document_hash
from .repository import ContractRepository
from .schemas import ContractCreate, SignContractRequest

logger = logging.getLogger(__name__)

TOKEN_VALIDITY = timedelta(days=30)
FINAL_STATUSES = {"signed", "cancelled"}
DATA_URL_PREFIX = re.compile(r"^data:image/png;base64,")


def generate_contract_number(last_number: Optional[str], year: int) -> str:
    """SS-YYYY-NNN, continuing the year's sequence"""
    prefix = f"SS-{year}-"
    next_number = 1
    if last_number and last_number.startswith(prefix):
        try:
            next_number = int(last_number[len(prefix):]) + 1
        except ValueError:
            next_number = 1
    return f"{prefix}{next_number:03d}"


def decode_signature_image(signature_image: str) -> bytes:
    data = DATA_URL_PREFIX.sub("", signature_image.strip())
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=400, detail="Invalid signature image") from e


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    return expires_at is not None and expires_at < now


class ContractService:
    """Service layer for contract business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ContractRepository()

    # ============================================================================
    # DASHBOARD
    # ============================================================================

    def get_contracts(self, user: User, status: Optional[str] = None) -> list[Contract]:
        return self.repo.get_contracts(self.db, user.id, status)

    def get_contract(self, contract_id: int, user: User) -> Contract:
        contract = self.repo.get_contract_by_id(self.db, contract_id, user.id)
        if not contract:
            raise HTTPException(status_code=404, detail="Contract not found")
        return contract

    def create_contract(self, data: ContractCreate, user: User) -> Contract:
        now = datetime.utcnow()
        last_number = self.repo.get_last_contract_number(self.db, f"SS-{now.year}-")
        contract_number = generate_contract_number(last_number, now.year)
        logger.info(f"📝 Creating contract {contract_number} for user_id: {user.id}")

        fields = data.model_dump()
        fields["currency"] = fields["currency"].upper()
        contract = self.repo.create_contract(
            self.db,
            user.id,
            company_id=user.company_id,
            contract_number=contract_number,
            status="draft",
            **fields,
        )

        try:
            company = self.repo.get_company(self.db, contract.company_id)
            pdf_bytes = ContractPDFService(contract, company).render()
            document_hash = compute_document_hash(pdf_bytes)
            pdf_path = upload_file(
                contract_storage_path(contract.company_id, contract.id, "unsigned.pdf"),
                pdf_bytes,
                "application/pdf",
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to prepare contract document {contract_number}: {e}")
            raise HTTPException(status_code=500, detail="Failed to generate contract document") from e

        contract.unsigned_pdf_path = pdf_path
        contract.document_hash_sha256 = document_hash
        self.repo.add_audit_event(
            self.db,
            contract,
            "created",
            actor_email=user.email,
            document_hash=document_hash,
            metadata={"contract_number": contract_number},
        )
        contract = self.repo.save(self.db, contract)

        log_activity(
            self.db,
            user.id,
            "contract_created",
            "contract",
            contract.id,
            {"contract_number": contract_number},
        )
        return contract

    async def send_for_review(self, contract_id: int, user: User) -> Contract:
        contract = self.get_contract(contract_id, user)
        if contract.status != "draft":
            raise HTTPException(status_code=400, detail="Only draft contracts can be sent for review")
        if not contract.reviewer_email:
            raise HTTPException(status_code=400, detail="Contract has no reviewer")

        contract.reviewer_token = generate_secure_token()
        contract.reviewer_token_expires_at = datetime.utcnow() + TOKEN_VALIDITY
        contract.status = "sent_to_reviewer"
        self.repo.add_audit_event(
            self.db,
            contract,
            "sent_to_reviewer",
            actor_email=user.email,
            document_hash=contract.document_hash_sha256,
            metadata={"reviewer_email": contract.reviewer_email},
        )
        contract = self.repo.save(self.db, contract)

        try:
            await send_contract_review_request(
                contract.reviewer_email,
                contract.reviewer_name or contract.reviewer_email,
                contract.contract_number,
                contract.reviewer_token,
            )
        except Exception as e:
            logger.error(f"❌ Failed to email reviewer for {contract.contract_number}: {e}")

        return contract

    async def send_contract(self, contract_id: int, user: User) -> Contract:
        contract = self.get_contract(contract_id, user)
        if contract.status not in ("draft", "sent"):
            raise HTTPException(
                status_code=400, detail=f"Contract cannot be sent in status {contract.status}"
            )

        event_type = "resent" if contract.status == "sent" else "sent"
        await self._issue_signing_token(contract, user.email, event_type)
        log_activity(
            self.db,
            user.id,
            "contract_sent",
            "contract",
            contract.id,
            {"contract_number": contract.contract_number, "resent": event_type == "resent"},
        )
        return contract

    def cancel_contract(self, contract_id: int, user: User) -> Contract:
        contract = self.get_contract(contract_id, user)
        if contract.status in FINAL_STATUSES:
            raise HTTPException(
                status_code=400, detail=f"Contract cannot be cancelled in status {contract.status}"
            )

        previous_status = contract.status
        contract.status = "cancelled"
        contract.signing_token = None
        contract.reviewer_token = None
        self.repo.add_audit_event(
            self.db,
            contract,
            "cancelled",
            actor_email=user.email,
            document_hash=contract.document_hash_sha256,
            metadata={"previous_status": previous_status},
        )
        return self.repo.save(self.db, contract)

    def get_download_url(self, contract_id: int, user: User) -> dict:
        contract = self.get_contract(contract_id, user)
        path = contract.signed_pdf_path or contract.unsigned_pdf_path
        if not path:
            raise HTTPException(status_code=404, detail="Contract document not found")
        return {
            "url": generate_presigned_url(path),
            "signed": bool(contract.signed_pdf_path),
            "document_hash": contract.signed_document_hash_sha256 or contract.document_hash_sha256,
        }

    async def _issue_signing_token(self, contract: Contract, actor_email: Optional[str], event_type: str):
        contract.signing_token = generate_secure_token()
        contract.token_expires_at = datetime.utcnow() + TOKEN_VALIDITY
        contract.status = "sent"
        contract.sent_at = datetime.utcnow()
        self.repo.add_audit_event(
            self.db,
            contract,
            event_type,
            actor_email=actor_email,
            document_hash=contract.document_hash_sha256,
            metadata={"signer_email": contract.signer_email},
        )
        self.repo.save(self.db, contract)

        try:
            await send_contract_signing_request(
                contract.signer_email,
                contract.signer_name,
                contract.contract_number,
                contract.signing_token,
                contract.token_expires_at,
            )
        except Exception as e:
            logger.error(f"❌ Failed to email signer for {contract.contract_number}: {e}")

    # ============================================================================
    # PUBLIC REVIEW / SIGNING
    # ============================================================================

    def _pdf_url(self, path: Optional[str]) -> Optional[str]:
        if not path:
            return None
        try:
            return generate_presigned_url(path)
        except Exception as e:
            logger.warning(f"⚠️ Could not sign document URL for {path}: {e}")
            return None

    def public_view(self, contract: Contract) -> dict:
        company = self.repo.get_company(self.db, contract.company_id)
        return {
            "contract_number": contract.contract_number,
            "tier": contract.tier,
            "annual_price": contract.annual_price,
            "currency": contract.currency,
            "billing_interval": contract.billing_interval,
            "vat_rate_pct": contract.vat_rate_pct,
            "contract_start_date": (
                contract.contract_start_date.isoformat() if contract.contract_start_date else None
            ),
            "duration_months": contract.duration_months,
            "custom_terms": contract.custom_terms or {},
            "signer_name": contract.signer_name,
            "signer_email": contract.signer_email,
            "signer_title": contract.signer_title,
            "reviewer_name": contract.reviewer_name,
            "company_name": company.name if company else None,
            "document_hash": contract.document_hash_sha256,
            "pdf_url": self._pdf_url(contract.unsigned_pdf_path),
            "status": contract.status,
        }

    def _get_by_reviewer_token(self, token: str) -> Contract:
        contract = self.repo.get_by_reviewer_token(self.db, token)
        if not contract:
            raise HTTPException(status_code=404, detail="Invalid or expired link")
        if is_expired(contract.reviewer_token_expires_at, datetime.utcnow()):
            raise HTTPException(status_code=410, detail="This review link has expired")
        return contract

    def view_for_review(self, token: str, ip: Optional[str] = None, user_agent: Optional[str] = None) -> dict:
        contract = self._get_by_reviewer_token(token)
        if contract.status == "signed":
            raise HTTPException(status_code=410, detail="This agreement has already been signed")
        if contract.status == "cancelled":
            raise HTTPException(status_code=410, detail="This agreement has been cancelled")

        if contract.status == "sent_to_reviewer":
            contract.status = "reviewed"
            self.repo.add_audit_event(
                self.db,
                contract,
                "reviewed",
                actor_email=contract.reviewer_email,
                ip_address=ip,
                user_agent=user_agent,
                document_hash=contract.document_hash_sha256,
            )
            contract = self.repo.save(self.db, contract)

        return self.public_view(contract)

    async def approve_review(
        self, token: str, ip: Optional[str] = None, user_agent: Optional[str] = None
    ) -> dict:
        contract = self._get_by_reviewer_token(token)
        if contract.status not in ("sent_to_reviewer", "reviewed"):
            raise HTTPException(
                status_code=400, detail="Contract has already been forwarded or signed"
            )

        contract.reviewer_token = None
        self.repo.add_audit_event(
            self.db,
            contract,
            "approved",
            actor_email=contract.reviewer_email,
            ip_address=ip,
            user_agent=user_agent,
            document_hash=contract.document_hash_sha256,
            metadata={"forwarded_to": contract.signer_email},
        )
        await self._issue_signing_token(contract, contract.reviewer_email, "sent")
        logger.info(f"✅ Reviewer approved {contract.contract_number}")
        return {"success": True, "status": contract.status}

    def _get_by_signing_token(self, token: str) -> Contract:
        contract = self.repo.get_by_signing_token(self.db, token)
        if not contract:
            raise HTTPException(status_code=404, detail="Invalid or expired link")
        return contract

    def view_for_signing(self, token: str, ip: Optional[str] = None, user_agent: Optional[str] = None) -> dict:
        contract = self._get_by_signing_token(token)

        if is_expired(contract.token_expires_at, datetime.utcnow()):
            if contract.status not in FINAL_STATUSES and contract.status != "expired":
                contract.status = "expired"
                self.repo.add_audit_event(
                    self.db,
                    contract,
                    "expired",
                    actor_email=contract.signer_email,
                    ip_address=ip,
                    document_hash=contract.document_hash_sha256,
                )
                self.repo.save(self.db, contract)
            raise HTTPException(status_code=410, detail="This signing link has expired")

        if contract.status == "signed":
            raise HTTPException(status_code=410, detail="This agreement has already been signed")
        if contract.status == "cancelled":
            raise HTTPException(status_code=410, detail="This agreement has been cancelled")

        if contract.status == "sent":
            contract.status = "viewed"
            contract.viewed_at = datetime.utcnow()
            self.repo.add_audit_event(
                self.db,
                contract,
                "viewed",
                actor_email=contract.signer_email,
                ip_address=ip,
                user_agent=user_agent,
                document_hash=contract.document_hash_sha256,
            )
            contract = self.repo.save(self.db, contract)

        return self.public_view(contract)

    async def sign_contract(
        self,
        token: str,
        data: SignContractRequest,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> dict:
        contract = self._get_by_signing_token(token)
        now = datetime.utcnow()

        if is_expired(contract.token_expires_at, now):
            raise HTTPException(status_code=410, detail="This signing link has expired")
        if contract.status == "signed":
            raise HTTPException(status_code=410, detail="This agreement has already been signed")
        if contract.status not in ("sent", "viewed"):
            raise HTTPException(status_code=400, detail="Contract cannot be signed in current status")

        signature_png = decode_signature_image(data.signature_image)
        original_hash = contract.document_hash_sha256

        contract.signer_name = data.signer_name
        contract.signer_title = data.signer_title or contract.signer_title

        try:
            signature_path = upload_file(
                contract_storage_path(contract.company_id, contract.id, "signature.png"),
                signature_png,
                "image/png",
            )
            company = self.repo.get_company(self.db, contract.company_id)
            signed_pdf = ContractPDFService(contract, company).render(
                signature_png=signature_png,
                signed_at=now,
                signer_ip=ip,
                original_hash=original_hash,
            )
            signed_hash = compute_document_hash(signed_pdf)
            signed_path = upload_file(
                contract_storage_path(contract.company_id, contract.id, "signed.pdf"),
                signed_pdf,
                "application/pdf",
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to produce signed document for {contract.contract_number}: {e}")
            raise HTTPException(status_code=500, detail="Failed to sign contract") from e

        contract.status = "signed"
        contract.signed_at = now
        contract.signature_image_path = signature_path
        contract.signed_pdf_path = signed_path
        contract.signed_document_hash_sha256 = signed_hash
        contract.signer_ip = ip
        contract.signer_user_agent = user_agent
        contract.signing_token = None
        self.repo.add_audit_event(
            self.db,
            contract,
            "signed",
            actor_email=contract.signer_email,
            ip_address=ip,
            user_agent=user_agent,
            document_hash=signed_hash,
            metadata={
                "signer_name": data.signer_name,
                "signer_title": data.signer_title,
                "original_hash": original_hash,
            },
        )
        contract = self.repo.save(self.db, contract)
        logger.info(f"✅ Contract {contract.contract_number} signed by {contract.signer_email}")

        log_activity(
            self.db,
            contract.user_id,
            "contract_signed",
            "contract",
            contract.id,
            {"contract_number": contract.contract_number},
        )

        try:
            await send_contract_signed_confirmation(
                contract.signer_email,
                contract.signer_name,
                contract.contract_number,
                signed_hash,
                self._pdf_url(signed_path),
            )
        except Exception as e:
            logger.error(f"❌ Failed to send signing confirmation for {contract.contract_number}: {e}")

        return {"success": True, "signed_at": now.isoformat()}
