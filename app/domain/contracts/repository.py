"""Contract repository - Database operations for contracts and their audit trail"""

from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ...models import Company, Contract, ContractAudit


class ContractRepository:
    """Repository for contract database operations"""

    @staticmethod
    def get_contracts(db: Session, user_id: int, status: Optional[str] = None) -> list[Contract]:
        query = db.query(Contract).filter(Contract.user_id == user_id)
        if status:
            query = query.filter(Contract.status == status)
        return query.order_by(Contract.created_at.desc(), Contract.id.desc()).all()

    @staticmethod
    def get_contract_by_id(db: Session, contract_id: int, user_id: int) -> Optional[Contract]:
        return (
            db.query(Contract)
            .options(selectinload(Contract.audit_events))
            .filter(Contract.id == contract_id, Contract.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_by_signing_token(db: Session, token: str) -> Optional[Contract]:
        if not token:
            return None
        return db.query(Contract).filter(Contract.signing_token == token).first()

    @staticmethod
    def get_by_reviewer_token(db: Session, token: str) -> Optional[Contract]:
        if not token:
            return None
        return db.query(Contract).filter(Contract.reviewer_token == token).first()

    @staticmethod
    def get_last_contract_number(db: Session, prefix: str) -> Optional[str]:
        """Highest contract number starting with prefix (numbers are zero-padded)"""
        row = (
            db.query(Contract.contract_number)
            .filter(Contract.contract_number.like(f"{prefix}%"))
            .order_by(Contract.contract_number.desc())
            .first()
        )
        return row[0] if row else None

    @staticmethod
    def get_company(db: Session, company_id: Optional[int]) -> Optional[Company]:
        if not company_id:
            return None
        return db.query(Company).filter(Company.id == company_id).first()

    @staticmethod
    def create_contract(db: Session, user_id: int, **contract_data) -> Contract:
        """Insert a contract and flush so it has an id; the caller commits"""
        contract = Contract(user_id=user_id, **contract_data)
        db.add(contract)
        db.flush()
        return contract

    @staticmethod
    def add_audit_event(
        db: Session,
        contract: Contract,
        event_type: str,
        actor_email: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        document_hash: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> ContractAudit:
        """Append an audit row; it is committed together with the contract change"""
        event = ContractAudit(
            contract_id=contract.id,
            event_type=event_type,
            actor_email=actor_email,
            ip_address=ip_address,
            user_agent=user_agent,
            document_hash_sha256=document_hash,
            event_metadata=metadata or {},
        )
        db.add(event)
        return event

    @staticmethod
    def save(db: Session, contract: Contract) -> Contract:
        db.commit()
        db.refresh(contract)
        return contract
