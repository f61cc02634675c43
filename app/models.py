import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    org_number = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    bank_account = Column(String(100), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    members = relationship("User", back_populates="company")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    auth_uid = Column(String(255), unique=True, index=True, nullable=False)  # Session JWT subject
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    locale = Column(String(5), default="sv", nullable=False)  # sv or en
    # Subscription
    plan = Column(String(50), default="free", nullable=True)  # free, pro, team
    pending_plan = Column(String(50), nullable=True)  # Scheduled downgrade at period end
    subscription_status = Column(String(50), nullable=True)  # active, trialing, past_due, canceled
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    # Secret for the public ICS calendar feed
    calendar_token = Column(String(64), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="members")
    clients = relationship("Client", back_populates="user")
    gigs = relationship("Gig", back_populates="user")
    api_keys = relationship("ApiKey", back_populates="user")


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    client_code = Column(String(50), nullable=True)
    org_number = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    payment_terms = Column(Integer, default=30, nullable=False)  # Days
    reference_person = Column(String(255), nullable=True)
    invoice_language = Column(String(5), nullable=True)
    country_code = Column(String(2), nullable=True)
    vat_number = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="clients")
    gigs = relationship("Gig", back_populates="client")
    invoices = relationship("Invoice", back_populates="client")


class GigType(Base):
    __tablename__ = "gig_types"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)  # Konsert, Repetition, Inspelning, ...
    vat_rate = Column(Float, default=6.0, nullable=False)
    color = Column(String(7), nullable=True)


class Gig(Base):
    __tablename__ = "gigs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    gig_type_id = Column(Integer, ForeignKey("gig_types.id"), nullable=False)
    # First date of the gig; mirrors start_date for ordering and filtering
    date = Column(Date, nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_days = Column(Integer, default=1, nullable=False)
    fee = Column(Float, nullable=True)
    travel_expense = Column(Float, nullable=True)
    currency = Column(String(3), default="SEK", nullable=False)
    venue = Column(String(255), nullable=True)
    project_name = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    invoice_notes = Column(Text, nullable=True)
    # tentative, pending, accepted, declined, completed, invoiced, paid, cancelled
    status = Column(String(20), default="tentative", nullable=False)
    response_deadline = Column(Date, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="gigs")
    client = relationship("Client", back_populates="gigs")
    gig_type = relationship("GigType")
    gig_dates = relationship(
        "GigDate", back_populates="gig", cascade="all, delete-orphan", order_by="GigDate.date"
    )


class GigDate(Base):
    __tablename__ = "gig_dates"

    id = Column(Integer, primary_key=True, index=True)
    gig_id = Column(Integer, ForeignKey("gigs.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(Date, nullable=False)
    # Optional timed sessions: [{"start": "10:00", "end": "13:00", "label": "Rep"}]
    sessions = Column(JSON, nullable=True)

    gig = relationship("Gig", back_populates="gig_dates")


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (UniqueConstraint("user_id", "invoice_number", name="uq_invoice_number"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False)
    invoice_number = Column(Integer, nullable=False)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    subtotal = Column(Float, nullable=False, default=0)
    vat_rate = Column(Float, nullable=False, default=25)
    vat_amount = Column(Float, nullable=False, default=0)
    total = Column(Float, nullable=False, default=0)
    currency = Column(String(3), default="SEK", nullable=False)
    status = Column(String(20), default="draft", nullable=False)  # draft, sent, overdue, paid
    paid_date = Column(Date, nullable=True)
    imported_from_pdf = Column(Boolean, default=False, nullable=False)
    original_pdf_key = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    client = relationship("Client", back_populates="invoices")
    invoice_lines = relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.sort_order",
    )
    reminders = relationship(
        "InvoiceReminder",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceReminder.reminder_number",
    )


class InvoiceLine(Base):
    __tablename__ = "invoice_lines"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False)
    description = Column(String(500), nullable=False)
    amount = Column(Float, nullable=False)  # quantity * unit_price
    vat_rate = Column(Float, nullable=False, default=25)
    sort_order = Column(Integer, nullable=False, default=1)

    invoice = relationship("Invoice", back_populates="invoice_lines")


class InvoiceReminder(Base):
    __tablename__ = "invoice_reminders"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    sent_to = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    reminder_number = Column(Integer, nullable=False)  # 1 for the first reminder
    created_at = Column(DateTime, server_default=func.now())

    invoice = relationship("Invoice", back_populates="reminders")


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    gig_id = Column(Integer, ForeignKey("gigs.id"), nullable=True)
    date = Column(Date, nullable=False, index=True)
    supplier = Column(String(255), nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), default="SEK", nullable=False)
    amount_base = Column(Float, nullable=True)  # Amount converted to SEK
    category = Column(String(50), default="Övrigt", nullable=False)
    notes = Column(Text, nullable=True)
    attachment_key = Column(String(500), nullable=True)  # R2 key of the receipt
    created_at = Column(DateTime, server_default=func.now())

    gig = relationship("Gig")


class Contract(Base):
    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    contract_number = Column(String(20), unique=True, nullable=False)  # SS-YYYY-NNN
    # draft, sent_to_reviewer, reviewed, sent, viewed, signed, expired, cancelled
    status = Column(String(30), default="draft", nullable=False)
    tier = Column(String(50), nullable=False)
    annual_price = Column(Float, nullable=False)
    currency = Column(String(3), default="SEK", nullable=False)
    billing_interval = Column(String(20), default="annual", nullable=False)
    vat_rate_pct = Column(Float, default=25, nullable=False)
    contract_start_date = Column(Date, nullable=True)
    duration_months = Column(Integer, default=12, nullable=False)
    custom_terms = Column(JSON, nullable=True)  # {heading: text}
    signer_name = Column(String(255), nullable=False)
    signer_email = Column(String(255), nullable=False)
    signer_title = Column(String(255), nullable=True)
    reviewer_name = Column(String(255), nullable=True)
    reviewer_email = Column(String(255), nullable=True)
    # Documents: unsigned PDF and its hash, then the signed PDF derived from it
    unsigned_pdf_path = Column(String(500), nullable=True)
    document_hash_sha256 = Column(String(64), nullable=True)
    signed_pdf_path = Column(String(500), nullable=True)
    signed_document_hash_sha256 = Column(String(64), nullable=True)
    signature_image_path = Column(String(500), nullable=True)
    # Tokens for public review/sign pages
    signing_token = Column(String(64), unique=True, nullable=True, index=True)
    token_expires_at = Column(DateTime, nullable=True)
    reviewer_token = Column(String(64), unique=True, nullable=True, index=True)
    reviewer_token_expires_at = Column(DateTime, nullable=True)
    signer_ip = Column(String(64), nullable=True)
    signer_user_agent = Column(String(500), nullable=True)
    sent_at = Column(DateTime, nullable=True)
    viewed_at = Column(DateTime, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    audit_events = relationship(
        "ContractAudit",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ContractAudit.id",
    )


class ContractAudit(Base):
    __tablename__ = "contract_audit"

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False)
    event_type = Column(String(30), nullable=False)
    actor_email = Column(String(255), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    document_hash_sha256 = Column(String(64), nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    contract = relationship("Contract", back_populates="audit_events")


class ApiKey(Base):
    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    key_hash = Column(String(64), unique=True, nullable=False, index=True)  # sha256 hex
    key_prefix = Column(String(16), nullable=False)  # First chars, for display
    scopes = Column(JSON, default=list, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="api_keys")


class AiUsageLog(Base):
    __tablename__ = "ai_usage_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    usage_type = Column(String(50), nullable=False)
    model = Column(String(100), nullable=False)
    input_tokens = Column(Integer, default=0, nullable=False)
    output_tokens = Column(Integer, default=0, nullable=False)
    estimated_cost_usd = Column(Float, default=0, nullable=False)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class ActivityEvent(Base):
    __tablename__ = "activity_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)  # gig_created, expense_scanned, ...
    entity_type = Column(String(30), nullable=True)
    entity_id = Column(String(64), nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class UsageTracking(Base):
    __tablename__ = "usage_tracking"
    __table_args__ = (UniqueConstraint("user_id", "period", name="uq_usage_period"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    period = Column(String(7), nullable=False)  # YYYY-MM
    invoices_created = Column(Integer, default=0, nullable=False)
    receipt_scans = Column(Integer, default=0, nullable=False)


class DropboxConnection(Base):
    __tablename__ = "dropbox_connections"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    account_id = Column(String(255), nullable=True)
    access_token_encrypted = Column(Text, nullable=False)
    refresh_token_encrypted = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
