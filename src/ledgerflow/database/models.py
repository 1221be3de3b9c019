"""SQLAlchemy models for the ledgerflow database."""

import uuid
from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    JSON,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


def new_id() -> str:
    """Generate a document-style record id."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


class LedgerAccount(Base):
    """Chart of accounts node."""

    __tablename__ = "ledger_accounts"

    id = Column(String(32), primary_key=True, default=new_id)
    code = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Relation(Base):
    """Client, supplier or partner."""

    __tablename__ = "relations"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    kind = Column(String, nullable=False)
    segment_settings = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Box(Base):
    """Cash box or bank account."""

    __tablename__ = "boxes"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String, unique=True, nullable=False)
    currency = Column(String(3), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class SequenceCounter(Base):
    """Last issued number per voucher prefix."""

    __tablename__ = "sequence_counters"

    prefix = Column(String, primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class Setting(Base):
    """Application settings document."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=False)


class JournalVoucher(Base):
    """Journal voucher header."""

    __tablename__ = "journal_vouchers"

    id = Column(String(32), primary_key=True, default=new_id)
    invoice_number = Column(String, nullable=False, index=True)
    source_type = Column(String, nullable=False)
    source_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    currency = Column(String(3), nullable=False)
    description = Column(String, nullable=False, default="")
    officer = Column(String, nullable=False)
    created_by = Column(String, nullable=False)
    status = Column(String, nullable=False, default="active")
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(String, nullable=True)
    delete_reason = Column(String, nullable=True)
    restored_at = Column(DateTime, nullable=True)
    restored_by = Column(String, nullable=True)
    reversed_voucher_id = Column(String(32), nullable=True)
    idempotency_key = Column(String, nullable=True, unique=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    lines = relationship(
        "VoucherLine",
        back_populates="voucher",
        cascade="all, delete-orphan",
        order_by="VoucherLine.position",
    )


class VoucherLine(Base):
    """Debit or credit line of a journal voucher."""

    __tablename__ = "voucher_lines"

    id = Column(Integer, primary_key=True)
    voucher_id = Column(String(32), ForeignKey("journal_vouchers.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    side = Column(String(6), nullable=False)
    account_id = Column(String, nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    description = Column(String, nullable=False, default="")

    # Relationships
    voucher = relationship("JournalVoucher", back_populates="lines")


class DeletedVoucher(Base):
    """Deleted log: snapshot of a soft-deleted voucher."""

    __tablename__ = "deleted_vouchers"

    voucher_id = Column(String(32), primary_key=True)
    snapshot = Column(JSON, nullable=False)
    deleted_at = Column(DateTime, nullable=False)
    deleted_by = Column(String, nullable=False)
    delete_reason = Column(String, nullable=True)


class SegmentPeriod(Base):
    """Grouping record for segment entries entered together."""

    __tablename__ = "segment_periods"

    id = Column(String(32), primary_key=True, default=new_id)
    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=False)
    currency = Column(String(3), nullable=False)
    invoice_number = Column(String, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class SegmentEntry(Base):
    """Profit-sharing record for one company in a period."""

    __tablename__ = "segments"

    id = Column(String(32), primary_key=True, default=new_id)
    period_id = Column(String(32), ForeignKey("segment_periods.id"), nullable=False, index=True)
    client_id = Column(String(32), nullable=False)
    partner_id = Column(String(32), nullable=True)
    partner_shares = Column(JSON, nullable=True)
    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=False)
    currency = Column(String(3), nullable=False)
    tickets = Column(Integer, nullable=False, default=0)
    visas = Column(Integer, nullable=False, default=0)
    hotels = Column(Integer, nullable=False, default=0)
    groups = Column(Integer, nullable=False, default=0)
    pricing_rules = Column(JSON, nullable=False)
    company_split_percent = Column(Numeric(5, 2), nullable=True)
    ticket_profits = Column(Numeric(14, 2), nullable=False)
    other_profits = Column(Numeric(14, 2), nullable=False)
    total = Column(Numeric(14, 2), nullable=False)
    company_share = Column(Numeric(14, 2), nullable=False)
    partner_share = Column(Numeric(14, 2), nullable=False)
    invoice_number = Column(String, nullable=False)
    period_invoice_number = Column(String, nullable=False)
    entered_by = Column(String, nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Subscription(Base):
    """Subscription sale."""

    __tablename__ = "subscriptions"

    id = Column(String(32), primary_key=True, default=new_id)
    client_id = Column(String(32), nullable=False)
    supplier_id = Column(String(32), nullable=False)
    box_id = Column(String(32), nullable=True)
    service_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(14, 2), nullable=False)
    purchase_price = Column(Numeric(14, 2), nullable=False)
    discount = Column(Numeric(14, 2), nullable=False, default=0)
    sale_price = Column(Numeric(14, 2), nullable=False)
    profit = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    purchase_date = Column(Date, nullable=False)
    start_date = Column(Date, nullable=False)
    number_of_installments = Column(Integer, nullable=False)
    paid_amount = Column(Numeric(14, 2), nullable=False, default=0)
    status = Column(String, nullable=False, default="Active")
    invoice_number = Column(String, nullable=False)
    notes = Column(String, nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    cancellation_date = Column(DateTime, nullable=True)
    cancellation_reason = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    installments = relationship(
        "Installment", back_populates="subscription", cascade="all, delete-orphan"
    )


class Installment(Base):
    """Scheduled installment of a subscription."""

    __tablename__ = "subscription_installments"

    id = Column(String(32), primary_key=True, default=new_id)
    subscription_id = Column(String(32), ForeignKey("subscriptions.id"), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    paid_amount = Column(Numeric(14, 2), nullable=False, default=0)
    discount = Column(Numeric(14, 2), nullable=False, default=0)
    due_date = Column(Date, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String, nullable=False, default="Unpaid")
    paid_at = Column(DateTime, nullable=True)

    # Relationships
    subscription = relationship("Subscription", back_populates="installments")
    payments = relationship("Payment", back_populates="installment", cascade="all, delete-orphan")


class Payment(Base):
    """Payment applied to an installment."""

    __tablename__ = "payments"

    id = Column(String(32), primary_key=True, default=new_id)
    installment_id = Column(
        String(32), ForeignKey("subscription_installments.id"), nullable=False, index=True
    )
    amount = Column(Numeric(14, 2), nullable=False)
    discount = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    date = Column(Date, nullable=False)
    journal_voucher_id = Column(String(32), nullable=False)
    invoice_number = Column(String, nullable=False)
    box_id = Column(String(32), nullable=False)
    paid_by = Column(String, nullable=False)

    # Relationships
    installment = relationship("Installment", back_populates="payments")


class AuditRecord(Base):
    """Audit log entry."""

    __tablename__ = "audit_log"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String, nullable=False)
    user_name = Column(String, nullable=False)
    action = Column(String, nullable=False)
    target_type = Column(String, nullable=False)
    target_id = Column(String, nullable=True)
    description = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


def _use_immediate_transactions(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock when it begins.

    pysqlite defers BEGIN until the first write, so two transactions can read
    the same row before either writes it. Emitting BEGIN IMMEDIATE ourselves
    serialises writers from their first read.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Shared across threads; writers wait on the lock instead of failing
        connect_args = {"check_same_thread": False, "timeout": 30}
    engine = create_engine(database_url, echo=False, connect_args=connect_args)
    if engine.dialect.name == "sqlite":
        _use_immediate_transactions(engine)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
