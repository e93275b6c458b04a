"""SQLAlchemy ORM models for liability, schedule and ledger persistence."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Uuid,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, relationship, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class LiabilityRecord(Base):
    __tablename__ = "liabilities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    title: Mapped[str] = mapped_column(String(255), default="")
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    # Financials
    current_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    original_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    interest_rate_apy: Mapped[Decimal] = mapped_column(Numeric(6, 3), default=0)
    interest_type: Mapped[str] = mapped_column(String(20), default="reducing")
    periodical_payment: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)

    # Dates
    start_date: Mapped[date] = mapped_column(Date)
    targeted_payoff_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="active")

    schedules: Mapped[list["LiabilityScheduleRecord"]] = relationship(
        back_populates="liability",
        cascade="all, delete-orphan",
        order_by="LiabilityScheduleRecord.due_date",
    )

    __mapper_args__ = {"version_id_col": version}


class LiabilityScheduleRecord(Base):
    __tablename__ = "liability_schedules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    liability_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("liabilities.id", ondelete="CASCADE"), index=True)

    due_date: Mapped[date] = mapped_column(Date, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    status: Mapped[str] = mapped_column(String(20), default="pending")

    principal_component: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    interest_component: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    payment_number: Mapped[int] = mapped_column(Integer, default=0)
    total_payments: Mapped[int] = mapped_column(Integer, default=0)
    remaining_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)

    # Audit flags (skipped, original_amount, original_due_date, ...)
    notes: Mapped[dict] = mapped_column(JSON, default=dict)

    liability: Mapped["LiabilityRecord"] = relationship(back_populates="schedules")


class AccountRecord(Base):
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    name: Mapped[str] = mapped_column(String(100))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)

    funds: Mapped[list["AccountFundRecord"]] = relationship(back_populates="account")


class AccountFundRecord(Base):
    """Borrowed money of one liability held inside one account."""
    __tablename__ = "account_funds"
    __table_args__ = (UniqueConstraint("account_id", "liability_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("accounts.id"), index=True)
    liability_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("liabilities.id", ondelete="CASCADE"), index=True)
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)

    account: Mapped["AccountRecord"] = relationship(back_populates="funds")


class LedgerEntryRecord(Base):
    """Audit trail of money movements. Outlives the liability it references."""
    __tablename__ = "ledger_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    liability_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    account_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    kind: Mapped[str] = mapped_column(String(40))
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    entry_date: Mapped[date] = mapped_column(Date)
    description: Mapped[str] = mapped_column(String(255), default="")
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
