from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.database import Base


ROLE_CUSTOMER = "customer"
ROLE_LENDER = "lender"

OFFER_ACTIVE = "active"
OFFER_INACTIVE = "inactive"
OFFER_DRAFT = "draft"

LOAN_PENDING = "pending"
LOAN_ACTIVE = "active"
LOAN_REJECTED = "rejected"
LOAN_COMPLETED = "completed"
# derived from the schedule, never stored
LOAN_OVERDUE = "overdue"

CAPITAL_DEPOSIT = "deposit"
CAPITAL_WITHDRAWAL = "withdrawal"
CAPITAL_PENDING = "pending"
CAPITAL_COMPLETED = "completed"


loan_offer_terms = Table(
    "loan_offer_terms",
    Base.metadata,
    Column("offer_id", ForeignKey("loan_offers.id", ondelete="CASCADE"), primary_key=True),
    Column("term_set_id", ForeignKey("terms_sets.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    api_key: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(16), default=ROLE_CUSTOMER)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # customer profile
    monthly_income: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True)
    employment_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # lender profile
    business_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    offers: Mapped[list[LoanOffer]] = relationship(
        "LoanOffer", back_populates="vendor", cascade="all, delete-orphan"
    )

    @property
    def is_lender(self) -> bool:
        return self.role == ROLE_LENDER


class TermSet(Base):
    __tablename__ = "terms_sets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    category: Mapped[str] = mapped_column(String(64), index=True)
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    offers: Mapped[list[LoanOffer]] = relationship(
        "LoanOffer", secondary=loan_offer_terms, back_populates="terms_sets"
    )


class LoanOffer(Base):
    __tablename__ = "loan_offers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    min_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    max_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4))
    term_months: Mapped[int] = mapped_column(Integer)
    custom_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default=OFFER_DRAFT, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    vendor: Mapped[User] = relationship("User", back_populates="offers")
    terms_sets: Mapped[list[TermSet]] = relationship(
        "TermSet", secondary=loan_offer_terms, back_populates="offers"
    )


class DeletedLoanOffer(Base):
    __tablename__ = "deleted_loan_offers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    original_id: Mapped[int] = mapped_column(Integer, index=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    min_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    max_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4))
    term_months: Mapped[int] = mapped_column(Integer)
    custom_terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deletion_reason: Mapped[str] = mapped_column(String(255))
    original_created_at: Mapped[datetime] = mapped_column(DateTime)
    deleted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Loan(Base):
    __tablename__ = "loans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    lender_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    # offers may be deleted after the application, the loan keeps its own terms
    offer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("loan_offers.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    interest_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4))
    term_months: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(16), default=LOAN_PENDING, index=True)
    monthly_payment: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    total_repayment: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    eligible: Mapped[bool] = mapped_column(Boolean, default=False)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    customer: Mapped[User] = relationship("User", foreign_keys=[customer_id])
    lender: Mapped[User] = relationship("User", foreign_keys=[lender_id])
    payments: Mapped[list[LoanPayment]] = relationship(
        "LoanPayment", back_populates="loan", cascade="all, delete-orphan",
        order_by="LoanPayment.id",
    )


class LoanPayment(Base):
    __tablename__ = "loan_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    loan_id: Mapped[int] = mapped_column(ForeignKey("loans.id"), index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    payment_date: Mapped[date] = mapped_column(Date)
    receipt_number: Mapped[str] = mapped_column(String(32), unique=True)

    loan: Mapped[Loan] = relationship("Loan", back_populates="payments")


class VendorCapital(Base):
    __tablename__ = "vendor_capital"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    type: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(16), default=CAPITAL_COMPLETED)
    reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class CustomerRiskAssessment(Base):
    __tablename__ = "customer_risk_assessments"
    __table_args__ = (UniqueConstraint("vendor_id", "customer_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    risk_grade: Mapped[str] = mapped_column(String(1))
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    customer: Mapped[User] = relationship("User", foreign_keys=[customer_id])


class BankAccount(Base):
    __tablename__ = "bank_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    account_holder: Mapped[str] = mapped_column(String(255))
    account_number: Mapped[str] = mapped_column(String(32))
    bank_name: Mapped[str] = mapped_column(String(64))
    branch_code: Mapped[str] = mapped_column(String(16))
    account_type: Mapped[str] = mapped_column(String(16))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class PhysicalAddress(Base):
    __tablename__ = "physical_addresses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    house_number: Mapped[str] = mapped_column(String(16))
    street_name: Mapped[str] = mapped_column(String(255))
    zone_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    suburb_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    town: Mapped[str] = mapped_column(String(255))
    postal_code: Mapped[str] = mapped_column(String(4))
    province: Mapped[str] = mapped_column(String(64), default="Eastern Cape")
    country: Mapped[str] = mapped_column(String(64), default="South Africa")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
