from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, PositiveInt, condecimal, model_validator


Money = condecimal(max_digits=18, decimal_places=2)
Rate = condecimal(max_digits=7, decimal_places=4)  # percentage, e.g. 6.5 means 6.5%

Role = Literal["customer", "lender"]
OfferStatus = Literal["active", "inactive", "draft"]
LoanStatus = Literal["pending", "active", "rejected", "completed"]
CapitalType = Literal["deposit", "withdrawal"]
CapitalStatus = Literal["pending", "completed"]
RiskGrade = Literal["A", "B", "C", "D", "E"]
BankName = Literal[
    "ABSA Bank",
    "Capitec Bank",
    "First National Bank",
    "Nedbank",
    "Standard Bank",
    "African Bank",
    "Bidvest Bank",
    "Discovery Bank",
    "TymeBank",
]
AccountType = Literal["Savings", "Cheque", "Current", "Business"]
TermCategory = Literal[
    "Repayment Terms",
    "Late Payment Fees",
    "Early Settlement",
    "Default Terms",
    "General Conditions",
]


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: Optional[str] = None
    role: Role = "customer"
    monthly_income: Optional[Money] = Field(None, ge=0)
    employment_status: Optional[str] = None
    business_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None

    @model_validator(mode="after")
    def lender_needs_business_name(self) -> UserCreate:
        if self.role == "lender" and not self.business_name:
            raise ValueError("Lenders must provide a business name")
        return self


class UserOut(BaseModel):
    id: int
    email: EmailStr
    name: Optional[str] = None
    role: Role
    api_key: str

    class Config:
        from_attributes = True


class SignIn(BaseModel):
    email: EmailStr
    password: str


class SignInOut(BaseModel):
    email: EmailStr
    api_key: str


class SessionOut(BaseModel):
    id: int
    email: EmailStr
    name: Optional[str] = None
    role: Role
    is_lender: bool
    monthly_income: Optional[Money] = None
    employment_status: Optional[str] = None
    business_name: Optional[str] = None

    class Config:
        from_attributes = True


class LenderOut(BaseModel):
    id: int
    business_name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: EmailStr
    rating: Optional[float] = None
    lowest_rate: Optional[Rate] = None
    active_offers: int


class TermSetCreate(BaseModel):
    name: str = Field(..., min_length=1)
    category: TermCategory
    content: str = Field(..., min_length=1)


class TermSetUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[TermCategory] = None
    content: Optional[str] = Field(None, min_length=1)


class TermSetOut(BaseModel):
    id: int
    vendor_id: int
    name: str
    category: TermCategory
    content: str

    class Config:
        from_attributes = True


class LoanOfferCreate(BaseModel):
    name: str = Field(..., min_length=1)
    min_amount: Money = Field(..., gt=0)
    max_amount: Money = Field(..., gt=0)
    interest_rate: Rate = Field(..., ge=0)
    term_months: PositiveInt
    custom_terms: Optional[str] = None
    status: OfferStatus = "draft"
    terms_set_ids: List[int] = []

    @model_validator(mode="after")
    def amounts_in_order(self) -> LoanOfferCreate:
        if self.min_amount > self.max_amount:
            raise ValueError("min_amount cannot exceed max_amount")
        return self


class LoanOfferUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    min_amount: Optional[Money] = Field(None, gt=0)
    max_amount: Optional[Money] = Field(None, gt=0)
    interest_rate: Optional[Rate] = Field(None, ge=0)
    term_months: Optional[PositiveInt] = None
    custom_terms: Optional[str] = None
    status: Optional[OfferStatus] = None
    terms_set_ids: Optional[List[int]] = None


class LoanOfferOut(BaseModel):
    id: int
    vendor_id: int
    name: str
    min_amount: Money
    max_amount: Money
    interest_rate: Rate
    term_months: PositiveInt
    custom_terms: Optional[str] = None
    status: OfferStatus
    terms_sets: List[TermSetOut] = []

    class Config:
        from_attributes = True


class PaymentPeriodOut(BaseModel):
    index: PositiveInt
    due_date: date
    payment_amount: Money
    principal_portion: Money
    interest_portion: Money
    remaining_balance: Money


class ScheduleOut(BaseModel):
    principal: Money
    annual_rate_percent: Rate
    term_months: PositiveInt
    start_date: date
    monthly_payment: Money
    total_repayment: Money
    total_interest: Money
    periods: List[PaymentPeriodOut]


class QuoteOut(BaseModel):
    offer_id: int
    eligible: Optional[bool] = None
    schedule: ScheduleOut


class LoanApply(BaseModel):
    offer_id: PositiveInt
    amount: Money = Field(..., gt=0)
    term_months: Optional[PositiveInt] = None


class LoanOut(BaseModel):
    id: int
    customer_id: int
    lender_id: int
    offer_id: Optional[int] = None
    amount: Money
    interest_rate: Rate
    term_months: PositiveInt
    status: LoanStatus
    monthly_payment: Money
    total_repayment: Money
    eligible: bool
    start_date: Optional[date] = None

    class Config:
        from_attributes = True


class LoanDecision(BaseModel):
    start_date: Optional[date] = None


class LoanSummary(BaseModel):
    month: PositiveInt
    principal_balance: Money
    total_principal_paid: Money
    total_interest_paid: Money


class PaymentCreate(BaseModel):
    amount: Money = Field(..., gt=0)
    payment_date: Optional[date] = None


class PaymentOut(BaseModel):
    id: int
    loan_id: int
    amount: Money
    payment_date: date
    receipt_number: str

    class Config:
        from_attributes = True


class RepaymentProgress(BaseModel):
    loan_id: int
    status: LoanStatus
    total_repayment: Money
    amount_paid: Money
    outstanding: Money
    periods_paid: int
    next_payment_date: Optional[date] = None
    overdue: bool = False


class LenderDashboard(BaseModel):
    total_loans: int
    pending_loans: int
    active_loans: int
    completed_loans: int
    total_lent: Money
    total_customers: int
    active_offers: int
    overdue_loans: int
    available_capital: Money


class CapitalCreate(BaseModel):
    amount: Money = Field(..., gt=0)
    type: CapitalType
    status: CapitalStatus = "completed"
    reference: Optional[str] = None


class CapitalOut(BaseModel):
    id: int
    amount: Money
    type: CapitalType
    status: CapitalStatus
    reference: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RiskAssessmentIn(BaseModel):
    risk_grade: RiskGrade
    notes: Optional[str] = None


class RiskAssessmentOut(BaseModel):
    customer_id: int
    risk_grade: RiskGrade
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class CustomerOverview(BaseModel):
    id: int
    name: Optional[str] = None
    email: EmailStr
    risk_grade: Optional[RiskGrade] = None
    active_loans: int
    total_borrowed: Money


class BankAccountCreate(BaseModel):
    account_holder: str = Field(..., min_length=1)
    account_number: str = Field(..., pattern=r"^\d{6,16}$")
    bank_name: BankName
    branch_code: str = Field(..., pattern=r"^\d{6}$")
    account_type: AccountType


class BankAccountOut(BankAccountCreate):
    id: int
    user_id: int

    class Config:
        from_attributes = True


class AddressCreate(BaseModel):
    house_number: str = Field(..., min_length=1)
    street_name: str = Field(..., min_length=1)
    zone_name: Optional[str] = None
    suburb_name: Optional[str] = None
    town: str = Field(..., min_length=1)
    postal_code: str = Field(..., pattern=r"^\d{4}$")
    province: str = "Eastern Cape"
    country: str = "South Africa"


class AddressOut(AddressCreate):
    id: int
    user_id: int

    class Config:
        from_attributes = True
