from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from marketplace.amortization import Schedule, schedule_for, to_money
from marketplace.auth import get_current_customer, get_current_lender, get_current_user, get_db
from marketplace.config import Settings, get_settings
from marketplace.models import (
    LOAN_ACTIVE,
    LOAN_COMPLETED,
    LOAN_PENDING,
    LOAN_REJECTED,
    OFFER_ACTIVE,
    Loan,
    LoanOffer,
    LoanPayment,
    User,
)
from marketplace.schemas import (
    LoanApply,
    LoanDecision,
    LoanOut,
    LoanStatus,
    LoanSummary,
    PaymentCreate,
    PaymentOut,
    RepaymentProgress,
    ScheduleOut,
)
from marketplace.services import (
    billed_installment,
    billed_total,
    check_eligibility,
    generate_receipt_number,
    loan_terms_for,
    progress_to_out,
    repayment_progress,
    schedule_to_out,
    summary_to_out,
    validate_quote_request,
)

router = APIRouter()

logger = logging.getLogger(__name__)


def get_accessible_loan(loan_id: int, user: User, db: Session, for_update: bool = False) -> Loan:
    query = db.query(Loan).filter(Loan.id == loan_id)
    if for_update:
        query = query.with_for_update()
    loan = query.first()
    if not loan or user.id not in (loan.customer_id, loan.lender_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Loan not found")
    return loan


def loan_schedule(loan: Loan, start_date: Optional[date] = None) -> Schedule:
    # Pending loans have no origination date yet, preview them from today
    start = start_date or loan.start_date or date.today()
    return schedule_for(loan_terms_for(loan), start)


def amount_paid(loan: Loan, db: Session) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(LoanPayment.amount), 0))
        .filter(LoanPayment.loan_id == loan.id)
        .scalar()
    )
    return to_money(Decimal(str(total)))


@router.post("/", response_model=LoanOut, status_code=status.HTTP_201_CREATED)
def apply_for_loan(
    payload: LoanApply,
    current_user: User = Depends(get_current_customer),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    offer = db.query(LoanOffer).filter(LoanOffer.id == payload.offer_id).first()
    if not offer:
        raise HTTPException(status_code=404, detail="Loan offer not found")
    if offer.status != OFFER_ACTIVE:
        raise HTTPException(status_code=400, detail="This loan offer is no longer active")

    validate_quote_request(offer, payload.amount, payload.term_months)
    terms = loan_terms_for(offer, amount=payload.amount, term_months=payload.term_months)
    schedule = schedule_for(terms, date.today())
    installment = billed_installment(schedule)
    eligible = check_eligibility(
        current_user.monthly_income,
        current_user.employment_status,
        installment,
        settings.max_payment_to_income,
    )

    loan = Loan(
        customer_id=current_user.id,
        lender_id=offer.vendor_id,
        offer_id=offer.id,
        amount=terms.principal,
        interest_rate=terms.annual_rate_percent,
        term_months=terms.term_months,
        status=LOAN_PENDING,
        monthly_payment=installment,
        total_repayment=billed_total(schedule),
        eligible=eligible,
    )
    db.add(loan)
    db.commit()
    db.refresh(loan)
    logger.info(
        "Customer %s applied for loan %s on offer %s (eligible=%s)",
        current_user.id, loan.id, offer.id, eligible,
    )
    return loan


@router.get("/", response_model=List[LoanOut])
def list_loans(
    status_filter: Optional[LoanStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    # Lenders see loans against their offers, customers their own applications
    if current_user.is_lender:
        query = db.query(Loan).filter(Loan.lender_id == current_user.id)
    else:
        query = db.query(Loan).filter(Loan.customer_id == current_user.id)
    if status_filter:
        query = query.filter(Loan.status == status_filter)
    return query.order_by(Loan.created_at.desc(), Loan.id.desc()).all()


@router.get("/{loan_id}", response_model=LoanOut)
def get_loan(
    loan_id: int = Path(..., gt=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_accessible_loan(loan_id, current_user, db)


@router.post("/{loan_id}/approve", response_model=LoanOut)
def approve_loan(
    loan_id: int = Path(..., gt=0),
    payload: Optional[LoanDecision] = None,
    current_user: User = Depends(get_current_lender),
    db: Session = Depends(get_db),
):
    loan = get_accessible_loan(loan_id, current_user, db)
    if loan.status != LOAN_PENDING:
        raise HTTPException(status_code=400, detail=f"Cannot approve a {loan.status} loan")
    loan.status = LOAN_ACTIVE
    loan.start_date = (payload.start_date if payload else None) or date.today()
    db.commit()
    db.refresh(loan)
    logger.info("Lender %s approved loan %s starting %s", current_user.id, loan.id, loan.start_date)
    return loan


@router.post("/{loan_id}/reject", response_model=LoanOut)
def reject_loan(
    loan_id: int = Path(..., gt=0),
    current_user: User = Depends(get_current_lender),
    db: Session = Depends(get_db),
):
    loan = get_accessible_loan(loan_id, current_user, db)
    if loan.status != LOAN_PENDING:
        raise HTTPException(status_code=400, detail=f"Cannot reject a {loan.status} loan")
    loan.status = LOAN_REJECTED
    db.commit()
    db.refresh(loan)
    logger.info("Lender %s rejected loan %s", current_user.id, loan.id)
    return loan


@router.get("/{loan_id}/schedule", response_model=ScheduleOut)
def get_schedule(
    loan_id: int = Path(..., gt=0),
    start_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    loan = get_accessible_loan(loan_id, current_user, db)
    return schedule_to_out(loan_schedule(loan, start_date))


@router.get("/{loan_id}/summary", response_model=LoanSummary)
def get_summary(
    loan_id: int = Path(..., gt=0),
    month: int = Query(..., gt=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    loan = get_accessible_loan(loan_id, current_user, db)
    if month > loan.term_months:
        raise HTTPException(status_code=400, detail="Month exceeds loan term")
    return summary_to_out(loan_schedule(loan), month)


@router.get("/{loan_id}/progress", response_model=RepaymentProgress)
def get_progress(
    loan_id: int = Path(..., gt=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    loan = get_accessible_loan(loan_id, current_user, db)
    progress = repayment_progress(loan_schedule(loan), amount_paid(loan, db))
    return progress_to_out(loan, progress, date.today())


@router.post("/{loan_id}/payments", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def record_payment(
    payload: PaymentCreate,
    loan_id: int = Path(..., gt=0),
    current_user: User = Depends(get_current_customer),
    db: Session = Depends(get_db),
):
    # Lock the loan row so concurrent payments on it are applied one at a time
    loan = get_accessible_loan(loan_id, current_user, db, for_update=True)
    if loan.status != LOAN_ACTIVE:
        raise HTTPException(status_code=400, detail="Payments are only accepted on active loans")

    total = to_money(Decimal(str(loan.total_repayment)))
    paid = amount_paid(loan, db)
    if paid + payload.amount > total:
        raise HTTPException(
            status_code=400,
            detail=f"Payment exceeds the outstanding balance of {total - paid}",
        )

    payment = LoanPayment(
        loan_id=loan.id,
        customer_id=current_user.id,
        amount=payload.amount,
        payment_date=payload.payment_date or date.today(),
        receipt_number=generate_receipt_number(),
    )
    db.add(payment)
    db.flush()

    # Recheck with this payment flushed, a concurrent payment may have committed since
    paid = amount_paid(loan, db)
    if paid > total:
        db.rollback()
        logger.warning("Loan %s payment of %s refused after recheck", loan_id, payload.amount)
        raise HTTPException(
            status_code=400,
            detail=f"Payment exceeds the outstanding balance of {total - (paid - payload.amount)}",
        )
    if paid == total:
        loan.status = LOAN_COMPLETED
    db.commit()
    db.refresh(payment)
    logger.info(
        "Loan %s received payment %s (receipt %s)", loan.id, payment.amount, payment.receipt_number
    )
    if loan.status == LOAN_COMPLETED:
        logger.info("Loan %s fully repaid", loan.id)
    return payment


@router.get("/{loan_id}/payments", response_model=List[PaymentOut])
def list_payments(
    loan_id: int = Path(..., gt=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    loan = get_accessible_loan(loan_id, current_user, db)
    return (
        db.query(LoanPayment)
        .filter(LoanPayment.loan_id == loan.id)
        .order_by(LoanPayment.payment_date.asc(), LoanPayment.id.asc())
        .all()
    )
