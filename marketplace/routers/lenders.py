from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from marketplace.amortization import to_money
from marketplace.auth import get_current_lender, get_current_user, get_db
from marketplace.models import (
    CAPITAL_WITHDRAWAL,
    LOAN_ACTIVE,
    LOAN_COMPLETED,
    OFFER_ACTIVE,
    ROLE_LENDER,
    CustomerRiskAssessment,
    Loan,
    LoanOffer,
    User,
    VendorCapital,
)
from marketplace.schemas import (
    CapitalCreate,
    CapitalOut,
    CustomerOverview,
    LenderDashboard,
    LenderOut,
    LoanOfferOut,
    RiskAssessmentIn,
    RiskAssessmentOut,
)
from marketplace.services import available_capital, lender_dashboard

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/", response_model=List[LenderOut])
def search_lenders(
    q: Optional[str] = Query(None, min_length=1),
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Lenders with at least one active offer, lowest rate first"""
    query = (
        db.query(
            User,
            func.min(LoanOffer.interest_rate).label("lowest_rate"),
            func.count(LoanOffer.id).label("active_offers"),
        )
        .join(LoanOffer, LoanOffer.vendor_id == User.id)
        .filter(User.role == ROLE_LENDER, LoanOffer.status == OFFER_ACTIVE)
    )
    if q:
        pattern = f"%{q}%"
        query = query.filter(User.business_name.ilike(pattern) | User.address.ilike(pattern))
    if min_rating is not None:
        query = query.filter(User.rating >= min_rating)
    rows = query.group_by(User.id).order_by("lowest_rate", User.id).all()

    return [
        LenderOut(
            id=lender.id,
            business_name=lender.business_name,
            address=lender.address,
            phone=lender.phone,
            email=lender.email,
            rating=lender.rating,
            lowest_rate=lowest_rate,
            active_offers=active_offers,
        )
        for lender, lowest_rate, active_offers in rows
    ]


@router.get("/me/dashboard", response_model=LenderDashboard)
def get_dashboard(current_user: User = Depends(get_current_lender), db: Session = Depends(get_db)):
    loans = db.query(Loan).filter(Loan.lender_id == current_user.id).all()
    offers = db.query(LoanOffer).filter(LoanOffer.vendor_id == current_user.id).all()
    capital = db.query(VendorCapital).filter(VendorCapital.vendor_id == current_user.id).all()
    return lender_dashboard(loans, offers, capital, date.today())


@router.post("/me/capital", response_model=CapitalOut, status_code=status.HTTP_201_CREATED)
def record_capital(
    payload: CapitalCreate,
    current_user: User = Depends(get_current_lender),
    db: Session = Depends(get_db),
):
    """Deposit or withdraw lending capital"""
    if payload.type == CAPITAL_WITHDRAWAL:
        entries = db.query(VendorCapital).filter(VendorCapital.vendor_id == current_user.id).all()
        balance = available_capital(entries)
        if payload.amount > balance:
            raise HTTPException(
                status_code=400, detail=f"Withdrawal exceeds the available capital of {balance}"
            )
    entry = VendorCapital(vendor_id=current_user.id, **payload.model_dump())
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("Lender %s recorded %s of %s", current_user.id, entry.type, entry.amount)
    return entry


@router.get("/me/capital", response_model=List[CapitalOut])
def list_capital(current_user: User = Depends(get_current_lender), db: Session = Depends(get_db)):
    return (
        db.query(VendorCapital)
        .filter(VendorCapital.vendor_id == current_user.id)
        .order_by(VendorCapital.created_at.desc(), VendorCapital.id.desc())
        .all()
    )


@router.get("/me/customers", response_model=List[CustomerOverview])
def list_customers(current_user: User = Depends(get_current_lender), db: Session = Depends(get_db)):
    """Everyone who has applied to this lender, with their risk grade and exposure"""
    loans = db.query(Loan).filter(Loan.lender_id == current_user.id).all()
    grades = {
        assessment.customer_id: assessment.risk_grade
        for assessment in db.query(CustomerRiskAssessment).filter(
            CustomerRiskAssessment.vendor_id == current_user.id
        )
    }

    customers = {}
    for loan in loans:
        customers.setdefault(loan.customer_id, (loan.customer, []))[1].append(loan)

    return [
        CustomerOverview(
            id=customer.id,
            name=customer.name,
            email=customer.email,
            risk_grade=grades.get(customer.id),
            active_loans=sum(1 for loan in their_loans if loan.status == LOAN_ACTIVE),
            total_borrowed=to_money(sum(
                (Decimal(str(loan.amount)) for loan in their_loans
                 if loan.status in (LOAN_ACTIVE, LOAN_COMPLETED)),
                Decimal(0),
            )),
        )
        for customer, their_loans in sorted(customers.values(), key=lambda item: item[0].id)
    ]


@router.put("/me/customers/{customer_id}/risk", response_model=RiskAssessmentOut)
def assess_customer(
    payload: RiskAssessmentIn,
    customer_id: int = Path(..., gt=0),
    current_user: User = Depends(get_current_lender),
    db: Session = Depends(get_db),
):
    """Grade a customer from A (lowest risk) to E; only borrowers of this lender can be graded"""
    has_applied = (
        db.query(Loan.id)
        .filter(Loan.lender_id == current_user.id, Loan.customer_id == customer_id)
        .first()
    )
    if not has_applied:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")

    assessment = (
        db.query(CustomerRiskAssessment)
        .filter(
            CustomerRiskAssessment.vendor_id == current_user.id,
            CustomerRiskAssessment.customer_id == customer_id,
        )
        .first()
    )
    if assessment is None:
        assessment = CustomerRiskAssessment(vendor_id=current_user.id, customer_id=customer_id)
        db.add(assessment)
    assessment.risk_grade = payload.risk_grade
    assessment.notes = payload.notes
    db.commit()
    db.refresh(assessment)
    logger.info("Lender %s graded customer %s as %s", current_user.id, customer_id, assessment.risk_grade)
    return assessment


@router.get("/{lender_id}/offers", response_model=List[LoanOfferOut])
def list_lender_offers(
    lender_id: int = Path(..., gt=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    lender = db.query(User).filter(User.id == lender_id, User.role == ROLE_LENDER).first()
    if not lender:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lender not found")
    return (
        db.query(LoanOffer)
        .filter(LoanOffer.vendor_id == lender.id, LoanOffer.status == OFFER_ACTIVE)
        .order_by(LoanOffer.interest_rate.asc(), LoanOffer.id.asc())
        .all()
    )
