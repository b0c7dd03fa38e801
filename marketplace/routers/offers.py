from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from marketplace.amortization import schedule_for
from marketplace.auth import get_current_lender, get_current_user, get_db
from marketplace.config import Settings, get_settings
from marketplace.models import (
    OFFER_ACTIVE,
    DeletedLoanOffer,
    Loan,
    LoanOffer,
    TermSet,
    User,
)
from marketplace.schemas import LoanOfferCreate, LoanOfferOut, LoanOfferUpdate, QuoteOut
from marketplace.services import (
    billed_installment,
    check_eligibility,
    loan_terms_for,
    schedule_to_out,
    validate_quote_request,
)

router = APIRouter()

logger = logging.getLogger(__name__)


def get_visible_offer(offer_id: int, user: User, db: Session) -> LoanOffer:
    """Owners see their offers in any state, everyone else only active ones."""
    offer = db.query(LoanOffer).filter(LoanOffer.id == offer_id).first()
    if not offer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Loan offer not found")
    if offer.vendor_id != user.id and offer.status != OFFER_ACTIVE:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Loan offer not found")
    return offer


def get_own_offer(offer_id: int, lender: User, db: Session) -> LoanOffer:
    offer = db.query(LoanOffer).filter(LoanOffer.id == offer_id).first()
    if not offer or offer.vendor_id != lender.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Loan offer not found")
    return offer


def load_term_sets(ids: List[int], lender: User, db: Session) -> List[TermSet]:
    if not ids:
        return []
    term_sets = (
        db.query(TermSet)
        .filter(TermSet.id.in_(ids), TermSet.vendor_id == lender.id)
        .all()
    )
    if len(term_sets) != len(set(ids)):
        raise HTTPException(status_code=400, detail="Unknown terms set")
    return term_sets


@router.post("/", response_model=LoanOfferOut, status_code=status.HTTP_201_CREATED)
def create_offer(
    payload: LoanOfferCreate,
    current_user: User = Depends(get_current_lender),
    db: Session = Depends(get_db),
):
    offer = LoanOffer(
        vendor_id=current_user.id,
        name=payload.name,
        min_amount=payload.min_amount,
        max_amount=payload.max_amount,
        interest_rate=payload.interest_rate,
        term_months=payload.term_months,
        custom_terms=payload.custom_terms,
        status=payload.status,
        terms_sets=load_term_sets(payload.terms_set_ids, current_user, db),
    )
    db.add(offer)
    db.commit()
    db.refresh(offer)
    logger.info("Lender %s created offer %s (%s)", current_user.id, offer.id, offer.status)
    return offer


@router.get("/", response_model=List[LoanOfferOut])
def list_offers(
    amount: Optional[Decimal] = Query(None, gt=0),
    max_rate: Optional[Decimal] = Query(None, ge=0),
    lender_id: Optional[int] = Query(None, gt=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(LoanOffer)
    if current_user.is_lender and lender_id is None:
        # Lenders manage their own offers, newest first
        query = query.filter(LoanOffer.vendor_id == current_user.id)
    else:
        query = query.filter(LoanOffer.status == OFFER_ACTIVE)
        if lender_id is not None:
            query = query.filter(LoanOffer.vendor_id == lender_id)
    if amount is not None:
        query = query.filter(LoanOffer.min_amount <= amount, LoanOffer.max_amount >= amount)
    if max_rate is not None:
        query = query.filter(LoanOffer.interest_rate <= max_rate)
    return query.order_by(LoanOffer.created_at.desc(), LoanOffer.id.desc()).all()


@router.get("/{offer_id}", response_model=LoanOfferOut)
def get_offer(
    offer_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_visible_offer(offer_id, current_user, db)


@router.patch("/{offer_id}", response_model=LoanOfferOut)
def update_offer(
    offer_id: int,
    payload: LoanOfferUpdate,
    current_user: User = Depends(get_current_lender),
    db: Session = Depends(get_db),
):
    offer = get_own_offer(offer_id, current_user, db)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    term_set_ids = changes.pop("terms_set_ids", None)

    min_amount = changes.get("min_amount", offer.min_amount)
    max_amount = changes.get("max_amount", offer.max_amount)
    if min_amount > max_amount:
        raise HTTPException(status_code=400, detail="min_amount cannot exceed max_amount")

    for field, value in changes.items():
        setattr(offer, field, value)
    if term_set_ids is not None:
        offer.terms_sets = load_term_sets(term_set_ids, current_user, db)
    db.commit()
    db.refresh(offer)
    return offer


@router.delete("/{offer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_offer(
    offer_id: int,
    reason: str = Query("Manually deleted by vendor", min_length=1),
    current_user: User = Depends(get_current_lender),
    db: Session = Depends(get_db),
):
    offer = get_own_offer(offer_id, current_user, db)
    db.add(
        DeletedLoanOffer(
            original_id=offer.id,
            vendor_id=offer.vendor_id,
            name=offer.name,
            min_amount=offer.min_amount,
            max_amount=offer.max_amount,
            interest_rate=offer.interest_rate,
            term_months=offer.term_months,
            custom_terms=offer.custom_terms,
            deletion_reason=reason,
            original_created_at=offer.created_at,
        )
    )
    db.query(Loan).filter(Loan.offer_id == offer.id).update({Loan.offer_id: None})
    db.delete(offer)
    db.commit()
    logger.info("Lender %s archived offer %s", current_user.id, offer_id)


@router.get("/{offer_id}/quote", response_model=QuoteOut)
def quote_offer(
    offer_id: int,
    amount: Decimal = Query(..., gt=0),
    term_months: Optional[int] = Query(None, gt=0),
    start_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Repayment schedule for a prospective loan against an offer"""
    offer = get_visible_offer(offer_id, current_user, db)
    validate_quote_request(offer, amount, term_months)
    terms = loan_terms_for(offer, amount=amount, term_months=term_months)
    schedule = schedule_for(terms, start_date or date.today())

    eligible = None
    if not current_user.is_lender:
        eligible = check_eligibility(
            current_user.monthly_income,
            current_user.employment_status,
            billed_installment(schedule),
            settings.max_payment_to_income,
        )
    return QuoteOut(offer_id=offer.id, eligible=eligible, schedule=schedule_to_out(schedule))
