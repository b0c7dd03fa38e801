from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from marketplace.auth import get_current_lender, get_db
from marketplace.models import TermSet, User
from marketplace.schemas import TermSetCreate, TermSetOut, TermSetUpdate

router = APIRouter()


def get_own_term_set(term_set_id: int, lender: User, db: Session) -> TermSet:
    term_set = db.query(TermSet).filter(TermSet.id == term_set_id).first()
    if not term_set or term_set.vendor_id != lender.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Terms set not found")
    return term_set


@router.post("/", response_model=TermSetOut, status_code=status.HTTP_201_CREATED)
def create_term_set(
    payload: TermSetCreate,
    current_user: User = Depends(get_current_lender),
    db: Session = Depends(get_db),
):
    term_set = TermSet(vendor_id=current_user.id, **payload.model_dump())
    db.add(term_set)
    db.commit()
    db.refresh(term_set)
    return term_set


@router.get("/", response_model=List[TermSetOut])
def list_term_sets(current_user: User = Depends(get_current_lender), db: Session = Depends(get_db)):
    return (
        db.query(TermSet)
        .filter(TermSet.vendor_id == current_user.id)
        .order_by(TermSet.category.asc(), TermSet.id.asc())
        .all()
    )


@router.patch("/{term_set_id}", response_model=TermSetOut)
def update_term_set(
    term_set_id: int,
    payload: TermSetUpdate,
    current_user: User = Depends(get_current_lender),
    db: Session = Depends(get_db),
):
    term_set = get_own_term_set(term_set_id, current_user, db)
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(term_set, field, value)
    db.commit()
    db.refresh(term_set)
    return term_set


@router.delete("/{term_set_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_term_set(
    term_set_id: int,
    current_user: User = Depends(get_current_lender),
    db: Session = Depends(get_db),
):
    term_set = get_own_term_set(term_set_id, current_user, db)
    db.delete(term_set)
    db.commit()
