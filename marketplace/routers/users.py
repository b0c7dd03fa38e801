from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from marketplace.auth import generate_api_key, get_current_user, get_db, hash_password, verify_password
from marketplace.models import ROLE_LENDER, BankAccount, PhysicalAddress, User
from marketplace.schemas import (
    AddressCreate,
    AddressOut,
    BankAccountCreate,
    BankAccountOut,
    SessionOut,
    SignIn,
    SignInOut,
    UserCreate,
    UserOut,
)

router = APIRouter()

logger = logging.getLogger(__name__)


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    existing = db.query(User).filter(User.email == payload.email).first()
    if existing:
        raise HTTPException(status_code=400, detail="User with email already exists")
    user = User(
        api_key=generate_api_key(),
        password_hash=hash_password(payload.password),
        **payload.model_dump(exclude={"password"}),
    )
    if user.role == ROLE_LENDER:
        user.monthly_income = None
        user.employment_status = None
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered %s %s", user.role, user.id)
    return user


@router.post("/sign-in", response_model=SignInOut)
def sign_in(payload: SignIn, db: Session = Depends(get_db)):
    """Exchange email and password for the account's current API key"""
    user = db.query(User).filter(User.email == payload.email).first()
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("Failed sign-in for %s", payload.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    return SignInOut(email=user.email, api_key=user.api_key)


@router.get("/me", response_model=SessionOut)
def get_session(current_user: User = Depends(get_current_user)):
    """Current session lookup for the API key in the request"""
    return current_user


@router.post("/me/sign-out", status_code=status.HTTP_204_NO_CONTENT)
def sign_out(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Rotate the caller's key so the one used for this request stops working"""
    current_user.api_key = generate_api_key()
    db.commit()
    logger.info("User %s signed out", current_user.id)


@router.post("/me/bank-accounts", response_model=BankAccountOut, status_code=status.HTTP_201_CREATED)
def add_bank_account(
    payload: BankAccountCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    account = BankAccount(user_id=current_user.id, **payload.model_dump())
    db.add(account)
    db.commit()
    db.refresh(account)
    logger.info("User %s added a %s account", current_user.id, account.bank_name)
    return account


@router.get("/me/bank-accounts", response_model=List[BankAccountOut])
def list_bank_accounts(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return (
        db.query(BankAccount)
        .filter(BankAccount.user_id == current_user.id)
        .order_by(BankAccount.id.asc())
        .all()
    )


@router.post("/me/addresses", response_model=AddressOut, status_code=status.HTTP_201_CREATED)
def add_address(
    payload: AddressCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    address = PhysicalAddress(user_id=current_user.id, **payload.model_dump())
    db.add(address)
    db.commit()
    db.refresh(address)
    return address


@router.get("/me/addresses", response_model=List[AddressOut])
def list_addresses(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return (
        db.query(PhysicalAddress)
        .filter(PhysicalAddress.user_id == current_user.id)
        .order_by(PhysicalAddress.id.asc())
        .all()
    )
