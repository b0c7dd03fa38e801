from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Annotated, Callable, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from marketplace.database import SessionLocal
from marketplace.models import ROLE_CUSTOMER, ROLE_LENDER, User


API_KEY_HEADER = "X-API-Key"

PASSWORD_ITERATIONS = 240_000

ROLE_REQUIRED = {
    ROLE_LENDER: "Lender account required",
    ROLE_CUSTOMER: "Customer account required",
}


def generate_api_key() -> str:
    return secrets.token_urlsafe(24)


def hash_password(password: str) -> str:
    """Salted PBKDF2-SHA256, stored as ``iterations$salt$digest``."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), bytes.fromhex(salt), PASSWORD_ITERATIONS
    )
    return f"{PASSWORD_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    if not stored:
        return False
    iterations, salt, expected = stored.split("$")
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), bytes.fromhex(salt), int(iterations)
    )
    return hmac.compare_digest(digest.hex(), expected)


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    x_api_key: Annotated[Optional[str], Header(alias=API_KEY_HEADER)] = None,
    db: Session = Depends(get_db),
) -> User:
    if not x_api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")
    user = db.query(User).filter(User.api_key == x_api_key).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    return user


def require_role(role: str) -> Callable[..., User]:
    """Dependency that authenticates the caller and insists on ``role``."""

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != role:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ROLE_REQUIRED[role])
        return current_user

    return dependency


get_current_lender = require_role(ROLE_LENDER)
get_current_customer = require_role(ROLE_CUSTOMER)
