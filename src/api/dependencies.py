from fastapi import Depends, Request
from sqlalchemy.orm import Session

from src.domain.exceptions import (
    PaymentProviderError,
    UnauthenticatedError,
    UnauthorizedError,
)
from src.infrastructure import config
from src.infrastructure.db.session import SessionLocal
from src.infrastructure.identity import HeaderIdentityOracle
from src.infrastructure.payments.razorpay_provider import (
    RazorpayPaymentProvider,
    build_payment_provider,
)


_identity_oracle = HeaderIdentityOracle(admin_user_ids=config.ADMIN_USER_IDS)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_identity_oracle() -> HeaderIdentityOracle:
    return _identity_oracle


def get_payment_provider() -> RazorpayPaymentProvider:
    provider = build_payment_provider()
    if provider is None:
        raise PaymentProviderError(
            "Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
        )
    return provider


def get_current_user_id(
    request: Request,
    oracle: HeaderIdentityOracle = Depends(get_identity_oracle),
) -> str:
    user_id = oracle.resolve(request.headers)
    if not user_id:
        raise UnauthenticatedError("Unauthorized - Please login")
    return user_id


def require_admin(
    user_id: str = Depends(get_current_user_id),
    oracle: HeaderIdentityOracle = Depends(get_identity_oracle),
    db: Session = Depends(get_db),
) -> str:
    if not oracle.is_admin(db, user_id):
        raise UnauthorizedError("not authorized - not admin")
    return user_id


def request_origin(request: Request) -> str:
    return (request.headers.get("origin") or config.PUBLIC_ORIGIN).rstrip("/")
