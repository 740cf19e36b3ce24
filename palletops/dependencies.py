from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from palletops.services.results import (
    ConcurrentModification,
    InvalidTransition,
    NoEligibleOrder,
    NotFound,
    QuantityExceeded,
    is_rejection,
)

REJECTION_STATUS_CODES = {
    NotFound: 404,
    QuantityExceeded: 409,
    InvalidTransition: 409,
    ConcurrentModification: 409,
    NoEligibleOrder: 422,
}


def get_actor(request: Request) -> str | None:
    actor = request.headers.get('x-actor', '').strip()
    if actor:
        return actor
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def unwrap(db: Session, result):
    """Return a successful result, or roll back and raise the rejection as an HTTP error."""
    if is_rejection(result):
        db.rollback()
        raise HTTPException(status_code=REJECTION_STATUS_CODES[type(result)], detail=result.as_dict())
    return result
