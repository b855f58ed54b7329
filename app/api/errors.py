from fastapi import HTTPException

from app.services.errors import (
    CatalogError,
    DuplicateRuleScope,
    DuplicateVariantConflict,
    EmptyDecisionError,
    InvalidStateTransition,
    NotFoundError,
    OfferConflict,
    ValidationError,
)

STATUS_BY_ERROR: list[tuple[type[CatalogError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (DuplicateVariantConflict, 409),
    (DuplicateRuleScope, 409),
    (InvalidStateTransition, 409),
    (OfferConflict, 409),
    (EmptyDecisionError, 422),
]


def to_http_exception(error: CatalogError) -> HTTPException:
    """도메인 예외 → HTTPException (detail은 error.to_dict())"""
    status_code = next((code for cls, code in STATUS_BY_ERROR if isinstance(error, cls)), 500)
    return HTTPException(status_code=status_code, detail=error.to_dict())
