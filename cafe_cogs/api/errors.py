"""Translate engine exceptions into HTTP errors."""

import logging

from fastapi import HTTPException, status

from cafe_cogs.core.exceptions import (
    BaseUnitLockedError,
    CogsError,
    DuplicateCodeError,
    DuplicateRecipeLineError,
    NotFoundError,
    StockPersistenceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_CONFLICTS = (DuplicateCodeError, DuplicateRecipeLineError, BaseUnitLockedError)


def http_error(exc: CogsError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, _CONFLICTS):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, StockPersistenceError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stock storage is unavailable, please retry",
        )
    logger.error(f"Unmapped engine error: {exc}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
