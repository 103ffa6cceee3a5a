"""
Translate service outcomes into HTTP errors.
"""

from typing import Dict

from fastapi import HTTPException

from services.results import ErrorKind, OperationResult

STATUS_FOR_ERROR: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.STORAGE_UNAVAILABLE: 503,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 422,
    ErrorKind.DELIVERY_FAILED: 502,
}


def raise_for_result(result: OperationResult) -> OperationResult:
    """Return a successful result unchanged, otherwise raise the matching HTTPException."""

    if result.success:
        return result
    kind = result.error or ErrorKind.VALIDATION
    raise HTTPException(
        status_code=STATUS_FOR_ERROR[kind],
        detail={"error": kind.value, "message": result.message},
    )


def store_unavailable(error: Exception) -> HTTPException:
    return HTTPException(
        status_code=STATUS_FOR_ERROR[ErrorKind.STORAGE_UNAVAILABLE],
        detail={"error": ErrorKind.STORAGE_UNAVAILABLE.value, "message": str(error)},
    )
