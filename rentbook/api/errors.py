from fastapi import HTTPException

from rentbook.core.exceptions import (
    ConflictError, LedgerError, NotFoundError, StorageUnavailableError, ValidationError
)

STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    StorageUnavailableError: 503,
}


def http_error(error: LedgerError) -> HTTPException:
    """Translate a ledger error into the HTTP response the routes raise"""
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=500, detail=f"Internal server error: {str(error)}")
