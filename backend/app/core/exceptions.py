"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes, the ledger recalculation error taxonomy
and global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("courier_ledger.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


# Ledger recalculation errors

class LedgerRecalculationError(AppException):
    """
    Failure of one ledger recalculation.

    Every ledger failure reports the account and the pipeline stage
    (lock, collect, resolve, sequence, write) it happened in.
    """

    def __init__(
        self,
        account_type: str,
        account_id: int,
        stage: str,
        message: str = "Ledger recalculation failed",
        error_code: str = "ERR_LEDGER_STAGE_FAILED",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Dict[str, Any] = None,
    ):
        self.account_type = account_type
        self.account_id = account_id
        self.stage = stage
        payload = {"account_type": account_type, "account_id": account_id, "stage": stage}
        payload.update(details or {})
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=payload,
        )


class AccountNotFoundError(LedgerRecalculationError):
    """Raised when the vendor/customer account does not exist."""

    def __init__(self, account_type: str, account_id: int):
        super().__init__(
            account_type=account_type,
            account_id=account_id,
            stage="collect",
            message=f"{account_type.capitalize()} with ID {account_id} not found",
            error_code="ERR_LEDGER_ACCOUNT_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
        )


class InvalidTransactionStateError(LedgerRecalculationError):
    """Raised when ledger rows violate a data-integrity rule."""

    def __init__(self, account_type: str, account_id: int, stage: str, message: str, details: Dict[str, Any] = None):
        super().__init__(
            account_type=account_type,
            account_id=account_id,
            stage=stage,
            message=message,
            error_code="ERR_LEDGER_INVALID_STATE",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class PersistenceFailureError(LedgerRecalculationError):
    """Raised when writing recalculated balances fails."""

    def __init__(self, account_type: str, account_id: int, message: str = "Failed to persist recalculated balances"):
        super().__init__(
            account_type=account_type,
            account_id=account_id,
            stage="write",
            message=message,
            error_code="ERR_LEDGER_PERSISTENCE",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class ConcurrentRecalculationError(LedgerRecalculationError):
    """Raised when another recalculation holds the account lock."""

    def __init__(self, account_type: str, account_id: int):
        super().__init__(
            account_type=account_type,
            account_id=account_id,
            stage="lock",
            message="A recalculation for this account is already running",
            error_code="ERR_LEDGER_CONCURRENT",
            status_code=status.HTTP_409_CONFLICT,
            details={"retryable": True},
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Strip non-serializable context (e.g. Decimal or exception objects) from pydantic errors."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(
        "Unhandled exception",
        extra={"path": request.url.path, "error_type": type(exc).__name__},
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
