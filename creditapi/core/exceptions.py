from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class BaseAPIException(HTTPException):
    """Base exception for API errors"""
    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}

        super().__init__(
            status_code=status_code,
            detail={
                "success": False,
                "error": {
                    "code": error_code,
                    "message": message,
                    "details": self.details
                }
            }
        )

    def __str__(self) -> str:  # Ensure str(e) returns the human message
        return self.message


class AuthenticationError(BaseAPIException):
    """Authentication related errors"""
    def __init__(self, message: str = "Authentication failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="AUTH_001",
            message=message,
            details=details
        )


class UnauthorizedError(BaseAPIException):
    """Caller is authenticated but lacks the required privilege"""
    def __init__(self, message: str = "Admin access required", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="AUTH_002",
            message=message,
            details=details
        )


class LedgerValidationError(BaseAPIException):
    """Validation errors (bad kind, description, filters)"""
    def __init__(self, message: str = "Validation failed", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_001",
            message=message,
            details=details
        )


class InvalidAmountError(BaseAPIException):
    """Zero, non-integer or over-ceiling amount"""
    def __init__(self, message: str = "Invalid credit amount", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="CREDITS_INVALID_AMOUNT",
            message=message,
            details=details
        )


class UserNotFoundError(BaseAPIException):
    """No balance row exists for the user"""
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="CREDITS_USER_NOT_FOUND",
            message=f"No credit balance for user {user_id}",
            details={"user_id": user_id}
        )


class InsufficientCreditsError(BaseAPIException):
    """Deduction would drive the balance below zero"""
    def __init__(self, current_balance: int, required: int):
        self.current_balance = current_balance
        self.required = required
        self.deficit = required - current_balance
        super().__init__(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            error_code="CREDITS_INSUFFICIENT",
            message=f"Insufficient credits. Required: {required}, available: {current_balance}",
            details={
                "current_balance": current_balance,
                "required": required,
                "deficit": self.deficit,
            }
        )


class IdempotencyConflictError(BaseAPIException):
    """Idempotency key reused for a different operation"""
    def __init__(self, idempotency_key: str, details: Optional[Dict] = None):
        self.idempotency_key = idempotency_key
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code="CREDITS_IDEMPOTENCY_CONFLICT",
            message=f"Idempotency key {idempotency_key} was already used for a different operation",
            details={"idempotency_key": idempotency_key, **(details or {})}
        )


class StorageError(BaseAPIException):
    """Underlying store unavailable or in conflict; safe to retry after re-querying"""
    def __init__(self, message: str = "Credit store unavailable", details: Optional[Dict] = None):
        details = {"retryable": True, **(details or {})}
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="STORAGE_001",
            message=message,
            details=details
        )


class InternalServerError(BaseAPIException):
    """Internal server errors"""
    def __init__(self, message: str = "Internal server error", details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="INTERNAL_001",
            message=message,
            details=details
        )


class ReconciliationPartialFailure(Exception):
    """One step of a reconciliation or a best-effort audit write failed.

    Never raised to API callers; recorded in reports and warnings instead.
    """

    def __init__(self, user_id: Optional[str], reason: str):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"user={user_id}: {reason}")
