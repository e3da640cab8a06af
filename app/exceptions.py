# app/exceptions.py

"""
Exceções do fluxo de assinatura.

Cada exceção carrega um ``code`` no formato das funções "callable"
(``not-found``, ``permission-denied``...), que é o que o navegador recebe.
As mensagens destas exceções podem chegar ao signatário anônimo, então
não devem conter caminhos internos nem IDs além do requestId.
"""

from typing import List, Optional
from fastapi import HTTPException, status


class SigningBaseException(Exception):
    """Base exception for all signing workflow errors."""
    code = "internal"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidArgument(SigningBaseException):
    """Raised when a callable request is missing parameters."""
    code = "invalid-argument"
    http_status = status.HTTP_400_BAD_REQUEST


class EnvelopeNotFound(SigningBaseException):
    """Raised when (companyId, requestId) does not resolve to an envelope."""
    code = "not-found"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Document not found or link is invalid."):
        super().__init__(message)


class PermissionDenied(SigningBaseException):
    """Raised when the access token does not match the envelope."""
    code = "permission-denied"
    http_status = status.HTTP_403_FORBIDDEN

    def __init__(self):
        super().__init__("Invalid access token.")


class AlreadySigned(SigningBaseException):
    """Raised on read when the envelope was already sealed."""
    code = "failed-precondition"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self):
        super().__init__("This document has already been signed.")


class SubmissionConflict(SigningBaseException):
    """Raised when a second submission hits a signed or sealing envelope."""
    code = "already-exists"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self):
        super().__init__("This document has already been submitted.")


class SigningValidationError(SigningBaseException):
    """Raised when required fields are missing or values have the wrong shape."""
    code = "invalid-argument"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, missing_fields: List[str], invalid_fields: Optional[List[str]] = None):
        self.missing_fields = missing_fields
        self.invalid_fields = invalid_fields or []
        msg = "Please complete all required fields."
        if self.invalid_fields and not self.missing_fields:
            msg = "Some fields have invalid values."
        super().__init__(
            msg,
            {"missingFields": self.missing_fields, "invalidFields": self.invalid_fields}
        )


class RateLimited(SigningBaseException):
    """Raised when too many submissions hit the same envelope."""
    code = "resource-exhausted"
    http_status = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self):
        super().__init__("Too many attempts. Please wait.")


class SealingFailure(SigningBaseException):
    """Raised when the sealed artifact could not be produced or stored."""
    code = "internal"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self):
        super().__init__("The document could not be sealed. Please try again.")


class EnvelopeStateError(SigningBaseException):
    """Raised when a company-side lifecycle transition is not allowed."""
    code = "failed-precondition"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, request_id: str, current_state: str, attempted_action: str):
        msg = f"Cannot {attempted_action} envelope {request_id} while it is {current_state}"
        super().__init__(
            msg,
            {"request_id": request_id, "current_state": current_state, "attempted_action": attempted_action}
        )


def callable_error_body(exc: SigningBaseException) -> dict:
    """
    Corpo de erro no formato das funções callable:
    {"error": {"status": "NOT_FOUND", "message": "...", "details": {...}}}
    """
    body = {
        "status": exc.code.upper().replace("-", "_"),
        "message": exc.message,
    }
    if exc.details:
        body["details"] = exc.details
    return {"error": body}


def convert_to_http_exception(exc: SigningBaseException) -> HTTPException:
    """
    Convert a SigningBaseException to an HTTPException for the company-side routes.

    Args:
        exc: The signing exception to convert

    Returns:
        HTTPException with the status code of the exception class
    """
    return HTTPException(
        status_code=exc.http_status,
        detail={"code": exc.code, "message": exc.message, "details": exc.details}
    )
