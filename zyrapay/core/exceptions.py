"""
Custom Exceptions

Centralized exception definitions for better error handling.
FastAPI converts these to HTTP responses; the field-scoped ones are
rendered as {"errors": {field: message}} by the handlers in main.py.
"""
from typing import Dict
from fastapi import HTTPException, status


class FieldValidationError(HTTPException):
    """
    Raised when input fails a server-side check.

    Carries one user-facing message per form field.
    """

    def __init__(self, errors: Dict[str, str]):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="The given data was invalid."
        )
        self.errors = errors


class WalletProvisioningError(FieldValidationError):
    """Raised when no wallet could be created for a new tenant."""

    def __init__(self, message: str = "Failed to create wallet. Try again later."):
        super().__init__({"wallet": message})


class RegistrationFailedError(FieldValidationError):
    """
    Raised when persisting a registration fails.

    The message is fixed. The underlying error is logged, never returned.
    """

    def __init__(self, message: str = "Registration failed. Please try again."):
        super().__init__({"register": message})


class WalletProviderError(Exception):
    """Raised by the wallet client when the provider call fails."""
