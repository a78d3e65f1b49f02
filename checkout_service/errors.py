"""
errors.py — Error Types for the Checkout Flow

Every error raised by the core carries a human-readable message that the
cart page can show as-is. The HTTP layer maps `status_code` onto the
response it sends back.
"""


class CheckoutError(Exception):
    """Base class for user-facing checkout failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PreconditionError(CheckoutError):
    """Rejected before any network call (empty cart, no shipping option, ...)."""

    status_code = 400


class ServiceError(CheckoutError):
    """An external collaborator failed during a checkout step."""

    status_code = 502


class ApiError(Exception):
    """
    Raised by the HTTP clients when a collaborator answers with an error.

    Attributes:
        message (str): Message extracted from the response body.
        status_code (int | None): HTTP status, or None if the request was never sent.
    """

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
