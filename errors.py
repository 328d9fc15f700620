"""Exceptions raised by the price-list layers."""


class PriceListError(Exception):
    """Base class for errors the HTTP layer maps to a response envelope."""

    status_code = 500


class ValidationError(PriceListError):
    """A record failed a business rule before reaching storage."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class InvalidInputError(PriceListError):
    """A structural precondition (e.g. "payload is a list") was violated."""

    status_code = 400


class PersistenceError(PriceListError):
    """A storage operation failed and its transaction was rolled back."""

    status_code = 500


class AuthError(PriceListError):
    """Missing, malformed, or expired credentials."""

    status_code = 403
