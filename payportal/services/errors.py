"""Domain error taxonomy mapped to HTTP responses by the API layer."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration detected at boot or on first use."""


class PaymentPortalError(Exception):
    """Base class for expected, user-facing failures.

    ``status_code`` is the hint the boundary layer uses verbatim and ``code`` is
    the stable public tag. ``message`` never carries internal detail.
    """

    status_code: int = 400
    code: str = "bad_request"
    message: str = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class PolicyError(PaymentPortalError):
    """Step-up and payment transition outcomes."""


class ReauthRequired(PolicyError):
    status_code = 401
    code = "reauth_required"
    message = "Re-authentication required"


class TooManyAttempts(PolicyError):
    status_code = 429
    code = "too_many_attempts"
    message = "Too many re-authentication failures"


class InvalidCredentials(PolicyError):
    status_code = 401
    code = "invalid_credentials"
    message = "Invalid credentials"


class InvalidSecondFactor(InvalidCredentials):
    """Second factor rejected; indistinguishable from a bad password to clients."""


class ConfirmationMismatch(PolicyError):
    status_code = 400
    code = "confirmation_mismatch"
    message = "SWIFT code confirmation does not match"


class InvalidState(PolicyError):
    status_code = 409
    code = "invalid_state"
    message = "Payment is not in a state that allows this action"


class AlreadySent(PolicyError):
    status_code = 409
    code = "already_sent"
    message = "Payment already sent to SWIFT"


class NotFound(PolicyError):
    status_code = 404
    code = "not_found"
    message = "Payment not found"


class RateLimited(PaymentPortalError):
    status_code = 429
    code = "rate_limited"
    message = "Rate limit exceeded"

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class AccountConflict(PaymentPortalError):
    status_code = 409
    code = "conflict"
    message = "Username, ID number, or account number already in use"
