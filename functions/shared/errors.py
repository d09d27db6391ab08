"""
Standardized errors for the API and the reconciliation engine.

APIError subclasses are raised on synchronous request paths and converted to
API Gateway responses. EntitlementError subclasses describe domain outcomes
on the asynchronous webhook path and in the claim flow.
"""

from typing import Optional


class APIError(Exception):
    """Base class for API errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InvalidRequestError(APIError):
    """Raised for malformed input (bad JSON, missing plan id, bad email)."""

    def __init__(self, message: str, code: str = "invalid_request", details: Optional[dict] = None):
        super().__init__(
            code=code,
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Raised when no authenticated account is attached to the request."""

    def __init__(self, message: str = "You must be logged in"):
        super().__init__(
            code="unauthorized",
            message=message,
            status_code=401,
        )


class InsufficientCreditsError(APIError):
    """Raised when a premium action needs more credits than remain."""

    def __init__(self, message: str, remaining: int, required: int):
        super().__init__(
            code="insufficient_credits",
            message=message,
            status_code=402,
            details={"remaining": remaining, "required": required},
        )


class CheckoutProviderError(APIError):
    """Raised when the payment provider rejects a checkout session request."""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(
            code="checkout_failed",
            message=message,
            status_code=502,
            details={"upstream_status": upstream_status} if upstream_status else None,
        )


class InternalError(APIError):
    """Raised for internal server errors."""

    def __init__(self, message: str = "An internal error occurred"):
        super().__init__(
            code="internal_error",
            message=message,
            status_code=500,
        )


class EntitlementError(Exception):
    """Base class for reconciliation and claim failures."""


class UnresolvableIdentityError(EntitlementError):
    """An event carries no usable account or email reference."""


class AlreadyClaimedError(EntitlementError):
    """A pending purchase was already claimed by a different account."""

    def __init__(self, email: str):
        self.email = email
        super().__init__("This purchase has already been claimed by another account")


class InvalidClaimTokenError(EntitlementError):
    """The supplied claim token does not match the stored one."""

    def __init__(self):
        super().__init__("Invalid verification token")


class PendingPurchaseNotFoundError(EntitlementError):
    """No pending purchase exists for the email. A normal outcome for most accounts."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(
            "No pending purchase found for this email. "
            "Your purchase may not have been processed yet."
        )


class PersistenceError(EntitlementError):
    """A datastore write failed after exhausting retries."""
