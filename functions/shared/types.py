"""
Shared Type Definitions for Lambda Handlers.

TypedDict definitions for API response bodies.
"""

from typing import Optional, TypedDict


class CreditStatus(TypedDict, total=False):
    """Entitlement read returned by GET /credits."""

    total: int
    used: int
    remaining: int
    nextBillingDate: Optional[str]
    nextCreditRenewal: Optional[str]
    membership: str
    error: str


class ClaimResult(TypedDict, total=False):
    """Outcome of POST /account/claim."""

    success: bool
    source: str
    error: str


class CheckoutSessionResponse(TypedDict, total=False):
    """Checkout session created for the caller."""

    checkoutUrl: str
    sessionId: Optional[str]
    planDuration: str
    token: str
