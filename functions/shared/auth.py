"""
Authenticated identity for request handlers.

Accounts are issued by an external identity provider and verified by the API
Gateway authorizer; handlers only read the verified claims it attaches to
`requestContext.authorizer`. Supported shapes:

- HTTP API JWT authorizer:  authorizer.jwt.claims.{sub, email}
- REST API Cognito/JWT:     authorizer.claims.{sub, email}
- Lambda authorizer:        authorizer.{principalId, email}
"""

import logging
from dataclasses import dataclass
from typing import Optional

from shared.errors import UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedAccount:
    account_id: str
    email: Optional[str] = None


def get_authenticated_account(event: dict) -> Optional[AuthenticatedAccount]:
    """Return the verified account attached by the authorizer, or None."""
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}

    for claims in (
        (authorizer.get("jwt") or {}).get("claims"),
        authorizer.get("claims"),
    ):
        if isinstance(claims, dict) and claims.get("sub"):
            return AuthenticatedAccount(
                account_id=str(claims["sub"]),
                email=claims.get("email") or None,
            )

    principal_id = authorizer.get("principalId")
    if principal_id:
        return AuthenticatedAccount(
            account_id=str(principal_id),
            email=authorizer.get("email") or None,
        )

    return None


def require_account(event: dict) -> AuthenticatedAccount:
    """Like get_authenticated_account, but raises UnauthorizedError when absent."""
    account = get_authenticated_account(event)
    if account is None:
        logger.info("Request without an authenticated account")
        raise UnauthorizedError()
    return account
