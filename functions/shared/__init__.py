# Shared utilities package
from .constants import FREE_TIER_CREDITS, PRO_TIER_CREDITS
from .errors import APIError, EntitlementError
from .response_utils import error_response, success_response

__all__ = [
    "FREE_TIER_CREDITS",
    "PRO_TIER_CREDITS",
    "APIError",
    "EntitlementError",
    "error_response",
    "success_response",
]
