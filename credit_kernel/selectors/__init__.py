"""Read-only query selectors."""

from credit_kernel.selectors.base import BaseSelector
from credit_kernel.selectors.claim_selector import ClaimSelector
from credit_kernel.selectors.credit_selector import CreditSelector

__all__ = [
    "BaseSelector",
    "ClaimSelector",
    "CreditSelector",
]
