"""Utility functions for the credit kernel."""

from credit_kernel.utils.hashing import (
    canonicalize_json,
    hash_certificate_mapping,
    hash_payload,
)
from credit_kernel.utils.rounding import ZERO, fits_storage_scale, round_credits, to_decimal

__all__ = [
    "ZERO",
    "canonicalize_json",
    "fits_storage_scale",
    "hash_certificate_mapping",
    "hash_payload",
    "round_credits",
    "to_decimal",
]
