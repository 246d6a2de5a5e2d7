"""
Module: credit_kernel.db.types
Responsibility: Annotated type aliases for credit, hour, hash and text
    columns.  Centralizes precision so that every model uses identical
    column definitions.
Architecture position: Kernel > DB.  May be imported by models/ and
    services/.  MUST NOT import from domain/, services/ or selectors/.

Invariants enforced:
    - Credits and hours are stored as Numeric, never Float.  Conversion and
      rounding live in credit_kernel.utils.rounding.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Credit amounts: 38 digits total, 9 decimal places of storage headroom.
# Values are quantized to CREDIT_DECIMAL_PLACES before they are stored.
Credits = Annotated[Decimal, Numeric(38, 9)]

# Training hours (theory / practical / total)
Hours = Annotated[Decimal, Numeric(38, 9)]

# Monotonic sequence number
Sequence = Annotated[int, BigInteger]

# SHA-256 hash as hex string (64 characters)
ContentHash = Annotated[str, String(64)]

# Umbrella keys, qualification names, statuses
ShortCode = Annotated[str, String(100)]

# Free text (names, reasons, document references)
LongText = Annotated[str, String(4000)]

