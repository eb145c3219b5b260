"""
Module: bizbooks_kernel.db.types
Responsibility: Annotated column aliases for the ORM models.
Architecture position: Kernel > DB.

Invariants enforced:
    - Money and Quantity are Numeric(38, 9) Decimals.  No floats anywhere.

The rounding helpers live in bizbooks_kernel.domain.money and are
re-exported here for model code.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

from bizbooks_kernel.domain.money import (  # noqa: F401
    MONEY_TOLERANCE,
    ZERO,
    is_within_tolerance,
    round_money,
    to_decimal,
)

# 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Stock quantities share monetary precision (fractional units allowed)
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Percent rate, e.g. Decimal("18") for 18%
Percent = Annotated[Decimal, Numeric(9, 4)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]
