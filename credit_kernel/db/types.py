"""
Module: credit_kernel.db.types
Responsibility: Annotated column type aliases shared by every model so that
    monetary amounts, identity strings and free text have identical storage
    definitions system-wide.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    services/, or selectors/.

CRITICAL: No floats anywhere in the credit kernel.  All monetary amounts use
    Decimal stored as Numeric(38, 9).
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Line-item quantity (fractional units allowed)
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Opaque identity issued by the external identity provider
ExternalId = Annotated[str, String(128)]

# Short enum-backed status strings
StatusCode = Annotated[str, String(20)]

# Long text for descriptions, reasons and notes
LongText = Annotated[str, String(4000)]
