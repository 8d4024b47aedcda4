"""
Module: ledger_kernel.db.types
Responsibility: Column type aliases and the arithmetic helpers that go with
    them.  Amounts are fixed-point with 6 fractional digits (Numeric(20, 6)),
    FX rates carry 10 (Numeric(20, 10)).  No floats anywhere.
Architecture position: Kernel > DB.  Imported by models/, domain/, services/
    and selectors/; imports none of them.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import Numeric, String

Money = Annotated[Decimal, Numeric(20, 6)]
Rate = Annotated[Decimal, Numeric(20, 10)]
Currency = Annotated[str, String(3)]
ShortCode = Annotated[str, String(60)]

MONEY_DECIMAL_PLACES = 6
RATE_DECIMAL_PLACES = 10
DEFAULT_ROUNDING = ROUND_HALF_UP

BALANCE_EPSILON = Decimal("0.000001")
RATE_EPSILON = Decimal("0.0000001")

ZERO = Decimal("0")
ONE = Decimal("1")

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def _quantize(value: Decimal, places: int, rounding: str) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=rounding)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round an amount to column precision. The only sanctioned money rounding."""
    return _quantize(value, decimal_places, rounding)


def round_rate(
    value: Decimal,
    decimal_places: int = RATE_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round an FX rate to column precision."""
    return _quantize(value, decimal_places, rounding)


def amounts_equal(a: Decimal, b: Decimal, epsilon: Decimal = BALANCE_EPSILON) -> bool:
    """True when ``|a - b| <= epsilon``."""
    return abs(Decimal(a) - Decimal(b)) <= epsilon


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce an input value to ``Decimal``.

    Accepts Decimal, int and numeric strings.  Floats are rejected: they
    cannot represent most decimal amounts exactly.

    Raises:
        ValueError: on floats, booleans, non-numeric or non-finite input.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"{field} must be a Decimal, int or numeric string")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"{field} is not numeric: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"{field} must be finite: {value!r}")
    return result


def normalize_currency(code: Any) -> str:
    """Upper-case and check a 3-letter currency code.

    Raises:
        ValueError: if the code is not three ASCII letters.
    """
    normalized = str(code or "").strip().upper()
    if not _CURRENCY_RE.match(normalized):
        raise ValueError(f"Invalid currency code: {code!r}")
    return normalized
