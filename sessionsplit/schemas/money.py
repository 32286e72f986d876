from decimal import Decimal, InvalidOperation
from typing import Annotated

from pydantic import BeforeValidator, PlainSerializer

from sessionsplit.core.config import settings


def to_minor_units(value) -> int:
    """
    Parse a request amount in whole currency units into the smallest unit.

    ``12.50`` with two currency decimals becomes ``1250``. Amounts with more
    decimal places than the currency has are refused, never rounded.
    """
    if isinstance(value, bool):
        raise ValueError("Amount must be a number")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError("Amount must be a number")
    if not amount.is_finite():
        raise ValueError("Amount must be a number")

    minor = amount.scaleb(settings.CURRENCY_DECIMALS)
    if minor != minor.to_integral_value():
        raise ValueError(
            f"Amount has more than {settings.CURRENCY_DECIMALS} decimal place(s)"
        )
    return int(minor)


def to_major_units(value: int):
    if not settings.CURRENCY_DECIMALS:
        return value
    return float(Decimal(value).scaleb(-settings.CURRENCY_DECIMALS))


# Requests carry decimals, everything behind the schemas is integer minor units
MoneyInput = Annotated[int, BeforeValidator(to_minor_units)]
Money = Annotated[int, PlainSerializer(to_major_units, when_used="json")]
