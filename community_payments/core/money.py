"""Currency validation and minor-unit conversion."""
from decimal import Decimal, InvalidOperation
from typing import Iterable, Union

from community_payments.core.errors import ValidationError

# ISO 4217 exponents that differ from the usual two decimals
_CURRENCY_EXPONENTS = {
    "JPY": 0,
    "KRW": 0,
    "XOF": 0,
    "XAF": 0,
    "UGX": 0,
    "RWF": 0,
    "KWD": 3,
    "BHD": 3,
    "JOD": 3,
    "OMR": 3,
    "TND": 3,
}

Amount = Union[Decimal, int, str, float]


def currency_exponent(currency: str) -> int:
    """Number of decimal places in the currency's minor unit."""
    return _CURRENCY_EXPONENTS.get(currency.upper(), 2)


def normalize_currency(currency: str, supported: Iterable[str]) -> str:
    """
    Validate a currency code against the supported list.

    Args:
        currency: Code supplied by the caller
        supported: Accepted upper-case codes

    Returns:
        str: Upper-case currency code

    Raises:
        ValidationError: If the code is malformed or not supported
    """
    code = (currency or "").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError("Currency must be a 3-letter ISO 4217 code")
    if code not in set(supported):
        raise ValidationError(f"Currency {code} is not supported")
    return code


def parse_amount(amount: Amount, currency: str) -> Decimal:
    """
    Parse and validate a major-unit amount.

    Raises:
        ValidationError: If the amount is not a positive number representable
            in the currency's minor unit
    """
    try:
        # str() keeps floats like 50.1 from turning into binary noise
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Amount must be a number")

    if not value.is_finite():
        raise ValidationError("Amount must be a number")
    if value <= 0:
        raise ValidationError("Amount must be positive")

    exponent = currency_exponent(currency)
    if value != value.quantize(Decimal(1).scaleb(-exponent)):
        raise ValidationError(
            f"Amount has more than {exponent} decimal places for {currency.upper()}"
        )
    return value


def to_minor_units(amount: Decimal, currency: str) -> int:
    """Convert a validated major-unit amount to an integer minor-unit amount."""
    return int(amount.scaleb(currency_exponent(currency)))


def from_minor_units(amount_minor: int, currency: str) -> Decimal:
    """Convert a gateway minor-unit amount back to major units."""
    return Decimal(amount_minor).scaleb(-currency_exponent(currency))
