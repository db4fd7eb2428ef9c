"""
Money and Currency Module

Decimal-backed money values for loan principal, installments and overdue
figures. Float is never used for monetary values; every amount is rounded to
the precision of its currency.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union
import re

getcontext().prec = 28

# Scientific notation such as "1e3" or "-1.5E+2"
SCIENTIFIC_PATTERN = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)[eE][+-]?\d+$')


class Currency(Enum):
    """ISO 4217 currency codes with minor-unit precision"""
    INR = ("INR", 2)  # Indian Rupee
    USD = ("USD", 2)
    EUR = ("EUR", 2)
    GBP = ("GBP", 2)
    JPY = ("JPY", 0)

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


@dataclass(frozen=True)
class Money:
    """
    Immutable money value in a single currency.

    The amount is quantized to the currency precision on construction, so
    ``Money(Decimal('1000.005'), Currency.INR).amount == Decimal('1000.01')``.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        try:
            rounded = self.amount.quantize(
                Decimal('0.1') ** self.currency.precision,
                rounding=ROUND_HALF_UP
            )
        except InvalidOperation:
            raise ValueError(f"Amount {self.amount} is out of range for {self.currency.code}")
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: Currency) -> 'Money':
        return cls(Decimal('0'), currency)

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Union[Decimal, int]) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier, self.currency)

    __rmul__ = __mul__

    def __truediv__(self, divisor: Union[Decimal, int]) -> 'Money':
        if not isinstance(divisor, Decimal):
            divisor = Decimal(str(divisor))
        return Money(self.amount / divisor, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency.code))

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display, e.g. ``INR 1,100.00``"""
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"


def sum_money(values: Iterable[Money], currency: Currency) -> Money:
    """Sum money values, returning zero in ``currency`` for an empty iterable"""
    total = Money.zero(currency)
    for value in values:
        total = total + value
    return total


def decimal_from_string(value: Union[str, int, float, Decimal]) -> Decimal:
    """
    Convert a user supplied amount to Decimal.

    Accepts plain numbers as well as strings with currency symbols or
    thousands separators ("₹12,000.50"), and bare scientific notation ("1e3").

    Raises:
        ValueError: If the value is empty or not numeric
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Amount must be numeric")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if not value or not isinstance(value, str):
        raise ValueError("Amount must be a non-empty string")

    stripped = value.strip()
    if SCIENTIFIC_PATTERN.match(stripped):
        clean_value = stripped
    elif re.search(r'\d[eE][+-]?\d', stripped):
        raise ValueError(f"Cannot convert '{value}' to Decimal")
    else:
        clean_value = re.sub(r'[^\d.,\-+]', '', stripped)
    # Commas are thousands separators in the amounts this system handles
    clean_value = clean_value.replace(',', '')

    try:
        result = Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")
    if not result.is_finite():
        raise ValueError(f"Cannot convert '{value}' to Decimal")
    return result
