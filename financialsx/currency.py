"""
Currency Module

Decimal-backed money values for amounts read from DBF files. Every value is
rounded to cents with ROUND_HALF_UP. NEVER uses float for arithmetic; floats
coming out of numeric DBF fields are converted through their string form.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Iterable, Union
import re

from .exceptions import CurrencyError

# Set global decimal context for financial precision
getcontext().prec = 28

CENT = Decimal('0.01')

Numeric = Union['Currency', Decimal, int, float, str]

_STRIP_CHARS = re.compile(r'[\s$,]')

# Account types as stored in COA.DBF NACCTTYPE
ASSET = 1
LIABILITY = 2
EQUITY = 3
REVENUE = 4
EXPENSE = 5

_CREDIT_NORMAL_TYPES = {LIABILITY, EQUITY, REVENUE}


def _to_decimal(value: Numeric) -> Decimal:
    """Convert a supported value to Decimal without rounding"""
    if isinstance(value, Currency):
        return value.amount
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise CurrencyError(f"Cannot convert boolean {value!r} to currency")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            raise CurrencyError(f"Cannot convert '{value}' to currency")
    raise CurrencyError(f"Unsupported currency value type: {type(value).__name__}")


@dataclass(frozen=True)
class Currency:
    """
    Immutable two-decimal money value.

    Arithmetic results are rounded back to cents, so repeated additions of
    cent-exact values never drift.
    """
    amount: Decimal = Decimal('0.00')

    def __post_init__(self):
        amount = _to_decimal(self.amount)
        if not amount.is_finite():
            raise CurrencyError(f"Currency value must be finite, got {amount}")
        try:
            amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise CurrencyError(f"Currency value out of range: {amount}")
        object.__setattr__(self, 'amount', amount)

    # Constructors

    @classmethod
    def zero(cls) -> 'Currency':
        return cls(Decimal('0'))

    @classmethod
    def from_cents(cls, cents: int) -> 'Currency':
        """Build a value from an integer number of cents"""
        if isinstance(cents, bool) or not isinstance(cents, int):
            raise CurrencyError("Cents must be an integer")
        return cls(Decimal(cents) / 100)

    @classmethod
    def parse(cls, text: str) -> 'Currency':
        """
        Parse user or display text such as "$1,234.56", "-$5.00" or "(12.00)".

        Empty input and a lone minus sign parse to zero.
        """
        if text is None:
            return cls.zero()
        cleaned = _STRIP_CHARS.sub('', str(text))
        negative = False
        if cleaned.startswith('(') and cleaned.endswith(')'):
            negative = True
            cleaned = cleaned[1:-1]
        if cleaned in ('', '-', '+'):
            return cls.zero()
        value = cls(cleaned)
        return -value if negative else value

    # Arithmetic

    def add(self, other: Numeric) -> 'Currency':
        return Currency(self.amount + _to_decimal(other))

    def subtract(self, other: Numeric) -> 'Currency':
        return Currency(self.amount - _to_decimal(other))

    def multiply(self, factor: Numeric) -> 'Currency':
        return Currency(self.amount * _to_decimal(factor))

    def divide(self, divisor: Numeric) -> 'Currency':
        divisor = _to_decimal(divisor)
        if divisor == 0:
            raise CurrencyError("Division by zero")
        return Currency(self.amount / divisor)

    def negate(self) -> 'Currency':
        return Currency(-self.amount)

    def abs(self) -> 'Currency':
        return Currency(abs(self.amount))

    __add__ = add
    __sub__ = subtract
    __mul__ = multiply
    __truediv__ = divide
    __neg__ = negate
    __abs__ = abs

    def __radd__(self, other: Numeric) -> 'Currency':
        # Lets sum() start from int 0
        return self.add(other)

    # Predicates and comparison

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def equals(self, other: Numeric) -> bool:
        return self.amount == Currency(_to_decimal(other)).amount

    def greater_than(self, other: Numeric) -> bool:
        return self.amount > Currency(_to_decimal(other)).amount

    def less_than(self, other: Numeric) -> bool:
        return self.amount < Currency(_to_decimal(other)).amount

    def __eq__(self, other) -> bool:
        if isinstance(other, Currency):
            return self.amount == other.amount
        if isinstance(other, (Decimal, int)) and not isinstance(other, bool):
            return self.amount == Currency(other).amount
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.amount)

    def __lt__(self, other: Numeric) -> bool:
        return self.less_than(other)

    def __le__(self, other: Numeric) -> bool:
        return not self.greater_than(other)

    def __gt__(self, other: Numeric) -> bool:
        return self.greater_than(other)

    def __ge__(self, other: Numeric) -> bool:
        return not self.less_than(other)

    # Conversion

    def to_cents(self) -> int:
        return int(self.amount * 100)

    def to_number(self) -> float:
        """Float for JSON responses and charting only"""
        return float(self.amount)

    def to_string(self) -> str:
        """Fixed two-decimal string without symbol or separators"""
        return f"{self.amount:.2f}"

    def format(self) -> str:
        """Display form: "$1,234.56" or "-$1,234.56" """
        sign = '-' if self.amount < 0 else ''
        return f"{sign}${abs(self.amount):,.2f}"

    def to_json(self) -> str:
        return self.to_string()

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"Currency('{self.to_string()}')"


def from_dbf(value) -> Currency:
    """
    Convert a raw DBF field value to Currency.

    Missing or unparsable values become zero; numeric DBF fields are padded
    with spaces and may be blank.
    """
    if value is None or isinstance(value, bool):
        return Currency.zero()
    if isinstance(value, Currency):
        return value
    try:
        if isinstance(value, str):
            return Currency.parse(value)
        return Currency(value)
    except CurrencyError:
        return Currency.zero()


def sum_currency(values: Iterable[Numeric]) -> Currency:
    total = Currency.zero()
    for value in values:
        total = total.add(value)
    return total


def average_currency(values: Iterable[Numeric]) -> Currency:
    items = list(values)
    if not items:
        return Currency.zero()
    return sum_currency(items).divide(len(items))


def max_currency(values: Iterable[Numeric]) -> Currency:
    items = [Currency(_to_decimal(v)) for v in values]
    if not items:
        return Currency.zero()
    return max(items, key=lambda c: c.amount)


def min_currency(values: Iterable[Numeric]) -> Currency:
    items = [Currency(_to_decimal(v)) for v in values]
    if not items:
        return Currency.zero()
    return min(items, key=lambda c: c.amount)


def calculate_gl_balance(debits: Numeric, credits: Numeric, account_type: int) -> Currency:
    """
    Natural balance of a GL account.

    Liability, equity and revenue accounts are credit-normal; every other
    type, including unknown codes, is debit-normal.
    """
    debits = Currency(_to_decimal(debits))
    credits = Currency(_to_decimal(credits))
    if account_type in _CREDIT_NORMAL_TYPES:
        return credits - debits
    return debits - credits
