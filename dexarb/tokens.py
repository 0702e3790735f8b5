"""
Token and base-unit amount types.

All amounts are Python ints in the token's smallest unit. Mixing amounts of
different tokens is a programming error and raises PrecisionViolation.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Union

from web3 import Web3

MAX_DECIMALS = 36


class PrecisionViolation(ValueError):
    """Raised when an operation would mix tokens or lose base-unit precision."""


@dataclass(frozen=True)
class Token:
    """ERC-20 token identified by its address."""
    address: str
    symbol: str
    decimals: int

    def __post_init__(self):
        # bool is an int subclass but never a valid decimal count
        if isinstance(self.decimals, bool) or not isinstance(self.decimals, int):
            raise PrecisionViolation(
                f"Token {self.symbol} decimals must be an integer, got {self.decimals!r}"
            )
        if not 0 <= self.decimals <= MAX_DECIMALS:
            raise PrecisionViolation(
                f"Token {self.symbol} decimals out of range: {self.decimals}"
            )
        object.__setattr__(self, 'address', Web3.to_checksum_address(self.address))

    def __eq__(self, other):
        if not isinstance(other, Token):
            return NotImplemented
        return self.address == other.address

    def __hash__(self):
        return hash(self.address)

    def __str__(self):
        return self.symbol

    def amount(self, raw: int) -> 'Amount':
        """Amount of this token from a base-unit integer."""
        return Amount(self, raw)

    def from_display(self, value: Union[str, int, Decimal]) -> 'Amount':
        """Amount of this token from a human-readable value (e.g. "10.5")."""
        return from_display(value, self)


@dataclass(frozen=True)
class Amount:
    """Quantity of one token in base units. May be negative only for profit/loss."""
    token: Token
    raw: int

    def __post_init__(self):
        if isinstance(self.raw, bool) or not isinstance(self.raw, int):
            raise PrecisionViolation(
                f"Amount of {self.token.symbol} must be an integer number of base units, got {self.raw!r}"
            )

    def _check_same_token(self, other: 'Amount', op: str):
        if not isinstance(other, Amount):
            raise PrecisionViolation(f"Cannot {op} {type(other).__name__} and Amount")
        if other.token != self.token:
            raise PrecisionViolation(
                f"Cannot {op} {self.token.symbol} and {other.token.symbol} amounts"
            )

    def __add__(self, other: 'Amount') -> 'Amount':
        self._check_same_token(other, 'add')
        return Amount(self.token, self.raw + other.raw)

    def __sub__(self, other: 'Amount') -> 'Amount':
        self._check_same_token(other, 'subtract')
        return Amount(self.token, self.raw - other.raw)

    def __neg__(self) -> 'Amount':
        return Amount(self.token, -self.raw)

    def __mul__(self, factor: Union[int, Fraction]) -> 'Amount':
        """Scale by an int or an exact Fraction, flooring to base units."""
        if isinstance(factor, bool) or not isinstance(factor, (int, Fraction)):
            raise PrecisionViolation(
                f"Amounts can only be scaled by int or Fraction, got {type(factor).__name__}"
            )
        if isinstance(factor, int):
            return Amount(self.token, self.raw * factor)
        return Amount(self.token, self.raw * factor.numerator // factor.denominator)

    __rmul__ = __mul__

    def __lt__(self, other: 'Amount') -> bool:
        self._check_same_token(other, 'compare')
        return self.raw < other.raw

    def __le__(self, other: 'Amount') -> bool:
        self._check_same_token(other, 'compare')
        return self.raw <= other.raw

    def __gt__(self, other: 'Amount') -> bool:
        self._check_same_token(other, 'compare')
        return self.raw > other.raw

    def __ge__(self, other: 'Amount') -> bool:
        self._check_same_token(other, 'compare')
        return self.raw >= other.raw

    def is_positive(self) -> bool:
        return self.raw > 0

    def to_display(self) -> Decimal:
        return to_display(self)

    def __str__(self):
        return f"{to_display(self)} {self.token.symbol}"


def to_display(amount: Amount) -> Decimal:
    """
    Convert base units to an exact Decimal in whole tokens.

    Built from the digit tuple so the context precision never rounds it.
    """
    sign, digits, exponent = Decimal(amount.raw).as_tuple()
    return Decimal((sign, digits, exponent - amount.token.decimals))


def from_display(value: Union[str, int, Decimal], token: Token) -> Amount:
    """
    Convert a human-readable value to base units.

    Floats are rejected. Values with more fractional digits than the token
    supports raise PrecisionViolation instead of being rounded.
    """
    if isinstance(value, float):
        raise PrecisionViolation("Use str or Decimal for display amounts, not float")
    try:
        dec = Decimal(value) if not isinstance(value, Decimal) else value
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}")
    if not dec.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")

    scaled = Fraction(dec) * 10 ** token.decimals
    if scaled.denominator != 1:
        raise PrecisionViolation(
            f"{value} has more than {token.decimals} decimal places for {token.symbol}"
        )
    return Amount(token, scaled.numerator)
