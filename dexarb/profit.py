"""
Profit and flash-loan fee arithmetic.

Everything here works on exact integers and Fractions. The fee truncates the
same way the flash pool does on-chain, so a quoted trade never under-repays.
"""
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Optional, Union

from .tokens import Amount, PrecisionViolation, Token


# Uniswap V3 0.05% pool fee, the default flash-swap source
DEFAULT_LOAN_FEE_RATE = Fraction(5, 10000)


def parse_fee_rate(value: Union[str, int, Fraction]) -> Fraction:
    """
    Parse a fee rate into an exact Fraction.

    Accepts "0.0005", "5/10000", ints and Fractions. Floats are rejected since
    they cannot represent most decimal rates exactly.
    """
    if isinstance(value, Fraction):
        rate = value
    elif isinstance(value, float):
        raise PrecisionViolation("Fee rate must be given as str or Fraction, not float")
    elif isinstance(value, int):
        rate = Fraction(value)
    else:
        text = str(value).strip()
        try:
            if '/' in text:
                rate = Fraction(text)
            else:
                rate = Fraction(Decimal(text))
        except (ValueError, ZeroDivisionError, InvalidOperation):
            raise ValueError(f"Invalid fee rate: {value!r}")

    if rate < 0 or rate >= 1:
        raise ValueError(f"Fee rate must be in [0, 1), got {rate}")
    return rate


def compute_fee(amount_in: Amount, fee_rate: Fraction) -> Amount:
    """Flash-loan fee: floor(amount * numerator / denominator) in the loan token."""
    if not isinstance(fee_rate, Fraction):
        raise PrecisionViolation(f"Fee rate must be a Fraction, got {type(fee_rate).__name__}")
    if amount_in.raw < 0:
        raise ValueError(f"Loan amount cannot be negative: {amount_in.raw}")
    return Amount(amount_in.token, amount_in.raw * fee_rate.numerator // fee_rate.denominator)


def compute_profit(amount_in: Amount, amount_out: Amount, fee_amount: Amount) -> Amount:
    """Signed profit in the loan token: out - in - fee."""
    return amount_out - amount_in - fee_amount


def profit_bps(amount_in: Amount, profit: Amount) -> int:
    """Profit in basis points of the input, truncated toward zero."""
    if amount_in.token != profit.token:
        raise PrecisionViolation(
            f"Cannot relate {profit.token.symbol} profit to {amount_in.token.symbol} input"
        )
    if amount_in.raw == 0:
        return 0
    return int(Fraction(profit.raw * 10000, amount_in.raw))


def to_reference_currency(
    amount: Amount,
    reference_token: Token,
    price: Optional[Fraction]
) -> Optional[Amount]:
    """
    Convert an amount into reference-token base units.

    Args:
        amount: Amount to convert (may be negative)
        reference_token: Token the result is denominated in (e.g. USDT)
        price: Whole reference tokens per whole amount.token, or None

    Returns:
        Amount of reference_token (floored), or None when no price is available.
        Informational only; never used to decide profitability.
    """
    if amount.token == reference_token:
        return amount
    if price is None:
        return None
    if not isinstance(price, Fraction):
        raise PrecisionViolation(f"Oracle price must be a Fraction, got {type(price).__name__}")

    numerator = amount.raw * price.numerator * 10 ** reference_token.decimals
    denominator = price.denominator * 10 ** amount.token.decimals
    return Amount(reference_token, numerator // denominator)
