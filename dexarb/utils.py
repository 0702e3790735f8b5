"""
Utility functions for the arbitrage bot.
"""
import sys
from decimal import ROUND_DOWN, Decimal, localcontext
from typing import Dict, Optional

from .tokens import Amount, to_display


def get_terminal_colors() -> Dict[str, str]:
    """
    Get ANSI color codes for terminal output.

    Returns empty strings if output is not a TTY (e.g., redirected to file).
    This ensures log files remain clean without ANSI escape codes.

    Returns:
        Dictionary with color codes: GREEN, CYAN, YELLOW, RED, DIM, UNDERLINE, RESET
    """
    use_color = sys.stdout.isatty()
    return {
        'GREEN': '\033[92m' if use_color else '',      # Positive profit, balances
        'CYAN': '\033[96m' if use_color else '',       # Identifiers and routes (tokens, paths, venues)
        'YELLOW': '\033[93m' if use_color else '',     # Amounts and prices
        'RED': '\033[91m' if use_color else '',        # Errors, failures, negative profit
        'DIM': '\033[90m' if use_color else '',        # Secondary / service messages
        'UNDERLINE': '\033[4m' if use_color else '',   # Winning venue in hop tables
        'RESET': '\033[0m' if use_color else ''
    }


def format_amount(amount: Optional[Amount], fixed: int = 4, with_symbol: bool = True) -> str:
    """
    Human-readable amount truncated to `fixed` places, or "N/A" when absent.

    Truncates rather than rounds so a displayed profit is never overstated.
    """
    if amount is None:
        return "N/A"
    with localcontext() as ctx:
        ctx.prec = 100
        value = to_display(amount).quantize(Decimal(1).scaleb(-fixed), rounding=ROUND_DOWN)
    return f"{value} {amount.token.symbol}" if with_symbol else str(value)
