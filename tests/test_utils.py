"""
Tests for utils.py
"""
from unittest.mock import patch

from dexarb.tokens import Amount
from dexarb.utils import format_amount, get_terminal_colors


class TestGetTerminalColors:
    """Tests for get_terminal_colors function."""

    def test_get_terminal_colors_with_tty(self):
        """Test get_terminal_colors returns color codes when stdout is a TTY."""
        with patch('sys.stdout.isatty', return_value=True):
            colors = get_terminal_colors()
            assert colors['GREEN'] == '\033[92m'
            assert colors['CYAN'] == '\033[96m'
            assert colors['YELLOW'] == '\033[93m'
            assert colors['RED'] == '\033[91m'
            assert colors['UNDERLINE'] == '\033[4m'
            assert colors['RESET'] == '\033[0m'

    def test_get_terminal_colors_without_tty(self):
        """Test get_terminal_colors returns empty strings when stdout is not a TTY."""
        with patch('sys.stdout.isatty', return_value=False):
            colors = get_terminal_colors()
            assert all(value == '' for value in colors.values())

    def test_get_terminal_colors_all_keys_present(self):
        """Test get_terminal_colors returns all required keys."""
        colors = get_terminal_colors()
        required_keys = ['GREEN', 'CYAN', 'YELLOW', 'RED', 'DIM', 'UNDERLINE', 'RESET']
        assert all(key in colors for key in required_keys)


class TestFormatAmount:
    """Tests for format_amount function."""

    def test_truncates_not_rounds(self, weth):
        assert format_amount(Amount(weth, 25_999 * 10**12)) == "0.0259 WETH"

    def test_negative(self, weth):
        assert format_amount(Amount(weth, -5 * 10**15)) == "-0.0050 WETH"

    def test_without_symbol(self, usdc):
        assert format_amount(Amount(usdc, 45_123_456), fixed=2, with_symbol=False) == "45.12"

    def test_none(self):
        assert format_amount(None) == "N/A"

    def test_large_amount(self, dai):
        assert format_amount(Amount(dai, 10**40)) == "10000000000000000000000.0000 DAI"
