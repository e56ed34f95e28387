"""Display formatting for calculation strings, headlines and the plain-text summary (pt-BR conventions)."""
from __future__ import annotations


def format_brl(value: float) -> str:
    """R$ 1.234,56"""
    sign = "-" if value < 0 else ""
    s = f"{abs(value):,.2f}"
    s = s.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {s}"


def format_number(value: float, decimals: int = 0) -> str:
    s = f"{value:,.{decimals}f}"
    return s.replace(",", "_").replace(".", ",").replace("_", ".")


def format_pct(value: float, decimals: int = 1) -> str:
    return f"{format_number(value, decimals)}%"


def format_roas(value: float) -> str:
    return f"{format_number(value, 2)}x"
