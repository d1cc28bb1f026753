"""Fixed-point helpers shared by the risk and execution layers."""
from __future__ import annotations

from decimal import Decimal

# 1.0 in health-factor / price units.
PRECISION = 10**18

# Basis-point denominator (100%).
BPS = 10_000

# Largest native decimal count an asset may have; amounts are normalized to it.
MAX_DECIMALS = 18

# Health factor reported for a position with no debt.
INFINITE_HEALTH_FACTOR = 2**256 - 1


def to_fixed(value: float | str | Decimal, precision: int = PRECISION) -> int:
    """Convert a human number (``1.6``) to fixed point (``1.6 * precision``).

    Goes through ``Decimal(str(value))`` so config floats such as ``1.1`` land
    exactly on the intended boundary.
    """
    return int(Decimal(str(value)) * precision)


def to_float(value: int, precision: int = PRECISION) -> float:
    """Convert a fixed-point integer back to a float (display only)."""
    if value >= INFINITE_HEALTH_FACTOR:
        return float("inf")
    return value / precision


def format_fixed(value: int, precision: int = PRECISION, places: int = 4) -> str:
    """Render a fixed-point value for logs, e.g. ``1.7274`` or ``inf``."""
    if value >= INFINITE_HEALTH_FACTOR:
        return "inf"
    return f"{value / precision:.{places}f}"


def to_base_units(amount: float | str | Decimal, decimals: int) -> int:
    """Whole tokens → native smallest units (``1.5`` USDC → ``1_500_000``)."""
    return int(Decimal(str(amount)) * (10**decimals))


def from_base_units(amount: int, decimals: int) -> float:
    """Native smallest units → whole tokens (display only)."""
    return amount / (10**decimals)


def value_to_usd(value: int) -> float:
    """Convert a monetary value (see ``risk.health``) to USD (display only)."""
    return value / (PRECISION * 10**MAX_DECIMALS)


def apply_bps(amount: int, bps: int) -> int:
    """Return ``amount * bps / BPS`` rounded down."""
    return amount * bps // BPS
