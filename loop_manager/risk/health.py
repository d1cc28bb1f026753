"""Health-factor arithmetic. Pure functions, no I/O.

Monetary values are exact integers::

    value = amount * price * 10^(18 - decimals)

i.e. the amount is normalized to 18 decimals before multiplying by the
fixed-point price, so values of 6-, 8- and 18-decimal assets compare directly
and no precision is lost to rounding. Python integers do not overflow, which
covers the wide intermediate products the health factor needs.
"""
from __future__ import annotations

from ..errors import InvalidPrice, InvalidThreshold, UnsupportedDecimals
from ..fixed_point import BPS, INFINITE_HEALTH_FACTOR, MAX_DECIMALS, PRECISION
from ..models import HealthSnapshot, Position, PriceQuote, RiskLevel
from .policy import RiskPolicy


def _scale(price: int, decimals: int) -> int:
    if price <= 0:
        raise InvalidPrice(f"Price must be positive, got {price}")
    if not 0 <= decimals <= MAX_DECIMALS:
        raise UnsupportedDecimals(
            f"Asset decimals must be within 0..{MAX_DECIMALS}, got {decimals}"
        )
    return price * 10 ** (MAX_DECIMALS - decimals)


def _value(amount: int, price: int, decimals: int) -> int:
    scale = _scale(price, decimals)
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")
    return amount * scale


def calculate_collateral_value(amount: int, price: int, decimals: int) -> int:
    """Value of ``amount`` collateral units at ``price``.

    Raises:
        InvalidPrice: if ``price`` is zero.
    """
    return _value(amount, price, decimals)


def calculate_debt_value(amount: int, price: int, decimals: int) -> int:
    """Value of ``amount`` debt units at ``price``.

    Raises:
        InvalidPrice: if ``price`` is zero.
    """
    return _value(amount, price, decimals)


def amount_for_value(value: int, price: int, decimals: int) -> int:
    """Largest native amount whose value does not exceed ``value``."""
    if value <= 0:
        return 0
    return value // _scale(price, decimals)


def validate_threshold_bps(bps: int, name: str = "liquidation threshold") -> int:
    if not 0 < bps <= BPS:
        raise InvalidThreshold(f"{name} must be in (0, {BPS}] bps, got {bps}")
    return bps


def calculate_health_factor(
    collateral_value: int,
    liquidation_threshold_bps: int,
    debt_value: int,
    precision: int = PRECISION,
) -> int:
    """HF = (collateral_value * threshold / 10000) / debt_value, fixed point.

    No debt yields ``INFINITE_HEALTH_FACTOR``.
    """
    validate_threshold_bps(liquidation_threshold_bps)
    if debt_value <= 0:
        return INFINITE_HEALTH_FACTOR
    hf = collateral_value * liquidation_threshold_bps * precision // (BPS * debt_value)
    return min(hf, INFINITE_HEALTH_FACTOR)


class HealthFactorEngine:
    """Values positions and classifies them against a ``RiskPolicy``."""

    def __init__(self, policy: RiskPolicy | None = None) -> None:
        self._policy = policy or RiskPolicy()

    @property
    def policy(self) -> RiskPolicy:
        return self._policy

    def health_factor(
        self,
        collateral_amount: int,
        debt_amount: int,
        collateral_quote: PriceQuote,
        debt_quote: PriceQuote,
        liquidation_threshold_bps: int,
    ) -> int:
        collateral_value = calculate_collateral_value(
            collateral_amount, collateral_quote.price, collateral_quote.decimals
        )
        debt_value = calculate_debt_value(
            debt_amount, debt_quote.price, debt_quote.decimals
        )
        return calculate_health_factor(
            collateral_value,
            liquidation_threshold_bps,
            debt_value,
            self._policy.precision,
        )

    def classify(self, health_factor: int) -> RiskLevel:
        return self._policy.classify(health_factor)

    def assess(
        self,
        position: Position,
        collateral_quote: PriceQuote,
        debt_quote: PriceQuote,
        liquidation_threshold_bps: int,
        *,
        collateral_amount: int | None = None,
        debt_amount: int | None = None,
    ) -> HealthSnapshot:
        """Build a ``HealthSnapshot`` for ``position`` (or overridden amounts)."""
        if collateral_amount is None:
            collateral_amount = position.collateral_amount
        if debt_amount is None:
            debt_amount = position.debt_amount

        collateral_value = calculate_collateral_value(
            collateral_amount, collateral_quote.price, collateral_quote.decimals
        )
        debt_value = calculate_debt_value(
            debt_amount, debt_quote.price, debt_quote.decimals
        )
        hf = calculate_health_factor(
            collateral_value,
            liquidation_threshold_bps,
            debt_value,
            self._policy.precision,
        )
        level = self._policy.classify(hf)
        return HealthSnapshot(
            position_id=position.position_id,
            collateral_quote=collateral_quote,
            debt_quote=debt_quote,
            collateral_value=collateral_value,
            debt_value=debt_value,
            liquidation_threshold_bps=liquidation_threshold_bps,
            health_factor=hf,
            risk_level=level,
            recommended_percentage=self._policy.recommended_unwind_percentage(level),
        )
