"""Data models — all frozen (immutable).

A ``Position`` is never mutated in place: every engine operation returns an
updated copy that the caller commits only once the whole operation succeeded.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .fixed_point import PRECISION


class PositionState(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class RiskLevel(str, Enum):
    """Ordered from safest to most dangerous."""

    SAFE = "safe"
    WARNING = "warning"
    RISKY = "risky"
    CRITICAL = "critical"
    LIQUIDATABLE = "liquidatable"


class UnwindStage(str, Enum):
    EVALUATE = "evaluate"
    AUTHORIZE = "authorize"
    EXECUTE = "execute"
    REVALIDATE = "revalidate"


@dataclass(frozen=True)
class PriceQuote:
    """Oracle price for one asset.

    ``price`` is USD per whole token scaled by ``PRECISION``; ``decimals`` is the
    asset's native decimal count.
    """

    asset_id: str
    price: int
    decimals: int


@dataclass(frozen=True)
class PositionConfig:
    """Per-position leverage settings. ``min_health_factor`` is fixed point."""

    target_loops: int = 3
    max_loops: int = 10
    max_slippage_bps: int = 100
    min_health_factor: int = 15 * PRECISION // 10
    auto_management_enabled: bool = True


@dataclass(frozen=True)
class MarketParams:
    """Lending market a position loops against."""

    market_id: str
    collateral_asset: str
    debt_asset: str
    safety_margin_bps: int = 1000


@dataclass(frozen=True)
class Position:
    """Leveraged position record. Amounts are in native smallest units."""

    position_id: str
    owner: str
    market: MarketParams
    config: PositionConfig = field(default_factory=PositionConfig)
    collateral_amount: int = 0
    debt_amount: int = 0
    total_supplied: int = 0
    total_borrowed: int = 0
    loop_count: int = 0
    state: PositionState = PositionState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state is PositionState.ACTIVE


@dataclass(frozen=True)
class HealthSnapshot:
    """Health of a position at one set of live prices."""

    position_id: str
    collateral_quote: PriceQuote
    debt_quote: PriceQuote
    collateral_value: int
    debt_value: int
    liquidation_threshold_bps: int
    health_factor: int
    risk_level: RiskLevel
    recommended_percentage: int

    @property
    def leverage(self) -> float:
        """Collateral value over equity (``1.0`` with no debt)."""
        equity = self.collateral_value - self.debt_value
        if equity <= 0:
            return float("inf")
        return self.collateral_value / equity


@dataclass(frozen=True)
class LoopStep:
    """Outcome of one borrow → swap → supply iteration."""

    loop_number: int
    borrowed: int
    supplied: int
    health_factor: int


@dataclass(frozen=True)
class LoopReport:
    position: Position
    steps: tuple[LoopStep, ...] = ()
    stop_reason: str = ""

    @property
    def loops_executed(self) -> int:
        return len(self.steps)


@dataclass(frozen=True)
class UnwindReport:
    position: Position
    percentage: int
    withdrawn: int
    repaid: int
    returned_collateral: int
    before: HealthSnapshot
    after: HealthSnapshot
    stages: tuple[UnwindStage, ...] = ()
    # Debt-asset leftover too small to buy one base unit of collateral.
    dust: int = 0
