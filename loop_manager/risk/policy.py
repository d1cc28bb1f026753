"""Risk thresholds and the health-factor → risk-level → unwind mapping."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping

from ..errors import InvalidConfig, InvalidUnwindPercentage
from ..fixed_point import PRECISION, to_fixed
from ..models import RiskLevel

if TYPE_CHECKING:
    from ..config import EngineConfig


@dataclass(frozen=True)
class RiskThresholds:
    """Lower bounds (exclusive) of each band, fixed point at ``precision``."""

    safe_above: int = 16 * PRECISION // 10
    warning_above: int = 13 * PRECISION // 10
    risky_above: int = 11 * PRECISION // 10
    critical_above: int = PRECISION
    precision: int = PRECISION

    def __post_init__(self) -> None:
        ordered = (
            self.safe_above,
            self.warning_above,
            self.risky_above,
            self.critical_above,
        )
        if any(hi <= lo for hi, lo in zip(ordered, ordered[1:])):
            raise InvalidConfig("Risk thresholds must be strictly descending")
        if self.critical_above < self.precision:
            raise InvalidConfig("critical_above must be at least 1.0")


DEFAULT_UNWIND_PERCENTAGES: Mapping[RiskLevel, int] = {
    RiskLevel.SAFE: 0,
    RiskLevel.WARNING: 0,
    RiskLevel.RISKY: 25,
    RiskLevel.CRITICAL: 50,
    RiskLevel.LIQUIDATABLE: 100,
}

DEFAULT_VALID_PERCENTAGES = frozenset({25, 50, 100})


@dataclass(frozen=True)
class RiskPolicy:
    """Classification rules and unwind sizing for one deployment."""

    thresholds: RiskThresholds = field(default_factory=RiskThresholds)
    unwind_percentages: Mapping[RiskLevel, int] = field(
        default_factory=lambda: dict(DEFAULT_UNWIND_PERCENTAGES)
    )
    valid_percentages: frozenset[int] = DEFAULT_VALID_PERCENTAGES
    max_slippage_bps_limit: int = 1000

    def __post_init__(self) -> None:
        for level in (RiskLevel.SAFE, RiskLevel.WARNING):
            if self.unwind_percentages.get(level, 0) != 0:
                raise InvalidConfig(f"{level.value} positions must not be unwound")
        for level in (RiskLevel.RISKY, RiskLevel.CRITICAL, RiskLevel.LIQUIDATABLE):
            pct = self.unwind_percentages.get(level, 0)
            if pct not in self.valid_percentages:
                raise InvalidConfig(
                    f"Unwind percentage {pct} for {level.value} is not in the valid set"
                )

    @property
    def precision(self) -> int:
        return self.thresholds.precision

    def classify(self, health_factor: int) -> RiskLevel:
        """Map a fixed-point health factor to a risk level.

        Bands are closed on top: exactly 1.6 is Warning, exactly 1.1 is
        Critical, exactly 1.0 is Liquidatable.
        """
        t = self.thresholds
        if health_factor > t.safe_above:
            return RiskLevel.SAFE
        if health_factor > t.warning_above:
            return RiskLevel.WARNING
        if health_factor > t.risky_above:
            return RiskLevel.RISKY
        if health_factor > t.critical_above:
            return RiskLevel.CRITICAL
        return RiskLevel.LIQUIDATABLE

    def recommended_unwind_percentage(self, level: RiskLevel) -> int:
        return self.unwind_percentages.get(level, 0)

    def is_risky(self, level: RiskLevel) -> bool:
        return self.recommended_unwind_percentage(level) > 0

    def validate_unwind_percentage(self, percentage: int) -> int:
        # bool is an int subclass; True would otherwise pass as 1.
        if isinstance(percentage, bool) or percentage not in self.valid_percentages:
            raise InvalidUnwindPercentage(
                f"Unwind percentage {percentage!r} not in "
                f"{sorted(self.valid_percentages)}"
            )
        return percentage

    @classmethod
    def from_config(cls, cfg: EngineConfig) -> RiskPolicy:
        t = cfg.thresholds
        thresholds = RiskThresholds(
            safe_above=to_fixed(t.safe_above),
            warning_above=to_fixed(t.warning_above),
            risky_above=to_fixed(t.risky_above),
            critical_above=to_fixed(t.critical_above),
        )
        u = cfg.unwind
        return cls(
            thresholds=thresholds,
            unwind_percentages={
                RiskLevel.SAFE: 0,
                RiskLevel.WARNING: 0,
                RiskLevel.RISKY: u.risky_percentage,
                RiskLevel.CRITICAL: u.critical_percentage,
                RiskLevel.LIQUIDATABLE: u.liquidatable_percentage,
            },
            valid_percentages=frozenset(u.valid_percentages),
            max_slippage_bps_limit=cfg.max_slippage_bps_limit,
        )


_DEFAULT_POLICY = RiskPolicy()


def classify_risk_level(
    health_factor: int, thresholds: RiskThresholds | None = None
) -> RiskLevel:
    """Classify with the given thresholds (defaults: 1.6 / 1.3 / 1.1 / 1.0)."""
    if thresholds is None:
        return _DEFAULT_POLICY.classify(health_factor)
    return RiskPolicy(thresholds=thresholds).classify(health_factor)


def recommended_unwind_percentage(level: RiskLevel) -> int:
    """Safe/Warning → 0, Risky → 25, Critical → 50, Liquidatable → 100."""
    return _DEFAULT_POLICY.recommended_unwind_percentage(level)
