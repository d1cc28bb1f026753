"""Health-factor arithmetic and risk classification."""
from .health import (
    HealthFactorEngine,
    amount_for_value,
    calculate_collateral_value,
    calculate_debt_value,
    calculate_health_factor,
)
from .policy import (
    RiskPolicy,
    RiskThresholds,
    classify_risk_level,
    recommended_unwind_percentage,
)

__all__ = [
    "HealthFactorEngine",
    "RiskPolicy",
    "RiskThresholds",
    "amount_for_value",
    "calculate_collateral_value",
    "calculate_debt_value",
    "calculate_health_factor",
    "classify_risk_level",
    "recommended_unwind_percentage",
]
