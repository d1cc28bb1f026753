"""Price feed implementations."""
from .pyth import PythOracle
from .static import StaticPriceFeed

__all__ = ["PythOracle", "StaticPriceFeed"]
