"""Service modules"""
from .book import PositionBook
from .factory import build_gateway, build_manager, build_notifiers, build_price_feed
from .manager import PositionManager

__all__ = [
    "PositionBook",
    "PositionManager",
    "build_gateway",
    "build_manager",
    "build_notifiers",
    "build_price_feed",
]
