"""Protocol interfaces for the leverage loop manager."""
from .gateway import AdapterGateway
from .notifier import Notifier
from .price_oracle import PriceFeed

__all__ = ["AdapterGateway", "Notifier", "PriceFeed"]
