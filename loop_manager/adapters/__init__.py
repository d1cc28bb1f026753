"""AdapterGateway implementations."""
from .simulated import SimulatedGateway

__all__ = ["SimulatedGateway"]
