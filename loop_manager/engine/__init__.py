"""Leverage construction and unwind state machines."""
from .looper import LoopExecutor, calculate_safe_borrow_amount, leverage_limit
from .unwind import UnwindController

__all__ = [
    "LoopExecutor",
    "UnwindController",
    "calculate_safe_borrow_amount",
    "leverage_limit",
]
