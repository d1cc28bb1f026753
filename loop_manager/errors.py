"""Error taxonomy for the leverage engine.

Every failure is raised synchronously to the caller as the complete outcome of
the operation. Nothing here is retried internally.
"""
from __future__ import annotations


class LoopManagerError(Exception):
    """Base class for every error raised by the engine."""


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InvalidPrice(LoopManagerError, ValueError):
    """A price feed returned zero."""


class InvalidThreshold(LoopManagerError, ValueError):
    """Liquidation threshold or LTV outside its allowed basis-point range."""


class UnsupportedDecimals(LoopManagerError, ValueError):
    """Asset decimal count outside 0..18."""


class InvalidConfig(LoopManagerError, ValueError):
    """Position configuration failed validation."""


class InvalidUnwindPercentage(LoopManagerError, ValueError):
    """Unwind percentage is not a member of the allowed set."""


class ZeroLoops(LoopManagerError, ValueError):
    """``execute_loops`` called with a loop target of zero."""


# ---------------------------------------------------------------------------
# State / authorization
# ---------------------------------------------------------------------------


class NotOwner(LoopManagerError, PermissionError):
    """Owner-only operation invoked by another account."""


class InactivePosition(LoopManagerError):
    """Operation attempted on a closed position."""


class PositionNotFound(LoopManagerError, KeyError):
    """No position stored under the given identifier."""


class DebtOutstanding(LoopManagerError):
    """Close attempted while debt is non-zero."""


class AutoManagementDisabled(LoopManagerError):
    """Keeper-triggered unwind on a position that opted out of it."""


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class InsufficientCollateral(LoopManagerError):
    """Withdraw or borrow exceeds what is available."""


class ExceedsMaxLoops(LoopManagerError):
    """Requested loops would push ``loop_count`` past ``max_loops``."""


class ExceedsMaxSlippage(LoopManagerError):
    """Executed swap output is worse than the quoted output allows."""


class UnsafeHealthFactor(LoopManagerError):
    """Operation would leave the position below ``min_health_factor``."""


class PositionNotRisky(LoopManagerError):
    """Unwind requested while the position is Safe or Warning."""


class RevalidationFailed(LoopManagerError):
    """Post-unwind health factor did not improve. Integrity fault, never retried."""


class AdapterError(LoopManagerError):
    """An external collaborator (market, exchange, price feed) failed."""
