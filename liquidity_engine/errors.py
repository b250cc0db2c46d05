"""
Error taxonomy for the liquidity engine.

Every error carries a machine-readable ``kind`` and the numeric context
(amount fillable, amount missing, ...) a boundary layer needs to render an
actionable message.
"""

from typing import Any, Dict


class LiquidityError(Exception):
    """Base class for all liquidity engine failures."""

    kind: str = "liquidity_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        """Structured form for response bodies and log attributes."""
        return {"kind": self.kind, "message": self.message, **self.context}


class InvalidOrderSize(LiquidityError):
    """Raised when an order size is zero or negative."""

    kind = "invalid_order_size"

    def __init__(self, order_size: float):
        super().__init__(f"Order size must be positive, got {order_size}", order_size=order_size)
        self.order_size = order_size


class EmptyLadder(LiquidityError):
    """Raised when a ladder has no price levels to fill against."""

    kind = "empty_ladder"

    def __init__(self):
        super().__init__("Order book ladder is empty")


class InsufficientLiquidity(LiquidityError):
    """Raised when a single ladder cannot fill the requested size."""

    kind = "insufficient_liquidity"

    def __init__(self, filled: float, requested: float):
        super().__init__(
            f"Insufficient liquidity. Can only fill {filled} of {requested}",
            filled=filled,
            requested=requested,
        )
        self.filled = filled
        self.requested = requested


class InsufficientAggregateLiquidity(LiquidityError):
    """Raised when all candidate markets together cannot fill an order."""

    kind = "insufficient_aggregate_liquidity"

    def __init__(self, missing: float, requested: float):
        super().__init__(
            f"Insufficient liquidity across all markets. Missing {missing} of {requested}",
            missing=missing,
            requested=requested,
        )
        self.missing = missing
        self.requested = requested


class NotFound(LiquidityError):
    """Raised by the market registry for unknown tokens or markets."""

    kind = "not_found"

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"No {resource} found for {identifier}", resource=resource, identifier=identifier)
        self.resource = resource
        self.identifier = identifier
