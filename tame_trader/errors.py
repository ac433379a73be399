"""Error taxonomy for the order lifecycle engine.

Every failure the engine reports belongs to one of five families:

- ``UserInputError``: bad quantity/price/threshold, nothing was attempted
- ``StateConflict``: the current state forbids the operation
- ``NotFound``: the thing to act on does not exist
- ``GatewayFailure``: the venue or network rejected the request
- ``ProtectionLost``: a stop was cancelled but could not be recreated
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tame_trader.models import OrderHandle


class TraderError(Exception):
    """Base class for all engine failures."""


class UserInputError(TraderError):
    """Raised when caller-supplied values are invalid."""


class StateConflict(TraderError):
    """Raised when engine or venue state makes the operation ambiguous or unsafe."""


class NotFound(TraderError):
    """Raised when a required order, position or record is missing."""


class GatewayFailure(TraderError):
    """Raised when the venue gateway fails or rejects a request."""


class ProtectionLost(TraderError):
    """Raised when a stop was cancelled but its replacement could not be placed.

    The position is unprotected after this error.
    """

    def __init__(self, symbol: str, cancelled_order_id: str, reason: str) -> None:
        super().__init__(
            f"stop {cancelled_order_id} on {symbol} was cancelled but the replacement "
            f"failed ({reason}); position is UNPROTECTED"
        )
        self.symbol = symbol
        self.cancelled_order_id = cancelled_order_id
        self.reason = reason


class ZeroRiskDistance(UserInputError):
    """Raised when entry and stop prices coincide."""


class RiskRewardTooLow(UserInputError):
    """Raised when a risk/return ratio does not clear the threshold."""


class AmbiguousStopSide(UserInputError):
    """Raised when the stop side cannot be inferred from the trigger price."""


class InvalidOrderParameters(UserInputError):
    """Raised for malformed quantities, prices or ranges."""


class ChaseAlreadyActive(StateConflict):
    """Raised when a chase is requested while another one is tracking."""


class MultipleStopOrders(StateConflict):
    """Raised when more than one stop order exists for a symbol."""


class UnknownVenueCapability(NotFound):
    """Raised when the capability table has no row for a venue."""


class NoStopOrder(NotFound):
    """Raised when no stop order exists for a symbol."""


class NoQuantityToProtect(NotFound):
    """Raised when neither a position nor resting entries exist to protect."""


class OrderNotFound(NotFound):
    """Raised when the venue does not know the referenced order."""


class ChaseNotFound(NotFound):
    """Raised when a chase session id is unknown or already finished."""


class UnsupportedOperation(GatewayFailure):
    """Raised when the venue does not implement a gateway operation."""


class OrderRejected(GatewayFailure):
    """Raised when the venue refuses an order as invalid."""


class BatchSubmissionError(GatewayFailure):
    """Raised when a batch fails part-way through submission.

    Orders already placed are not rolled back; they are listed in ``placed``.
    """

    def __init__(self, message: str, placed: list[OrderHandle | None]) -> None:
        super().__init__(message)
        self.placed = placed
