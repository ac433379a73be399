"""Tame Trader - order lifecycle tools for crypto venues, sandbox by default."""

__version__ = "0.1.0"

from tame_trader.core.config import TameConfig, load_config
from tame_trader.engine import CommandResult, OrderEngine
from tame_trader.errors import (
    GatewayFailure,
    NotFound,
    ProtectionLost,
    StateConflict,
    TraderError,
    UserInputError,
)
from tame_trader.execution import (
    BracketOrderPlanner,
    ChaseOrderController,
    Direction,
    OrderMaintenanceOps,
    RangeOrderPlanner,
    StopOrderController,
)
from tame_trader.gateway import CcxtVenueGateway, VenueGateway
from tame_trader.models import (
    ChaseState,
    OpenOrder,
    OrderHandle,
    OrderSide,
    OrderType,
    Position,
    PositionSide,
)
from tame_trader.positions import PositionReader
from tame_trader.venues import VENUE_CAPABILITIES, VenueCapabilityProfile, lookup

__all__ = [
    "TameConfig",
    "load_config",
    "CommandResult",
    "OrderEngine",
    "TraderError",
    "UserInputError",
    "StateConflict",
    "NotFound",
    "GatewayFailure",
    "ProtectionLost",
    "StopOrderController",
    "ChaseOrderController",
    "RangeOrderPlanner",
    "BracketOrderPlanner",
    "OrderMaintenanceOps",
    "Direction",
    "VenueGateway",
    "CcxtVenueGateway",
    "ChaseState",
    "OpenOrder",
    "OrderHandle",
    "OrderSide",
    "OrderType",
    "Position",
    "PositionSide",
    "PositionReader",
    "VENUE_CAPABILITIES",
    "VenueCapabilityProfile",
    "lookup",
]
