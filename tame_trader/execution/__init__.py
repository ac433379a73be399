"""Execution layer modules (stops, chase, planners, order maintenance)."""

from .chase import ChaseOrderController, ChaseSession
from .maintenance import Direction, OrderMaintenanceOps, select_range
from .planners import (
    BracketOrderPlanner,
    RangeOrderPlanner,
    calculate_position_size,
    calculate_risk_return_ratio,
)
from .stops import StopOrderController

__all__ = [
    "ChaseOrderController",
    "ChaseSession",
    "Direction",
    "OrderMaintenanceOps",
    "select_range",
    "BracketOrderPlanner",
    "RangeOrderPlanner",
    "calculate_position_size",
    "calculate_risk_return_ratio",
    "StopOrderController",
]
