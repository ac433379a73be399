"""Core infrastructure modules for Tame Trader."""

from .alerting import (
    AlertMessage,
    AlertSeverity,
    AlertTransport,
    EventBusAlertTransport,
    LogAlertTransport,
    dispatch_alert,
)
from .config import TameConfig, load_config
from .constants import (
    BRACKET_SLIPPAGE_DIVISOR,
    DEFAULT_CHASE_INTERVAL_SECONDS,
    DEFAULT_RISK_RETURN_RATIO_THRESHOLD,
    DEFAULT_VENUE,
    SLOW_VENUE_CHASE_INTERVAL_SECONDS,
)
from .events import ChaseEvent, EventBus, EventSubscription, EventTopic

__all__ = [
    "TameConfig",
    "load_config",
    "DEFAULT_VENUE",
    "DEFAULT_CHASE_INTERVAL_SECONDS",
    "SLOW_VENUE_CHASE_INTERVAL_SECONDS",
    "DEFAULT_RISK_RETURN_RATIO_THRESHOLD",
    "BRACKET_SLIPPAGE_DIVISOR",
    "EventBus",
    "EventTopic",
    "EventSubscription",
    "ChaseEvent",
    "AlertMessage",
    "AlertSeverity",
    "AlertTransport",
    "LogAlertTransport",
    "EventBusAlertTransport",
    "dispatch_alert",
]
