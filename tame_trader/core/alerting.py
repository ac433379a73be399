"""Alert routing for failures the user must not miss."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol

from loguru import logger

from tame_trader.core.events import EventBus, EventTopic


class AlertSeverity(str, Enum):
    """Alert severity levels."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(slots=True)
class AlertMessage:
    """Structured message sent to the alerting transport."""

    severity: AlertSeverity
    title: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    context: dict[str, object] = field(default_factory=dict)


class AlertTransport(Protocol):
    """Transport interface for alert delivery."""

    def send(self, alert: AlertMessage) -> None | Awaitable[None]: ...


class LogAlertTransport:
    """Transport that logs alerts locally at the alert's severity."""

    def send(self, alert: AlertMessage) -> None:
        logger.log(
            alert.severity.value.upper(),
            "[alert] {title} :: {message} | {context}",
            title=alert.title,
            message=alert.message,
            context=alert.context,
        )


class EventBusAlertTransport(LogAlertTransport):
    """Log the alert and publish it on the ALERT topic."""

    def __init__(self, event_bus: EventBus) -> None:
        self._event_bus = event_bus

    async def send(self, alert: AlertMessage) -> None:  # type: ignore[override]
        super().send(alert)
        await self._event_bus.publish(EventTopic.ALERT, alert)


async def dispatch_alert(transport: AlertTransport, alert: AlertMessage) -> None:
    """Send through a sync or async transport."""
    result = transport.send(alert)
    if inspect.isawaitable(result):
        await result
