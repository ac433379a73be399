"""Dispatcher-facing surface of the order engine.

Every operation returns a ``CommandResult``. Expected failures come back as a
failed result with a one-line message instead of an exception, so the caller
always regains control.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from tame_trader.core.alerting import (
    AlertMessage,
    AlertSeverity,
    AlertTransport,
    LogAlertTransport,
    dispatch_alert,
)
from tame_trader.core.config import TameConfig
from tame_trader.core.events import EventBus
from tame_trader.errors import InvalidOrderParameters, NotFound, ProtectionLost, TraderError
from tame_trader.execution.chase import ChaseOrderController
from tame_trader.execution.maintenance import Direction, OrderMaintenanceOps
from tame_trader.execution.planners import BracketOrderPlanner, RangeOrderPlanner
from tame_trader.execution.stops import StopOrderController
from tame_trader.gateway import VenueGateway
from tame_trader.models import (
    BracketOrderRequest,
    BracketOrderResult,
    BumpOrdersResult,
    CancelOrdersResult,
    ChaseState,
    OrderHandle,
    OrderSide,
    RangeOrderRequest,
    RangeOrderResult,
)
from tame_trader.positions import PositionReader
from tame_trader.venues import VenueCapabilityProfile, lookup

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass(slots=True)
class CommandResult:
    """Outcome of one dispatcher command."""

    command: str
    ok: bool
    message: str
    value: Any = None
    error: TraderError | None = None
    critical: bool = False

    @classmethod
    def failure(
        cls, command: str, error: TraderError, *, critical: bool = False
    ) -> CommandResult:
        reason = str(error).splitlines()[0] if str(error) else type(error).__name__
        return cls(
            command=command,
            ok=False,
            message=f"{command}: {reason}",
            error=error,
            critical=critical,
        )


def build_request(model: type[M], **data: Any) -> M:
    """Validate request arguments, reporting pydantic errors as user input errors."""
    try:
        return model(**data)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise InvalidOrderParameters(details) from None


def _describe_handle(handle: OrderHandle | None) -> str:
    if handle is None:
        return "filled on placement"
    return f"order {handle.id} ({handle.side.value} {handle.quantity or ''} {handle.symbol})"


class OrderEngine:
    """Wires the controllers for one venue and exposes the command surface."""

    def __init__(
        self,
        gateway: VenueGateway,
        config: TameConfig,
        *,
        capabilities: VenueCapabilityProfile | None = None,
        event_bus: EventBus | None = None,
        alert_transport: AlertTransport | None = None,
        auto_schedule: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.gateway = gateway
        self.config = config
        self.capabilities = capabilities or lookup(config.venue)
        self.event_bus = event_bus
        self.alerts = alert_transport or LogAlertTransport()

        self.positions = PositionReader(gateway)
        self.stops = StopOrderController(gateway, self.capabilities, self.positions)
        self.chaser = ChaseOrderController(
            gateway,
            interval=config.chase_interval_for(self.capabilities.high_confirmation_latency),
            event_bus=event_bus,
            auto_schedule=auto_schedule,
            clock=clock,
        )
        self.ranges = RangeOrderPlanner(gateway, self.stops, config.risk_return_ratio_threshold)
        self.brackets = BracketOrderPlanner(
            gateway,
            self.stops,
            config.risk_return_ratio_threshold,
            config.bracket_slippage_divisor,
        )
        self.maintenance = OrderMaintenanceOps(gateway, self.capabilities)

    async def _execute(
        self,
        command: str,
        operation: Callable[[], Awaitable[T]],
        describe: Callable[[T], str],
        *,
        not_found_is_noop: bool = False,
    ) -> CommandResult:
        try:
            value = await operation()
        except ProtectionLost as exc:
            logger.critical("{}: {}", command, exc)
            await dispatch_alert(
                self.alerts,
                AlertMessage(
                    severity=AlertSeverity.CRITICAL,
                    title="Stop protection lost",
                    message=str(exc),
                    context={
                        "venue": self.capabilities.venue_id,
                        "symbol": exc.symbol,
                        "cancelled_order_id": exc.cancelled_order_id,
                    },
                ),
            )
            return CommandResult.failure(command, exc, critical=True)
        except NotFound as exc:
            if not_found_is_noop:
                logger.info("{}: nothing to do ({})", command, exc)
                return CommandResult(command=command, ok=True, message=f"{command}: nothing to do")
            logger.error("{}: {}", command, exc)
            return CommandResult.failure(command, exc)
        except TraderError as exc:
            logger.error("{}: {}", command, exc)
            return CommandResult.failure(command, exc)

        message = f"{command}: {describe(value)}"
        logger.info(message)
        return CommandResult(command=command, ok=True, message=message, value=value)

    async def chase(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        decay: float | None = None,
    ) -> CommandResult:
        async def run() -> str:
            return await self.chaser.start(symbol, side, quantity, decay)

        def describe(session_id: str) -> str:
            state = self.chaser.session(session_id).state
            if state == ChaseState.FILLED:
                return f"{session_id} filled on placement"
            return f"{session_id} chasing {side.value} {quantity} {symbol}"

        return await self._execute("chase", run, describe)

    async def cancel_chase(self, session_id: str) -> CommandResult:
        async def run() -> ChaseState:
            return await self.chaser.cancel(session_id)

        return await self._execute(
            "cancel-chase",
            run,
            lambda state: f"{session_id} {state.value}",
            not_found_is_noop=True,
        )

    async def wait_chase(self, session_id: str) -> ChaseState:
        return await self.chaser.session(session_id).wait()

    async def create_stop(
        self,
        symbol: str,
        price: Decimal,
        quantity: Decimal | None = None,
        side: OrderSide | None = None,
    ) -> CommandResult:
        async def run() -> OrderHandle:
            return await self.stops.create_stop(symbol, price, quantity, side)

        return await self._execute("stop", run, lambda h: f"stop {_describe_handle(h)} @ {price}")

    async def update_stop(
        self,
        symbol: str,
        quantity: Decimal | None = None,
        price: Decimal | None = None,
    ) -> CommandResult:
        async def run() -> OrderHandle:
            return await self.stops.update_stop(symbol, quantity, price)

        return await self._execute(
            "update-stop", run, lambda h: f"stop is now {_describe_handle(h)}"
        )

    async def edit_stop_price(self, symbol: str, price: Decimal) -> CommandResult:
        async def run() -> OrderHandle:
            return await self.stops.edit_trigger_price(symbol, price)

        return await self._execute(
            "stop-price", run, lambda h: f"stop is now {_describe_handle(h)} @ {price}"
        )

    async def cancel_stops(self, symbol: str) -> CommandResult:
        async def run() -> list[str]:
            return await self.stops.cancel_stops(symbol)

        return await self._execute(
            "cancel-stops",
            run,
            lambda ids: f"cancelled {len(ids)} stop order(s)",
            not_found_is_noop=True,
        )

    async def submit_range_orders(
        self,
        symbol: str,
        start_price: Decimal,
        end_price: Decimal,
        num_orders: int,
        stop_price: Decimal,
        take_profit_price: Decimal,
        risk_percentage: Decimal,
        total_capital: Decimal | None = None,
        risk_return_ratio_threshold: Decimal | None = None,
    ) -> CommandResult:
        async def run() -> RangeOrderResult:
            request = build_request(
                RangeOrderRequest,
                symbol=symbol,
                start_price=start_price,
                end_price=end_price,
                num_orders=num_orders,
                total_capital=self._capital(total_capital),
                risk_percentage=risk_percentage,
                stop_price=stop_price,
                take_profit_price=take_profit_price,
                risk_return_ratio_threshold=risk_return_ratio_threshold,
            )
            return await self.ranges.submit(request)

        return await self._execute(
            "range",
            run,
            lambda r: (
                f"{len(r.levels)} {r.side.value} order(s) at "
                f"{', '.join(str(level.price) for level in r.levels)} "
                f"with stop {_describe_handle(r.stop)}"
            ),
        )

    async def create_bracket_order(
        self,
        symbol: str,
        entry_price: Decimal,
        stop_price: Decimal,
        take_profit_price: Decimal,
        risk_percentage: Decimal,
        total_capital: Decimal | None = None,
        risk_return_ratio_threshold: Decimal | None = None,
    ) -> CommandResult:
        async def run() -> BracketOrderResult:
            request = build_request(
                BracketOrderRequest,
                symbol=symbol,
                entry_price=entry_price,
                stop_price=stop_price,
                take_profit_price=take_profit_price,
                total_capital=self._capital(total_capital),
                risk_percentage=risk_percentage,
                risk_return_ratio_threshold=risk_return_ratio_threshold,
            )
            return await self.brackets.submit(request)

        return await self._execute(
            "bracket",
            run,
            lambda r: (
                f"{r.side.value} {r.quantity} @ {entry_price}, "
                f"stop {_describe_handle(r.stop)}, R/R {r.risk_return_ratio:.2f}"
            ),
        )

    async def cancel_orders_by_direction(
        self,
        symbol: str,
        direction: Direction | str,
        range_start: int | None = None,
        range_end: int | None = None,
    ) -> CommandResult:
        async def run() -> CancelOrdersResult:
            return await self.maintenance.cancel_orders_by_direction(
                symbol, direction, range_start, range_end
            )

        return await self._execute(
            "cancel-orders", run, lambda r: f"cancelled {r.count} order(s)"
        )

    async def bump_orders(self, symbol: str, delta: Decimal) -> CommandResult:
        async def run() -> BumpOrdersResult:
            return await self.maintenance.bump_orders(symbol, delta)

        return await self._execute(
            "bump",
            run,
            lambda r: f"moved {len(r.edited)} order(s) by {delta}, skipped {len(r.skipped)}",
        )

    def _capital(self, total_capital: Decimal | None) -> Decimal:
        capital = total_capital if total_capital is not None else self.config.default_capital
        if capital is None:
            raise InvalidOrderParameters(
                "No capital given and TAME_DEFAULT_CAPITAL is not configured"
            )
        return capital

    async def close(self) -> None:
        """Cancel any running chase."""
        await self.chaser.close()
