"""Protective stop orders whose size and side follow live venue state.

When the caller omits them, quantity and side are inferred from the current
position and the resting entry orders. Venues without in-place stop edits get
cancel-then-recreate, and a failed recreation is escalated as ``ProtectionLost``.
"""

from __future__ import annotations

from decimal import Decimal

from loguru import logger
from pydantic import ValidationError

from tame_trader.errors import (
    AmbiguousStopSide,
    InvalidOrderParameters,
    MultipleStopOrders,
    NoQuantityToProtect,
    NoStopOrder,
    ProtectionLost,
    TraderError,
)
from tame_trader.gateway import VenueGateway
from tame_trader.models import OpenOrder, OrderHandle, OrderSide, Position, StopSpec
from tame_trader.positions import PositionReader
from tame_trader.venues import VenueCapabilityProfile


def build_stop_spec(
    symbol: str,
    trigger_price: Decimal,
    quantity: Decimal | None = None,
    side: OrderSide | None = None,
) -> StopSpec:
    """Validate raw stop arguments."""
    try:
        return StopSpec(symbol=symbol, trigger_price=trigger_price, quantity=quantity, side=side)
    except ValidationError as exc:
        reason = "; ".join(error["msg"] for error in exc.errors())
        raise InvalidOrderParameters(f"Invalid stop order: {reason}") from None


class StopOrderController:
    """Creates, updates and cancels protective stops for one venue."""

    def __init__(
        self,
        gateway: VenueGateway,
        capabilities: VenueCapabilityProfile,
        position_reader: PositionReader | None = None,
    ) -> None:
        self.gateway = gateway
        self.capabilities = capabilities
        self.positions = position_reader or PositionReader(gateway)

    async def find_stop_orders(self, symbol: str) -> list[OpenOrder]:
        orders = await self.gateway.fetch_open_orders(symbol)
        return [order for order in orders if order.is_stop]

    async def resolve(self, spec: StopSpec) -> StopSpec:
        """Fill in quantity and side from the live position and resting orders.

        Quantity is ``position size + remaining quantity of resting limit orders
        on the side opposite the stop``. Side is, first match wins: the
        position's closing side, the inverse of a resting limit order's side,
        then the trigger price compared against the last price.

        Raises:
            NoQuantityToProtect: If the resolved quantity is not positive
            AmbiguousStopSide: If the trigger equals the last price
        """
        if spec.quantity is not None and spec.side is not None:
            return spec

        position = await self.positions.read(spec.symbol)
        open_orders = await self.gateway.fetch_open_orders(spec.symbol)
        limits = [order for order in open_orders if order.is_resting_limit]

        if spec.quantity is None:
            total_entries = sum((o.remaining_quantity for o in limits), Decimal("0"))
            if position.size + total_entries <= 0:
                raise NoQuantityToProtect(
                    f"No position or resting orders on {spec.symbol} to protect"
                )

        side = spec.side or await self._resolve_side(spec, position, limits)

        quantity = spec.quantity
        if quantity is None:
            pending = sum(
                (o.remaining_quantity for o in limits if o.side != side), Decimal("0")
            )
            quantity = position.size + pending
            if quantity <= 0:
                raise NoQuantityToProtect(
                    f"Nothing on {spec.symbol} would be closed by a {side.value} stop"
                )

        logger.debug(
            "Resolved stop for {}: side={} quantity={} (position={} {})",
            spec.symbol,
            side.value,
            quantity,
            position.side.value,
            position.size,
        )
        return spec.model_copy(update={"quantity": quantity, "side": side})

    async def _resolve_side(
        self, spec: StopSpec, position: Position, limits: list[OpenOrder]
    ) -> OrderSide:
        if position.closing_side is not None:
            return position.closing_side

        if limits:
            return limits[0].side.opposite

        ticker = await self.gateway.fetch_ticker(spec.symbol)
        if ticker.last is None or ticker.last == spec.trigger_price:
            raise AmbiguousStopSide(
                f"Cannot infer stop side for {spec.symbol}: trigger {spec.trigger_price} "
                f"equals last price {ticker.last}; pass a side explicitly"
            )
        return OrderSide.SELL if spec.trigger_price < ticker.last else OrderSide.BUY

    async def _submit(self, spec: StopSpec) -> OrderHandle:
        assert spec.quantity is not None and spec.side is not None
        handle = await self.gateway.create_order(
            spec.symbol,
            self.capabilities.stop_order_type_name,
            spec.side,
            spec.quantity,
            self.capabilities.stop_price(spec.trigger_price),
            self.capabilities.stop_params(spec.trigger_price),
        )
        logger.info(
            "Stop order {} created: {} {} {} trigger {}",
            handle.id,
            spec.side.value,
            spec.quantity,
            spec.symbol,
            spec.trigger_price,
        )
        return handle

    async def create_stop(
        self,
        symbol: str,
        trigger_price: Decimal,
        quantity: Decimal | None = None,
        side: OrderSide | None = None,
    ) -> OrderHandle:
        """Place a protective stop, deriving quantity/side when omitted."""
        spec = build_stop_spec(symbol, trigger_price, quantity, side)
        resolved = await self.resolve(spec)
        return await self._submit(resolved)

    async def single_stop(self, symbol: str) -> OpenOrder:
        """Return the one stop order on ``symbol``.

        Raises:
            MultipleStopOrders: If more than one exists
            NoStopOrder: If none exists
        """
        stops = await self.find_stop_orders(symbol)
        if len(stops) > 1:
            raise MultipleStopOrders(
                f"{len(stops)} stop orders on {symbol} "
                f"({', '.join(stop.id for stop in stops)}); refusing to pick one"
            )
        if not stops:
            raise NoStopOrder(f"No stop order found for {symbol}")
        return stops[0]

    async def update_stop(
        self,
        symbol: str,
        new_quantity: Decimal | None = None,
        new_trigger_price: Decimal | None = None,
    ) -> OrderHandle:
        """Move and/or resize the existing stop.

        The returned handle identifies the order now protecting the position.
        On venues without in-place stop edits this is a new order and the old id
        is invalid afterwards.

        Raises:
            ProtectionLost: If the old stop was cancelled but the new one failed
        """
        existing = await self.single_stop(symbol)
        return await self._update(existing, new_quantity, new_trigger_price)

    async def edit_trigger_price(self, symbol: str, new_trigger_price: Decimal) -> OrderHandle:
        """Move the existing stop, keeping its quantity."""
        existing = await self.single_stop(symbol)
        return await self._update(existing, existing.remaining_quantity or None, new_trigger_price)

    async def _update(
        self,
        existing: OpenOrder,
        new_quantity: Decimal | None,
        new_trigger_price: Decimal | None,
    ) -> OrderHandle:
        trigger_price = new_trigger_price or existing.trigger_price or existing.price
        if trigger_price is None:
            raise InvalidOrderParameters(
                f"Stop {existing.id} has no trigger price; pass one explicitly"
            )

        spec = build_stop_spec(existing.symbol, trigger_price, new_quantity, existing.side)
        resolved = await self.resolve(spec)
        assert resolved.quantity is not None

        if self.capabilities.stop_edit_supported:
            handle = await self.gateway.edit_order(
                existing.id,
                existing.symbol,
                self.capabilities.stop_order_type_name,
                existing.side,
                resolved.quantity,
                self.capabilities.stop_price(resolved.trigger_price),
                self.capabilities.stop_edit_params(resolved.trigger_price),
            )
            logger.info("Stop order {} edited in place -> {}", existing.id, handle.id)
            return handle

        return await self._replace(existing, resolved)

    async def _replace(self, existing: OpenOrder, resolved: StopSpec) -> OrderHandle:
        # A cancel failure propagates before anything is created.
        cancelled = await self.gateway.cancel_order(existing.id, existing.symbol)
        if not cancelled:
            raise NoStopOrder(
                f"Stop {existing.id} on {existing.symbol} disappeared before it could be "
                "replaced; nothing was recreated"
            )
        logger.info("Stop order {} cancelled for replacement", existing.id)

        try:
            return await self._submit(resolved)
        except TraderError as exc:
            logger.critical(
                "Stop {} on {} cancelled but replacement failed: {}",
                existing.id,
                existing.symbol,
                exc,
            )
            raise ProtectionLost(existing.symbol, existing.id, str(exc)) from exc

    async def cancel_stops(self, symbol: str) -> list[str]:
        """Cancel every stop order on ``symbol``. Missing orders are not errors."""
        cancelled: list[str] = []
        for stop in await self.find_stop_orders(symbol):
            if await self.gateway.cancel_order(stop.id, symbol):
                cancelled.append(stop.id)
        if not cancelled:
            logger.info("No stop orders to cancel on {}", symbol)
        return cancelled
