"""Bulk order book cleanup: cancel a slice of entries, shift every order."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from loguru import logger

from tame_trader.errors import InvalidOrderParameters, OrderNotFound, UnsupportedOperation
from tame_trader.gateway import VenueGateway
from tame_trader.models import (
    BumpOrdersResult,
    CancelOrdersResult,
    OpenOrder,
    OrderType,
)
from tame_trader.venues import VenueCapabilityProfile


class Direction(str, Enum):
    """Which end of the price-sorted book a selection starts from."""

    TOP = "top"
    BOTTOM = "bottom"


def select_range(
    orders: list[OpenOrder],
    direction: Direction,
    range_start: int | None = None,
    range_end: int | None = None,
) -> list[OpenOrder]:
    """Sort by price and slice a 1-indexed inclusive range.

    ``bottom`` counts from the lowest price, ``top`` from the highest. An end
    past the number of orders is clamped.
    """
    start = range_start or 1
    if start < 1:
        raise InvalidOrderParameters(f"Range start must be >= 1, got {start}")
    if range_end is not None and range_end < start:
        raise InvalidOrderParameters(f"Range end {range_end} is before start {start}")

    ordered = sorted(
        orders,
        key=lambda order: order.price or Decimal("0"),
        reverse=direction == Direction.TOP,
    )
    end = len(ordered) if range_end is None else min(range_end, len(ordered))
    return ordered[start - 1 : end]


class OrderMaintenanceOps:
    """Manual order book cleanup helpers."""

    def __init__(self, gateway: VenueGateway, capabilities: VenueCapabilityProfile) -> None:
        self.gateway = gateway
        self.capabilities = capabilities

    async def cancel_orders_by_direction(
        self,
        symbol: str,
        direction: Direction | str,
        range_start: int | None = None,
        range_end: int | None = None,
    ) -> CancelOrdersResult:
        """Cancel resting limit orders (stops excluded) selected from one end of the book."""
        try:
            direction = Direction(str(getattr(direction, "value", direction)).lower())
        except ValueError:
            raise InvalidOrderParameters(
                f"Direction must be 'top' or 'bottom', got '{direction}'"
            ) from None

        orders = await self.gateway.fetch_open_orders(symbol)
        limits = [order for order in orders if order.is_resting_limit]
        selection = select_range(limits, direction, range_start, range_end)

        result = CancelOrdersResult()
        for order in selection:
            if await self.gateway.cancel_order(order.id, symbol):
                result.cancelled.append(order.id)
            else:
                result.already_gone.append(order.id)

        logger.info(
            "Cancelled {} of {} {} order(s) on {}",
            result.count,
            len(selection),
            direction.value,
            symbol,
        )
        return result

    async def bump_orders(self, symbol: str, price_delta: Decimal) -> BumpOrdersResult:
        """Shift every resting order's price (trigger price for stops) by ``price_delta``.

        Orders the venue cannot edit are skipped.
        """
        if price_delta == 0:
            raise InvalidOrderParameters("Price delta must be non-zero")

        market = await self.gateway.fetch_market(symbol)
        result = BumpOrdersResult()

        for order in await self.gateway.fetch_open_orders(symbol):
            if order.type == OrderType.MARKET:
                result.skipped.append(order.id)
                continue

            if order.is_stop:
                if not self.capabilities.stop_edit_supported or order.trigger_price is None:
                    logger.info("Skipping stop {}: venue cannot edit stops in place", order.id)
                    result.skipped.append(order.id)
                    continue
                new_price = market.round_price(order.trigger_price + price_delta)
                order_type = self.capabilities.stop_order_type_name
                price = self.capabilities.stop_price(new_price)
                params = self.capabilities.stop_edit_params(new_price)
            else:
                if order.price is None:
                    result.skipped.append(order.id)
                    continue
                new_price = market.round_price(order.price + price_delta)
                order_type = OrderType.LIMIT.value
                price = new_price
                params = {}

            if new_price <= 0:
                logger.warning("Skipping {}: bumped price {} is not positive", order.id, new_price)
                result.skipped.append(order.id)
                continue

            try:
                handle = await self.gateway.edit_order(
                    order.id,
                    symbol,
                    order_type,
                    order.side,
                    order.remaining_quantity,
                    price,
                    params,
                )
            except (UnsupportedOperation, OrderNotFound) as exc:
                logger.info("Skipping {}: {}", order.id, exc)
                result.skipped.append(order.id)
                continue
            result.edited.append(handle)

        logger.info(
            "Bumped {} order(s) on {} by {} ({} skipped)",
            len(result.edited),
            symbol,
            price_delta,
            len(result.skipped),
        )
        return result
