"""Tests for bulk order cancellation and price bumps."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fakes import SYMBOL, FakeGateway

from tame_trader.errors import InvalidOrderParameters, OrderNotFound
from tame_trader.execution.maintenance import Direction, OrderMaintenanceOps, select_range
from tame_trader.models import OpenOrder, OrderSide, OrderType
from tame_trader.venues import lookup


def ladder(gateway: FakeGateway) -> list[OpenOrder]:
    return [gateway.add_order(OrderSide.BUY, "1", price) for price in ("102", "100", "103", "101")]


def test_select_range_from_top(gateway: FakeGateway) -> None:
    orders = ladder(gateway)

    selected = select_range(orders, Direction.TOP, 1, 2)

    assert [order.price for order in selected] == [Decimal("103"), Decimal("102")]


def test_select_range_from_bottom_clamps_end(gateway: FakeGateway) -> None:
    orders = ladder(gateway)

    selected = select_range(orders, Direction.BOTTOM, 3, 10)

    assert [order.price for order in selected] == [Decimal("102"), Decimal("103")]


def test_select_range_rejects_inverted_bounds(gateway: FakeGateway) -> None:
    with pytest.raises(InvalidOrderParameters):
        select_range(ladder(gateway), Direction.TOP, 3, 2)


@pytest.mark.asyncio
async def test_cancel_bottom_orders_skips_stops(gateway: FakeGateway) -> None:
    orders = ladder(gateway)
    stop = gateway.add_order(OrderSide.SELL, "4", trigger_price="95")
    ops = OrderMaintenanceOps(gateway, lookup("phemex"))

    result = await ops.cancel_orders_by_direction(SYMBOL, "bottom", 1, 2)

    assert result.count == 2
    assert sorted(result.cancelled) == sorted([orders[1].id, orders[3].id])
    assert stop.id in gateway.orders


@pytest.mark.asyncio
async def test_cancel_with_nothing_resting(gateway: FakeGateway) -> None:
    ops = OrderMaintenanceOps(gateway, lookup("phemex"))

    result = await ops.cancel_orders_by_direction(SYMBOL, Direction.TOP)

    assert result.count == 0
    assert gateway.calls_to("cancel_order") == []


@pytest.mark.asyncio
async def test_cancel_reports_orders_already_gone(gateway: FakeGateway) -> None:
    ladder(gateway)
    gateway.cancel_order = AsyncMock(side_effect=[True, False, True, True])  # type: ignore[method-assign]
    ops = OrderMaintenanceOps(gateway, lookup("phemex"))

    result = await ops.cancel_orders_by_direction(SYMBOL, Direction.TOP)

    assert result.count == 3
    assert len(result.already_gone) == 1


@pytest.mark.asyncio
async def test_cancel_rejects_unknown_direction(gateway: FakeGateway) -> None:
    ops = OrderMaintenanceOps(gateway, lookup("phemex"))

    with pytest.raises(InvalidOrderParameters, match="top"):
        await ops.cancel_orders_by_direction(SYMBOL, "sideways")


@pytest.mark.asyncio
async def test_bump_moves_limits_and_skips_stops_on_phemex(gateway: FakeGateway) -> None:
    limit = gateway.add_order(OrderSide.BUY, "2", "100")
    stop = gateway.add_order(OrderSide.SELL, "2", trigger_price="90")
    ops = OrderMaintenanceOps(gateway, lookup("phemex"))

    result = await ops.bump_orders(SYMBOL, Decimal("1.5"))

    assert gateway.calls_to("edit_order") == [
        (limit.id, SYMBOL, "limit", OrderSide.BUY, Decimal("2"), Decimal("101.5"), {})
    ]
    assert [handle.id for handle in result.edited] == [limit.id]
    assert result.skipped == [stop.id]


@pytest.mark.asyncio
async def test_bump_moves_stop_trigger_on_deribit(gateway: FakeGateway) -> None:
    stop = gateway.add_order(OrderSide.SELL, "2", trigger_price="90")
    ops = OrderMaintenanceOps(gateway, lookup("deribit"))

    await ops.bump_orders(SYMBOL, Decimal("-1"))

    assert gateway.calls_to("edit_order") == [
        (
            stop.id,
            SYMBOL,
            "stop_market",
            OrderSide.SELL,
            Decimal("2"),
            None,
            {"trigger_price": 89.0, "reduce_only": True},
        )
    ]
    assert gateway.orders[stop.id].trigger_price == Decimal("89")


@pytest.mark.asyncio
async def test_bump_skips_market_and_non_positive_prices(gateway: FakeGateway) -> None:
    market_order = gateway.add_order(OrderSide.BUY, "1", order_type=OrderType.MARKET)
    cheap = gateway.add_order(OrderSide.BUY, "1", "1")
    ops = OrderMaintenanceOps(gateway, lookup("phemex"))

    result = await ops.bump_orders(SYMBOL, Decimal("-2"))

    assert result.edited == []
    assert sorted(result.skipped) == sorted([market_order.id, cheap.id])


@pytest.mark.asyncio
async def test_bump_skips_orders_that_vanished(gateway: FakeGateway) -> None:
    gateway.add_order(OrderSide.BUY, "1", "100")
    kept = gateway.add_order(OrderSide.BUY, "1", "99")
    gateway.failures["edit_order"] = [OrderNotFound("filled meanwhile")]
    ops = OrderMaintenanceOps(gateway, lookup("phemex"))

    result = await ops.bump_orders(SYMBOL, Decimal("0.5"))

    assert len(result.skipped) == 1
    assert [handle.id for handle in result.edited] == [kept.id]


@pytest.mark.asyncio
async def test_bump_requires_non_zero_delta(gateway: FakeGateway) -> None:
    ops = OrderMaintenanceOps(gateway, lookup("phemex"))

    with pytest.raises(InvalidOrderParameters):
        await ops.bump_orders(SYMBOL, Decimal("0"))
