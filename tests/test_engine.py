"""Tests for the dispatcher-facing OrderEngine."""

from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from fakes import SYMBOL, FakeGateway

from tame_trader.core.alerting import AlertSeverity, EventBusAlertTransport
from tame_trader.core.config import TameConfig
from tame_trader.core.events import EventBus, EventTopic
from tame_trader.engine import CommandResult, OrderEngine
from tame_trader.errors import (
    InvalidOrderParameters,
    MultipleStopOrders,
    NoQuantityToProtect,
    OrderRejected,
    ProtectionLost,
)
from tame_trader.models import ChaseState, OrderSide, PositionSide


@pytest.fixture
def config(tmp_path: Path) -> TameConfig:
    return TameConfig(venue="phemex", log_dir=tmp_path / "logs")


@pytest.fixture
def alerts() -> MagicMock:
    transport = MagicMock()
    transport.send = MagicMock(return_value=None)
    return transport


@pytest.fixture
def engine(gateway: FakeGateway, config: TameConfig, alerts: MagicMock) -> OrderEngine:
    return OrderEngine(gateway, config, alert_transport=alerts, auto_schedule=False)


def test_failure_message_is_single_line() -> None:
    result = CommandResult.failure("stop", InvalidOrderParameters("bad price\nmore detail"))

    assert result.message == "stop: bad price"
    assert not result.ok
    assert not result.critical


@pytest.mark.asyncio
async def test_create_stop_success(engine: OrderEngine, gateway: FakeGateway) -> None:
    gateway.set_position(PositionSide.LONG, "1")

    result = await engine.create_stop(SYMBOL, Decimal("28000"))

    assert result.ok
    assert result.message.startswith("stop: stop order")
    assert result.value.trigger_price == Decimal("28000")


@pytest.mark.asyncio
async def test_create_stop_without_position(engine: OrderEngine) -> None:
    result = await engine.create_stop(SYMBOL, Decimal("28000"))

    assert not result.ok
    assert isinstance(result.error, NoQuantityToProtect)
    assert result.message.startswith("stop: ")
    assert "\n" not in result.message


@pytest.mark.asyncio
async def test_update_stop_with_two_stops(engine: OrderEngine, gateway: FakeGateway) -> None:
    gateway.add_order(OrderSide.SELL, "1", trigger_price="90")
    gateway.add_order(OrderSide.SELL, "1", trigger_price="80")

    result = await engine.update_stop(SYMBOL, price=Decimal("95"))

    assert not result.ok
    assert isinstance(result.error, MultipleStopOrders)
    assert gateway.calls_to("cancel_order") == []


@pytest.mark.asyncio
async def test_protection_lost_is_critical_and_alerted(
    engine: OrderEngine, gateway: FakeGateway, alerts: MagicMock
) -> None:
    gateway.set_position(PositionSide.LONG, "1")
    old = gateway.add_order(OrderSide.SELL, "1", trigger_price="90")
    gateway.failures["create_order"] = [OrderRejected("venue said no")]

    result = await engine.edit_stop_price(SYMBOL, Decimal("95"))

    assert not result.ok
    assert result.critical
    assert isinstance(result.error, ProtectionLost)
    alerts.send.assert_called_once()
    alert = alerts.send.call_args.args[0]
    assert alert.severity == AlertSeverity.CRITICAL
    assert alert.context["cancelled_order_id"] == old.id


@pytest.mark.asyncio
async def test_cancel_stops_without_stops_is_not_an_error(engine: OrderEngine) -> None:
    result = await engine.cancel_stops(SYMBOL)

    assert result.ok
    assert result.message == "cancel-stops: cancelled 0 stop order(s)"


@pytest.mark.asyncio
async def test_cancel_unknown_chase_is_noop(engine: OrderEngine) -> None:
    result = await engine.cancel_chase("chase-unknown")

    assert result.ok
    assert result.message == "cancel-chase: nothing to do"


@pytest.mark.asyncio
async def test_chase_then_cancel(engine: OrderEngine) -> None:
    started = await engine.chase(SYMBOL, OrderSide.BUY, Decimal("1"))
    assert started.ok

    second = await engine.chase(SYMBOL, OrderSide.BUY, Decimal("1"))
    assert not second.ok
    assert second.message.startswith("chase: Chase ")

    cancelled = await engine.cancel_chase(started.value)
    assert cancelled.ok
    assert cancelled.value == ChaseState.CANCELLED
    assert await engine.wait_chase(started.value) == ChaseState.CANCELLED


@pytest.mark.asyncio
async def test_range_requires_capital(engine: OrderEngine) -> None:
    result = await engine.submit_range_orders(
        SYMBOL,
        Decimal("100"),
        Decimal("110"),
        3,
        Decimal("90"),
        Decimal("200"),
        Decimal("1"),
    )

    assert not result.ok
    assert "TAME_DEFAULT_CAPITAL" in result.message


@pytest.mark.asyncio
async def test_range_rejects_invalid_count(engine: OrderEngine) -> None:
    result = await engine.submit_range_orders(
        SYMBOL,
        Decimal("100"),
        Decimal("110"),
        0,
        Decimal("90"),
        Decimal("200"),
        Decimal("1"),
        total_capital=Decimal("1000"),
    )

    assert not result.ok
    assert isinstance(result.error, InvalidOrderParameters)
    assert "num_orders" in result.message


@pytest.mark.asyncio
async def test_range_uses_default_capital(gateway: FakeGateway, tmp_path: Path) -> None:
    config = TameConfig(default_capital=Decimal("10000"), log_dir=tmp_path)
    engine = OrderEngine(gateway, config, auto_schedule=False)

    result = await engine.submit_range_orders(
        SYMBOL,
        Decimal("100"),
        Decimal("110"),
        3,
        Decimal("90"),
        Decimal("200"),
        Decimal("3"),
    )

    assert result.ok, result.message
    assert len(gateway.calls_to("create_limit_order")) == 3
    assert len(gateway.calls_to("create_order")) == 1


@pytest.mark.asyncio
async def test_bracket(engine: OrderEngine, gateway: FakeGateway) -> None:
    result = await engine.create_bracket_order(
        SYMBOL,
        Decimal("100"),
        Decimal("90"),
        Decimal("130"),
        Decimal("2"),
        total_capital=Decimal("10000"),
    )

    assert result.ok, result.message
    assert "R/R 3.00" in result.message
    assert result.value.quantity == Decimal("18.181")


@pytest.mark.asyncio
async def test_cancel_orders_and_bump(engine: OrderEngine, gateway: FakeGateway) -> None:
    gateway.add_order(OrderSide.BUY, "1", "100")
    gateway.add_order(OrderSide.BUY, "1", "99")

    bumped = await engine.bump_orders(SYMBOL, Decimal("0.5"))
    cancelled = await engine.cancel_orders_by_direction(SYMBOL, "top", 1, 1)

    assert bumped.message == "bump: moved 2 order(s) by 0.5, skipped 0"
    assert cancelled.message == "cancel-orders: cancelled 1 order(s)"
    assert [order.price for order in gateway.orders.values()] == [Decimal("99.5")]


def test_slow_venue_uses_slow_chase_interval(gateway: FakeGateway, tmp_path: Path) -> None:
    config = TameConfig(venue="hyperliquid", log_dir=tmp_path)

    engine = OrderEngine(gateway, config)

    assert engine.chaser.interval == config.slow_chase_interval_seconds


@pytest.mark.asyncio
async def test_event_bus_alert_transport_publishes(
    gateway: FakeGateway, config: TameConfig
) -> None:
    bus = EventBus()
    engine = OrderEngine(
        gateway, config, event_bus=bus, alert_transport=EventBusAlertTransport(bus)
    )
    gateway.set_position(PositionSide.LONG, "1")
    gateway.add_order(OrderSide.SELL, "1", trigger_price="90")
    gateway.failures["create_order"] = [OrderRejected("venue said no")]

    async with bus.subscribe(EventTopic.ALERT) as subscription:
        await engine.update_stop(SYMBOL, price=Decimal("95"))
        alert = subscription.get_nowait()

    assert alert.severity == AlertSeverity.CRITICAL
    assert alert.title == "Stop protection lost"
