"""Order lifecycle commands: chase, stops, ladders, brackets and cleanup."""

from __future__ import annotations

from decimal import Decimal

import typer
from rich.console import Console
from rich.table import Table

from tame_trader.cli_commands.utils import (
    open_engine,
    parse_decimal,
    parse_duration,
    run_command,
    setup_logging,
)
from tame_trader.core.config import TameConfig, load_config
from tame_trader.engine import CommandResult
from tame_trader.execution.maintenance import Direction
from tame_trader.models import ChaseState, OrderSide
from tame_trader.venues import VENUE_CAPABILITIES

orders_app = typer.Typer()


def _prepare(verbose: bool = False) -> TameConfig:
    config = load_config()
    setup_logging(config.log_dir, verbose=verbose)
    return config


def _required(value: str, name: str) -> Decimal:
    parsed = parse_decimal(value, name)
    assert parsed is not None
    return parsed


async def run_chase(
    config: TameConfig,
    symbol: str,
    side: OrderSide,
    quantity: Decimal,
    decay: float | None,
) -> CommandResult:
    """Start a chase and block until it fills, is cancelled or decays."""
    async with open_engine(config) as engine:
        started = await engine.chase(symbol, side, quantity, decay)
        if not started.ok:
            return started
        session_id = started.value
        state = await engine.wait_chase(session_id)
        return CommandResult(
            command="chase",
            ok=state != ChaseState.CANCELLED,
            message=f"chase: {session_id} {state.value}",
            value=state,
        )


@orders_app.command("chase")
def chase_command(
    symbol: str = typer.Argument(..., help="Market symbol, e.g. BTC/USD:BTC"),
    side: OrderSide = typer.Argument(..., help="buy or sell"),
    quantity: str = typer.Argument(..., help="Quantity to fill"),
    decay: str | None = typer.Option(
        None, "--decay", "-d", help="Cancel automatically after this long (30s, 5m, 1h)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Keep a limit order at the best bid/ask until it fills."""
    config = _prepare(verbose)
    run_command(
        run_chase(config, symbol, side, _required(quantity, "quantity"), parse_duration(decay))
    )


async def _with_engine(config: TameConfig, command: str, *args: object) -> CommandResult:
    async with open_engine(config) as engine:
        return await getattr(engine, command)(*args)


@orders_app.command("stop")
def stop_command(
    symbol: str = typer.Argument(..., help="Market symbol"),
    price: str = typer.Argument(..., help="Trigger price"),
    quantity: str | None = typer.Argument(
        None, help="Quantity (default: position plus resting entries)"
    ),
    side: OrderSide | None = typer.Option(
        None, "--side", help="Stop side (default: inferred from position/orders/price)"
    ),
) -> None:
    """Create a protective stop."""
    config = _prepare()
    run_command(
        _with_engine(
            config,
            "create_stop",
            symbol,
            _required(price, "price"),
            parse_decimal(quantity, "quantity"),
            side,
        )
    )


@orders_app.command("update-stop")
def update_stop_command(
    symbol: str = typer.Argument(..., help="Market symbol"),
    quantity: str | None = typer.Option(None, "--quantity", "-q", help="New quantity"),
    price: str | None = typer.Option(None, "--price", "-p", help="New trigger price"),
) -> None:
    """Resize and/or move the single stop on a market."""
    config = _prepare()
    run_command(
        _with_engine(
            config,
            "update_stop",
            symbol,
            parse_decimal(quantity, "quantity"),
            parse_decimal(price, "price"),
        )
    )


@orders_app.command("stop-price")
def stop_price_command(
    symbol: str = typer.Argument(..., help="Market symbol"),
    price: str = typer.Argument(..., help="New trigger price"),
) -> None:
    """Move the single stop on a market, keeping its quantity."""
    config = _prepare()
    run_command(_with_engine(config, "edit_stop_price", symbol, _required(price, "price")))


@orders_app.command("cancel-stops")
def cancel_stops_command(symbol: str = typer.Argument(..., help="Market symbol")) -> None:
    """Cancel every stop order on a market."""
    config = _prepare()
    run_command(_with_engine(config, "cancel_stops", symbol))


@orders_app.command("range")
def range_command(
    symbol: str = typer.Argument(..., help="Market symbol"),
    start: str = typer.Argument(..., help="First ladder price"),
    end: str = typer.Argument(..., help="Last ladder price"),
    count: int = typer.Argument(..., min=1, help="Number of orders"),
    stop: str = typer.Option(..., "--stop", help="Shared stop price"),
    take_profit: str = typer.Option(..., "--take-profit", help="Target price"),
    risk: str = typer.Option(..., "--risk", help="Percent of capital risked by the ladder"),
    capital: str | None = typer.Option(None, "--capital", help="Capital (default from config)"),
    threshold: str | None = typer.Option(
        None, "--min-rr", help="Minimum risk/return ratio (default from config)"
    ),
) -> None:
    """Place a ladder of limit entries plus one protective stop.

    Example (long ladder):
      tame-trader range BTC/USD:BTC 60000 58000 5 --stop 56000 --take-profit 70000 --risk 1
    """
    config = _prepare()
    run_command(
        _with_engine(
            config,
            "submit_range_orders",
            symbol,
            _required(start, "start price"),
            _required(end, "end price"),
            count,
            _required(stop, "stop price"),
            _required(take_profit, "take-profit price"),
            _required(risk, "risk percentage"),
            parse_decimal(capital, "capital"),
            parse_decimal(threshold, "risk/return threshold"),
        )
    )


@orders_app.command("bracket")
def bracket_command(
    symbol: str = typer.Argument(..., help="Market symbol"),
    entry: str = typer.Argument(..., help="Limit entry price"),
    stop: str = typer.Option(..., "--stop", help="Stop price"),
    take_profit: str = typer.Option(..., "--take-profit", help="Target price"),
    risk: str = typer.Option(..., "--risk", help="Percent of capital risked"),
    capital: str | None = typer.Option(None, "--capital", help="Capital (default from config)"),
    threshold: str | None = typer.Option(
        None, "--min-rr", help="Minimum risk/return ratio (default from config)"
    ),
) -> None:
    """Place a risk-sized limit entry and its stop."""
    config = _prepare()
    run_command(
        _with_engine(
            config,
            "create_bracket_order",
            symbol,
            _required(entry, "entry price"),
            _required(stop, "stop price"),
            _required(take_profit, "take-profit price"),
            _required(risk, "risk percentage"),
            parse_decimal(capital, "capital"),
            parse_decimal(threshold, "risk/return threshold"),
        )
    )


@orders_app.command("cancel-orders")
def cancel_orders_command(
    symbol: str = typer.Argument(..., help="Market symbol"),
    direction: Direction = typer.Argument(..., help="top (highest first) or bottom"),
    range_start: int | None = typer.Option(None, "--from", min=1, help="First order, 1-indexed"),
    range_end: int | None = typer.Option(None, "--to", min=1, help="Last order, inclusive"),
) -> None:
    """Cancel resting limit orders counted from the top or bottom of the book."""
    config = _prepare()
    run_command(
        _with_engine(
            config, "cancel_orders_by_direction", symbol, direction, range_start, range_end
        )
    )


@orders_app.command("bump", context_settings={"ignore_unknown_options": True})
def bump_command(
    symbol: str = typer.Argument(..., help="Market symbol"),
    delta: str = typer.Argument(..., help="Price change, negative to move down"),
) -> None:
    """Shift every resting order on a market by a fixed price delta."""
    config = _prepare()
    run_command(_with_engine(config, "bump_orders", symbol, _required(delta, "delta")))


@orders_app.command("venues")
def venues_command() -> None:
    """Show the per-venue stop order capabilities."""
    table = Table(title="Venue capabilities")
    table.add_column("Venue", style="cyan")
    table.add_column("Stop type")
    table.add_column("Trigger field")
    table.add_column("Reduce-only")
    table.add_column("Stop price")
    table.add_column("Stop edit")
    table.add_column("Slow confirm")

    for venue_id, profile in sorted(VENUE_CAPABILITIES.items()):
        table.add_row(
            venue_id,
            profile.stop_order_type_name,
            profile.trigger_price_field,
            profile.reduce_only_field if profile.reduce_only_supported else "no",
            "trigger" if profile.stop_requires_price else "none",
            "yes" if profile.stop_edit_supported else "cancel+recreate",
            "yes" if profile.high_confirmation_latency else "no",
        )
    Console().print(table)
