"""Shared utility functions for CLI commands."""

import asyncio
import re
import sys
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import typer
from loguru import logger

from tame_trader.core.alerting import EventBusAlertTransport
from tame_trader.core.config import TameConfig
from tame_trader.core.events import EventBus
from tame_trader.engine import CommandResult, OrderEngine
from tame_trader.gateway import CcxtVenueGateway

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smh]?)\s*$", re.IGNORECASE)
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600}


def setup_logging(log_dir: Path, verbose: bool = False) -> None:
    """Configure loguru logging.

    Args:
        log_dir: Directory for log files
        verbose: Enable verbose debug logging
    """
    # Remove default handler
    logger.remove()

    # Console handler
    log_level = "DEBUG" if verbose else "INFO"
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
        "<level>{message}</level>",
        level=log_level,
    )

    # File handler
    logger.add(
        log_dir / "tame_{time}.log",
        rotation="1 day",
        retention="7 days",
        level="DEBUG",
    )


def parse_decimal(value: str | None, name: str) -> Decimal | None:
    """Parse an optional CLI decimal argument."""
    if value is None:
        return None
    try:
        parsed = Decimal(value)
    except (InvalidOperation, ValueError) as exc:
        raise typer.BadParameter(f"Invalid {name} '{value}'.") from exc
    if not parsed.is_finite():
        raise typer.BadParameter(f"Invalid {name} '{value}'.")
    return parsed


def parse_duration(value: str | None) -> float | None:
    """Parse ``90``, ``90s``, ``5m`` or ``1h`` into seconds."""
    if value is None:
        return None
    match = _DURATION_RE.match(value)
    if match is None:
        raise typer.BadParameter(f"Invalid duration '{value}' (use e.g. 30s, 5m, 1h).")
    seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2).lower()]
    if seconds <= 0:
        raise typer.BadParameter("Duration must be positive.")
    return seconds


@asynccontextmanager
async def open_engine(config: TameConfig) -> AsyncIterator[OrderEngine]:
    """Connect a gateway for the configured venue and wrap it in an engine."""
    gateway = CcxtVenueGateway(config)
    event_bus = EventBus()
    await gateway.connect()
    engine = OrderEngine(
        gateway,
        config,
        event_bus=event_bus,
        alert_transport=EventBusAlertTransport(event_bus),
    )
    try:
        yield engine
    finally:
        try:
            await engine.close()
        finally:
            await gateway.close()


def run_command(operation: Coroutine[Any, Any, CommandResult]) -> CommandResult:
    """Run an engine command to completion and report it on one line."""
    try:
        result = asyncio.run(operation)
    except Exception as exc:  # pragma: no cover - surface detailed CLI error
        logger.error(f"Command failed: {exc}")
        raise typer.Exit(code=1) from exc

    if result.ok:
        typer.echo(result.message)
        return result
    prefix = "PROTECTION LOST - " if result.critical else ""
    typer.echo(f"{prefix}{result.message}", err=True)
    raise typer.Exit(code=1)
