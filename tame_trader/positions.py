"""Resolve the live position for a market, with venue fallbacks."""

from __future__ import annotations

from loguru import logger

from tame_trader.errors import UnsupportedOperation
from tame_trader.gateway import VenueGateway
from tame_trader.models import Position, PositionSide


class PositionReader:
    """Reads position snapshots through the gateway.

    Strategies are tried in order, each skipped when the venue reports the
    query as unsupported:

    1. ``fetch_position(symbol)``
    2. ``fetch_positions([symbol])`` filtered to the symbol
    3. the base-currency spot balance, reported as a long with no entry price

    Snapshots are never cached; every call hits the gateway.
    """

    def __init__(self, gateway: VenueGateway) -> None:
        self.gateway = gateway

    async def read(self, symbol: str) -> Position:
        try:
            return await self.gateway.fetch_position(symbol)
        except UnsupportedOperation:
            logger.debug("fetch_position unsupported on {}, trying fetch_positions", symbol)

        try:
            positions = await self.gateway.fetch_positions([symbol])
        except UnsupportedOperation:
            logger.debug("fetch_positions unsupported on {}, using balance", symbol)
        else:
            for position in positions:
                if position.symbol == symbol and not position.is_flat:
                    return position
            return Position.flat(symbol)

        return await self._from_balance(symbol)

    async def _from_balance(self, symbol: str) -> Position:
        base = symbol.split("/")[0]
        balances = await self.gateway.fetch_balance()
        amount = balances.get(base)
        if not amount or amount <= 0:
            return Position.flat(symbol)
        return Position(symbol=symbol, side=PositionSide.LONG, size=amount)
