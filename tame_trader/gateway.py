"""Venue gateway contract and its ccxt-backed implementation.

The engine only talks to venues through ``VenueGateway``. ``CcxtVenueGateway``
adapts ``ccxt.async_support`` to that contract and translates ccxt exceptions
into the engine's error taxonomy.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

import ccxt
import ccxt.async_support as ccxt_async
from loguru import logger

from tame_trader.errors import (
    GatewayFailure,
    OrderNotFound,
    OrderRejected,
    UnsupportedOperation,
)
from tame_trader.models import (
    Market,
    OpenOrder,
    OrderBookTop,
    OrderHandle,
    OrderSide,
    OrderType,
    Position,
    PositionSide,
    Ticker,
)

if TYPE_CHECKING:
    from tame_trader.core.config import TameConfig

T = TypeVar("T")

_STOP_TYPE_MARKERS = ("stop", "trigger", "take_profit")


class VenueGateway(Protocol):
    """Unified per-symbol venue operations the engine depends on."""

    venue_id: str

    async def fetch_market(self, symbol: str) -> Market: ...

    async def fetch_open_orders(self, symbol: str) -> list[OpenOrder]: ...

    async def fetch_position(self, symbol: str) -> Position: ...

    async def fetch_positions(self, symbols: list[str]) -> list[Position]: ...

    async def fetch_balance(self) -> dict[str, Decimal]: ...

    async def fetch_l2_order_book(self, symbol: str) -> OrderBookTop: ...

    async def fetch_ticker(self, symbol: str) -> Ticker: ...

    async def create_limit_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        price: Decimal,
        params: dict[str, Any] | None = None,
    ) -> OrderHandle | None: ...

    async def create_order(
        self,
        symbol: str,
        order_type: str,
        side: OrderSide,
        quantity: Decimal,
        price: Decimal | None = None,
        params: dict[str, Any] | None = None,
    ) -> OrderHandle: ...

    async def edit_order(
        self,
        order_id: str,
        symbol: str,
        order_type: str,
        side: OrderSide,
        quantity: Decimal,
        price: Decimal | None = None,
        params: dict[str, Any] | None = None,
    ) -> OrderHandle: ...

    async def cancel_order(
        self, order_id: str, symbol: str, params: dict[str, Any] | None = None
    ) -> bool:
        """Cancel an order. Returns False when the venue no longer knows it."""
        ...


def _decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _normalize_type(raw_type: str | None, trigger_price: Decimal | None) -> OrderType:
    lowered = (raw_type or "").lower()
    if trigger_price is not None or any(marker in lowered for marker in _STOP_TYPE_MARKERS):
        return OrderType.STOP
    if lowered == "market":
        return OrderType.MARKET
    return OrderType.LIMIT


def parse_order(data: dict[str, Any]) -> OpenOrder:
    """Convert a ccxt unified order structure into an ``OpenOrder``."""
    trigger_price = (
        _decimal(data.get("triggerPrice"))
        or _decimal(data.get("stopPrice"))
        or _decimal(data.get("stopLossPrice"))
    )
    remaining = _decimal(data.get("remaining"))
    if remaining is None:
        amount = _decimal(data.get("amount")) or Decimal("0")
        filled = _decimal(data.get("filled")) or Decimal("0")
        remaining = max(amount - filled, Decimal("0"))

    return OpenOrder(
        id=str(data["id"]),
        symbol=data.get("symbol") or "",
        side=OrderSide(str(data.get("side", "")).lower()),
        type=_normalize_type(data.get("type"), trigger_price),
        price=_decimal(data.get("price")),
        trigger_price=trigger_price,
        remaining_quantity=remaining,
        raw=data,
    )


def parse_position(data: dict[str, Any], symbol: str) -> Position:
    """Convert a ccxt unified position structure into a ``Position``."""
    contracts = _decimal(data.get("contracts")) or Decimal("0")
    size = abs(contracts)
    raw_side = str(data.get("side") or "").lower()

    if size == 0:
        side = PositionSide.FLAT
    elif raw_side in (PositionSide.LONG.value, PositionSide.SHORT.value):
        side = PositionSide(raw_side)
    else:
        side = PositionSide.LONG if contracts > 0 else PositionSide.SHORT

    return Position(
        symbol=data.get("symbol") or symbol,
        side=side,
        size=size,
        entry_price=_decimal(data.get("entryPrice")),
    )


class CcxtVenueGateway:
    """Venue gateway backed by a ccxt async exchange instance."""

    def __init__(self, config: TameConfig, exchange: Any | None = None) -> None:
        """Initialize the gateway.

        Args:
            config: Client configuration (venue id, credentials, sandbox flag)
            exchange: Optional injected ccxt exchange (primarily for testing)
        """
        self.config = config
        self.venue_id = config.venue
        self.exchange = exchange or self._build_exchange(config)
        self._markets_loaded = False

    @staticmethod
    def _build_exchange(config: TameConfig) -> Any:
        exchange_cls = getattr(ccxt_async, config.venue, None)
        if exchange_cls is None:
            raise GatewayFailure(f"ccxt has no exchange named '{config.venue}'")

        exchange = exchange_cls(
            {
                "apiKey": config.api_key,
                "secret": config.api_secret,
                "enableRateLimit": True,
                "options": {
                    "defaultType": config.default_type,
                    "adjustForTimeDifference": True,
                },
            }
        )
        if config.sandbox:
            exchange.set_sandbox_mode(True)
        return exchange

    async def connect(self) -> None:
        """Load markets so symbol metadata is available."""
        if self._markets_loaded:
            return
        logger.info(
            "Connecting to {} (sandbox={})",
            self.venue_id,
            self.config.sandbox,
        )
        await self._call("load_markets", self.exchange.load_markets)
        self._markets_loaded = True

    async def close(self) -> None:
        """Release the underlying HTTP session."""
        await self.exchange.close()
        self._markets_loaded = False
        logger.info("Disconnected from {}", self.venue_id)

    async def _call(self, operation: str, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        logger.debug("{} {} {}", self.venue_id, operation, args)
        try:
            return await func(*args)
        except ccxt.OrderNotFound as exc:
            raise OrderNotFound(f"{operation}: {exc}") from exc
        except ccxt.NotSupported as exc:
            raise UnsupportedOperation(f"{operation} not supported by {self.venue_id}") from exc
        except ccxt.InvalidOrder as exc:
            raise OrderRejected(f"{operation} rejected by {self.venue_id}: {exc}") from exc
        except ccxt.BaseError as exc:
            raise GatewayFailure(f"{operation} failed on {self.venue_id}: {exc}") from exc

    def _require(self, capability: str) -> None:
        if not self.exchange.has.get(capability):
            raise UnsupportedOperation(f"{capability} not supported by {self.venue_id}")

    async def fetch_market(self, symbol: str) -> Market:
        await self.connect()
        try:
            market = self.exchange.market(symbol)
        except ccxt.BaseError as exc:
            raise GatewayFailure(f"Unknown market {symbol} on {self.venue_id}") from exc

        precision = market.get("precision") or {}
        return Market(
            symbol=market["symbol"],
            price_increment=self._increment(precision.get("price")),
            amount_increment=self._increment(precision.get("amount")),
        )

    def _increment(self, value: Any) -> Decimal | None:
        if value is None:
            return None
        if getattr(self.exchange, "precisionMode", ccxt.TICK_SIZE) == ccxt.TICK_SIZE:
            return Decimal(str(value))
        return Decimal(1).scaleb(-int(value))

    async def fetch_open_orders(self, symbol: str) -> list[OpenOrder]:
        orders = await self._call("fetch_open_orders", self.exchange.fetch_open_orders, symbol)
        return [parse_order(order) for order in orders]

    async def fetch_position(self, symbol: str) -> Position:
        self._require("fetchPosition")
        data = await self._call("fetch_position", self.exchange.fetch_position, symbol)
        if not data:
            return Position.flat(symbol)
        return parse_position(data, symbol)

    async def fetch_positions(self, symbols: list[str]) -> list[Position]:
        self._require("fetchPositions")
        rows = await self._call("fetch_positions", self.exchange.fetch_positions, symbols)
        return [parse_position(row, row.get("symbol") or "") for row in rows]

    async def fetch_balance(self) -> dict[str, Decimal]:
        balance = await self._call("fetch_balance", self.exchange.fetch_balance)
        totals = balance.get("total") or {}
        return {
            currency: Decimal(str(amount)) for currency, amount in totals.items() if amount
        }

    async def fetch_l2_order_book(self, symbol: str) -> OrderBookTop:
        book = await self._call("fetch_l2_order_book", self.exchange.fetch_l2_order_book, symbol)
        bids = book.get("bids") or []
        asks = book.get("asks") or []
        return OrderBookTop(
            symbol=symbol,
            best_bid=_decimal(bids[0][0]) if bids else None,
            best_ask=_decimal(asks[0][0]) if asks else None,
        )

    async def fetch_ticker(self, symbol: str) -> Ticker:
        ticker = await self._call("fetch_ticker", self.exchange.fetch_ticker, symbol)
        return Ticker(symbol=symbol, last=_decimal(ticker.get("last")))

    def _handle(self, data: dict[str, Any], symbol: str, side: OrderSide) -> OrderHandle:
        order = parse_order({"symbol": symbol, "side": side.value, **data})
        return OrderHandle(
            id=order.id,
            symbol=order.symbol or symbol,
            side=order.side,
            type=order.type,
            quantity=_decimal(data.get("amount")),
            price=order.price,
            trigger_price=order.trigger_price,
        )

    async def create_limit_order(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        price: Decimal,
        params: dict[str, Any] | None = None,
    ) -> OrderHandle | None:
        logger.info("Placing limit order: {} {} {} @ {}", side.value, quantity, symbol, price)
        data = await self._call(
            "create_limit_order",
            self.exchange.create_limit_order,
            symbol,
            side.value,
            float(quantity),
            float(price),
            params or {},
        )
        if not data or not data.get("id") or data.get("status") == "closed":
            logger.info("Limit order on {} filled on placement", symbol)
            return None
        return self._handle({"type": "limit", **data}, symbol, side)

    async def create_order(
        self,
        symbol: str,
        order_type: str,
        side: OrderSide,
        quantity: Decimal,
        price: Decimal | None = None,
        params: dict[str, Any] | None = None,
    ) -> OrderHandle:
        logger.info(
            "Placing {} order: {} {} {} price={} params={}",
            order_type,
            side.value,
            quantity,
            symbol,
            price,
            params,
        )
        data = await self._call(
            "create_order",
            self.exchange.create_order,
            symbol,
            order_type,
            side.value,
            float(quantity),
            float(price) if price is not None else None,
            params or {},
        )
        return self._handle({"type": order_type, **(params or {}), **data}, symbol, side)

    async def edit_order(
        self,
        order_id: str,
        symbol: str,
        order_type: str,
        side: OrderSide,
        quantity: Decimal,
        price: Decimal | None = None,
        params: dict[str, Any] | None = None,
    ) -> OrderHandle:
        self._require("editOrder")
        logger.info("Editing order {} on {}: qty={} price={}", order_id, symbol, quantity, price)
        data = await self._call(
            "edit_order",
            self.exchange.edit_order,
            order_id,
            symbol,
            order_type,
            side.value,
            float(quantity),
            float(price) if price is not None else None,
            params or {},
        )
        # Some venues answer an edit without echoing the order id.
        data = {**data, "id": data.get("id") or order_id, "type": data.get("type") or order_type}
        return self._handle(data, symbol, side)

    async def cancel_order(
        self, order_id: str, symbol: str, params: dict[str, Any] | None = None
    ) -> bool:
        logger.info("Cancelling order {} on {}", order_id, symbol)
        try:
            await self._call(
                "cancel_order", self.exchange.cancel_order, order_id, symbol, params or {}
            )
        except OrderNotFound:
            logger.info("Order {} on {} already gone", order_id, symbol)
            return False
        return True
