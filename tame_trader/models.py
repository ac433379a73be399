"""Trading models using Pydantic v2."""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderSide(str, Enum):
    """Order side enumeration."""

    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class PositionSide(str, Enum):
    """Position direction."""

    LONG = "long"
    SHORT = "short"
    FLAT = "flat"


class OrderType(str, Enum):
    """Normalized order type. Venue-specific stop variants all map to STOP."""

    LIMIT = "limit"
    STOP = "stop"
    MARKET = "market"


class ChaseState(str, Enum):
    """Lifecycle of a chase session."""

    IDLE = "idle"
    PLACING = "placing"
    TRACKING = "tracking"
    FILLED = "filled"
    CANCELLED = "cancelled"
    DECAYED = "decayed"

    @property
    def is_terminal(self) -> bool:
        return self in (ChaseState.FILLED, ChaseState.CANCELLED, ChaseState.DECAYED)


class Market(BaseModel):
    """Tradable market and its price/quantity increments."""

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., description="Unified market symbol, e.g. BTC/USD:BTC")
    price_increment: Decimal | None = Field(default=None, description="Price tick size")
    amount_increment: Decimal | None = Field(default=None, description="Quantity step size")

    def round_price(self, price: Decimal) -> Decimal:
        """Round a price to the nearest tick."""
        if not self.price_increment:
            return price
        ticks = (price / self.price_increment).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return ticks * self.price_increment

    def round_amount(self, amount: Decimal) -> Decimal:
        """Round a quantity down to the step size so risk is never exceeded."""
        if not self.amount_increment:
            return amount
        steps = (amount / self.amount_increment).quantize(Decimal("1"), rounding=ROUND_DOWN)
        return steps * self.amount_increment


class Position(BaseModel):
    """Point-in-time position snapshot. Never cached across operations."""

    symbol: str
    side: PositionSide = Field(default=PositionSide.FLAT)
    size: Annotated[Decimal, Field(ge=0, description="Absolute position size")] = Decimal("0")
    entry_price: Decimal | None = Field(default=None)

    @property
    def is_flat(self) -> bool:
        return self.side == PositionSide.FLAT or self.size == 0

    @property
    def closing_side(self) -> OrderSide | None:
        """Side of an order that reduces this position."""
        if self.is_flat:
            return None
        return OrderSide.SELL if self.side == PositionSide.LONG else OrderSide.BUY

    @classmethod
    def flat(cls, symbol: str) -> "Position":
        return cls(symbol=symbol, side=PositionSide.FLAT, size=Decimal("0"))


class OpenOrder(BaseModel):
    """Resting order as reported by the venue."""

    id: str
    symbol: str
    side: OrderSide
    type: OrderType
    price: Decimal | None = Field(default=None)
    trigger_price: Decimal | None = Field(default=None)
    remaining_quantity: Decimal = Field(default=Decimal("0"), ge=0)
    raw: dict[str, Any] = Field(default_factory=dict, description="Untouched venue payload")

    @property
    def is_stop(self) -> bool:
        return self.type == OrderType.STOP

    @property
    def is_resting_limit(self) -> bool:
        return self.type == OrderType.LIMIT and self.trigger_price is None


class OrderHandle(BaseModel):
    """Identifier of an order accepted by the venue."""

    id: str
    symbol: str
    side: OrderSide
    type: OrderType
    quantity: Decimal | None = Field(default=None)
    price: Decimal | None = Field(default=None)
    trigger_price: Decimal | None = Field(default=None)


class OrderBookTop(BaseModel):
    """Best bid/ask from an L2 snapshot."""

    symbol: str
    best_bid: Decimal | None = Field(default=None)
    best_ask: Decimal | None = Field(default=None)

    def best_for(self, side: OrderSide) -> Decimal | None:
        """Price a passive order on ``side`` should rest at."""
        return self.best_bid if side == OrderSide.BUY else self.best_ask


class Ticker(BaseModel):
    """Last traded price."""

    symbol: str
    last: Decimal | None = Field(default=None)


class StopSpec(BaseModel):
    """Requested protective stop. Quantity and side are derived when omitted."""

    symbol: str
    trigger_price: Annotated[Decimal, Field(gt=0, description="Trigger price")]
    quantity: Decimal | None = Field(default=None)
    side: OrderSide | None = Field(default=None)

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: str) -> str:
        """Ensure symbol is non-empty."""
        if not v or not v.strip():
            raise ValueError("Symbol cannot be empty")
        return v.strip()

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v <= 0:
            raise ValueError(f"Quantity must be greater than 0, got {v}")
        return v


class RangeOrderRequest(BaseModel):
    """Ladder of limit entries across [start_price, end_price] sharing one stop."""

    symbol: str
    start_price: Annotated[Decimal, Field(gt=0)]
    end_price: Annotated[Decimal, Field(gt=0)]
    num_orders: Annotated[int, Field(ge=1, description="Number of ladder rungs")]
    total_capital: Annotated[Decimal, Field(gt=0, description="Capital the risk is taken from")]
    risk_percentage: Annotated[
        Decimal, Field(gt=0, le=100, description="Percent of capital risked by the whole ladder")
    ]
    stop_price: Annotated[Decimal, Field(gt=0)]
    take_profit_price: Annotated[Decimal, Field(gt=0)]
    risk_return_ratio_threshold: Decimal | None = Field(
        default=None, description="Overrides the configured threshold"
    )


class BracketOrderRequest(BaseModel):
    """Single limit entry plus a protective stop, sized from a risk budget."""

    symbol: str
    entry_price: Annotated[Decimal, Field(gt=0)]
    stop_price: Annotated[Decimal, Field(gt=0)]
    take_profit_price: Annotated[Decimal, Field(gt=0)]
    total_capital: Annotated[Decimal, Field(gt=0)]
    risk_percentage: Annotated[Decimal, Field(gt=0, le=100)]
    risk_return_ratio_threshold: Decimal | None = Field(default=None)


class LadderLevel(BaseModel):
    """One validated rung of a range plan."""

    price: Decimal
    quantity: Decimal
    risk_return_ratio: Decimal


class RangeOrderResult(BaseModel):
    """Orders placed by a range submission."""

    side: OrderSide
    levels: list[LadderLevel]
    entries: list[OrderHandle | None] = Field(default_factory=list)
    stop: OrderHandle | None = Field(default=None)


class BracketOrderResult(BaseModel):
    """Orders placed by a bracket submission."""

    side: OrderSide
    quantity: Decimal
    risk_return_ratio: Decimal
    entry: OrderHandle | None = Field(default=None)
    stop: OrderHandle | None = Field(default=None)


class CancelOrdersResult(BaseModel):
    """Outcome of a bulk cancel."""

    cancelled: list[str] = Field(default_factory=list)
    already_gone: list[str] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.cancelled)


class BumpOrdersResult(BaseModel):
    """Outcome of a bulk price shift."""

    edited: list[OrderHandle] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
