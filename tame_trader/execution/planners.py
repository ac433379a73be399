"""Risk-budgeted entry planners: range ladders and brackets.

Both planners validate the whole plan before the first order is submitted and
never roll back orders once submission has begun.
"""

from __future__ import annotations

from decimal import Decimal

from loguru import logger
from pydantic import BaseModel

from tame_trader.errors import (
    BatchSubmissionError,
    InvalidOrderParameters,
    RiskRewardTooLow,
    TraderError,
    ZeroRiskDistance,
)
from tame_trader.execution.stops import StopOrderController
from tame_trader.gateway import VenueGateway
from tame_trader.models import (
    BracketOrderRequest,
    BracketOrderResult,
    LadderLevel,
    Market,
    OrderHandle,
    OrderSide,
    RangeOrderRequest,
    RangeOrderResult,
)

HUNDRED = Decimal("100")


def calculate_position_size(
    capital: Decimal, risk_pct: Decimal, entry_price: Decimal, stop_price: Decimal
) -> Decimal:
    """Quantity whose loss at ``stop_price`` equals ``risk_pct`` percent of ``capital``.

    Raises:
        ZeroRiskDistance: If entry equals stop
    """
    distance = abs(entry_price - stop_price)
    if distance == 0:
        raise ZeroRiskDistance(f"Entry {entry_price} equals stop {stop_price}")
    return (capital * risk_pct / HUNDRED) / distance


def calculate_risk_return_ratio(
    entry_price: Decimal, stop_price: Decimal, take_profit_price: Decimal
) -> Decimal:
    """Reward distance divided by risk distance."""
    distance = abs(entry_price - stop_price)
    if distance == 0:
        raise ZeroRiskDistance(f"Entry {entry_price} equals stop {stop_price}")
    return abs(take_profit_price - entry_price) / distance


class RiskPlan(BaseModel):
    """Derived sizing for a single entry."""

    total_capital: Decimal
    risk_percentage: Decimal
    entry_price: Decimal
    stop_price: Decimal
    take_profit_price: Decimal

    @property
    def position_size(self) -> Decimal:
        return calculate_position_size(
            self.total_capital, self.risk_percentage, self.entry_price, self.stop_price
        )

    @property
    def risk_return_ratio(self) -> Decimal:
        return calculate_risk_return_ratio(
            self.entry_price, self.stop_price, self.take_profit_price
        )


def entry_side(
    low: Decimal, high: Decimal, stop_price: Decimal, take_profit_price: Decimal
) -> OrderSide:
    """Infer the entry side from where the stop and target sit around the entries."""
    if stop_price < low and take_profit_price > high:
        return OrderSide.BUY
    if stop_price > high and take_profit_price < low:
        return OrderSide.SELL
    raise InvalidOrderParameters(
        f"Stop {stop_price} and take-profit {take_profit_price} must lie on opposite "
        f"sides outside the entry range [{low}, {high}]"
    )


def check_ratio(ratio: Decimal, threshold: Decimal, label: str) -> None:
    if ratio <= threshold:
        raise RiskRewardTooLow(
            f"{label}: risk/return ratio {ratio:.2f} is not above threshold {threshold}"
        )


class RangeOrderPlanner:
    """Spreads limit entries evenly across a price range and adds one shared stop."""

    def __init__(
        self,
        gateway: VenueGateway,
        stops: StopOrderController,
        risk_return_ratio_threshold: Decimal,
    ) -> None:
        self.gateway = gateway
        self.stops = stops
        self.threshold = risk_return_ratio_threshold

    @staticmethod
    def price_levels(start: Decimal, end: Decimal, num_orders: int) -> list[Decimal]:
        if num_orders == 1:
            return [start]
        step = (end - start) / (num_orders - 1)
        return [start + step * i for i in range(num_orders)]

    def plan(self, request: RangeOrderRequest, market: Market | None = None) -> RangeOrderResult:
        """Size and validate every rung. Nothing is submitted.

        Raises:
            RiskRewardTooLow: On the first rung (or the aggregate) at or below threshold
        """
        threshold = request.risk_return_ratio_threshold
        if threshold is None:
            threshold = self.threshold

        prices = self.price_levels(request.start_price, request.end_price, request.num_orders)
        if market is not None:
            prices = [market.round_price(price) for price in prices]

        side = entry_side(min(prices), max(prices), request.stop_price, request.take_profit_price)
        risk_share = request.risk_percentage / request.num_orders

        levels: list[LadderLevel] = []
        for index, price in enumerate(prices, start=1):
            quantity = calculate_position_size(
                request.total_capital, risk_share, price, request.stop_price
            )
            if market is not None:
                quantity = market.round_amount(quantity)
            if quantity <= 0:
                raise InvalidOrderParameters(
                    f"Order {index} at {price} rounds to zero quantity; raise the risk budget"
                )
            ratio = calculate_risk_return_ratio(
                price, request.stop_price, request.take_profit_price
            )
            check_ratio(ratio, threshold, f"Order {index} at {price}")
            levels.append(LadderLevel(price=price, quantity=quantity, risk_return_ratio=ratio))

        total = sum((level.quantity for level in levels), Decimal("0"))
        average_entry = sum((level.price * level.quantity for level in levels), Decimal("0"))
        average_entry /= total
        check_ratio(
            calculate_risk_return_ratio(
                average_entry, request.stop_price, request.take_profit_price
            ),
            threshold,
            f"Average entry {average_entry:.2f}",
        )
        return RangeOrderResult(side=side, levels=levels)

    async def submit(self, request: RangeOrderRequest) -> RangeOrderResult:
        """Validate the ladder, place every limit order, then the shared stop."""
        market = await self.gateway.fetch_market(request.symbol)
        result = self.plan(request, market)

        placed: list[OrderHandle | None] = []
        for level in result.levels:
            try:
                handle = await self.gateway.create_limit_order(
                    request.symbol, result.side, level.quantity, level.price
                )
            except TraderError as exc:
                raise BatchSubmissionError(
                    f"Range order failed at {level.price} after {len(placed)} order(s): {exc}",
                    placed,
                ) from exc
            placed.append(handle)
        result.entries = placed

        total = sum((level.quantity for level in result.levels), Decimal("0"))
        try:
            result.stop = await self.stops.create_stop(
                request.symbol, request.stop_price, total, result.side.opposite
            )
        except TraderError as exc:
            raise BatchSubmissionError(
                f"{len(placed)} range order(s) placed but the stop failed: {exc}", placed
            ) from exc

        logger.info(
            "Range on {}: {} {} order(s) from {} to {}, stop {} for {}",
            request.symbol,
            len(placed),
            result.side.value,
            request.start_price,
            request.end_price,
            request.stop_price,
            total,
        )
        return result


class BracketOrderPlanner:
    """One limit entry plus its stop, sized from a risk budget."""

    def __init__(
        self,
        gateway: VenueGateway,
        stops: StopOrderController,
        risk_return_ratio_threshold: Decimal,
        slippage_divisor: Decimal = Decimal("1"),
    ) -> None:
        self.gateway = gateway
        self.stops = stops
        self.threshold = risk_return_ratio_threshold
        self.slippage_divisor = slippage_divisor

    def plan(
        self, request: BracketOrderRequest, market: Market | None = None
    ) -> BracketOrderResult:
        threshold = request.risk_return_ratio_threshold
        if threshold is None:
            threshold = self.threshold

        side = entry_side(
            request.entry_price,
            request.entry_price,
            request.stop_price,
            request.take_profit_price,
        )
        plan = RiskPlan(
            total_capital=request.total_capital,
            risk_percentage=request.risk_percentage,
            entry_price=request.entry_price,
            stop_price=request.stop_price,
            take_profit_price=request.take_profit_price,
        )
        ratio = plan.risk_return_ratio
        check_ratio(ratio, threshold, f"Bracket at {request.entry_price}")

        quantity = plan.position_size / self.slippage_divisor
        if market is not None:
            quantity = market.round_amount(quantity)
        if quantity <= 0:
            raise InvalidOrderParameters("Bracket quantity rounds to zero; raise the risk budget")
        return BracketOrderResult(side=side, quantity=quantity, risk_return_ratio=ratio)

    async def submit(self, request: BracketOrderRequest) -> BracketOrderResult:
        market = await self.gateway.fetch_market(request.symbol)
        result = self.plan(request, market)

        result.entry = await self.gateway.create_limit_order(
            request.symbol, result.side, result.quantity, request.entry_price
        )
        try:
            result.stop = await self.stops.create_stop(
                request.symbol, request.stop_price, result.quantity, result.side.opposite
            )
        except TraderError as exc:
            raise BatchSubmissionError(
                f"Bracket entry placed but the stop failed: {exc}", [result.entry]
            ) from exc

        logger.info(
            "Bracket on {}: {} {} @ {} stop {} (R/R {:.2f})",
            request.symbol,
            result.side.value,
            result.quantity,
            request.entry_price,
            request.stop_price,
            result.risk_return_ratio,
        )
        return result
