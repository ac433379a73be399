"""Chase orders: a resting limit order kept at the best bid/ask until done.

A session moves ``IDLE -> PLACING -> TRACKING -> FILLED | CANCELLED | DECAYED``.
Tracking is a cooperative repeating task; each tick is one round of gateway
calls and decides whether another tick is needed. ``cancel`` flips ``active``
before touching the gateway, and every tick re-checks ``active`` after each
round-trip, so a cancel always wins over an in-flight tick.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from loguru import logger

from tame_trader.core.events import ChaseEvent, EventBus, EventTopic
from tame_trader.errors import (
    ChaseAlreadyActive,
    ChaseNotFound,
    GatewayFailure,
    InvalidOrderParameters,
    OrderNotFound,
    TraderError,
)
from tame_trader.gateway import VenueGateway
from tame_trader.models import ChaseState, OrderSide

FINISHED_SESSIONS_KEPT = 20


class ChaseSession:
    """State of one chase. Owned by the controller until it reaches a terminal state."""

    def __init__(
        self,
        session_id: str,
        symbol: str,
        side: OrderSide,
        total_quantity: Decimal,
    ) -> None:
        self.session_id = session_id
        self.symbol = symbol
        self.side = side
        self.total_quantity = total_quantity
        self.order_id: str | None = None
        self.price: Decimal | None = None
        self.state = ChaseState.IDLE
        self.active = False
        self.decay_deadline: float | None = None
        self.cancel_reason: ChaseState | None = None
        self.reprices = 0
        self.started_at = datetime.now(UTC)
        self.loop_task: asyncio.Task[None] | None = None
        self.decay_task: asyncio.Task[None] | None = None
        self.cancel_in_flight: asyncio.Event | None = None
        self._done = asyncio.Event()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    async def wait(self) -> ChaseState:
        """Block until the session reaches a terminal state."""
        await self._done.wait()
        return self.state

    def _mark_done(self) -> None:
        self._done.set()


class ChaseOrderController:
    """Drives at most one chase session at a time."""

    def __init__(
        self,
        gateway: VenueGateway,
        *,
        interval: float,
        event_bus: EventBus | None = None,
        auto_schedule: bool = True,
        clock: Callable[[], float] = time.monotonic,
        keep_finished: int = FINISHED_SESSIONS_KEPT,
    ) -> None:
        """Initialize the controller.

        Args:
            gateway: Venue gateway
            interval: Seconds between ticks
            event_bus: Optional bus receiving ``ChaseEvent`` updates
            auto_schedule: Run the tick loop and decay timer as background tasks.
                When False, callers drive the session with ``tick()``.
            clock: Monotonic clock used for decay deadlines
            keep_finished: Number of ended sessions kept for lookups
        """
        self.gateway = gateway
        self.interval = interval
        self._event_bus = event_bus
        self._auto_schedule = auto_schedule
        self._clock = clock
        self._keep_finished = keep_finished
        self._current: ChaseSession | None = None
        self._sessions: dict[str, ChaseSession] = {}

    @property
    def current_session(self) -> ChaseSession | None:
        return self._current

    def session(self, session_id: str) -> ChaseSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise ChaseNotFound(f"Unknown chase session {session_id}") from None

    async def start(
        self,
        symbol: str,
        side: OrderSide,
        quantity: Decimal,
        decay: float | None = None,
    ) -> str:
        """Place a limit order at the best price and start tracking it.

        Returns:
            The session id. The session is already FILLED when the venue filled
            the order on placement.

        Raises:
            ChaseAlreadyActive: If another session is still in progress
        """
        if self._current is not None:
            raise ChaseAlreadyActive(
                f"Chase {self._current.session_id} on {self._current.symbol} is still "
                f"{self._current.state.value}; cancel it first"
            )
        if quantity <= 0:
            raise InvalidOrderParameters(f"Chase quantity must be positive, got {quantity}")
        if decay is not None and decay <= 0:
            raise InvalidOrderParameters(f"Decay must be positive, got {decay}")

        session = ChaseSession(f"chase-{uuid4().hex[:8]}", symbol, side, quantity)
        self._current = session
        self._sessions[session.session_id] = session
        session.state = ChaseState.PLACING

        try:
            book = await self.gateway.fetch_l2_order_book(symbol)
            price = book.best_for(side)
            if price is None:
                raise GatewayFailure(f"Order book for {symbol} has no {side.value} side")
            handle = await self.gateway.create_limit_order(symbol, side, quantity, price)
        except TraderError:
            session.state = ChaseState.IDLE
            self._current = None
            del self._sessions[session.session_id]
            raise

        session.price = price
        if handle is None:
            logger.info("Chase {} filled on placement at {}", session.session_id, price)
            await self._finish(session, ChaseState.FILLED)
            return session.session_id

        session.order_id = handle.id
        if session.cancel_reason is not None:
            # Cancelled while the placement was in flight.
            try:
                await self._cancel_order(session)
            except GatewayFailure:
                logger.warning(
                    "Chase {} keeps tracking until a cancel succeeds", session.session_id
                )
            else:
                return session.session_id

        session.active = True
        session.state = ChaseState.TRACKING
        if decay is not None:
            session.decay_deadline = self._clock() + decay

        logger.info(
            "Chase {} started: {} {} {} @ {} (order {}, decay={})",
            session.session_id,
            side.value,
            quantity,
            symbol,
            price,
            handle.id,
            decay,
        )
        await self._publish(session)

        if self._auto_schedule:
            session.loop_task = asyncio.create_task(self._run(session))
            if decay is not None:
                session.decay_task = asyncio.create_task(self._decay_after(session, decay))
        return session.session_id

    async def tick(self) -> bool:
        """Run one tracking step for the current session.

        Returns:
            True if another tick is needed.
        """
        if self._current is None:
            return False
        return await self._tick_session(self._current)

    async def _run(self, session: ChaseSession) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if not await self._tick_session(session):
                return

    async def _decay_after(self, session: ChaseSession, decay: float) -> None:
        await asyncio.sleep(decay)
        if session.state.is_terminal:
            return
        try:
            await self.cancel(session.session_id, reason=ChaseState.DECAYED)
        except TraderError as exc:
            logger.error(
                "Decay of chase {} failed, the tick loop retries: {}", session.session_id, exc
            )

    async def _tick_session(self, session: ChaseSession) -> bool:
        if not session.active:
            return False

        if session.decay_deadline is not None and self._clock() >= session.decay_deadline:
            logger.info("Chase {} reached its decay deadline", session.session_id)
            try:
                await self.cancel(session.session_id, reason=ChaseState.DECAYED)
            except TraderError as exc:
                logger.error("Decay of chase {} failed, retrying: {}", session.session_id, exc)
            return session.active

        try:
            return await self._track(session)
        except Exception as exc:
            logger.warning("Chase {} tick failed, retrying: {}", session.session_id, exc)
            return session.active

    async def _track(self, session: ChaseSession) -> bool:
        orders = await self.gateway.fetch_open_orders(session.symbol)
        if not session.active:
            return False

        resting = next((order for order in orders if order.id == session.order_id), None)
        if resting is None:
            session.active = False
            await self._finish(session, ChaseState.FILLED)
            return False

        book = await self.gateway.fetch_l2_order_book(session.symbol)
        if not session.active:
            return False

        best = book.best_for(session.side)
        if best is None or not self._should_reprice(session, best):
            return True

        quantity = resting.remaining_quantity or session.total_quantity
        handle = await self.gateway.edit_order(
            resting.id, session.symbol, "limit", session.side, quantity, best
        )
        if handle.id != session.order_id:
            logger.debug(
                "Chase {} order id changed on edit: {} -> {}",
                session.session_id,
                session.order_id,
                handle.id,
            )
            session.order_id = handle.id
            if not session.active:
                # An in-flight cancel picks up the new id itself; a finished one cannot.
                if session.done:
                    await self.gateway.cancel_order(handle.id, session.symbol)
                return False

        session.price = best
        session.reprices += 1
        logger.info("Chase {} repriced to {}", session.session_id, best)
        await self._publish(session)
        return session.active

    @staticmethod
    def _should_reprice(session: ChaseSession, best: Decimal) -> bool:
        if session.price is None:
            return True
        if session.side == OrderSide.BUY:
            return best > session.price
        return best < session.price

    async def cancel(
        self, session_id: str, reason: ChaseState = ChaseState.CANCELLED
    ) -> ChaseState:
        """Stop a chase and cancel its order.

        A venue answer of "order not found" means the order already filled and
        the session ends FILLED, not CANCELLED.

        Raises:
            ChaseNotFound: If the session id is unknown
            GatewayFailure: If the cancel request itself fails. The session keeps
                tracking its order in that case.
        """
        session = self.session(session_id)
        while session.cancel_in_flight is not None:
            # Another cancel is already in flight.
            await session.cancel_in_flight.wait()
        if session.state.is_terminal:
            return session.state

        session.active = False
        session.cancel_reason = reason
        if session.order_id is None:
            logger.info("Chase {} cancel requested during placement", session_id)
            return session.state

        await self._cancel_order(session)
        return session.state

    async def _cancel_order(self, session: ChaseSession) -> None:
        reason = session.cancel_reason or ChaseState.CANCELLED
        attempt = session.cancel_in_flight = asyncio.Event()
        try:
            cancelled = await self._cancel_latest(session)
        except GatewayFailure:
            logger.error(
                "Cancel of chase {} failed; still tracking order {}",
                session.session_id,
                session.order_id,
            )
            self._resume(session)
            raise
        else:
            await self._finish(session, reason if cancelled else ChaseState.FILLED)
        finally:
            session.cancel_in_flight = None
            attempt.set()

    async def _cancel_latest(self, session: ChaseSession) -> bool:
        while True:
            order_id = session.order_id
            assert order_id is not None
            try:
                cancelled = await self.gateway.cancel_order(order_id, session.symbol)
            except OrderNotFound:
                cancelled = False
            if session.order_id == order_id:
                return cancelled
            # A reprice replaced the order while the cancel was in flight.

    def _resume(self, session: ChaseSession) -> None:
        session.cancel_reason = None
        session.active = True
        session.state = ChaseState.TRACKING
        if session.loop_task is not None and session.loop_task.done():
            session.loop_task = asyncio.create_task(self._run(session))

    async def _finish(self, session: ChaseSession, state: ChaseState) -> None:
        if session.done:
            return
        session.active = False
        session.state = state
        if self._current is session:
            self._current = None
        self._forget_finished()

        current = asyncio.current_task()
        for task in (session.loop_task, session.decay_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

        logger.info(
            "Chase {} on {} ended: {} after {} reprice(s)",
            session.session_id,
            session.symbol,
            state.value,
            session.reprices,
        )
        await self._publish(session)
        session._mark_done()

    def _forget_finished(self) -> None:
        finished = [sid for sid, s in self._sessions.items() if s.state.is_terminal]
        for session_id in finished[: max(len(finished) - self._keep_finished, 0)]:
            del self._sessions[session_id]

    async def _publish(self, session: ChaseSession) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.publish(
            EventTopic.CHASE,
            ChaseEvent(
                session_id=session.session_id,
                symbol=session.symbol,
                side=session.side,
                state=session.state,
                order_id=session.order_id,
                price=session.price,
                timestamp=datetime.now(UTC),
            ),
        )

    async def close(self) -> None:
        """Cancel the current session (if any) and stop background tasks."""
        session = self._current
        if session is None:
            return
        try:
            await self.cancel(session.session_id)
        finally:
            tasks = [t for t in (session.loop_task, session.decay_task) if t is not None]
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
