"""Per-venue order quirks, looked up by venue id.

Controllers never branch on venue names. A new venue is onboarded by adding a
row to ``VENUE_CAPABILITIES``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from tame_trader.errors import UnknownVenueCapability


@dataclass(frozen=True, slots=True)
class VenueCapabilityProfile:
    """How a venue expects protective stops to be expressed."""

    venue_id: str
    stop_order_type_name: str
    trigger_price_field: str
    reduce_only_supported: bool
    reduce_only_field: str | None = None
    stop_edit_supported: bool = False
    edit_trigger_price_field: str | None = None
    stop_requires_price: bool = False
    high_confirmation_latency: bool = False

    def __post_init__(self) -> None:
        if self.reduce_only_supported and not self.reduce_only_field:
            raise ValueError(f"{self.venue_id}: reduce_only_field required when supported")

    def stop_params(self, trigger_price: Decimal) -> dict[str, Any]:
        """Build the gateway ``params`` bag for a protective stop."""
        params: dict[str, Any] = {self.trigger_price_field: float(trigger_price)}
        if self.reduce_only_supported and self.reduce_only_field:
            params[self.reduce_only_field] = True
        return params

    def stop_edit_params(self, trigger_price: Decimal) -> dict[str, Any]:
        """Build the ``params`` bag for an in-place stop edit.

        Some venues take the new trigger under a different key on edits than on
        creation, and ccxt passes edit params through untranslated.
        """
        params = self.stop_params(trigger_price)
        if self.edit_trigger_price_field:
            params[self.edit_trigger_price_field] = params.pop(self.trigger_price_field)
        return params

    def stop_price(self, trigger_price: Decimal) -> Decimal | None:
        """Order price sent alongside a stop. Market stops normally carry none."""
        return trigger_price if self.stop_requires_price else None


VENUE_CAPABILITIES: Mapping[str, VenueCapabilityProfile] = {
    "deribit": VenueCapabilityProfile(
        venue_id="deribit",
        stop_order_type_name="stop_market",
        trigger_price_field="stopLossPrice",
        reduce_only_supported=True,
        reduce_only_field="reduce_only",
        stop_edit_supported=True,
        edit_trigger_price_field="trigger_price",
    ),
    "phemex": VenueCapabilityProfile(
        venue_id="phemex",
        stop_order_type_name="stop",
        trigger_price_field="stopPrice",
        reduce_only_supported=False,
    ),
    "binance": VenueCapabilityProfile(
        venue_id="binance",
        stop_order_type_name="STOP_MARKET",
        trigger_price_field="stopPrice",
        reduce_only_supported=True,
        reduce_only_field="reduceOnly",
    ),
    "hyperliquid": VenueCapabilityProfile(
        venue_id="hyperliquid",
        stop_order_type_name="market",
        trigger_price_field="stopLossPrice",
        reduce_only_supported=True,
        reduce_only_field="reduceOnly",
        stop_requires_price=True,
        high_confirmation_latency=True,
    ),
}


def lookup(venue_id: str) -> VenueCapabilityProfile:
    """Return the capability profile for ``venue_id`` (case-insensitive).

    Raises:
        UnknownVenueCapability: If the venue has no table row
    """
    key = venue_id.strip().lower()
    try:
        return VENUE_CAPABILITIES[key]
    except KeyError:
        raise UnknownVenueCapability(
            f"No capability profile for venue '{venue_id}'. "
            f"Known venues: {', '.join(sorted(VENUE_CAPABILITIES))}"
        ) from None


def known_venues() -> list[str]:
    return sorted(VENUE_CAPABILITIES)
