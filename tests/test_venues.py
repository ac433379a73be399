"""Tests for the venue capability table."""

from decimal import Decimal

import pytest

from tame_trader.errors import UnknownVenueCapability
from tame_trader.venues import VENUE_CAPABILITIES, VenueCapabilityProfile, known_venues, lookup


def test_deribit_stop_params_include_reduce_only() -> None:
    profile = lookup("deribit")

    assert profile.stop_order_type_name == "stop_market"
    assert profile.stop_params(Decimal("27500")) == {
        "stopLossPrice": 27500.0,
        "reduce_only": True,
    }


def test_deribit_edit_params_use_native_trigger_field() -> None:
    profile = lookup("deribit")

    assert profile.stop_edit_supported
    assert profile.stop_edit_params(Decimal("27500")) == {
        "trigger_price": 27500.0,
        "reduce_only": True,
    }


def test_edit_params_default_to_creation_params() -> None:
    profile = VenueCapabilityProfile(
        venue_id="custom",
        stop_order_type_name="stop",
        trigger_price_field="stopPrice",
        reduce_only_supported=False,
        stop_edit_supported=True,
    )

    assert profile.stop_edit_params(Decimal("10")) == {"stopPrice": 10.0}


def test_only_hyperliquid_stops_carry_a_price() -> None:
    assert lookup("hyperliquid").stop_price(Decimal("28000")) == Decimal("28000")
    assert lookup("deribit").stop_price(Decimal("28000")) is None
    assert lookup("phemex").stop_price(Decimal("28000")) is None


def test_phemex_stop_params_have_no_reduce_only_field() -> None:
    profile = lookup("phemex")

    params = profile.stop_params(Decimal("28000"))

    assert profile.stop_order_type_name == "stop"
    assert params == {"stopPrice": 28000.0}


def test_lookup_is_case_insensitive() -> None:
    assert lookup("  Deribit ") is VENUE_CAPABILITIES["deribit"]


def test_unknown_venue_is_reported() -> None:
    with pytest.raises(UnknownVenueCapability, match="kraken"):
        lookup("kraken")


def test_reduce_only_field_required_when_supported() -> None:
    with pytest.raises(ValueError, match="reduce_only_field required"):
        VenueCapabilityProfile(
            venue_id="broken",
            stop_order_type_name="stop",
            trigger_price_field="stopPrice",
            reduce_only_supported=True,
        )


def test_slow_venue_flag() -> None:
    assert lookup("hyperliquid").high_confirmation_latency
    assert not lookup("phemex").high_confirmation_latency
    assert known_venues() == sorted(VENUE_CAPABILITIES)
