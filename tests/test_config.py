"""Tests for TameConfig."""

from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

from tame_trader.core.config import TameConfig, load_config


def test_config_defaults(tmp_path: Path) -> None:
    """Sandbox is on and planner defaults are conservative."""
    config = TameConfig(log_dir=tmp_path / "logs")

    assert config.venue == "phemex"
    assert config.sandbox is True
    assert config.risk_return_ratio_threshold == Decimal("1.5")
    assert config.bracket_slippage_divisor == Decimal("1.1")
    assert config.default_capital is None
    assert (tmp_path / "logs").is_dir()


def test_config_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TAME_VENUE", " Deribit ")
    monkeypatch.setenv("TAME_SANDBOX", "false")
    monkeypatch.setenv("TAME_DEFAULT_CAPITAL", "2500")
    monkeypatch.setenv("TAME_LOG_DIR", str(tmp_path))

    config = load_config()

    assert config.venue == "deribit"
    assert config.sandbox is False
    assert config.default_capital == Decimal("2500")


def test_chase_interval_for_slow_venues(tmp_path: Path) -> None:
    config = TameConfig(
        chase_interval_seconds=2.0, slow_chase_interval_seconds=6.0, log_dir=tmp_path
    )

    assert config.chase_interval_for(False) == 2.0
    assert config.chase_interval_for(True) == 6.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"venue": "  "},
        {"chase_interval_seconds": 0},
        {"bracket_slippage_divisor": Decimal("0.9")},
        {"risk_return_ratio_threshold": Decimal("-1")},
    ],
)
def test_config_rejects_invalid_values(overrides: dict[str, object], tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        TameConfig(log_dir=tmp_path, **overrides)
