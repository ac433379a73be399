"""Common constants shared across the trading client."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

DEFAULT_VENUE = "phemex"
DEFAULT_CHASE_INTERVAL_SECONDS = 1.0
SLOW_VENUE_CHASE_INTERVAL_SECONDS = 5.0
DEFAULT_RISK_RETURN_RATIO_THRESHOLD = Decimal("1.5")
BRACKET_SLIPPAGE_DIVISOR = Decimal("1.1")
DEFAULT_LOG_DIR = Path("logs")
