"""StageScan — application configuration.

Loads .env variables into a typed config object.
Validates numeric variables on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    log_level: str
    backtest_stop_loss_pct: float
    backtest_target_pct: float
    backtest_max_hold_bars: int
    backtest_trail_activation_pct: float
    backtest_warmup_bars: int
    confluence_bonus_per_match: int
    confluence_min_matches: int
    scan_max_workers: int


def _read_float(name: str, default: str, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, default)
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= minimum:
        raise ValueError(f"{name} must be greater than {minimum}, got {value}")
    return value


def _read_int(name: str, default: str, minimum: int = 0) -> int:
    raw = os.environ.get(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {value}")
    return value


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable has a default.  Raises ``ValueError`` with a message
    naming the variable when a value cannot be parsed or is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    return Config(
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        backtest_stop_loss_pct=_read_float("BACKTEST_STOP_LOSS_PCT", "7.0"),
        backtest_target_pct=_read_float("BACKTEST_TARGET_PCT", "10.0"),
        backtest_max_hold_bars=_read_int("BACKTEST_MAX_HOLD_BARS", "60", minimum=1),
        backtest_trail_activation_pct=_read_float(
            "BACKTEST_TRAIL_ACTIVATION_PCT", "5.0",
        ),
        backtest_warmup_bars=_read_int("BACKTEST_WARMUP_BARS", "55"),
        confluence_bonus_per_match=_read_int("CONFLUENCE_BONUS_PER_MATCH", "10"),
        confluence_min_matches=_read_int("CONFLUENCE_MIN_MATCHES", "1", minimum=1),
        scan_max_workers=_read_int("SCAN_MAX_WORKERS", "8", minimum=1),
    )


def default_config() -> Config:
    """Return a ``Config`` with every default applied, ignoring the environment."""
    return Config(
        log_level="INFO",
        backtest_stop_loss_pct=7.0,
        backtest_target_pct=10.0,
        backtest_max_hold_bars=60,
        backtest_trail_activation_pct=5.0,
        backtest_warmup_bars=55,
        confluence_bonus_per_match=10,
        confluence_min_matches=1,
        scan_max_workers=8,
    )
