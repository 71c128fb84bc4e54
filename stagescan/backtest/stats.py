"""Backtest statistics — pure functions over trade return percentages."""

import math
from typing import Sequence

import numpy as np


def calculate_stats(returns: Sequence[float]) -> dict:
    """Compute summary statistics from per-trade return percentages.

    Returns:
        Dict with ``total_trades``, ``win_rate`` (unrounded percent), ``avg_return``,
        ``max_drawdown``, ``sharpe_ratio`` and ``total_return``.  Every
        value is 0 when there are no trades.
    """
    if len(returns) == 0:
        return {
            "total_trades": 0,
            "win_rate": 0.0,
            "avg_return": 0.0,
            "max_drawdown": 0.0,
            "sharpe_ratio": 0.0,
            "total_return": 0.0,
        }

    values = np.asarray(returns, dtype=float)
    total = len(values)
    wins = int(np.count_nonzero(values > 0))

    return {
        "total_trades": total,
        "win_rate": wins / total * 100,
        "avg_return": round(float(np.mean(values)), 2),
        "max_drawdown": round(_max_drawdown(values), 2),
        "sharpe_ratio": round(_sharpe(values), 2),
        "total_return": round(float(np.sum(values)), 2),
    }


# ── Helpers ──────────────────────────────────────────────────────────────


def _sharpe(values: np.ndarray) -> float:
    """Per-trade Sharpe scaled by ``sqrt(252 / n)``.

    Uses sample standard deviation (n − 1).  Returns 0.0 when the series
    has fewer than 2 observations or zero variance.
    """
    n = len(values)
    if n < 2:
        return 0.0
    std = float(np.std(values, ddof=1))
    if std == 0:
        return 0.0
    return float(np.mean(values)) / std * math.sqrt(252 / n)


def _max_drawdown(values: np.ndarray) -> float:
    """Worst single-trade loss as a positive number (0 if no trade lost).

    This is a per-trade figure, not a drawdown of the cumulative curve.
    """
    return abs(min(0.0, float(np.min(values))))
