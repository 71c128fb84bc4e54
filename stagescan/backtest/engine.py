"""Backtest engine — replays historical candles through a strategy's entry rule.

Single long position at a time.  Iterates candles chronologically after a
warm-up, opening on the entry predicate and closing on the first exit rule
that fires.  No real orders are placed.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from stagescan.backtest.entries import build_series, get_entry_predicate
from stagescan.backtest.stats import calculate_stats
from stagescan.config import Config
from stagescan.strategy.models import CandleData

logger = logging.getLogger("stagescan.backtest")

STOP_LOSS = "Stop Loss"
TARGET = "Target"
TIME_EXIT = "Time Exit"
TRAILING_STOP = "Trailing Stop"
OPEN_POSITION = "Open Position"


@dataclass(frozen=True)
class Trade:
    """One round trip.  ``return_percent`` is rounded to 2 decimals."""

    ticker: str
    entry_date: str
    exit_date: str
    entry_price: float
    exit_price: float
    return_percent: float
    exit_reason: str

    def to_dict(self) -> dict:
        return {
            "ticker": self.ticker,
            "entryDate": self.entry_date,
            "exitDate": self.exit_date,
            "entryPrice": self.entry_price,
            "exitPrice": self.exit_price,
            "returnPercent": self.return_percent,
            "exitReason": self.exit_reason,
        }


@dataclass(frozen=True)
class BacktestResult:
    """Trades and summary statistics of one backtest run."""

    ticker: str
    strategy_id: str
    total_trades: int
    win_rate: float
    avg_return: float
    max_drawdown: float
    sharpe_ratio: float
    total_return: float
    trades: tuple[Trade, ...]

    def to_dict(self) -> dict:
        return {
            "ticker": self.ticker,
            "strategyId": self.strategy_id,
            "totalTrades": self.total_trades,
            "winRate": self.win_rate,
            "avgReturn": self.avg_return,
            "maxDrawdown": self.max_drawdown,
            "sharpeRatio": self.sharpe_ratio,
            "totalReturn": self.total_return,
            "trades": [t.to_dict() for t in self.trades],
        }


@dataclass(frozen=True)
class _Position:
    index: int
    date: str
    price: float
    stop: float


class BacktestEngine:
    """Simulates one strategy's entries and fixed exits on historical candles.

    Args:
        config: Application configuration (stop, target, hold limit,
            trailing activation, warm-up).
    """

    def __init__(self, config: Config) -> None:
        self._config = config

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        ticker: str,
        candles: Sequence[CandleData],
        strategy_id: str,
    ) -> BacktestResult:
        """Execute a full backtest.

        Flow per bar, starting at the warm-up index:
            1. In position: check exits in priority order (stop, target,
               time, trailing).  A bar that exits never re-enters.
            2. Flat: evaluate the entry predicate; enter at the close.
        A position still open after the last bar is closed at the last
        close as "Open Position".

        Raises:
            KeyError: If *strategy_id* has no entry rule.
        """
        predicate = get_entry_predicate(strategy_id)
        trades: list[Trade] = []
        position: Optional[_Position] = None

        if candles:
            series = build_series(candles)
            start = max(self._config.backtest_warmup_bars, 1)

            for i in range(start, len(candles)):
                bar = candles[i]

                # 1 — Manage open position
                if position is not None:
                    exit_ = self._check_exit(position, bar, i, series.ema9[i])
                    if exit_ is not None:
                        exit_price, reason = exit_
                        trades.append(self._close(ticker, position, bar.time, exit_price, reason))
                        logger.debug(
                            "%s %s exit %s at %.2f on %s",
                            ticker, strategy_id, reason, exit_price, bar.time,
                        )
                        position = None
                    continue

                # 2 — Look for an entry
                if predicate(series, i):
                    position = _Position(
                        index=i,
                        date=bar.time,
                        price=bar.close,
                        stop=bar.close * (1 - self._config.backtest_stop_loss_pct / 100),
                    )
                    logger.debug(
                        "%s %s entry at %.2f on %s", ticker, strategy_id, bar.close, bar.time,
                    )

            if position is not None:
                last = candles[-1]
                trades.append(self._close(ticker, position, last.time, last.close, OPEN_POSITION))

        stats = calculate_stats([t.return_percent for t in trades])
        logger.info(
            "Backtest %s %s: %d trades, win rate %.1f%%, total return %.2f%%",
            ticker, strategy_id, stats["total_trades"], stats["win_rate"],
            stats["total_return"],
        )
        return BacktestResult(
            ticker=ticker,
            strategy_id=strategy_id,
            total_trades=stats["total_trades"],
            win_rate=stats["win_rate"],
            avg_return=stats["avg_return"],
            max_drawdown=stats["max_drawdown"],
            sharpe_ratio=stats["sharpe_ratio"],
            total_return=stats["total_return"],
            trades=tuple(trades),
        )

    # ── Helpers ──────────────────────────────────────────────────────────

    def _check_exit(
        self,
        position: _Position,
        bar: CandleData,
        index: int,
        ema9: float,
    ) -> Optional[tuple[float, str]]:
        """Return ``(exit_price, reason)`` for the first exit rule hit, or ``None``.

        The stop fills at the stop price; every other exit fills at the close.
        """
        cfg = self._config
        if bar.low <= position.stop:
            return position.stop, STOP_LOSS

        ret = _return_pct(position.price, bar.close)
        if ret >= cfg.backtest_target_pct:
            return bar.close, TARGET
        if index - position.index >= cfg.backtest_max_hold_bars:
            return bar.close, TIME_EXIT
        if ret >= cfg.backtest_trail_activation_pct and bar.close < ema9:
            return bar.close, TRAILING_STOP
        return None

    @staticmethod
    def _close(
        ticker: str,
        position: _Position,
        exit_date: str,
        exit_price: float,
        reason: str,
    ) -> Trade:
        return Trade(
            ticker=ticker,
            entry_date=position.date,
            exit_date=exit_date,
            entry_price=position.price,
            exit_price=exit_price,
            return_percent=round(_return_pct(position.price, exit_price), 2),
            exit_reason=reason,
        )


def _return_pct(entry: float, price: float) -> float:
    if entry == 0:
        return 0.0
    return (price - entry) / entry * 100
