"""Strategy data models — typed representations for strategy inputs and outputs."""

from dataclasses import dataclass, field, fields, replace
from typing import Literal, Optional

from stagescan.errors import InvalidArgumentError


@dataclass(frozen=True)
class CandleData:
    """A single candlestick bar for strategy consumption."""

    time: str
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Quote:
    """A live quote snapshot, used when a full candle history is unavailable."""

    symbol: str
    last: float
    change: float
    change_percent: float
    volume: float
    high: float
    low: float
    open: float
    prev_close: float
    avg_volume: Optional[float] = None


# ── Stages ───────────────────────────────────────────────────────────────

FORMING = "FORMING"
READY = "READY"
BREAKOUT = "BREAKOUT"
TRIGGERED = "TRIGGERED"

PatternStage = Literal["FORMING", "READY", "BREAKOUT"]
PullbackStage = Literal["FORMING", "READY", "TRIGGERED"]

# Contraction-style strategies end in BREAKOUT, pullback/intraday in TRIGGERED.
CONTRACTION_STAGES: tuple[str, ...] = (FORMING, READY, BREAKOUT)
PULLBACK_STAGES: tuple[str, ...] = (FORMING, READY, TRIGGERED)

ACTIVE_STAGES: frozenset[str] = frozenset({READY, BREAKOUT, TRIGGERED})

DISCLAIMER = "This alert is informational only and not investment advice."


# ── Strategy configuration ───────────────────────────────────────────────

_CAMEL_TO_SNAKE: dict[str, str] = {
    "trendBars": "trend_bars",
    "pullbackBarsMin": "pullback_bars_min",
    "pullbackBarsMax": "pullback_bars_max",
    "pullbackDepthPercent": "pullback_depth_percent",
    "impulseMinMovePercent": "impulse_min_move_percent",
    "impulseLookback": "impulse_lookback",
    "volumeMultiplier": "volume_multiplier",
    "rvolThreshold": "rvol_threshold",
    "openingRangeMinutes": "opening_range_minutes",
    "gapMinPercent": "gap_min_percent",
    "squeezeBars": "squeeze_bars",
    "consolidationBars": "consolidation_bars",
    "emaTrendRequired": "ema_trend_required",
    "contractionMinBars": "contraction_min_bars",
    "baseLookback": "base_lookback",
}


@dataclass(frozen=True)
class StrategyConfig:
    """Named tunables for a strategy.

    Every field is optional; ``None`` means "use the strategy default".
    Strategies hold a fully-populated default instance and resolve a
    caller's overrides with :meth:`merge`, which always returns a new
    object.
    """

    trend_bars: Optional[int] = None
    pullback_bars_min: Optional[int] = None
    pullback_bars_max: Optional[int] = None
    pullback_depth_percent: Optional[float] = None
    impulse_min_move_percent: Optional[float] = None
    impulse_lookback: Optional[int] = None
    volume_multiplier: Optional[float] = None
    rvol_threshold: Optional[float] = None
    opening_range_minutes: Optional[int] = None
    gap_min_percent: Optional[float] = None
    squeeze_bars: Optional[int] = None
    consolidation_bars: Optional[int] = None
    ema_trend_required: Optional[bool] = None
    contraction_min_bars: Optional[int] = None
    base_lookback: Optional[int] = None

    def merge(self, overrides: "StrategyConfig | dict | None") -> "StrategyConfig":
        """Return a copy with every non-``None`` override applied."""
        if overrides is None:
            return self
        if isinstance(overrides, dict):
            overrides = StrategyConfig.from_dict(overrides)
        changes = {
            f.name: getattr(overrides, f.name)
            for f in fields(overrides)
            if getattr(overrides, f.name) is not None
        }
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict) -> "StrategyConfig":
        """Build a config from snake_case or camelCase keys.

        Raises ``InvalidArgumentError`` on an unknown key.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _CAMEL_TO_SNAKE.get(key, key)
            if name not in known:
                raise InvalidArgumentError(f"Unknown strategy config key '{key}'")
            kwargs[name] = value
        return cls(**kwargs)


# ── Outputs ──────────────────────────────────────────────────────────────


def _drop_none(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class Levels:
    """Derived price levels attached to every classification."""

    entry_trigger: float
    stop_level: float
    exit_rule: str
    resistance: Optional[float] = None
    support: Optional[float] = None
    vwap: Optional[float] = None
    opening_range_high: Optional[float] = None
    opening_range_low: Optional[float] = None

    def to_dict(self) -> dict:
        return _drop_none({
            "resistance": self.resistance,
            "support": self.support,
            "entryTrigger": self.entry_trigger,
            "stopLevel": self.stop_level,
            "exitRule": self.exit_rule,
            "vwap": self.vwap,
            "openingRangeHigh": self.opening_range_high,
            "openingRangeLow": self.opening_range_low,
        })


@dataclass(frozen=True)
class ScanResult:
    """One strategy's classification of one symbol.

    ``score`` is always an ``int`` in ``[0, 100]`` and ``stage`` is a member
    of the producing strategy's ``stages``.
    """

    symbol: str
    price: float
    strategy_id: str
    stage: str
    score: int
    levels: Levels
    explanation: str
    name: Optional[str] = None
    ema9: Optional[float] = None
    ema21: Optional[float] = None
    ema50: Optional[float] = None
    vwap: Optional[float] = None
    rvol: Optional[float] = None
    atr: Optional[float] = None

    @property
    def is_active(self) -> bool:
        """``True`` for READY / BREAKOUT / TRIGGERED."""
        return self.stage in ACTIVE_STAGES

    def to_dict(self) -> dict:
        data = _drop_none({
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "strategyId": self.strategy_id,
            "stage": self.stage,
            "score": self.score,
            "ema9": self.ema9,
            "ema21": self.ema21,
            "ema50": self.ema50,
            "vwap": self.vwap,
            "rvol": self.rvol,
            "atr": self.atr,
            "explanation": self.explanation,
        })
        data["levels"] = self.levels.to_dict()
        return data


@dataclass(frozen=True)
class StageLabel:
    """Human-facing label for one stage of one strategy."""

    label: str
    description: str


@dataclass(frozen=True)
class StrategyInfo:
    """Catalog entry describing a registered strategy."""

    id: str
    name: str
    description: str
    category: str  # "intraday", "swing" or "breakout"
    timeframes_supported: tuple[str, ...]
    stages: tuple[str, ...]
    default_config: StrategyConfig = field(default_factory=StrategyConfig)
