"""Strategy protocol and shared scoring / explanation helpers.

Defines the interface that all strategies must implement.
"""

from __future__ import annotations

import math
from typing import Optional, Protocol, Sequence, runtime_checkable

from stagescan.strategy.models import (
    DISCLAIMER,
    CandleData,
    Quote,
    ScanResult,
    StageLabel,
    StrategyConfig,
    StrategyInfo,
)


@runtime_checkable
class StrategyProtocol(Protocol):
    """Interface that all pattern strategies must satisfy."""

    id: str
    stages: tuple[str, ...]
    default_config: StrategyConfig

    def scan(
        self,
        symbol: str,
        candles: Sequence[CandleData],
        timeframe: str,
        config: StrategyConfig | dict | None = None,
        quote: Optional[Quote] = None,
    ) -> Optional[ScanResult]:
        """Classify the window, or return None when the symbol does not qualify."""
        ...


def clamp_score(raw: float) -> int:
    """Clamp to ``[0, 100]`` and round half up to an ``int``."""
    return int(math.floor(min(100.0, max(0.0, raw)) + 0.5))


def with_disclaimer(text: str) -> str:
    """Append the standard informational-only notice."""
    return f"{text} {DISCLAIMER}"


def fmt(value: Optional[float], digits: int = 2) -> str:
    """Format an optional number for an explanation string."""
    if value is None:
        return "N/A"
    return f"{value:.{digits}f}"


def strategy_info(strategy: StrategyProtocol) -> StrategyInfo:
    """Build the catalog entry for a strategy instance."""
    return StrategyInfo(
        id=strategy.id,
        name=getattr(strategy, "name", strategy.id),
        description=getattr(strategy, "description", ""),
        category=getattr(strategy, "category", "breakout"),
        timeframes_supported=tuple(getattr(strategy, "timeframes_supported", ())),
        stages=strategy.stages,
        default_config=strategy.default_config,
    )


def stage_label(strategy: StrategyProtocol, stage: str) -> StageLabel:
    """Label and description for *stage*; unknown stages echo the raw name."""
    labels: dict[str, StageLabel] = getattr(strategy, "stage_labels", {})
    return labels.get(stage, StageLabel(label=stage, description=""))
