"""Confluence aggregator — combine per-strategy results for one symbol.

Only actionable stages (READY, BREAKOUT, TRIGGERED) count.  Each extra
matching strategy adds a bonus on top of the best individual score.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from stagescan.errors import InvalidArgumentError
from stagescan.market.regime import get_regime_adjustment
from stagescan.strategy.base import clamp_score, with_disclaimer
from stagescan.strategy.models import ScanResult

DEFAULT_BONUS_PER_MATCH = 10


@dataclass(frozen=True)
class KeyLevels:
    """Most conservative levels across the matched strategies."""

    resistance: Optional[float] = None
    support: Optional[float] = None
    stop: Optional[float] = None

    def to_dict(self) -> dict:
        data = {"resistance": self.resistance, "support": self.support, "stop": self.stop}
        return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class ConfluenceResult:
    """Confluence verdict for one symbol."""

    symbol: str
    name: str
    price: float
    matched_strategies: tuple[str, ...]
    strategy_results: tuple[ScanResult, ...]
    confluence_score: int
    adjusted_score: int
    primary_stage: str
    key_levels: KeyLevels
    explanation: str
    regime: Optional[str] = None

    @property
    def match_count(self) -> int:
        return len(self.matched_strategies)

    def to_dict(self) -> dict:
        data = {
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "matchedStrategies": list(self.matched_strategies),
            "strategyResults": [r.to_dict() for r in self.strategy_results],
            "confluenceScore": self.confluence_score,
            "adjustedScore": self.adjusted_score,
            "primaryStage": self.primary_stage,
            "keyLevels": self.key_levels.to_dict(),
            "explanation": self.explanation,
        }
        if self.regime is not None:
            data["regime"] = self.regime
        return data


def aggregate_confluence(
    symbol: str,
    results: Sequence[ScanResult],
    regime: Optional[str] = None,
    bonus_per_match: int = DEFAULT_BONUS_PER_MATCH,
) -> Optional[ConfluenceResult]:
    """Combine the active results for *symbol* into one verdict.

    ``confluence_score = min(100, max score + bonus × (matches - 1))``.
    The primary result is the first one holding the maximum score.  When a
    regime is given, the adjusted score adds the mean regime adjustment of
    the matched strategies; otherwise it equals the confluence score.

    Returns ``None`` if no result is in an active stage.
    """
    if bonus_per_match < 0:
        raise InvalidArgumentError(
            f"bonus_per_match must be >= 0, got {bonus_per_match}"
        )

    active = [r for r in results if r.is_active]
    if not active:
        return None

    primary = active[0]
    for r in active[1:]:
        if r.score > primary.score:
            primary = r

    count = len(active)
    confluence = min(100, primary.score + bonus_per_match * (count - 1))

    if regime is None:
        adjusted = confluence
    else:
        mean_adjustment = sum(
            get_regime_adjustment(regime, r.strategy_id) for r in active
        ) / count
        adjusted = clamp_score(confluence + mean_adjustment)

    matched = tuple(r.strategy_id for r in active)
    resistances = [r.levels.resistance for r in active if r.levels.resistance is not None]
    stops = [r.levels.stop_level for r in active]

    if count > 1:
        text = f"{count} strategies aligned: {', '.join(matched)}."
    else:
        text = f"Single strategy match: {matched[0]}."

    return ConfluenceResult(
        symbol=symbol,
        name=primary.name or symbol,
        price=primary.price,
        matched_strategies=matched,
        strategy_results=tuple(active),
        confluence_score=int(math.floor(confluence + 0.5)),
        adjusted_score=adjusted,
        primary_stage=primary.stage,
        key_levels=KeyLevels(
            resistance=max(resistances) if resistances else None,
            stop=min(stops) if stops else None,
        ),
        explanation=with_disclaimer(text),
        regime=regime,
    )


def filter_by_min_matches(
    results: Sequence[ConfluenceResult],
    min_matches: int,
) -> list[ConfluenceResult]:
    """Keep verdicts with at least *min_matches* matched strategies."""
    if min_matches < 0:
        raise InvalidArgumentError(f"min_matches must be >= 0, got {min_matches}")
    return [r for r in results if r.match_count >= min_matches]


def rank_by_confluence(results: Sequence[ConfluenceResult]) -> list[ConfluenceResult]:
    """Sort by match count, then confluence score, both descending (stable)."""
    return sorted(
        results,
        key=lambda r: (r.match_count, r.confluence_score),
        reverse=True,
    )
