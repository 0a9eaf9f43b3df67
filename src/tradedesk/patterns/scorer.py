"""Candidate scoring and selection.

Score = base
      + regime fit (pattern family x regime table)
      + trend alignment (candidate direction vs dominant bias)
      + risk-reward quality
      + per-detector offset
floored at 0. The strictly highest score wins; ties go to the candidate
detected first.
"""

import logging
from dataclasses import replace
from typing import List, Optional, Sequence

from ..analysis.context import PipelineContext
from ..config import PatternConfig
from ..market import MarketSnapshot
from ..models import CandidateSignal, TrendDirection
from .base import PatternDetector


logger = logging.getLogger(__name__)


def run_detectors(
    detectors: Sequence[PatternDetector],
    snapshot: MarketSnapshot,
) -> List[CandidateSignal]:
    """Run every detector in order and collect the candidates that fired."""
    candidates = []
    for detector in detectors:
        candidate = detector.detect(snapshot)
        if candidate is not None:
            logger.debug(
                f"{detector.name}: {candidate.pattern} entry={candidate.entry:.2f} "
                f"sl={candidate.stop_loss:.2f} tp={candidate.take_profit:.2f}"
            )
            candidates.append(candidate)
    return candidates


class PatternScorer:
    """Scores candidates against the market context and picks one."""

    def __init__(self, config: Optional[PatternConfig] = None):
        self.config = config or PatternConfig()

    def regime_fit(self, candidate: CandidateSignal, context: PipelineContext) -> float:
        table = self.config.regime_fit.get(candidate.family.value, {})
        return table.get(context.regime_type.value, 0.0)

    def trend_alignment(self, candidate: CandidateSignal, bias: TrendDirection) -> float:
        if bias.matches(candidate.direction):
            return self.config.trend_alignment_bonus
        if bias.opposes(candidate.direction):
            return -self.config.trend_alignment_penalty
        return 0.0

    def risk_reward_quality(self, risk_reward: float) -> float:
        cfg = self.config
        if risk_reward >= cfg.rr_best:
            return cfg.rr_best_bonus
        if risk_reward >= cfg.rr_better:
            return cfg.rr_better_bonus
        if risk_reward >= cfg.rr_good:
            return cfg.rr_good_bonus
        return -cfg.rr_poor_penalty

    def score(self, candidate: CandidateSignal, context: PipelineContext) -> float:
        """Score a single candidate (never negative)."""
        total = (
            self.config.base_score
            + self.regime_fit(candidate, context)
            + self.trend_alignment(candidate, context.dominant_bias)
            + self.risk_reward_quality(candidate.risk_reward)
            + self.config.score_offsets.get(candidate.source, 0.0)
        )
        return max(total, 0.0)

    def score_all(
        self,
        candidates: Sequence[CandidateSignal],
        context: PipelineContext,
    ) -> List[CandidateSignal]:
        """Return scored copies of the candidates, order preserved."""
        return [replace(c, score=self.score(c, context)) for c in candidates]

    def select(
        self,
        candidates: Sequence[CandidateSignal],
        context: PipelineContext,
    ) -> Optional[CandidateSignal]:
        """Pick the strictly highest-scoring candidate.

        Returns:
            The winner, or None when no candidate was produced
        """
        best: Optional[CandidateSignal] = None
        for candidate in self.score_all(candidates, context):
            if best is None or candidate.score > best.score:
                best = candidate

        if best is not None:
            logger.info(
                f"Selected {best.pattern} score={best.score:.1f} "
                f"rr={best.risk_reward:.2f} from {len(candidates)} candidate(s)"
            )
        return best
