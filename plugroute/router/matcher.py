"""Matcher - ranks registered definitions against a request"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from plugroute.definitions.models import AgentDefinition
from plugroute.definitions.registry import Registry
from plugroute.errors import RouterError
from .scoring import AnyScorer, ScorerError, TokenOverlapScorer, check_score

logger = logging.getLogger(__name__)


# Added when the request's preferred tier equals the definition's tier.
# Smaller than any meaningful textual difference, large enough to break ties.
DEFAULT_TIER_BONUS = 0.01

DEFAULT_TIE_EPSILON = 1e-9


@dataclass(frozen=True)
class MatchRequest:
    """One routing request. Not persisted."""
    intent: str
    required_tools: frozenset[str] = field(default_factory=frozenset)
    preferred_model_tier: str | None = None

    def __post_init__(self):
        if not isinstance(self.required_tools, frozenset):
            object.__setattr__(self, "required_tools", frozenset(self.required_tools or ()))


@dataclass(frozen=True)
class ScoredCandidate:
    """A definition that passed the tool filter, with its score breakdown"""
    definition: AgentDefinition
    text_score: float
    bonus: float = 0.0

    @property
    def score(self) -> float:
        return self.text_score + self.bonus

    @property
    def id(self) -> str:
        return self.definition.id


@dataclass(frozen=True)
class MatchResult:
    """Winning definition plus the full ranking, best first"""
    winner: AgentDefinition
    score: float
    candidates: tuple[ScoredCandidate, ...]
    request: MatchRequest

    @property
    def winner_id(self) -> str:
        return self.winner.id

    def ranking(self) -> list[tuple[str, float]]:
        return [(c.id, c.score) for c in self.candidates]


class NoCandidatesReason(str, Enum):
    EMPTY_REGISTRY = "empty_registry"
    TOOL_FILTER = "tool_filter"
    BELOW_THRESHOLD = "below_threshold"


class NoCandidatesError(RouterError):
    """No definition can serve the request. Recoverable by the caller."""
    code = "NO_MATCH"

    def __init__(self, request: MatchRequest, reason: NoCandidatesReason, message: str):
        self.request = request
        self.reason = reason
        super().__init__(message)


class Matcher:
    """
    Scores and ranks definitions.

    Policy:
    1. Hard filter: required tools must be a subset of a definition's
       allowed tools.
    2. Text relevance from the pluggable scorer, in [0, 1].
    3. Preferred model tier match adds ``tier_bonus``.
    4. Candidates whose text relevance is not above ``min_score`` drop out.
    5. Score descending. Scores are bucketed to multiples of ``tie_epsilon``
       and equal buckets are ordered by ascending id, so identical inputs
       always pick the same winner whatever the load order.
    """

    def __init__(
        self,
        scorer: AnyScorer | None = None,
        min_score: float = 0.0,
        tier_bonus: float = DEFAULT_TIER_BONUS,
        tie_epsilon: float = DEFAULT_TIE_EPSILON,
    ):
        self.scorer = scorer or TokenOverlapScorer()
        self.min_score = min_score
        self.tier_bonus = tier_bonus
        self.tie_epsilon = tie_epsilon

    def match(self, registry: Registry, request: MatchRequest) -> MatchResult:
        """
        Rank every eligible definition with a synchronous scorer.

        Raises:
            NoCandidatesError: Registry empty, tool filter removed every
                definition, or nothing scored above ``min_score``
            ScorerError: Scorer is async or returned an invalid score
        """
        eligible = self._eligible(registry, request)
        scored = []
        for definition in eligible:
            result = self.scorer(request.intent, definition.trigger_description)
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise ScorerError("Scorer is asynchronous; use Matcher.amatch")
            scored.append((definition, check_score(result, definition.id)))
        return self._rank(request, scored)

    async def amatch(self, registry: Registry, request: MatchRequest) -> MatchResult:
        """
        Like match(), but awaits an async scorer (sync scorers also work).

        Cancellation propagates into pending scorer calls; nothing shared is
        modified, so a cancelled match leaves no trace.
        """
        eligible = self._eligible(registry, request)

        async def score_one(definition: AgentDefinition) -> float:
            result = self.scorer(request.intent, definition.trigger_description)
            if inspect.isawaitable(result):
                result = await result
            return check_score(result, definition.id)

        tasks = [asyncio.ensure_future(score_one(d)) for d in eligible]
        try:
            scores = await asyncio.gather(*tasks)
        except BaseException:
            # One scorer failed or we were cancelled: stop and reap the rest
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return self._rank(request, list(zip(eligible, scores)))

    def _eligible(self, registry: Registry, request: MatchRequest) -> list[AgentDefinition]:
        definitions = registry.all()
        if not definitions:
            raise NoCandidatesError(
                request,
                NoCandidatesReason.EMPTY_REGISTRY,
                "No definitions are registered",
            )

        if not request.required_tools:
            return list(definitions)

        eligible = [d for d in definitions if request.required_tools <= d.allowed_tools]
        if not eligible:
            raise NoCandidatesError(
                request,
                NoCandidatesReason.TOOL_FILTER,
                f"No definition allows all required tools: {', '.join(sorted(request.required_tools))}",
            )
        return eligible

    def _rank(
        self,
        request: MatchRequest,
        scored: Iterable[tuple[AgentDefinition, float]],
    ) -> MatchResult:
        candidates = []
        for definition, text_score in scored:
            if text_score <= self.min_score:
                logger.debug(f"'{definition.id}' dropped: score {text_score:.3f} <= {self.min_score}")
                continue
            bonus = 0.0
            if request.preferred_model_tier and request.preferred_model_tier == definition.model_tier:
                bonus = self.tier_bonus
            candidates.append(ScoredCandidate(definition, text_score, bonus))

        if not candidates:
            raise NoCandidatesError(
                request,
                NoCandidatesReason.BELOW_THRESHOLD,
                f"No definition scored above {self.min_score} for intent '{request.intent[:80]}'",
            )

        candidates.sort(key=self._sort_key)
        for c in candidates:
            logger.debug(f"candidate {c.id}: text={c.text_score:.3f} bonus={c.bonus:.3f}")

        best = candidates[0]
        logger.info(f"Routed to '{best.id}' (score {best.score:.3f}, {len(candidates)} candidates)")
        return MatchResult(
            winner=best.definition,
            score=best.score,
            candidates=tuple(candidates),
            request=request,
        )

    def _sort_key(self, candidate: ScoredCandidate) -> tuple[float, str]:
        # Scores in the same tie_epsilon bucket tie and fall back to id order
        score = candidate.score
        if self.tie_epsilon > 0:
            score = math.floor(score / self.tie_epsilon + 0.5)
        return (-score, candidate.id)
