from .matcher import Matcher, MatchRequest, MatchResult, ScoredCandidate, NoCandidatesError, NoCandidatesReason
from .scoring import TokenOverlapScorer, EmbeddingScorer, ScorerError
from .invoker import Invoker, RoutingError, RegistryUnavailableError, resolve

__all__ = [
    "Matcher",
    "MatchRequest",
    "MatchResult",
    "ScoredCandidate",
    "NoCandidatesError",
    "NoCandidatesReason",
    "TokenOverlapScorer",
    "EmbeddingScorer",
    "ScorerError",
    "Invoker",
    "RoutingError",
    "RegistryUnavailableError",
    "resolve",
]
