"""Tests for matching and ranking"""

import asyncio
import itertools

import pytest

from plugroute.definitions.registry import Registry
from plugroute.router.matcher import (
    Matcher,
    MatchRequest,
    NoCandidatesError,
    NoCandidatesReason,
)
from plugroute.router.scoring import ScorerError
from tests.conftest import make_source


@pytest.fixture
def matcher():
    return Matcher()


class TestScenarios:
    """Test the basic routing scenarios"""

    def test_shell_request_routes_to_builder(self, matcher, scenario_registry):
        request = MatchRequest("run the build", {"execute-shell"})
        result = matcher.match(scenario_registry, request)
        assert result.winner_id == "b"
        assert result.score == pytest.approx(1.0)

    def test_unsatisfiable_tools(self, matcher, scenario_registry):
        request = MatchRequest("fetch a web page", {"network-fetch"})
        with pytest.raises(NoCandidatesError) as exc_info:
            matcher.match(scenario_registry, request)
        assert exc_info.value.reason == NoCandidatesReason.TOOL_FILTER
        assert exc_info.value.code == "NO_MATCH"
        assert exc_info.value.request is request

    def test_no_required_tools_uses_relevance(self, matcher, scenario_registry):
        result = matcher.match(scenario_registry, MatchRequest("summarize these files"))
        assert result.winner_id == "a"

    def test_tool_filter_beats_relevance(self, matcher, scenario_registry):
        # "summarize files" is the better text match but lacks execute-shell
        request = MatchRequest("summarize files and run build", {"execute-shell"})
        result = matcher.match(scenario_registry, request)
        assert result.winner_id == "b"
        assert [c.id for c in result.candidates] == ["b"]

    def test_required_tools_must_be_subset(self, matcher):
        registry = Registry.load([
            make_source("reader", "inspect code", ["read-file"]),
            make_source("worker", "inspect code", ["read-file", "execute-shell"]),
        ])
        request = MatchRequest("inspect code", {"read-file", "execute-shell"})
        assert matcher.match(registry, request).winner_id == "worker"

    def test_empty_registry(self, matcher):
        with pytest.raises(NoCandidatesError) as exc_info:
            matcher.match(Registry(), MatchRequest("anything"))
        assert exc_info.value.reason == NoCandidatesReason.EMPTY_REGISTRY

    def test_nothing_relevant(self, matcher, scenario_registry):
        with pytest.raises(NoCandidatesError) as exc_info:
            matcher.match(scenario_registry, MatchRequest("deploy kubernetes cluster"))
        assert exc_info.value.reason == NoCandidatesReason.BELOW_THRESHOLD


class TestRanking:
    """Test ordering, ties and the tier bonus"""

    def test_ranking_best_first(self, matcher):
        registry = Registry.load([
            make_source("half", "run tests"),
            make_source("full", "run build scripts"),
        ])
        result = matcher.match(registry, MatchRequest("run build"))
        assert result.ranking() == [("full", 1.0), ("half", 0.5)]

    def test_ties_broken_by_id(self, matcher):
        registry = Registry.load([
            make_source("zeta", "format code"),
            make_source("alpha", "format code"),
            make_source("mid", "format code"),
        ])
        result = matcher.match(registry, MatchRequest("format code"))
        assert [c.id for c in result.candidates] == ["alpha", "mid", "zeta"]

    def test_deterministic_across_calls_and_load_order(self, matcher):
        sources = [make_source(name, "format code") for name in ["c", "a", "b"]]
        first = matcher.match(Registry.load(sources), MatchRequest("format code"))
        for _ in range(20):
            reordered = Registry.load(list(reversed(sources)))
            again = matcher.match(reordered, MatchRequest("format code"))
            assert again.winner_id == first.winner_id == "a"

    def test_tier_bonus_breaks_tie(self, matcher):
        registry = Registry.load([
            make_source("alpha", "format code", model="sonnet"),
            make_source("beta", "format code", model="haiku"),
        ])
        result = matcher.match(registry, MatchRequest("format code", preferred_model_tier="fast"))
        assert result.winner_id == "beta"
        assert result.candidates[0].bonus == pytest.approx(0.01)
        assert result.score == pytest.approx(1.01)

    def test_tier_bonus_does_not_override_relevance(self, matcher):
        registry = Registry.load([
            make_source("alpha", "run build scripts"),
            make_source("beta", "run tests", model="haiku"),
        ])
        result = matcher.match(registry, MatchRequest("run build", preferred_model_tier="fast"))
        assert result.winner_id == "alpha"

    def test_min_score_threshold(self):
        registry = Registry.load([
            make_source("half", "run tests"),
            make_source("full", "run build scripts"),
        ])
        result = Matcher(min_score=0.5).match(registry, MatchRequest("run build"))
        assert [c.id for c in result.candidates] == ["full"]

    def test_custom_scorer(self, scenario_registry):
        def length_scorer(intent, description):
            return len(description) / 100

        result = Matcher(scorer=length_scorer).match(scenario_registry, MatchRequest("x"))
        assert result.winner_id == "b"

    def test_chained_near_ties_rank_the_same_in_any_load_order(self):
        scores = {"first": 0.60, "second": 0.52, "third": 0.44}

        def scorer(intent, description):
            return scores[description]

        matcher = Matcher(scorer=scorer, tie_epsilon=0.1)
        rankings = set()
        for order in itertools.permutations(scores):
            registry = Registry.load([make_source(f"id-{name}", name) for name in order])
            result = matcher.match(registry, MatchRequest("x"))
            rankings.add(tuple(c.id for c in result.candidates))
        assert len(rankings) == 1

    def test_zero_epsilon_orders_by_exact_score(self):
        registry = Registry.load([
            make_source("a", "one"),
            make_source("b", "two"),
        ])
        scores = {"one": 0.5, "two": 0.5 + 1e-12}
        result = Matcher(scorer=lambda i, d: scores[d], tie_epsilon=0).match(registry, MatchRequest("x"))
        assert result.winner_id == "b"


class TestScorerFailures:
    """Test scorer contract enforcement"""

    def test_out_of_range_score(self, scenario_registry):
        matcher = Matcher(scorer=lambda intent, description: 2.0)
        with pytest.raises(ScorerError):
            matcher.match(scenario_registry, MatchRequest("x"))

    def test_scorer_exception_propagates(self, scenario_registry):
        def broken(intent, description):
            raise ScorerError("backend down")

        with pytest.raises(ScorerError, match="backend down"):
            Matcher(scorer=broken).match(scenario_registry, MatchRequest("x"))

    def test_async_scorer_needs_amatch(self, scenario_registry):
        async def async_scorer(intent, description):
            return 0.5

        with pytest.raises(ScorerError, match="amatch"):
            Matcher(scorer=async_scorer).match(scenario_registry, MatchRequest("x"))

    def test_failing_scorer_stops_the_others(self, scenario_registry):
        finished = []

        async def scorer(intent, description):
            if description == "summarize files":
                raise ScorerError("backend down")
            await asyncio.sleep(0.05)
            finished.append(description)
            return 1.0

        async def run():
            with pytest.raises(ScorerError, match="backend down"):
                await Matcher(scorer=scorer).amatch(scenario_registry, MatchRequest("x"))
            await asyncio.sleep(0.2)
            return [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]

        leftover = asyncio.run(run())
        assert finished == []
        assert leftover == []


class TestAsyncMatch:
    """Test amatch with async scorers"""

    def test_amatch_with_async_scorer(self, scenario_registry):
        async def async_scorer(intent, description):
            await asyncio.sleep(0)
            return 0.9 if "build" in description else 0.1

        result = asyncio.run(Matcher(scorer=async_scorer).amatch(scenario_registry, MatchRequest("x")))
        assert result.winner_id == "b"
        assert result.ranking() == [("b", 0.9), ("a", 0.1)]

    def test_amatch_with_sync_scorer(self, scenario_registry):
        request = MatchRequest("run the build", {"execute-shell"})
        result = asyncio.run(Matcher().amatch(scenario_registry, request))
        assert result.winner_id == "b"

    def test_cancellation(self, scenario_registry):
        async def run():
            gate = asyncio.Event()

            async def slow_scorer(intent, description):
                gate.set()
                await asyncio.sleep(60)
                return 1.0

            task = asyncio.create_task(Matcher(scorer=slow_scorer).amatch(scenario_registry, MatchRequest("x")))
            await gate.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())
        assert scenario_registry.ids() == ["a", "b"]


class TestMatchRequest:
    """Test request normalisation"""

    def test_tools_coerced_to_frozenset(self):
        request = MatchRequest("x", ["read-file", "read-file"])
        assert request.required_tools == frozenset({"read-file"})

    def test_none_tools(self):
        assert MatchRequest("x", None).required_tools == frozenset()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
