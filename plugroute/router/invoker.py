"""Invoker facade - the single entry point hosts call to route a request"""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Iterable

from plugroute.audit.audit import AuditAction, AuditLog
from plugroute.config.loader import build_parser
from plugroute.config.schema import RouterConfig
from plugroute.definitions.discovery import discover_sources
from plugroute.definitions.models import (
    AgentDefinition,
    DefinitionSource,
    ModelTierVocabulary,
    ToolVocabulary,
)
from plugroute.definitions.parser import DefinitionParseError, DefinitionParser
from plugroute.definitions.registry import OnInvalid, Registry, RegistryLoadError
from plugroute.errors import RouterError
from plugroute.permission.guard import AuthorizationResult, ForbiddenToolError, authorize
from .matcher import Matcher, MatchRequest, MatchResult, NoCandidatesError
from .scoring import EmbeddingScorer, ScorerError, TokenOverlapScorer, is_async_scorer

logger = logging.getLogger(__name__)


class RoutingError(RouterError):
    """No definition could be selected. Wraps the matcher failure and the request."""
    code = "NO_MATCH"

    def __init__(self, cause: NoCandidatesError, request: MatchRequest):
        self.cause = cause
        self.request = request
        super().__init__(cause.message)


class RegistryUnavailableError(RouterError):
    """The invoker has no registry because the initial load failed."""
    code = "LOAD_FAILED"

    def __init__(self, load_error: RegistryLoadError | None = None):
        self.load_error = load_error
        detail = load_error.message if load_error else "no registry has been loaded"
        super().__init__(f"Registry unavailable: {detail}")


def resolve(
    registry: Registry,
    request: MatchRequest,
    matcher: Matcher | None = None,
) -> AgentDefinition:
    """
    Select the winning definition for ``request``.

    Authorization is not checked here; hosts call the access guard at
    every tool-use attempt.

    Raises:
        RoutingError: When the matcher finds no candidate
    """
    matcher = matcher or Matcher()
    try:
        return matcher.match(registry, request).winner
    except NoCandidatesError as e:
        raise RoutingError(e, request) from e


def build_matcher(config: RouterConfig) -> Matcher:
    """Matcher with the scorer and policy from config"""
    if config.matching.scorer == "embedding":
        scorer = EmbeddingScorer(
            model=config.embedding.model,
            host=config.embedding.host,
            timeout=config.embedding.timeout,
        )
    else:
        scorer = TokenOverlapScorer()
    return Matcher(
        scorer=scorer,
        min_score=config.matching.min_score,
        tier_bonus=config.matching.tier_bonus,
        tie_epsilon=config.matching.tie_epsilon,
    )


class Invoker:
    """
    Owns the live registry and answers host requests.

    Readers grab ``self._registry`` once per call, so each call sees one
    complete snapshot. Reloads build a new Registry off to the side and swap
    the reference under a writer-only lock; a failed reload leaves the old
    registry serving.
    """

    def __init__(
        self,
        registry: Registry | None = None,
        matcher: Matcher | None = None,
        parser: DefinitionParser | None = None,
        audit: AuditLog | None = None,
        on_invalid: OnInvalid = "abort",
        max_workers: int | None = None,
    ):
        self.matcher = matcher or Matcher()
        self.parser = parser or DefinitionParser()
        self.audit = audit or AuditLog(enabled=False)
        self.on_invalid = on_invalid
        self.max_workers = max_workers
        self._registry = registry
        self._load_error: RegistryLoadError | None = None
        self._reload_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: RouterConfig,
        sources: Iterable[DefinitionSource] | None = None,
    ) -> "Invoker":
        """
        Build an invoker and load definitions from ``sources`` or, when not
        given, the configured definition directories.

        A failed initial load does not raise: the invoker starts empty and
        answers LOAD_FAILED until a reload succeeds.
        """
        invoker = cls(
            matcher=build_matcher(config),
            parser=build_parser(config),
            audit=AuditLog(log_path=config.audit.audit_file, enabled=config.audit.enabled),
            on_invalid=config.loading.on_invalid,
            max_workers=config.loading.max_workers,
        )
        try:
            if sources is None:
                sources = invoker._discover(
                    config.loading.definition_dirs,
                    include_global=config.loading.include_global,
                )
            invoker.reload(sources)
        except RegistryLoadError as e:
            invoker._load_error = e
            logger.error(f"Initial registry load failed: {e.message}")
        return invoker

    @property
    def tools(self) -> ToolVocabulary:
        return self.parser.tools

    @property
    def model_tiers(self) -> ModelTierVocabulary:
        return self.parser.model_tiers

    @property
    def registry(self) -> Registry:
        """Current snapshot; raises RegistryUnavailableError if never loaded"""
        registry = self._registry
        if registry is None:
            raise RegistryUnavailableError(self._load_error)
        return registry

    @property
    def load_error(self) -> RegistryLoadError | None:
        """Error from the most recent failed load, if any"""
        return self._load_error

    def make_request(
        self,
        intent: str,
        required_tools: Iterable[str] | None = None,
        preferred_model_tier: str | None = None,
    ) -> MatchRequest:
        """Build a MatchRequest, mapping host tool and tier names to canonical ones"""
        tier = None
        if preferred_model_tier:
            tier = self.model_tiers.resolve(preferred_model_tier) or preferred_model_tier
        return MatchRequest(
            intent=intent,
            required_tools=self.tools.normalize(required_tools or ()),
            preferred_model_tier=tier,
        )

    def match(self, request: MatchRequest) -> MatchResult:
        """Full ranking for ``request`` against the current snapshot"""
        registry = self.registry
        try:
            if is_async_scorer(self.matcher.scorer):
                result = self._run_async_match(registry, request)
            else:
                result = self.matcher.match(registry, request)
        except NoCandidatesError as e:
            self.audit.log_route(request.intent, error=e.message, error_code=e.code)
            raise RoutingError(e, request) from e

        self.audit.log_route(
            request.intent,
            definition_id=result.winner_id,
            score=result.score,
            candidates=len(result.candidates),
        )
        return result

    def _run_async_match(self, registry: Registry, request: MatchRequest) -> MatchResult:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.matcher.amatch(registry, request))
        raise ScorerError(
            "Scorer is asynchronous and an event loop is already running; "
            "use amatch, aresolve or ahandle"
        )

    async def amatch(self, request: MatchRequest) -> MatchResult:
        """Async variant of match() for hosts already running an event loop"""
        registry = self.registry
        try:
            result = await self.matcher.amatch(registry, request)
        except NoCandidatesError as e:
            self.audit.log_route(request.intent, error=e.message, error_code=e.code)
            raise RoutingError(e, request) from e

        self.audit.log_route(
            request.intent,
            definition_id=result.winner_id,
            score=result.score,
            candidates=len(result.candidates),
        )
        return result

    def resolve(self, request: MatchRequest) -> AgentDefinition:
        """Winning definition for ``request``; raises RoutingError on no match"""
        return self.match(request).winner

    async def aresolve(self, request: MatchRequest) -> AgentDefinition:
        return (await self.amatch(request)).winner

    def authorize(self, definition_id: str, requested_tools: Iterable[str]) -> AuthorizationResult:
        """Access guard check for one tool invocation attempt"""
        definition = self.registry.get(definition_id)
        requested = list(requested_tools)
        result = authorize(definition, requested, self.tools)
        self.audit.log_authorization(definition_id, requested, list(result.missing_tools))
        if not result.allowed:
            logger.warning(
                f"Denied tools for '{definition_id}': {', '.join(sorted(result.missing_tools))}"
            )
        return result

    def reload(self, sources: Iterable[DefinitionSource | str]) -> Registry:
        """
        Load a fresh registry and swap it in.

        Raises:
            RegistryLoadError: The new sources are invalid; the previous
                registry (if any) stays active
        """
        with self._reload_lock:
            action = AuditAction.REGISTRY_RELOAD if self._registry is not None else AuditAction.REGISTRY_LOAD
            try:
                registry = Registry.load(
                    sources,
                    parser=self.parser,
                    on_invalid=self.on_invalid,
                    max_workers=self.max_workers,
                )
            except RegistryLoadError as e:
                self._load_error = e
                self.audit.log(action, success=False, error=e.message, error_code=e.code)
                if self._registry is not None:
                    logger.warning(f"Reload rejected, keeping previous registry: {e.message}")
                raise
            self._registry = registry
            self._load_error = None

        self.audit.log(action, details={"definitions": len(registry)})
        logger.info(f"Registry swapped in with {len(registry)} definitions")
        return registry

    def reload_from_dirs(self, roots: list[str | Path], include_global: bool = False) -> Registry:
        return self.reload(self._discover(roots, include_global=include_global))

    def _discover(self, roots: list[str | Path], include_global: bool = False) -> list[DefinitionSource]:
        """Discover sources, reporting an unreadable directory as a failed load"""
        try:
            return discover_sources(roots, include_global=include_global)
        except DefinitionParseError as e:
            action = AuditAction.REGISTRY_RELOAD if self._registry is not None else AuditAction.REGISTRY_LOAD
            error = RegistryLoadError([e])
            self._load_error = error
            self.audit.log(action, success=False, error=e.message, error_code=e.code)
            raise error from e

    # Host interface: plain dicts in and out, errors as {"error": {...}}

    def handle(
        self,
        intent: str,
        required_tools: Iterable[str] | None = None,
        preferred_model_tier: str | None = None,
    ) -> dict:
        """Resolve and return ``{id, body, allowedTools, modelTier}`` or an error envelope"""
        try:
            request = self.make_request(intent, required_tools, preferred_model_tier)
            return self.resolve(request).to_dict()
        except RouterError as e:
            return error_envelope(e)

    async def ahandle(
        self,
        intent: str,
        required_tools: Iterable[str] | None = None,
        preferred_model_tier: str | None = None,
    ) -> dict:
        """Async variant of handle() for hosts running an event loop"""
        try:
            request = self.make_request(intent, required_tools, preferred_model_tier)
            return (await self.aresolve(request)).to_dict()
        except RouterError as e:
            return error_envelope(e)

    def handle_authorize(self, definition_id: str, requested_tools: Iterable[str]) -> dict:
        """``{"id", "allowed": True}`` or a FORBIDDEN_TOOL envelope naming the missing tools"""
        try:
            result = self.authorize(definition_id, requested_tools)
            if not result.allowed:
                raise ForbiddenToolError(definition_id, result.missing_tools)
            return {"id": definition_id, "allowed": True}
        except RouterError as e:
            return error_envelope(e)

    def handle_reload(self, sources: Iterable[DefinitionSource | str]) -> dict:
        try:
            registry = self.reload(sources)
            return {"ok": True, "definitions": len(registry)}
        except RouterError as e:
            return error_envelope(e)


def error_envelope(error: RouterError) -> dict:
    """Host-facing error shape, keeping the detail each error carries"""
    body = {"code": error.code, "message": error.message}
    if isinstance(error, ForbiddenToolError):
        body["missingTools"] = sorted(error.missing_tools)
    elif isinstance(error, RegistryLoadError):
        body["details"] = [e.message for e in error.errors]
    elif isinstance(error, RegistryUnavailableError) and error.load_error:
        body["details"] = [e.message for e in error.load_error.errors]
    elif isinstance(error, RoutingError):
        body["reason"] = error.cause.reason.value
    return {"error": body}
