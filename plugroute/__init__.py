"""plugroute - load agent/command/skill definitions and pick one per request"""

from .errors import RouterError
from .definitions import AgentDefinition, DefinitionParser, DefinitionSource, Registry, RegistryLoadError
from .router import Invoker, Matcher, MatchRequest, MatchResult, NoCandidatesError, RoutingError, resolve
from .permission import AuthorizationResult, ForbiddenToolError, authorize

__version__ = "0.1.0"

__all__ = [
    "RouterError",
    "AgentDefinition",
    "DefinitionParser",
    "DefinitionSource",
    "Registry",
    "RegistryLoadError",
    "Invoker",
    "Matcher",
    "MatchRequest",
    "MatchResult",
    "NoCandidatesError",
    "RoutingError",
    "resolve",
    "AuthorizationResult",
    "ForbiddenToolError",
    "authorize",
]
