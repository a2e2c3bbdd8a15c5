"""Access guard - enforces a definition's tool allowlist before dispatch.

Hosts call this at every tool invocation attempt, not only once after
routing. The declared tool set is the boundary for what the model may do.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from plugroute.definitions.models import AgentDefinition, ToolVocabulary
from plugroute.errors import RouterError


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of an authorization check"""
    allowed: bool
    missing_tools: frozenset[str] = field(default_factory=frozenset)

    def __bool__(self) -> bool:
        return self.allowed


class ForbiddenToolError(RouterError):
    """Raised when a definition requests tools outside its allowlist."""
    code = "FORBIDDEN_TOOL"

    def __init__(self, definition_id: str, missing_tools: frozenset[str]):
        self.definition_id = definition_id
        self.missing_tools = missing_tools
        super().__init__(
            f"Definition '{definition_id}' is not allowed to use: {', '.join(sorted(missing_tools))}"
        )


def authorize(
    definition: AgentDefinition,
    requested_tools: Iterable[str],
    vocabulary: ToolVocabulary | None = None,
) -> AuthorizationResult:
    """Check requested tool invocations against the definition's allowlist.

    Args:
        definition: The selected definition
        requested_tools: Tools the model is trying to use
        vocabulary: Optional vocabulary so host names like "Bash" are
            compared as their canonical tokens

    Returns:
        AuthorizationResult naming exactly the tools outside the allowlist
    """
    if vocabulary is not None:
        requested = vocabulary.normalize(requested_tools)
    else:
        requested = frozenset(requested_tools)

    missing = requested - definition.allowed_tools
    if missing:
        return AuthorizationResult(allowed=False, missing_tools=frozenset(missing))
    return AuthorizationResult(allowed=True)


def check_tool_permission(
    definition: AgentDefinition,
    requested_tools: Iterable[str],
    vocabulary: ToolVocabulary | None = None,
) -> None:
    """Check tool permission and raise ForbiddenToolError if denied."""
    result = authorize(definition, requested_tools, vocabulary)
    if not result.allowed:
        raise ForbiddenToolError(definition.id, result.missing_tools)
