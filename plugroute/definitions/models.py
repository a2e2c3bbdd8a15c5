"""Definition records and the tool / model tier vocabularies"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class DefinitionKind(str, Enum):
    """Where a definition came from in a plugin tree"""
    AGENT = "agent"        # agents/*.md
    COMMAND = "command"    # commands/*.md
    SKILL = "skill"        # skills/<name>/SKILL.md


# Built-in tool capabilities. Each token names one side-effecting operation.
BUILTIN_TOOLS = frozenset({
    "read-file",
    "write-file",
    "edit-file",
    "search-files",
    "execute-shell",
    "network-fetch",
    "web-search",
    "spawn-agent",
    "manage-todos",
    "notebook-edit",
})

# Host tool names as they appear in agent frontmatter
BUILTIN_TOOL_ALIASES = {
    "read": "read-file",
    "write": "write-file",
    "edit": "edit-file",
    "multiedit": "edit-file",
    "grep": "search-files",
    "glob": "search-files",
    "ls": "search-files",
    "bash": "execute-shell",
    "webfetch": "network-fetch",
    "websearch": "web-search",
    "task": "spawn-agent",
    "todowrite": "manage-todos",
    "notebookedit": "notebook-edit",
}

BUILTIN_MODEL_TIERS = ("fast", "balanced", "capable")

BUILTIN_MODEL_TIER_ALIASES = {
    "haiku": "fast",
    "sonnet": "balanced",
    "opus": "capable",
}

DEFAULT_MODEL_TIER = "balanced"


class ToolVocabulary:
    """Resolves declared tool names to canonical capability tokens.

    Canonical tokens match exactly. Aliases match case-insensitively, so
    ``Bash``, ``bash`` and ``execute-shell`` all resolve to the same token.
    """

    def __init__(
        self,
        tokens: set[str] | frozenset[str] = BUILTIN_TOOLS,
        aliases: dict[str, str] | None = None,
    ):
        self.tokens = frozenset(tokens)
        if aliases is None:
            aliases = {k: v for k, v in BUILTIN_TOOL_ALIASES.items() if v in self.tokens}
        self.aliases: dict[str, str] = {}
        for alias, target in aliases.items():
            if target not in self.tokens:
                raise ValueError(f"Tool alias '{alias}' points at unknown token '{target}'")
            self.aliases[alias.lower()] = target

    @classmethod
    def extended(
        cls,
        extra_tokens: list[str] | None = None,
        extra_aliases: dict[str, str] | None = None,
    ) -> "ToolVocabulary":
        """Built-in vocabulary plus host-specific tokens and aliases"""
        tokens = set(BUILTIN_TOOLS) | set(extra_tokens or [])
        aliases = dict(BUILTIN_TOOL_ALIASES)
        aliases.update(extra_aliases or {})
        return cls(tokens=tokens, aliases=aliases)

    def resolve(self, name: str) -> str | None:
        """Return the canonical token for ``name``, or None if unknown"""
        name = name.strip()
        if name in self.tokens:
            return name
        return self.aliases.get(name.lower())

    def normalize(self, names) -> frozenset[str]:
        """Resolve what can be resolved and keep unknown names verbatim.

        Used for request-side tool sets, where an unknown name simply
        cannot be satisfied by any definition.
        """
        result = set()
        for name in names or ():
            resolved = self.resolve(name)
            result.add(resolved if resolved else name.strip())
        return frozenset(result)


class ModelTierVocabulary:
    """Closed set of model tiers known to the host"""

    def __init__(
        self,
        tiers: tuple[str, ...] | list[str] = BUILTIN_MODEL_TIERS,
        default: str = DEFAULT_MODEL_TIER,
        aliases: dict[str, str] | None = None,
    ):
        self.tiers = tuple(tiers)
        if default not in self.tiers:
            raise ValueError(f"Default model tier '{default}' is not one of {', '.join(self.tiers)}")
        self.default = default
        self.aliases = {
            k.lower(): v
            for k, v in (BUILTIN_MODEL_TIER_ALIASES if aliases is None else aliases).items()
            if v in self.tiers
        }

    def resolve(self, tier: str | None) -> str | None:
        """Map a declared tier to the vocabulary; None/blank gives the default"""
        if tier is None or not str(tier).strip():
            return self.default
        tier = str(tier).strip()
        if tier.lower() == "inherit":
            return self.default
        if tier in self.tiers:
            return tier
        return self.aliases.get(tier.lower())


@dataclass(frozen=True)
class DefinitionSource:
    """Raw text of one definition file plus where it came from.

    ``read_error`` is set when the file could not be read or decoded; the
    parser reports it as a load failure for this source.
    """
    text: str
    origin: str = "<memory>"
    kind: DefinitionKind = DefinitionKind.AGENT
    read_error: str | None = None

    @classmethod
    def from_path(cls, path: Path, kind: DefinitionKind | None = None) -> "DefinitionSource":
        from .discovery import infer_kind
        kind = kind or infer_kind(path)
        try:
            text = path.read_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            reason = f"File is not valid UTF-8 ({e.reason} at byte {e.start})"
            return cls(text="", origin=str(path), kind=kind, read_error=reason)
        except OSError as e:
            return cls(text="", origin=str(path), kind=kind, read_error=f"Cannot read file: {e.strerror or e}")
        return cls(text=text, origin=str(path), kind=kind)


@dataclass(frozen=True)
class AgentDefinition:
    """One validated agent/command/skill definition.

    ``body`` is the prompt text handed to the host untouched.
    """
    id: str
    trigger_description: str
    allowed_tools: frozenset[str] = field(default_factory=frozenset)
    model_tier: str = DEFAULT_MODEL_TIER
    body: str = field(default="", repr=False)
    kind: DefinitionKind = DefinitionKind.AGENT
    origin: str = field(default="<memory>", compare=False)

    def to_dict(self) -> dict:
        """Shape returned to hosts"""
        return {
            "id": self.id,
            "body": self.body,
            "allowedTools": sorted(self.allowed_tools),
            "modelTier": self.model_tier,
        }

    def summary(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "description": self.trigger_description,
            "allowedTools": sorted(self.allowed_tools),
            "modelTier": self.model_tier,
            "origin": self.origin,
        }
