"""
Definition parser.

Turns one Markdown definition (YAML frontmatter header + prose body) into a
validated, immutable AgentDefinition.

Example agents/reviewer.md:
```markdown
---
name: reviewer
description: Reviews pull requests for correctness and style
tools: Read, Grep, Glob
model: sonnet
---

You are a meticulous code reviewer...
```
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml

from plugroute.errors import RouterError
from .models import (
    AgentDefinition,
    DefinitionKind,
    DefinitionSource,
    ModelTierVocabulary,
    ToolVocabulary,
)


class DefinitionParseError(RouterError):
    """Base class for every parse failure. Always fatal to a load attempt."""
    code = "LOAD_FAILED"

    def __init__(self, message: str, origin: str | None = None):
        self.origin = origin
        super().__init__(message + (f" in {origin}" if origin else ""))


class MalformedHeaderError(DefinitionParseError):
    """Frontmatter is missing, is not valid YAML, or is not a mapping."""


class MissingIdError(DefinitionParseError):
    """Header has no usable name/id."""

    def __init__(self, origin: str | None = None):
        super().__init__("Missing required field 'name' in frontmatter", origin)


class DuplicateToolDeclarationError(DefinitionParseError):
    """The same capability is declared more than once."""

    def __init__(self, tool: str, declared: list[str], origin: str | None = None):
        self.tool = tool
        self.declared = declared
        super().__init__(
            f"Tool '{tool}' declared more than once ({', '.join(declared)})",
            origin,
        )


class UnknownToolTokenError(DefinitionParseError):
    """One or more declared tools are not in the vocabulary."""

    def __init__(self, tokens: list[str], origin: str | None = None):
        self.tokens = tokens
        super().__init__(f"Unknown tool token(s): {', '.join(tokens)}", origin)


class UnknownModelTierError(DefinitionParseError):
    """Declared model tier is outside the host's closed vocabulary."""

    def __init__(self, tier: str, known: tuple[str, ...], origin: str | None = None):
        self.tier = tier
        super().__init__(
            f"Unknown model tier '{tier}' (expected one of {', '.join(known)})",
            origin,
        )


class UnreadableSourceError(DefinitionParseError):
    """The definition file or directory could not be read or decoded."""


class EmptyBodyError(DefinitionParseError):
    """Nothing but whitespace after the header."""

    def __init__(self, origin: str | None = None):
        super().__init__("Definition body is empty", origin)


_FRONTMATTER_PATTERN = re.compile(
    r"\A---[ \t]*\n(.*?)^---[ \t]*$\n?(.*)\Z",
    re.DOTALL | re.MULTILINE,
)

_ID_KEYS = ("name", "id")
_DESCRIPTION_KEYS = ("description", "triggerDescription", "trigger_description")
_TOOLS_KEYS = ("tools", "allowed-tools", "allowedTools", "allowed_tools")
_MODEL_KEYS = ("model", "modelTier", "model_tier")


def _first(frontmatter: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in frontmatter and frontmatter[key] is not None:
            return frontmatter[key]
    return None


def _extract_list(value: Any) -> list[str]:
    """Accept a YAML list or a comma-separated string"""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        items = [str(value)]
    return [item.strip() for item in items if item.strip()]


class DefinitionParser:
    """
    Parser for agent, command and skill definition files.

    Pure: holds only the vocabularies it validates against, so a single
    instance can be shared across threads.
    """

    def __init__(
        self,
        tools: ToolVocabulary | None = None,
        model_tiers: ModelTierVocabulary | None = None,
    ):
        self.tools = tools or ToolVocabulary()
        self.model_tiers = model_tiers or ModelTierVocabulary()

    def parse(
        self,
        text: str,
        origin: str | None = None,
        kind: DefinitionKind = DefinitionKind.AGENT,
    ) -> AgentDefinition:
        """
        Parse one definition.

        Args:
            text: Raw file content
            origin: Path or label used in error messages
            kind: Agent, command or skill

        Returns:
            The validated AgentDefinition

        Raises:
            DefinitionParseError: One of its named subclasses
        """
        text = text.lstrip("\ufeff").replace("\r\n", "\n")

        match = _FRONTMATTER_PATTERN.match(text)
        if not match:
            raise MalformedHeaderError(
                "Missing or malformed frontmatter: the file must start with '---', "
                "followed by YAML and a closing '---'",
                origin,
            )

        header_yaml, body = match.group(1), match.group(2)

        try:
            frontmatter = yaml.safe_load(header_yaml)
        except yaml.YAMLError as e:
            raise MalformedHeaderError(f"Invalid YAML frontmatter: {e}", origin) from e

        if frontmatter is None:
            frontmatter = {}
        if not isinstance(frontmatter, dict):
            raise MalformedHeaderError("YAML frontmatter must be a mapping", origin)

        raw_id = _first(frontmatter, _ID_KEYS)
        definition_id = str(raw_id).strip() if raw_id is not None else ""
        if not definition_id:
            raise MissingIdError(origin)

        description = _first(frontmatter, _DESCRIPTION_KEYS)
        description = str(description).strip() if description is not None else ""

        allowed_tools = self._resolve_tools(_extract_list(_first(frontmatter, _TOOLS_KEYS)), origin)

        declared_tier = _first(frontmatter, _MODEL_KEYS)
        model_tier = self.model_tiers.resolve(declared_tier)
        if model_tier is None:
            raise UnknownModelTierError(str(declared_tier), self.model_tiers.tiers, origin)

        if not body.strip():
            raise EmptyBodyError(origin)

        return AgentDefinition(
            id=definition_id,
            trigger_description=description,
            allowed_tools=allowed_tools,
            model_tier=model_tier,
            body=body,
            kind=kind,
            origin=origin or "<memory>",
        )

    def parse_source(self, source: DefinitionSource) -> AgentDefinition:
        if source.read_error:
            raise UnreadableSourceError(source.read_error, source.origin)
        return self.parse(source.text, origin=source.origin, kind=source.kind)

    def parse_file(self, path: str | Path) -> AgentDefinition:
        """Parse a definition file from disk"""
        return self.parse_source(DefinitionSource.from_path(Path(path)))

    def _resolve_tools(self, declared: list[str], origin: str | None) -> frozenset[str]:
        unknown = [name for name in declared if self.tools.resolve(name) is None]
        if unknown:
            raise UnknownToolTokenError(unknown, origin)

        seen: dict[str, str] = {}
        for name in declared:
            token = self.tools.resolve(name)
            if token in seen:
                raise DuplicateToolDeclarationError(token, [seen[token], name], origin)
            seen[token] = name
        return frozenset(seen)
