"""Definition parsing, discovery and the registry"""

from .models import (
    AgentDefinition,
    DefinitionKind,
    DefinitionSource,
    ModelTierVocabulary,
    ToolVocabulary,
    BUILTIN_TOOLS,
    BUILTIN_MODEL_TIERS,
    DEFAULT_MODEL_TIER,
)
from .parser import (
    DefinitionParser,
    DefinitionParseError,
    MalformedHeaderError,
    MissingIdError,
    DuplicateToolDeclarationError,
    UnknownToolTokenError,
    UnknownModelTierError,
    UnreadableSourceError,
    EmptyBodyError,
)
from .registry import Registry, RegistryLoadError, DuplicateIdError, DefinitionNotFoundError
from .discovery import discover_sources, find_definition_files

__all__ = [
    "AgentDefinition",
    "DefinitionKind",
    "DefinitionSource",
    "ModelTierVocabulary",
    "ToolVocabulary",
    "BUILTIN_TOOLS",
    "BUILTIN_MODEL_TIERS",
    "DEFAULT_MODEL_TIER",
    "DefinitionParser",
    "DefinitionParseError",
    "MalformedHeaderError",
    "MissingIdError",
    "DuplicateToolDeclarationError",
    "UnknownToolTokenError",
    "UnknownModelTierError",
    "UnreadableSourceError",
    "EmptyBodyError",
    "Registry",
    "RegistryLoadError",
    "DuplicateIdError",
    "DefinitionNotFoundError",
    "discover_sources",
    "find_definition_files",
]
