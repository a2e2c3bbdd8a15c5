"""Definition registry - immutable, validated collection of definitions"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Literal

from plugroute.errors import RouterError
from .discovery import discover_sources
from .models import AgentDefinition, DefinitionKind, DefinitionSource
from .parser import DefinitionParseError, DefinitionParser

logger = logging.getLogger(__name__)

OnInvalid = Literal["abort", "skip"]


class DuplicateIdError(RouterError):
    """Two sources declare the same definition id."""
    code = "LOAD_FAILED"

    def __init__(self, definition_id: str, first_origin: str, second_origin: str):
        self.definition_id = definition_id
        self.origins = (first_origin, second_origin)
        super().__init__(
            f"Duplicate definition id '{definition_id}' "
            f"(declared in {first_origin} and {second_origin})"
        )


class DefinitionNotFoundError(RouterError, LookupError):
    """No definition with the requested id."""
    code = "NOT_FOUND"

    def __init__(self, definition_id: str):
        self.definition_id = definition_id
        super().__init__(f"Definition '{definition_id}' not found")


class RegistryLoadError(RouterError):
    """A load attempt failed. Nothing from the attempt is registered.

    ``errors`` holds every underlying failure in source order.
    """
    code = "LOAD_FAILED"

    def __init__(self, errors: list[RouterError]):
        self.errors = errors
        if len(errors) == 1:
            message = f"Registry load failed: {errors[0].message}"
        else:
            details = "; ".join(e.message for e in errors)
            message = f"Registry load failed with {len(errors)} errors: {details}"
        super().__init__(message)


class Registry:
    """
    Read-only id -> definition mapping for one process lifetime.

    A Registry is either fully built or never constructed; there is no way
    to add or remove entries afterwards. Reloading means building a new
    instance (see plugroute.router.invoker.Invoker.reload).
    """

    def __init__(self, definitions: Iterable[AgentDefinition] = ()):
        by_id: dict[str, AgentDefinition] = {}
        for definition in definitions:
            existing = by_id.get(definition.id)
            if existing is not None:
                raise RegistryLoadError([
                    DuplicateIdError(definition.id, existing.origin, definition.origin)
                ])
            by_id[definition.id] = definition
        self._by_id = MappingProxyType(by_id)
        self._ordered = tuple(by_id.values())

    @classmethod
    def load(
        cls,
        sources: Iterable[DefinitionSource | str],
        parser: DefinitionParser | None = None,
        on_invalid: OnInvalid = "abort",
        max_workers: int | None = None,
    ) -> "Registry":
        """
        Parse every source and build a registry.

        Args:
            sources: DefinitionSource records (or raw text)
            parser: Parser to use; defaults to the built-in vocabularies
            on_invalid: "abort" fails on the first bad source set, "skip"
                drops unparseable sources with a warning. Duplicate ids
                always abort.
            max_workers: Parse in a thread pool of this size when > 1

        Returns:
            A fully loaded Registry

        Raises:
            RegistryLoadError: With the underlying parse/duplicate errors
        """
        parser = parser or DefinitionParser()
        sources = [
            s if isinstance(s, DefinitionSource) else DefinitionSource(text=s, origin=f"<source {i}>")
            for i, s in enumerate(sources)
        ]

        def parse_one(source: DefinitionSource) -> AgentDefinition | DefinitionParseError:
            try:
                return parser.parse_source(source)
            except DefinitionParseError as e:
                return e

        if max_workers and max_workers > 1 and len(sources) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                results = list(pool.map(parse_one, sources))
        else:
            results = [parse_one(s) for s in sources]

        # Single-threaded accumulation in source order
        definitions: list[AgentDefinition] = []
        errors: list[RouterError] = []
        for result in results:
            if isinstance(result, DefinitionParseError):
                if on_invalid == "skip":
                    logger.warning(f"Skipping invalid definition: {result.message}")
                    continue
                errors.append(result)
            else:
                definitions.append(result)

        if errors:
            logger.error(f"Registry load aborted: {len(errors)} invalid definition(s)")
            raise RegistryLoadError(errors) from errors[0]

        registry = cls(definitions)
        logger.info(f"Loaded {len(registry)} definitions")
        return registry

    @classmethod
    def load_from_dirs(
        cls,
        roots: list[str | Path],
        parser: DefinitionParser | None = None,
        on_invalid: OnInvalid = "abort",
        max_workers: int | None = None,
        include_global: bool = False,
    ) -> "Registry":
        """Discover definition files under ``roots`` and load them"""
        try:
            sources = discover_sources(roots, include_global=include_global)
        except DefinitionParseError as e:
            raise RegistryLoadError([e]) from e
        return cls.load(sources, parser=parser, on_invalid=on_invalid, max_workers=max_workers)

    def get(self, definition_id: str) -> AgentDefinition:
        """Get a definition by id, raising DefinitionNotFoundError if absent"""
        try:
            return self._by_id[definition_id]
        except KeyError:
            raise DefinitionNotFoundError(definition_id) from None

    def all(self) -> tuple[AgentDefinition, ...]:
        """Every definition, in load order"""
        return self._ordered

    def ids(self) -> list[str]:
        return list(self._by_id)

    def by_kind(self, kind: DefinitionKind | str) -> list[AgentDefinition]:
        kind = DefinitionKind(kind)
        return [d for d in self._ordered if d.kind == kind]

    def by_model_tier(self, tier: str) -> list[AgentDefinition]:
        return [d for d in self._ordered if d.model_tier == tier]

    def __len__(self) -> int:
        return len(self._ordered)

    def __iter__(self) -> Iterator[AgentDefinition]:
        return iter(self._ordered)

    def __contains__(self, definition_id: object) -> bool:
        return definition_id in self._by_id

    def __repr__(self) -> str:
        return f"Registry({len(self)} definitions)"
