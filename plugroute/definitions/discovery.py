"""Definition discovery - finds agent, command and skill files on disk"""

from __future__ import annotations

import logging
from pathlib import Path

from .models import DefinitionKind, DefinitionSource
from .parser import UnreadableSourceError

logger = logging.getLogger(__name__)


# Glob patterns relative to each root, paired with the kind they produce
DEFINITION_PATTERNS: list[tuple[str, DefinitionKind]] = [
    ("agents/*.md", DefinitionKind.AGENT),
    ("commands/**/*.md", DefinitionKind.COMMAND),
    ("skills/*/SKILL.md", DefinitionKind.SKILL),
]

# Global definition directories, searched after project roots
GLOBAL_DEFINITION_DIRS = [
    Path.home() / ".claude",
    Path.home() / ".config" / "plugroute",
]


def infer_kind(path: Path) -> DefinitionKind:
    """Guess the definition kind from its location"""
    if path.name == "SKILL.md":
        return DefinitionKind.SKILL
    parts = set(path.parts[:-1])
    if "commands" in parts:
        return DefinitionKind.COMMAND
    return DefinitionKind.AGENT


def find_definition_files(root: Path) -> list[Path]:
    """
    Find definition files under one root.

    A root is either a single plugin (containing agents/, commands/,
    skills/) or a directory of plugins, e.g. ``plugins/*/agents/*.md``.
    Results are sorted so load order is stable across runs.
    """
    root = Path(root).expanduser()
    if not root.exists():
        logger.debug(f"Definition root does not exist: {root}")
        return []

    found: dict[Path, None] = {}
    try:
        for plugin_dir in [root, *sorted(p for p in root.iterdir() if p.is_dir())]:
            for pattern, _ in DEFINITION_PATTERNS:
                for path in sorted(plugin_dir.glob(pattern)):
                    if path.is_file():
                        found[path] = None
    except OSError as e:
        raise UnreadableSourceError(f"Cannot scan definition directory: {e.strerror or e}", str(root)) from e
    return list(found)


def read_sources(paths: list[Path]) -> list[DefinitionSource]:
    """Read definition files into sources, in the order given"""
    return [DefinitionSource.from_path(Path(p)) for p in paths]


def discover_sources(
    roots: list[str | Path],
    include_global: bool = False,
) -> list[DefinitionSource]:
    """
    Collect every definition source under the given roots.

    Args:
        roots: Project or plugin directories
        include_global: Also scan GLOBAL_DEFINITION_DIRS (searched last)

    Returns:
        Sources in discovery order. Duplicate ids are not resolved here;
        the registry rejects them.
    """
    search = [Path(r) for r in roots]
    if include_global:
        search.extend(GLOBAL_DEFINITION_DIRS)

    paths: dict[Path, None] = {}
    for root in search:
        for path in find_definition_files(root):
            paths.setdefault(path.resolve(), None)

    sources = read_sources(list(paths))
    logger.info(f"Discovered {len(sources)} definition files in {len(search)} roots")
    return sources
