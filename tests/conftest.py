"""Shared fixtures for plugroute tests"""

from pathlib import Path

import pytest

from plugroute.definitions.models import DefinitionSource
from plugroute.definitions.registry import Registry


def make_definition(
    name: str | None,
    description: str = "",
    tools: list[str] | str | None = None,
    model: str | None = None,
    body: str = "Follow the instructions.\n",
) -> str:
    """Render a definition file the way plugin authors write them"""
    lines = ["---"]
    if name is not None:
        lines.append(f"name: {name}")
    if description:
        lines.append(f"description: {description}")
    if tools is not None:
        if isinstance(tools, str):
            lines.append(f"tools: {tools}")
        else:
            lines.append(f"tools: [{', '.join(tools)}]")
    if model is not None:
        lines.append(f"model: {model}")
    lines.append("---")
    return "\n".join(lines) + "\n\n" + body


def make_source(name, description="", tools=None, model=None, body="Follow the instructions.\n", origin=None):
    return DefinitionSource(
        text=make_definition(name, description, tools, model, body),
        origin=origin or f"agents/{name}.md",
    )


@pytest.fixture
def scenario_sources():
    """The two-definition registry used throughout the routing scenarios"""
    return [
        make_source("a", "summarize files", ["read-file"]),
        make_source("b", "run build scripts", ["execute-shell"]),
    ]


@pytest.fixture
def scenario_registry(scenario_sources):
    return Registry.load(scenario_sources)


@pytest.fixture
def plugin_tree(tmp_path: Path) -> Path:
    """A plugins/ directory with one agent, one command and one skill"""
    root = tmp_path / "plugins"
    (root / "core" / "agents").mkdir(parents=True)
    (root / "core" / "commands").mkdir(parents=True)
    (root / "core" / "skills" / "changelog").mkdir(parents=True)

    (root / "core" / "agents" / "builder.md").write_text(
        make_definition("builder", "run build scripts and report failures", "Bash, Read", "haiku"),
        encoding="utf-8",
    )
    (root / "core" / "commands" / "summarize.md").write_text(
        make_definition("summarize", "summarize files in the repository", ["Read", "Grep"]),
        encoding="utf-8",
    )
    (root / "core" / "skills" / "changelog" / "SKILL.md").write_text(
        make_definition("changelog", "write a changelog entry", ["Read", "Write"], "opus"),
        encoding="utf-8",
    )
    # Not a definition location; must be ignored
    (root / "core" / "README.md").write_text("# core plugin\n", encoding="utf-8")
    return root
