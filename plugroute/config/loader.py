"""Configuration loading and the objects built from it"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from plugroute.definitions.models import ModelTierVocabulary, ToolVocabulary
from plugroute.definitions.parser import DefinitionParser
from .schema import RouterConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PLUGROUTE_CONFIG"
DEFAULT_CONFIG_FILES = [Path("plugroute.yaml"), Path("plugroute.yml"), Path("plugroute.json")]


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or validated."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid configuration in {path}: {reason}")


def find_config_file(path: str | Path | None = None) -> Path | None:
    """Explicit path, then $PLUGROUTE_CONFIG, then ./plugroute.{yaml,yml,json}"""
    if path:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    for candidate in DEFAULT_CONFIG_FILES:
        if candidate.exists():
            return candidate
    return None


def load_config(path: str | Path | None = None) -> RouterConfig:
    """Load configuration; a missing default file means all defaults.

    JSON files are read with the YAML loader (JSON is valid YAML).
    """
    config_path = find_config_file(path)
    if config_path is None:
        logger.debug("No config file found, using defaults")
        return RouterConfig()

    if not config_path.exists():
        raise ConfigError(config_path, "file does not exist")

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(config_path, str(e)) from e

    if not isinstance(data, dict):
        raise ConfigError(config_path, "top level must be a mapping")

    try:
        config = RouterConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(config_path, str(e)) from e

    # Relative definition dirs are relative to the config file
    base = config_path.parent
    config.loading.definition_dirs = [
        d if d.is_absolute() else base / d for d in config.loading.definition_dirs
    ]
    logger.info(f"Loaded configuration from {config_path}")
    return config


def build_tool_vocabulary(config: RouterConfig) -> ToolVocabulary:
    return ToolVocabulary.extended(config.tools.extra, config.tools.aliases)


def build_model_tiers(config: RouterConfig) -> ModelTierVocabulary:
    return ModelTierVocabulary(
        tiers=config.models.tiers,
        default=config.models.default,
        aliases=config.models.aliases,
    )


def build_parser(config: RouterConfig) -> DefinitionParser:
    return DefinitionParser(tools=build_tool_vocabulary(config), model_tiers=build_model_tiers(config))
