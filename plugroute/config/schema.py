"""Configuration schemas using Pydantic"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from plugroute.definitions.models import (
    BUILTIN_MODEL_TIER_ALIASES,
    BUILTIN_MODEL_TIERS,
    DEFAULT_MODEL_TIER,
)


class ToolsConfig(BaseModel):
    """Tool capability vocabulary extensions"""
    extra: list[str] = Field(default_factory=list)  # Tokens beyond the built-ins
    aliases: dict[str, str] = Field(default_factory=dict)  # Host name -> token


class ModelsConfig(BaseModel):
    """Closed model tier vocabulary"""
    tiers: list[str] = Field(default_factory=lambda: list(BUILTIN_MODEL_TIERS))
    default: str = DEFAULT_MODEL_TIER  # Used when a definition declares no model
    aliases: dict[str, str] = Field(default_factory=lambda: dict(BUILTIN_MODEL_TIER_ALIASES))

    @model_validator(mode="after")
    def _default_is_known(self):
        if self.default not in self.tiers:
            raise ValueError(f"default tier '{self.default}' must be one of {self.tiers}")
        return self


class MatchingConfig(BaseModel):
    """Matcher policy"""
    scorer: Literal["token-overlap", "embedding"] = "token-overlap"
    min_score: float = Field(default=0.0, ge=0.0, lt=1.0)
    tier_bonus: float = Field(default=0.01, ge=0.0, le=0.1)
    tie_epsilon: float = Field(default=1e-9, ge=0.0, le=0.1)


class EmbeddingConfig(BaseModel):
    """Embedding scorer endpoint (Ollama-compatible)"""
    host: str | None = None  # Default: $OLLAMA_HOST or http://localhost:11434
    model: str = "nomic-embed-text"
    timeout: float = Field(default=30.0, gt=0)


class LoadingConfig(BaseModel):
    """Registry loading"""
    definition_dirs: list[Path] = Field(default_factory=lambda: [Path(".claude"), Path("plugins")])
    include_global: bool = False
    on_invalid: Literal["abort", "skip"] = "abort"
    max_workers: int | None = Field(default=None, ge=1)


class AuditConfig(BaseModel):
    """Routing audit log"""
    enabled: bool = True
    audit_file: Path | None = None  # None = in-memory only


class RouterConfig(BaseModel):
    """Main configuration"""
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    loading: LoadingConfig = Field(default_factory=LoadingConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
