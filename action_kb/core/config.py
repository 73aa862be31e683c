"""
Knowledge Base Configuration Schema

Defines configuration for the action knowledge base including embedding
settings, match thresholds, mining options and persistence.
"""

import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from action_kb.core.embeddings import EmbeddingConfig


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class MatchThresholds(BaseModel):
    """
    Acceptance thresholds for lookups.

    The defaults are empirical; atomic and learned-pattern lookups are
    permissive, composite and terminology lookups are strict.
    """

    atomic_min_confidence: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Atomic action accepted when best confidence exceeds this"
    )
    composite_max_distance: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        description="Composite action accepted when best distance is below this"
    )
    terminology_max_distance: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="User term accepted when best distance is below this"
    )
    learned_pattern_min_confidence: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Learned patterns above this confidence count as matches"
    )


class MiningConfig(BaseModel):
    """Repository mining options."""

    file_suffixes: List[str] = Field(default_factory=lambda: [".java"])
    page_object_markers: List[str] = Field(default_factory=lambda: ["Screen", "Page"])
    skip_directories: List[str] = Field(
        default_factory=lambda: [
            "node_modules", "target", "build", "out", ".git",
            ".gradle", ".idea", "bin", "dist",
        ]
    )
    default_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    encoding: str = "utf-8"


class KnowledgeBaseConfig(BaseModel):
    """Complete knowledge base configuration."""

    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    thresholds: MatchThresholds = Field(default_factory=MatchThresholds)
    mining: MiningConfig = Field(default_factory=MiningConfig)

    persist_directory: Optional[Path] = Field(
        default=None,
        description="Directory for JSON snapshots of the collections; in-memory only when unset"
    )
    lexical_matching: bool = Field(
        default=True,
        description="Blend token coverage into vector similarity"
    )

    atomic_top_k: int = Field(default=5, ge=1)
    composite_top_k: int = Field(default=3, ge=1)
    terminology_top_k: int = Field(default=3, ge=1)
    pattern_top_k: int = Field(default=3, ge=1)

    @classmethod
    def from_env(cls) -> "KnowledgeBaseConfig":
        """Create configuration from environment variables."""
        defaults = MatchThresholds()
        thresholds = MatchThresholds(
            atomic_min_confidence=float(
                os.getenv("ACTION_KB_ATOMIC_MIN_CONFIDENCE", defaults.atomic_min_confidence)
            ),
            composite_max_distance=float(
                os.getenv("ACTION_KB_COMPOSITE_MAX_DISTANCE", defaults.composite_max_distance)
            ),
            terminology_max_distance=float(
                os.getenv("ACTION_KB_TERMINOLOGY_MAX_DISTANCE", defaults.terminology_max_distance)
            ),
            learned_pattern_min_confidence=float(
                os.getenv(
                    "ACTION_KB_PATTERN_MIN_CONFIDENCE", defaults.learned_pattern_min_confidence
                )
            ),
        )
        persist_dir = os.getenv("ACTION_KB_PERSIST_DIR")

        return cls(
            embedding=EmbeddingConfig.from_env(),
            thresholds=thresholds,
            persist_directory=Path(persist_dir) if persist_dir else None,
            lexical_matching=_env_bool("ACTION_KB_LEXICAL_MATCHING", True),
        )


__all__ = ["KnowledgeBaseConfig", "MatchThresholds", "MiningConfig"]
