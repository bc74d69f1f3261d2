"""
Runtime settings for graph building and path synthesis.

Settings are a pydantic model so a saved JSON config round-trips with
validation::

    python -m knowledge_paths.graph_builder --save-config ./data/config.json
    python -m knowledge_paths.graph_builder --config ./data/config.json ...
"""

import json
import logging
from typing import Optional

from pydantic import BaseModel, Field

from knowledge_paths.models import DifficultyLabel, Scope
from knowledge_paths.utils import save_json

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Tunable defaults; every field can be overridden on the CLI."""

    default_band: Optional[DifficultyLabel] = "intermediate"
    default_max_hours: float = Field(40.0, ge=0)
    scope: Scope = "comprehensive"
    max_cached_graphs: int = Field(64, ge=1)
    required_mastery: float = Field(0.7, ge=0, le=1)
    checkpoint_interval: int = Field(3, ge=1)
    fallback_on_empty: bool = False


def load_settings(path: Optional[str] = None) -> Settings:
    """Load settings from a JSON file; defaults when *path* is ``None``."""
    if path is None:
        return Settings()
    with open(path, "r", encoding="utf-8") as fh:
        settings = Settings.model_validate(json.load(fh))
    logger.info("Loaded settings from %s", path)
    return settings


def save_settings(settings: Settings, path: str) -> None:
    save_json(settings.model_dump(), path)
