"""
Configuration settings for the tile map editor core.
"""

import logging
import os

import toml
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class EditorConfig(BaseModel):
    """Configuration settings for the editor core."""

    # Storage
    chunk_size: int = 64  # Tiles per chunk side, also the undo diff unit

    # History
    history_limit: int = 50  # Undo entries kept before the oldest is dropped

    # Tile id codec limits (bit widths are fixed, these are informational)
    max_sprite_coord: int = 65535
    max_tileset_order: int = 16383

    # Logging
    log_level: str = "WARNING"

    model_config = ConfigDict(extra="allow")

    @classmethod
    def load_from_toml(cls, path: str = "tilemap_editor.toml") -> "EditorConfig":
        """Load configuration from a TOML file."""
        if not os.path.exists(path):
            logger.debug("Config file %s not found, using defaults", path)
            return cls()

        try:
            with open(path, "r") as f:
                data = toml.load(f)

            return cls(**data.get("editor", {}))
        except (toml.TomlDecodeError, ValueError) as e:
            logger.warning("Error loading config %s: %s", path, e)
            return cls()


# Global config instance
CONFIG = EditorConfig.load_from_toml(
    os.environ.get("TILEMAP_EDITOR_CONFIG", "tilemap_editor.toml")
)
