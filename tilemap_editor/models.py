"""
Core models and data structures for the tile map editor.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .config import CONFIG

# Packed tile ids use 48 bits, so cells are stored as signed 64-bit ints
TILE_DTYPE = np.int64

ChunkCoord = Tuple[int, int]


@dataclass
class TerrainTile:
    tile_id: int
    bitmask: int


@dataclass
class TerrainLayer:
    id: str
    name: str
    tiles: List[TerrainTile] = field(default_factory=list)


@dataclass
class PolygonCollider:
    points: List[Tuple[float, float]] = field(default_factory=list)
    id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None


@dataclass
class TileDefinition:
    id: int  # Packed tile id
    x: int
    y: int
    width: int = 0  # 0 means the tileset default
    height: int = 0
    colliders: List[PolygonCollider] = field(default_factory=list)
    name: Optional[str] = None
    type: Optional[str] = None


@dataclass
class Tileset:
    id: str
    name: str
    order: int
    tile_width: int = 16
    tile_height: int = 16
    tiles: List[TileDefinition] = field(default_factory=list)
    terrain_layers: List[TerrainLayer] = field(default_factory=list)
    image_path: str = ""

    def get_tile_width(self, tile: TileDefinition) -> int:
        return tile.width or self.tile_width

    def get_tile_height(self, tile: TileDefinition) -> int:
        return tile.height or self.tile_height

    def is_compound_tile(self, tile: TileDefinition) -> bool:
        """A tile is compound when its size differs from the tileset default."""
        return (
            tile.width != 0
            and tile.height != 0
            and (tile.width != self.tile_width or tile.height != self.tile_height)
        )


@dataclass
class Layer:
    """A tile layer.

    Chunk-backed by default: ``chunks`` maps (chunk_x, chunk_y) to a flat
    row-major array of ``chunk_size * chunk_size`` packed ids. Legacy layers
    instead carry a dense ``width * height`` array in ``tiles``.
    """

    id: str
    name: str = ""
    chunks: Dict[ChunkCoord, np.ndarray] = field(default_factory=dict)
    chunk_size: int = CONFIG.chunk_size
    visible: bool = True
    tiles: Optional[np.ndarray] = None
    width: int = 0
    height: int = 0

    @property
    def is_legacy(self) -> bool:
        return self.tiles is not None


@dataclass
class MapData:
    id: str
    name: str = "Untitled"
    layers: List[Layer] = field(default_factory=list)
    width: int = 0  # Only meaningful for legacy dense layers
    height: int = 0
    tile_width: int = 16
    tile_height: int = 16

    def get_layer(self, layer_id: str) -> Optional[Layer]:
        for layer in self.layers:
            if layer.id == layer_id:
                return layer
        return None


@dataclass(frozen=True)
class ChunkRef:
    layer_id: str
    chunk_x: int
    chunk_y: int


@dataclass
class ChunkPatch:
    layer_id: str
    chunk_x: int
    chunk_y: int
    chunk_size: int
    old_tiles: np.ndarray
    new_tiles: np.ndarray

    @property
    def ref(self) -> ChunkRef:
        return ChunkRef(self.layer_id, self.chunk_x, self.chunk_y)


@dataclass
class MapPatch:
    chunks: List[ChunkPatch]
    timestamp: float
