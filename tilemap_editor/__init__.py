"""
Tile map editor core: packed tile ids, chunk storage, bitmask auto-tiling,
terrain drawing and chunked undo/redo.
"""

from .auto_tiler import (
    bitmask_to_grid,
    calculate_bitmask_from_neighbors,
    find_tile_by_bitmask,
    get_tiles_for_terrain,
    grid_to_bitmask,
    is_bitmask_cell_set,
    toggle_bitmask_cell,
)
from .chunk_storage import get_tile, is_chunk_empty, set_tile
from .models import (
    ChunkRef,
    Layer,
    MapData,
    TerrainLayer,
    TerrainTile,
    TileDefinition,
    Tileset,
)
from .tile_id import TileIdRangeError, pack_tile_id, unpack_tile_id
from .tools import (
    TerrainBrush,
    get_terrain_layer_for_tile,
    place_terrain_tile,
    remove_terrain_tile,
    update_neighbors_around,
)
from .undo_manager import ChunkedMapUndo, UndoableHistory

__version__ = "0.1.0"
