"""
Bitmask auto-tiling for terrain layers.
Selects the terrain tile whose 3x3 bitmask best fits the neighbor layout.

Bitmask layout (9 bits, 0-511), bit index = row * 3 + col:
    [0] [1] [2]    (top-left, top, top-right)
    [3] [4] [5]    (left, center, right)
    [6] [7] [8]    (bottom-left, bottom, bottom-right)
"""

from typing import Callable, List, Optional, Sequence

from .models import TerrainLayer, TerrainTile, TileDefinition, Tileset

BITMASK_MAX = 0x1FF
CENTER_BIT = 1 << 4  # The cell itself, always set when painting

Grid = List[List[bool]]


def _bit_index(row: int, col: int) -> int:
    if not (0 <= row < 3 and 0 <= col < 3):
        raise ValueError(f"Bitmask cell ({row}, {col}) out of range (0-2)")
    return row * 3 + col


def grid_to_bitmask(grid: Sequence[Sequence[bool]]) -> int:
    """Convert a 3x3 boolean grid to a bitmask."""
    bitmask = 0
    for row, cells in enumerate(grid[:3]):
        for col, cell in enumerate(cells[:3]):
            if cell:
                bitmask |= 1 << (row * 3 + col)
    return bitmask


def bitmask_to_grid(bitmask: int) -> Grid:
    """Convert a bitmask to a 3x3 boolean grid."""
    return [
        [bool(bitmask & (1 << (row * 3 + col))) for col in range(3)]
        for row in range(3)
    ]


def calculate_bitmask_from_neighbors(has_neighbor: Callable[[int, int], bool]) -> int:
    """Build the bitmask for a cell from a neighbor test at offset (dx, dy).

    Edges are set when the cardinal neighbor exists. Corners are set only
    when both adjacent cardinals exist and the diagonal neighbor does too.
    """
    north = has_neighbor(0, -1)
    south = has_neighbor(0, 1)
    west = has_neighbor(-1, 0)
    east = has_neighbor(1, 0)

    north_west = north and west and has_neighbor(-1, -1)
    north_east = north and east and has_neighbor(1, -1)
    south_west = south and west and has_neighbor(-1, 1)
    south_east = south and east and has_neighbor(1, 1)

    return grid_to_bitmask(
        [
            [north_west, north, north_east],
            [west, True, east],
            [south_west, south, south_east],
        ]
    )


def toggle_bitmask_cell(bitmask: int, row: int, col: int) -> int:
    return (bitmask ^ (1 << _bit_index(row, col))) & BITMASK_MAX


def is_bitmask_cell_set(bitmask: int, row: int, col: int) -> bool:
    return bool(bitmask & (1 << _bit_index(row, col)))


def count_matching_bits(bitmask1: int, bitmask2: int) -> int:
    """Number of the 9 cells on which both bitmasks agree."""
    return 9 - bin((bitmask1 ^ bitmask2) & BITMASK_MAX).count("1")


def find_tile_by_bitmask(
    tileset: Tileset, terrain_layer: TerrainLayer, target_bitmask: int
) -> Optional[TerrainTile]:
    """Find the terrain tile that best fits a bitmask.

    An exact match wins. Otherwise the entry sharing the most bits with the
    target is used, earliest catalog entry first on ties. Returns None only
    when the terrain layer has no tiles.
    """
    best_match = None
    best_score = -1

    for terrain_tile in terrain_layer.tiles or []:
        if terrain_tile.bitmask == target_bitmask:
            return terrain_tile

        score = count_matching_bits(terrain_tile.bitmask, target_bitmask)
        if score > best_score:
            best_score = score
            best_match = terrain_tile

    return best_match


def get_tiles_for_terrain(
    tileset: Tileset, terrain_layer: TerrainLayer
) -> List[TileDefinition]:
    """Tile definitions used by a terrain layer, in terrain layer order."""
    by_id = {}
    for tile in tileset.tiles:
        by_id.setdefault(tile.id, tile)

    return [
        by_id[terrain_tile.tile_id]
        for terrain_tile in terrain_layer.tiles or []
        if terrain_tile.tile_id in by_id
    ]


def find_terrain_layer(tileset: Tileset, terrain_layer_id: str) -> Optional[TerrainLayer]:
    for terrain_layer in tileset.terrain_layers or []:
        if terrain_layer.id == terrain_layer_id:
            return terrain_layer
    return None


def get_all_terrain_layers(tilesets: Sequence[Tileset]) -> List[TerrainLayer]:
    groups = []
    for tileset in tilesets:
        groups.extend(tileset.terrain_layers or [])
    return groups
