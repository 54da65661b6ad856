"""
Terrain drawing tools for the tile map editor.
Places and erases terrain tiles and keeps the surrounding ring auto-tiled.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence

from .auto_tiler import (
    calculate_bitmask_from_neighbors,
    find_terrain_layer,
    find_tile_by_bitmask,
)
from .chunk_storage import get_layer_tile, set_layer_tile, world_to_chunk
from .models import ChunkRef, Layer, TerrainLayer, Tileset
from .tile_id import EMPTY_TILE, pack_tile_id, unpack_tile_id

if TYPE_CHECKING:
    from .undo_manager import ChunkedMapUndo

logger = logging.getLogger(__name__)

# Row-major scan of the 3x3 ring, center excluded
NEIGHBOR_OFFSETS = [
    (dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1) if (dx, dy) != (0, 0)
]


def find_tileset_by_order(tilesets: Sequence[Tileset], order: int) -> Optional[Tileset]:
    for tileset in tilesets:
        if tileset.order == order:
            return tileset
    return None


def get_terrain_layer_for_tile(tile_id: int, tilesets: Sequence[Tileset]) -> Optional[str]:
    """Id of the terrain layer whose catalog holds this tile's sprite, if any."""
    if tile_id == EMPTY_TILE:
        return None

    geometry = unpack_tile_id(tile_id)
    tileset = find_tileset_by_order(tilesets, geometry.tileset_order)
    if tileset is None:
        return None

    for terrain_layer in tileset.terrain_layers or []:
        for terrain_tile in terrain_layer.tiles or []:
            entry = unpack_tile_id(terrain_tile.tile_id)
            if entry.x == geometry.x and entry.y == geometry.y:
                return terrain_layer.id
    return None


def is_terrain_at_position(
    layer: Layer, x: int, y: int, terrain_layer_id: str, tilesets: Sequence[Tileset]
) -> bool:
    tile_id = get_layer_tile(layer, x, y)
    if tile_id == EMPTY_TILE:
        return False
    return get_terrain_layer_for_tile(tile_id, tilesets) == terrain_layer_id


def place_terrain_tile(
    layer: Layer,
    x: int,
    y: int,
    terrain_layer: TerrainLayer,
    tileset: Tileset,
    tileset_order: int,
    tilesets: Sequence[Tileset],
):
    """Place the terrain tile that fits the neighbors of (x, y)."""
    bitmask = calculate_bitmask_from_neighbors(
        lambda dx, dy: is_terrain_at_position(
            layer, x + dx, y + dy, terrain_layer.id, tilesets
        )
    )

    match = find_tile_by_bitmask(tileset, terrain_layer, bitmask)
    if match is None:
        logger.debug("Terrain layer %s has no tiles, nothing placed", terrain_layer.id)
        return

    sprite = unpack_tile_id(match.tile_id)
    set_layer_tile(layer, x, y, pack_tile_id(sprite.x, sprite.y, tileset_order))


def remove_terrain_tile(layer: Layer, x: int, y: int):
    """Clear the cell. Callers follow up with update_neighbors_around."""
    set_layer_tile(layer, x, y, EMPTY_TILE)


def update_neighbor_terrain(
    layer: Layer,
    x: int,
    y: int,
    terrain_layer_id: str,
    tileset: Tileset,
    tileset_order: int,
    tilesets: Sequence[Tileset],
):
    """Re-pick the tile at (x, y) if it belongs to the given terrain layer."""
    if not is_terrain_at_position(layer, x, y, terrain_layer_id, tilesets):
        return

    terrain_layer = find_terrain_layer(tileset, terrain_layer_id)
    if terrain_layer is None:
        return

    place_terrain_tile(layer, x, y, terrain_layer, tileset, tileset_order, tilesets)


def update_neighbors_around(
    layer: Layer,
    x: int,
    y: int,
    terrain_layer_id: str,
    tileset: Tileset,
    tileset_order: int,
    tilesets: Sequence[Tileset],
):
    """Update the 8 surrounding tiles once, without spreading further."""
    for dx, dy in NEIGHBOR_OFFSETS:
        update_neighbor_terrain(
            layer, x + dx, y + dy, terrain_layer_id, tileset, tileset_order, tilesets
        )


def terrain_affected_chunks(layer: Layer, x: int, y: int) -> List[ChunkRef]:
    """Chunks a terrain edit at (x, y) can write to: the cell and its ring."""
    refs = {}
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            cx, cy = world_to_chunk(x + dx, y + dy, layer.chunk_size)
            refs[ChunkRef(layer.id, cx, cy)] = None
    return list(refs)


@dataclass
class TerrainBrush:
    """The terrain selection a paint handler works with."""

    terrain_layer: TerrainLayer
    tileset: Tileset
    tileset_order: int
    tilesets: Sequence[Tileset]

    def paint(self, layer: Layer, x: int, y: int):
        """Place a terrain tile and re-tile its ring.

        A selection whose terrain layer is no longer in the tileset paints nothing.
        """
        terrain_layer = find_terrain_layer(self.tileset, self.terrain_layer.id)
        if terrain_layer is None:
            logger.debug("Terrain layer %s no longer exists, nothing painted", self.terrain_layer.id)
            return

        place_terrain_tile(
            layer, x, y, terrain_layer, self.tileset, self.tileset_order, self.tilesets
        )
        update_neighbors_around(
            layer,
            x,
            y,
            terrain_layer.id,
            self.tileset,
            self.tileset_order,
            self.tilesets,
        )

    def erase(self, layer: Layer, x: int, y: int):
        """Clear the cell and re-tile the neighbors of whatever terrain was there."""
        old_tile = get_layer_tile(layer, x, y)
        if old_tile == EMPTY_TILE:
            return

        terrain_layer_id = get_terrain_layer_for_tile(old_tile, self.tilesets)
        remove_terrain_tile(layer, x, y)
        if terrain_layer_id is None:
            return

        order = unpack_tile_id(old_tile).tileset_order
        tileset = find_tileset_by_order(self.tilesets, order)
        if tileset is None:
            return
        update_neighbors_around(
            layer, x, y, terrain_layer_id, tileset, order, self.tilesets
        )


# Undo-aware handlers


def _edit_terrain(history: "ChunkedMapUndo", layer_id: str, x: int, y: int, action):
    layer = history.present.get_layer(layer_id)
    if layer is None:
        logger.debug("Layer %s not found, skipping terrain edit", layer_id)
        return

    with history.edit(terrain_affected_chunks(layer, x, y)) as present:
        action(present.get_layer(layer_id), x, y)


def paint_terrain(
    history: "ChunkedMapUndo", layer_id: str, x: int, y: int, brush: TerrainBrush
):
    _edit_terrain(history, layer_id, x, y, brush.paint)


def erase_terrain(
    history: "ChunkedMapUndo", layer_id: str, x: int, y: int, brush: TerrainBrush
):
    _edit_terrain(history, layer_id, x, y, brush.erase)


def line_points(x0: int, y0: int, x1: int, y1: int) -> List[tuple]:
    """Cells on the Bresenham line from (x0, y0) to (x1, y1), both ends included."""
    points = []
    dx, dy = abs(x1 - x0), -abs(y1 - y0)
    sx, sy = (1 if x0 < x1 else -1), (1 if y0 < y1 else -1)
    err = dx + dy
    while True:
        points.append((x0, y0))
        if x0 == x1 and y0 == y1:
            break
        e2 = 2 * err
        if e2 >= dy:
            err += dy
            x0 += sx
        if e2 <= dx:
            err += dx
            y0 += sy
    return points


def paint_terrain_line(
    history: "ChunkedMapUndo",
    layer_id: str,
    x0: int,
    y0: int,
    x1: int,
    y1: int,
    brush: TerrainBrush,
):
    """Paint a drag stroke as a single undo step."""
    with history.batch():
        for x, y in line_points(x0, y0, x1, y1):
            paint_terrain(history, layer_id, x, y, brush)
