"""
Packed tile identifiers.

A grid cell stores one integer that packs the sprite position inside the
tileset image, the tileset order and two flip flags. Tile width and height
are not packed; they come from the tileset definition.

Bit layout (48 bits):
    0-15   sprite x (0-65535 pixels)
    16-31  sprite y (0-65535 pixels)
    32-45  tileset order (0-16383)
    46     flip x
    47     flip y

The value 0 means "no tile". Tileset order 0 is reserved as the "no tileset"
slot: TilesetIndexManager hands out orders starting at 1, so no placeable tile
ever packs to 0.
"""

import operator
from dataclasses import dataclass
from typing import List, Set

MAX_SPRITE_COORD = 0xFFFF
MAX_TILESET_ORDER = 0x3FFF
MAX_TILESETS = MAX_TILESET_ORDER  # Order 0 is reserved

EMPTY_TILE = 0

_Y_SHIFT = 16
_ORDER_SHIFT = 32
_FLIP_X_BIT = 1 << 46
_FLIP_Y_BIT = 1 << 47
_TILE_ID_LIMIT = 1 << 48


class TileIdRangeError(ValueError):
    """A field does not fit in its reserved bit width."""


@dataclass(frozen=True)
class TileGeometry:
    x: int
    y: int
    tileset_order: int
    flip_x: bool = False
    flip_y: bool = False


def _check_range(name: str, value: int, maximum: int) -> int:
    # Floats and other non-integral values raise TypeError here
    value = operator.index(value)
    if value < 0 or value > maximum:
        raise TileIdRangeError(f"{name} {value} out of range (0-{maximum})")
    return value


def pack_tile_id(
    x: int, y: int, tileset_order: int, flip_x: bool = False, flip_y: bool = False
) -> int:
    """Packs sprite position, tileset order and flip flags into one integer."""
    x = _check_range("Tile sprite x coordinate", x, MAX_SPRITE_COORD)
    y = _check_range("Tile sprite y coordinate", y, MAX_SPRITE_COORD)
    tileset_order = _check_range("Tileset order", tileset_order, MAX_TILESET_ORDER)

    packed = x | (y << _Y_SHIFT) | (tileset_order << _ORDER_SHIFT)
    if flip_x:
        packed |= _FLIP_X_BIT
    if flip_y:
        packed |= _FLIP_Y_BIT
    return packed


def unpack_tile_id(tile_id: int) -> TileGeometry:
    """Unpacks a tile id. Exact inverse of pack_tile_id."""
    tile_id = operator.index(tile_id)
    if tile_id < 0 or tile_id >= _TILE_ID_LIMIT:
        raise TileIdRangeError(f"Tile id {tile_id} out of range (0-{_TILE_ID_LIMIT - 1})")

    return TileGeometry(
        x=tile_id & MAX_SPRITE_COORD,
        y=(tile_id >> _Y_SHIFT) & MAX_SPRITE_COORD,
        tileset_order=(tile_id >> _ORDER_SHIFT) & MAX_TILESET_ORDER,
        flip_x=bool(tile_id & _FLIP_X_BIT),
        flip_y=bool(tile_id & _FLIP_Y_BIT),
    )


def is_empty_tile(tile_id: int) -> bool:
    return int(tile_id) == EMPTY_TILE


def set_flips(tile_id: int, flip_x: bool, flip_y: bool) -> int:
    """Returns the same tile with the given flips applied."""
    geometry = unpack_tile_id(tile_id)
    return pack_tile_id(geometry.x, geometry.y, geometry.tileset_order, flip_x, flip_y)


def get_base_tile_id(tile_id: int) -> int:
    """Tile id without flip flags, used to look up tile properties."""
    return set_flips(tile_id, False, False)


def is_same_geometry(tile_id1: int, tile_id2: int) -> bool:
    return get_base_tile_id(tile_id1) == get_base_tile_id(tile_id2)


class TilesetIndexManager:
    """Allocates the persistent tileset orders baked into packed tile ids."""

    def __init__(self):
        self.used_indices: Set[int] = set()

    def register_index(self, index: int):
        self.used_indices.add(_check_range("Tileset order", index, MAX_TILESET_ORDER))

    def get_next_available_index(self) -> int:
        # Order 0 is reserved
        index = 1
        while index in self.used_indices:
            index += 1
        if index > MAX_TILESET_ORDER:
            raise TileIdRangeError(
                f"All {MAX_TILESETS} tileset orders are in use"
            )
        self.used_indices.add(index)
        return index

    def release_index(self, index: int):
        self.used_indices.discard(index)

    def is_index_used(self, index: int) -> bool:
        return index in self.used_indices

    def clear(self):
        self.used_indices.clear()

    def get_used_indices(self) -> List[int]:
        return sorted(self.used_indices)
