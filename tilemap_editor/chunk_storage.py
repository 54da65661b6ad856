"""
Chunk-based tile storage for infinite maps.
Tiles live in fixed-size square chunks keyed by (chunk_x, chunk_y); absent
chunks are implicitly empty. Negative coordinates are supported.
"""

import logging
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .config import CONFIG
from .models import TILE_DTYPE, ChunkCoord, Layer
from .tile_id import EMPTY_TILE

logger = logging.getLogger(__name__)

CHUNK_SIZE = CONFIG.chunk_size

Chunks = Dict[ChunkCoord, np.ndarray]


def world_to_chunk(x: int, y: int, chunk_size: int = CHUNK_SIZE) -> ChunkCoord:
    """Convert world tile coordinates to chunk coordinates."""
    return (x // chunk_size, y // chunk_size)


def world_to_local(x: int, y: int, chunk_size: int = CHUNK_SIZE) -> Tuple[int, int]:
    """Convert world tile coordinates to the position inside their chunk."""
    return (x % chunk_size, y % chunk_size)


def chunk_key(chunk_x: int, chunk_y: int) -> str:
    """Serialized form of a chunk coordinate."""
    return f"{chunk_x},{chunk_y}"


def parse_chunk_key(key: str) -> ChunkCoord:
    chunk_x, chunk_y = key.split(",")
    return (int(chunk_x), int(chunk_y))


def create_empty_chunk(chunk_size: int = CHUNK_SIZE) -> np.ndarray:
    return np.zeros(chunk_size * chunk_size, dtype=TILE_DTYPE)


def is_chunk_empty(chunk: Sequence[int]) -> bool:
    """True iff every cell of the chunk is the empty tile."""
    return not np.any(np.asarray(chunk))


def get_tile(chunks: Chunks, x: int, y: int, chunk_size: int = CHUNK_SIZE) -> int:
    """Get a tile from chunk storage. Missing chunks read as empty."""
    chunk = chunks.get(world_to_chunk(x, y, chunk_size))
    if chunk is None:
        return EMPTY_TILE

    local_x, local_y = world_to_local(x, y, chunk_size)
    return int(chunk[local_y * chunk_size + local_x])


def set_tile(
    chunks: Chunks, x: int, y: int, tile_id: int, chunk_size: int = CHUNK_SIZE
):
    """Set a tile in chunk storage.

    The covering chunk is allocated on the first non-empty write and dropped
    again as soon as a write leaves it all empty.
    """
    coords = world_to_chunk(x, y, chunk_size)
    chunk = chunks.get(coords)
    if chunk is None:
        if tile_id == EMPTY_TILE:
            return
        chunk = create_empty_chunk(chunk_size)
        chunks[coords] = chunk

    local_x, local_y = world_to_local(x, y, chunk_size)
    chunk[local_y * chunk_size + local_x] = tile_id

    if tile_id == EMPTY_TILE and is_chunk_empty(chunk):
        del chunks[coords]


def prune_empty_chunks(chunks: Chunks):
    """Remove every all-empty chunk in place."""
    for coords in [c for c, chunk in chunks.items() if is_chunk_empty(chunk)]:
        del chunks[coords]


def clone_chunks(chunks: Chunks) -> Chunks:
    """Deep copy of a chunk map."""
    return {coords: chunk.copy() for coords, chunk in chunks.items()}


def get_chunk_bounds(
    chunks: Chunks, chunk_size: int = CHUNK_SIZE
) -> Optional[Tuple[int, int, int, int]]:
    """Tile-space (min_x, min_y, max_x, max_y) covered by the stored chunks."""
    if not chunks:
        return None

    xs = [cx for cx, _ in chunks]
    ys = [cy for _, cy in chunks]
    return (
        min(xs) * chunk_size,
        min(ys) * chunk_size,
        (max(xs) + 1) * chunk_size - 1,
        (max(ys) + 1) * chunk_size - 1,
    )


# Legacy dense layers


def normalize_legacy_tiles(tiles: Sequence[int], width: int, height: int) -> np.ndarray:
    """Return a dense width*height array, padding short data with empty tiles.

    Older saves grew a map's dimensions without growing its tile array, so a
    short array is expected input rather than an error.
    """
    expected = width * height
    data = np.asarray(tiles if tiles is not None else [], dtype=TILE_DTYPE).ravel()

    if len(data) < expected:
        logger.warning(
            "Legacy tile array has %d cells, expected %d; padding with empty tiles",
            len(data),
            expected,
        )
        padded = np.zeros(expected, dtype=TILE_DTYPE)
        padded[: len(data)] = data
        return padded
    if len(data) > expected:
        logger.warning(
            "Legacy tile array has %d cells, expected %d; truncating",
            len(data),
            expected,
        )
        return data[:expected].copy()
    return data.copy()


def legacy_tiles_to_chunks(
    tiles: Sequence[int], width: int, height: int, chunk_size: int = CHUNK_SIZE
) -> Chunks:
    """Migrate a dense legacy array to sparse chunk storage."""
    dense = normalize_legacy_tiles(tiles, width, height)
    chunks: Chunks = {}
    for index in np.flatnonzero(dense):
        y, x = divmod(int(index), width)
        set_tile(chunks, x, y, int(dense[index]), chunk_size)
    return chunks


# Backing-agnostic layer access


def get_layer_tile(layer: Layer, x: int, y: int) -> int:
    """Read a tile from either a chunked or a legacy dense layer."""
    if layer.is_legacy:
        if 0 <= x < layer.width and 0 <= y < layer.height:
            return int(layer.tiles[y * layer.width + x])
        return EMPTY_TILE
    return get_tile(layer.chunks, x, y, layer.chunk_size)


def set_layer_tile(layer: Layer, x: int, y: int, tile_id: int):
    """Write a tile to either backing. Writes outside a dense layer are ignored."""
    if layer.is_legacy:
        if 0 <= x < layer.width and 0 <= y < layer.height:
            layer.tiles[y * layer.width + x] = tile_id
        return
    set_tile(layer.chunks, x, y, tile_id, layer.chunk_size)


def _dense_chunk_region(layer: Layer, chunk_x: int, chunk_y: int):
    start_x = max(chunk_x * layer.chunk_size, 0)
    start_y = max(chunk_y * layer.chunk_size, 0)
    end_x = min((chunk_x + 1) * layer.chunk_size, layer.width)
    end_y = min((chunk_y + 1) * layer.chunk_size, layer.height)
    return start_x, start_y, end_x, end_y


def extract_chunk_tiles(layer: Layer, chunk_x: int, chunk_y: int) -> np.ndarray:
    """Independent copy of the tiles covered by one chunk.

    Chunked layers always yield a full chunk (zeros when absent). Dense
    layers yield the region clipped to the map bounds.
    """
    if layer.is_legacy:
        start_x, start_y, end_x, end_y = _dense_chunk_region(layer, chunk_x, chunk_y)
        if end_x <= start_x or end_y <= start_y:
            return np.zeros(0, dtype=TILE_DTYPE)
        grid = layer.tiles.reshape(layer.height, layer.width)
        return grid[start_y:end_y, start_x:end_x].ravel().copy()

    chunk = layer.chunks.get((chunk_x, chunk_y))
    if chunk is None:
        return create_empty_chunk(layer.chunk_size)
    return chunk.copy()


def apply_chunk_tiles(layer: Layer, tiles: np.ndarray, chunk_x: int, chunk_y: int):
    """Write chunk tiles back into a layer, in place."""
    if layer.is_legacy:
        start_x, start_y, end_x, end_y = _dense_chunk_region(layer, chunk_x, chunk_y)
        if end_x <= start_x or end_y <= start_y:
            return
        grid = layer.tiles.reshape(layer.height, layer.width)
        grid[start_y:end_y, start_x:end_x] = np.asarray(tiles).reshape(
            end_y - start_y, end_x - start_x
        )
        return

    coords = (chunk_x, chunk_y)
    if is_chunk_empty(tiles):
        layer.chunks.pop(coords, None)
        return

    chunk = layer.chunks.get(coords)
    if chunk is None:
        layer.chunks[coords] = np.array(tiles, dtype=TILE_DTYPE)
    else:
        chunk[:] = tiles
