"""
Map document helpers for the tile map editor.
Converts maps to and from plain dicts with chunk-based layers, and keeps
older dense-array layers loadable.
"""

import logging
import math
from typing import Any, Dict, Optional

import numpy as np

from .chunk_storage import (
    chunk_key,
    is_chunk_empty,
    legacy_tiles_to_chunks,
    normalize_legacy_tiles,
    parse_chunk_key,
)
from .config import CONFIG
from .models import TILE_DTYPE, Layer, MapData

logger = logging.getLogger(__name__)

MAP_FORMAT_VERSION = "5.0"


def create_layer(layer_id: str, name: str = "", chunk_size: Optional[int] = None) -> Layer:
    return Layer(id=layer_id, name=name or layer_id, chunk_size=chunk_size or CONFIG.chunk_size)


def create_map(map_id: str, name: str = "Untitled", layer_names=("Ground",)) -> MapData:
    """New infinite map with one empty chunked layer per name."""
    layers = [create_layer(f"layer-{i}", layer_name) for i, layer_name in enumerate(layer_names)]
    return MapData(id=map_id, name=name, layers=layers)


def serialize_layer(layer: Layer) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": layer.id,
        "name": layer.name,
        "visible": layer.visible,
        "chunkSize": layer.chunk_size,
    }
    if layer.is_legacy:
        data["tiles"] = layer.tiles.tolist()
        return data

    # Empty chunks are never written
    data["chunks"] = {
        chunk_key(cx, cy): chunk.tolist()
        for (cx, cy), chunk in sorted(layer.chunks.items(), key=lambda item: item[0])
        if not is_chunk_empty(chunk)
    }
    return data


def serialize_map_data(map_data: MapData) -> Dict[str, Any]:
    """Plain-dict form of a map, ready for json/toml dumping."""
    data = {
        "version": MAP_FORMAT_VERSION,
        "id": map_data.id,
        "name": map_data.name,
        "tileWidth": map_data.tile_width,
        "tileHeight": map_data.tile_height,
        "layers": [serialize_layer(layer) for layer in map_data.layers],
    }
    if any(layer.is_legacy for layer in map_data.layers):
        data["width"] = map_data.width
        data["height"] = map_data.height
    return data


def infer_chunk_size(chunks: Dict[str, Any]) -> Optional[int]:
    """Side length of the first chunk array if it is square, else None."""
    if not chunks:
        return None
    cells = len(next(iter(chunks.values())))
    side = math.isqrt(cells)
    if side > 0 and side * side == cells:
        return side
    return None


def _load_chunk(key: str, tiles, chunk_size: int) -> np.ndarray:
    chunk = np.zeros(chunk_size * chunk_size, dtype=TILE_DTYPE)
    values = np.asarray(tiles, dtype=TILE_DTYPE).ravel()
    if len(values) != len(chunk):
        logger.warning(
            "Chunk %s has %d cells, expected %d; %s",
            key,
            len(values),
            len(chunk),
            "padding with empty tiles" if len(values) < len(chunk) else "truncating",
        )
        values = values[: len(chunk)]
    chunk[: len(values)] = values
    return chunk


def deserialize_layer(
    data: Dict[str, Any], width: int, height: int, migrate: bool = False
) -> Layer:
    chunk_size = data.get("chunkSize")
    if chunk_size is None:
        # Files without chunkSize are sized by their chunk arrays
        chunk_size = infer_chunk_size(data.get("chunks") or {}) or CONFIG.chunk_size
    layer = Layer(
        id=data["id"],
        name=data.get("name", data["id"]),
        visible=data.get("visible", True),
        chunk_size=chunk_size,
    )

    if "chunks" in data:
        for key, tiles in data["chunks"].items():
            chunk = _load_chunk(key, tiles, chunk_size)
            if not is_chunk_empty(chunk):
                layer.chunks[parse_chunk_key(key)] = chunk
        return layer

    tiles = data.get("tiles", [])
    if migrate:
        layer.chunks = legacy_tiles_to_chunks(tiles, width, height, chunk_size)
        return layer

    layer.tiles = normalize_legacy_tiles(tiles, width, height)
    layer.width = width
    layer.height = height
    return layer


def deserialize_map_data(data: Dict[str, Any], migrate: bool = False) -> MapData:
    """Rebuild a map from its dict form.

    Layers without chunks are legacy dense layers sized by the map's
    width and height. With migrate=True they are converted to chunks.
    """
    width = data.get("width", 0)
    height = data.get("height", 0)
    layers = [deserialize_layer(layer, width, height, migrate) for layer in data.get("layers", [])]

    if data.get("version") != MAP_FORMAT_VERSION:
        logger.debug("Loading map format %s", data.get("version", "unknown"))

    return MapData(
        id=data.get("id", ""),
        name=data.get("name", "Untitled"),
        layers=layers,
        width=width,
        height=height,
        tile_width=data.get("tileWidth", 16),
        tile_height=data.get("tileHeight", 16),
    )
