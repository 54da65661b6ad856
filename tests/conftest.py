"""
Pytest configuration and shared fixtures for the tile map editor tests.
"""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from tilemap_editor.models import Layer, MapData, TerrainLayer, TerrainTile, Tileset
from tilemap_editor.tile_id import pack_tile_id
from tilemap_editor.tools import TerrainBrush
from tilemap_editor.undo_manager import ChunkedMapUndo

TERRAIN_ORDER = 1

# Grass sprites by bitmask
GRASS_CENTER = (16, 0)  # 16: isolated
GRASS_WEST = (32, 0)  # 24: center + west
GRASS_EAST = (48, 0)  # 48: center + east
GRASS_HORIZONTAL = (80, 0)  # 56: west + center + east
GRASS_FULL = (64, 0)  # 511: surrounded

DIRT_CENTER = (16, 16)
DIRT_FULL = (32, 16)


def grass_id(sprite, order=TERRAIN_ORDER):
    return pack_tile_id(sprite[0], sprite[1], order)


@pytest.fixture
def grass_layer():
    """Terrain layer with isolated, edge and full grass variants."""
    return TerrainLayer(
        id="grass",
        name="Grass",
        tiles=[
            TerrainTile(grass_id(GRASS_CENTER), 16),
            TerrainTile(grass_id(GRASS_WEST), 24),
            TerrainTile(grass_id(GRASS_EAST), 48),
            TerrainTile(grass_id(GRASS_HORIZONTAL), 56),
            TerrainTile(grass_id(GRASS_FULL), 511),
        ],
    )


@pytest.fixture
def dirt_layer():
    return TerrainLayer(
        id="dirt",
        name="Dirt",
        tiles=[
            TerrainTile(grass_id(DIRT_CENTER), 16),
            TerrainTile(grass_id(DIRT_FULL), 511),
        ],
    )


@pytest.fixture
def terrain_tileset(grass_layer, dirt_layer):
    """Tileset at order 1 carrying the grass and dirt terrain layers."""
    return Tileset(
        id="terrain",
        name="terrain",
        order=TERRAIN_ORDER,
        terrain_layers=[grass_layer, dirt_layer],
    )


@pytest.fixture
def tilesets(terrain_tileset):
    return [terrain_tileset]


@pytest.fixture
def layer():
    """Empty chunk-backed layer."""
    return Layer(id="ground", name="Ground")


@pytest.fixture
def legacy_layer():
    """Empty 10x10 dense layer in the old fixed-size format."""
    from tilemap_editor.chunk_storage import normalize_legacy_tiles

    return Layer(
        id="legacy",
        name="Legacy",
        tiles=normalize_legacy_tiles([], 10, 10),
        width=10,
        height=10,
    )


@pytest.fixture
def map_data(layer):
    return MapData(id="map-1", name="Test Map", layers=[layer])


@pytest.fixture
def history(map_data):
    """Chunked undo history over the test map."""
    return ChunkedMapUndo(map_data)


@pytest.fixture
def grass_brush(grass_layer, terrain_tileset, tilesets):
    return TerrainBrush(grass_layer, terrain_tileset, TERRAIN_ORDER, tilesets)
