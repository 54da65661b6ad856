"""
Tests for bitmask auto-tiling.
"""

import pytest

from tilemap_editor.auto_tiler import (
    bitmask_to_grid,
    calculate_bitmask_from_neighbors,
    count_matching_bits,
    find_terrain_layer,
    find_tile_by_bitmask,
    get_all_terrain_layers,
    get_tiles_for_terrain,
    grid_to_bitmask,
    is_bitmask_cell_set,
    toggle_bitmask_cell,
)
from tilemap_editor.models import TerrainLayer, TerrainTile, TileDefinition, Tileset


def make_tileset(*terrain_layers, tiles=None):
    return Tileset(
        id="ts",
        name="ts",
        order=1,
        tiles=list(tiles or []),
        terrain_layers=list(terrain_layers),
    )


def catalog(*entries):
    return TerrainLayer(
        id="t", name="t", tiles=[TerrainTile(tile_id, bitmask) for tile_id, bitmask in entries]
    )


class TestGridConversion:
    """Test conversion between bitmasks and 3x3 grids."""

    def test_all_bitmasks_round_trip(self):
        for bitmask in range(512):
            assert grid_to_bitmask(bitmask_to_grid(bitmask)) == bitmask

    def test_grid_layout(self):
        """Test bit index is row * 3 + col."""
        grid = bitmask_to_grid(1 << 5)
        assert grid == [[False, False, False], [False, False, True], [False, False, False]]

    def test_grid_to_bitmask_stays_in_range(self):
        grid = [[True] * 4 for _ in range(4)]
        assert grid_to_bitmask(grid) == 511


class TestCellHelpers:
    """Test toggling and reading single cells."""

    def test_toggle_is_involution(self):
        for bitmask in range(512):
            for row in range(3):
                for col in range(3):
                    once = toggle_bitmask_cell(bitmask, row, col)
                    assert 0 <= once <= 511
                    assert toggle_bitmask_cell(once, row, col) == bitmask
                    assert is_bitmask_cell_set(once, row, col) != is_bitmask_cell_set(
                        bitmask, row, col
                    )

    def test_toggle_center(self):
        assert toggle_bitmask_cell(0, 1, 1) == 16
        assert is_bitmask_cell_set(16, 1, 1)

    @pytest.mark.parametrize("row, col", [(-1, 0), (3, 0), (0, 3)])
    def test_cell_out_of_range(self, row, col):
        with pytest.raises(ValueError):
            toggle_bitmask_cell(0, row, col)
        with pytest.raises(ValueError):
            is_bitmask_cell_set(0, row, col)


class TestNeighborBitmask:
    """Test bitmask calculation from neighbor presence."""

    def test_no_neighbors_is_center_only(self):
        assert calculate_bitmask_from_neighbors(lambda dx, dy: False) == 16

    def test_all_neighbors(self):
        assert calculate_bitmask_from_neighbors(lambda dx, dy: True) == 511

    def test_diagonal_alone_sets_no_corner(self):
        """Test a northwest neighbor without north and west is ignored."""
        assert calculate_bitmask_from_neighbors(lambda dx, dy: (dx, dy) == (-1, -1)) == 16

    def test_corner_with_supporting_cardinals(self):
        present = {(-1, -1), (0, -1), (-1, 0)}
        assert calculate_bitmask_from_neighbors(lambda dx, dy: (dx, dy) in present) == 27

    def test_cardinals_without_diagonal(self):
        """Test both cardinals alone do not set the corner."""
        present = {(0, -1), (-1, 0)}
        assert calculate_bitmask_from_neighbors(lambda dx, dy: (dx, dy) in present) == 26

    @pytest.mark.parametrize(
        "offset, bit",
        [((0, -1), 1), ((-1, 0), 3), ((1, 0), 5), ((0, 1), 7)],
    )
    def test_cardinal_bits(self, offset, bit):
        result = calculate_bitmask_from_neighbors(lambda dx, dy: (dx, dy) == offset)
        assert result == 16 | (1 << bit)


class TestFindTileByBitmask:
    """Test best-match tile selection."""

    def test_exact_match_wins(self):
        layer = catalog((1, 16), (2, 23), (3, 511))
        assert find_tile_by_bitmask(make_tileset(layer), layer, 23).tile_id == 2

    def test_exact_match_over_near_match(self):
        layer = catalog((1, 0b000000000), (2, 0b000000001))
        assert find_tile_by_bitmask(make_tileset(layer), layer, 0b000000001).tile_id == 2

    def test_best_similarity(self):
        layer = catalog((1, 511), (2, 16 | 2), (3, 16 | 2 | 8 | 32))
        # 16|2|8 differs from entry 3 by one bit, from entry 2 by one bit
        result = find_tile_by_bitmask(make_tileset(layer), layer, 16 | 2 | 8)
        assert result.tile_id == 2

    def test_ties_go_to_first_entry(self):
        layer = catalog((7, 16 | 2), (8, 16 | 8))
        assert find_tile_by_bitmask(make_tileset(layer), layer, 16).tile_id == 7

    def test_center_tile_favored_when_nothing_close(self):
        layer = catalog((1, 511), (2, 16), (3, 0b111000000 | 16))
        assert find_tile_by_bitmask(make_tileset(layer), layer, 16 | 2).tile_id == 2

    def test_empty_catalog(self):
        layer = catalog()
        assert find_tile_by_bitmask(make_tileset(layer), layer, 16) is None

    def test_count_matching_bits(self):
        assert count_matching_bits(0, 0) == 9
        assert count_matching_bits(0, 511) == 0
        assert count_matching_bits(16, 16 | 1) == 8


class TestTerrainLookups:
    """Test terrain layer and tile definition lookups."""

    def test_tiles_for_terrain_in_terrain_order(self):
        defs = [TileDefinition(id=i, x=i, y=0) for i in (1, 2, 3)]
        layer = catalog((3, 16), (99, 511), (1, 24))

        result = get_tiles_for_terrain(make_tileset(layer, tiles=defs), layer)
        assert [t.id for t in result] == [3, 1]

    def test_find_terrain_layer(self):
        layer = catalog((1, 16))
        tileset = make_tileset(layer)

        assert find_terrain_layer(tileset, "t") is layer
        assert find_terrain_layer(tileset, "missing") is None

    def test_all_terrain_layers(self):
        a, b = catalog(), catalog()
        assert get_all_terrain_layers([make_tileset(a), make_tileset(b)]) == [a, b]
