#!/usr/bin/env python3
"""
Packed tile id inspector for the tile map editor.
"""

import argparse
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import CONFIG
from .tile_id import TileIdRangeError, pack_tile_id, unpack_tile_id

console = Console()


def _geometry_table(tile_id: int) -> Table:
    geometry = unpack_tile_id(tile_id)
    table = Table(title=f"Tile {tile_id} (0x{tile_id:012x})")
    table.add_column("Field")
    table.add_column("Value", justify="right")
    table.add_row("sprite x", str(geometry.x))
    table.add_row("sprite y", str(geometry.y))
    table.add_row("tileset order", str(geometry.tileset_order))
    table.add_row("flip x", str(geometry.flip_x))
    table.add_row("flip y", str(geometry.flip_y))
    return table


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="tilemap_editor", description=__doc__)
    parser.add_argument("--log-level", default=CONFIG.log_level)
    commands = parser.add_subparsers(dest="command", required=True)

    pack = commands.add_parser("pack", help="Pack sprite fields into a tile id")
    pack.add_argument("x", type=int)
    pack.add_argument("y", type=int)
    pack.add_argument("order", type=int)
    pack.add_argument("--flip-x", action="store_true")
    pack.add_argument("--flip-y", action="store_true")

    unpack = commands.add_parser("unpack", help="Decode a tile id")
    unpack.add_argument("tile_id", type=lambda s: int(s, 0))

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(), format="%(message)s", handlers=[RichHandler()]
    )

    try:
        if args.command == "pack":
            tile_id = pack_tile_id(args.x, args.y, args.order, args.flip_x, args.flip_y)
        else:
            tile_id = args.tile_id
        console.print(_geometry_table(tile_id))
    except TileIdRangeError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
