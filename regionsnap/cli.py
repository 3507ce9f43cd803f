"""
regionsnap CLI

Inspect a world's region files and delete chunks from them.
Every command outputs structured JSON when --json is passed.

Undo history lives in memory for the lifetime of a WorldState, so the
CLI only exposes the one-shot operations. Embed WorldState to get undo.

Usage:
    regionsnap [-C WORLD] status
    regionsnap [-C WORLD] chunks RX RZ
    regionsnap [-C WORLD] delete X,Z [X,Z ...]
"""

import argparse
import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path

import regionsnap as _regionsnap_pkg

from .config import load_config
from .errors import Severity
from .region import ChunkPos, RegionPos, group_by_region, list_regions, present_chunks
from .world import WorldState

# Exit code when the world lock is held or the edit could not start
EXIT_NOT_STARTED = 2


@contextmanager
def open_world(args):
    """Open a WorldState with guaranteed cleanup on any exit path."""
    world_dir = Path(args.path or ".").resolve()
    if not world_dir.is_dir():
        raise ValueError(f"World directory not found: {world_dir}")
    world = WorldState(world_dir)
    try:
        yield world
    finally:
        world.close()


def print_json(data):
    print(json.dumps(data, indent=2, default=str))


def get_verbosity(args) -> int:
    """Return verbosity level: 0=quiet, 1=normal, 2=verbose."""
    if getattr(args, "json", False):
        return 1
    if getattr(args, "verbose", False):
        return 2
    if getattr(args, "quiet", False):
        return 0
    return 1


def configure_logging(verbosity: int):
    level = {0: logging.ERROR, 1: logging.WARNING, 2: logging.DEBUG}[verbosity]
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def cmd_status(args):
    world_dir = Path(args.path or ".").resolve()
    config = load_config(world_dir)
    region_dir = world_dir / config.region_dir
    regions = []
    for pos in list_regions(region_dir, config.extension):
        path = region_dir / pos.file_name(config.extension)
        try:
            count = len(present_chunks(path, pos))
        except OSError as e:
            regions.append({"region": [pos.x, pos.z], "chunks": None, "error": str(e)})
            continue
        regions.append({"region": [pos.x, pos.z], "chunks": count})

    if args.json:
        print_json({"world": str(world_dir), "region_dir": str(region_dir), "regions": regions})
        return
    v = get_verbosity(args)
    if v == 0:
        print(len(regions))
        return
    print(f"World:   {world_dir}")
    print(f"Regions: {len(regions)} in {region_dir}")
    for entry in regions:
        x, z = entry["region"]
        name = f"r.{x}.{z}.{config.extension}"
        if entry["chunks"] is None:
            print(f"  {name}: unreadable ({entry['error']})")
        else:
            print(f"  {name}: {entry['chunks']} chunks")


def cmd_chunks(args):
    world_dir = Path(args.path or ".").resolve()
    config = load_config(world_dir)
    pos = RegionPos(args.rx, args.rz)
    path = world_dir / config.region_dir / pos.file_name(config.extension)
    if not path.exists():
        raise ValueError(f"Region file not found: {path}")
    chunks = present_chunks(path, pos)

    if args.json:
        print_json({"region": [pos.x, pos.z], "chunks": [[c.x, c.z] for c in chunks]})
        return
    v = get_verbosity(args)
    if v == 0:
        print(len(chunks))
        return
    print(f"{path.name}: {len(chunks)} chunks")
    for chunk in chunks:
        suffix = f"  (slot {chunk.slot})" if v >= 2 else ""
        print(f"  {chunk.x},{chunk.z}{suffix}")


def cmd_delete(args):
    chunks = [ChunkPos.parse(text) for text in args.chunks]
    with open_world(args) as world:
        future = world.delete_chunks(chunks)
        if future is None:
            msg = "Could not start: the world is locked or a region could not be read."
            if args.json:
                print_json({"error": msg})
            else:
                print(f"Error: {msg}", file=sys.stderr)
            sys.exit(EXIT_NOT_STARTED)
        result = future.result()
        if result.notified is not None:
            result.notified.result()

    if args.json:
        print_json(result.to_dict())
    elif get_verbosity(args) > 0:
        selection = group_by_region(chunks)
        deleted = sum(len(selection[pos]) for pos in result.written)
        print(f"Deleted {deleted} chunks across {len(result.written)} regions")
        for pos in result.skipped:
            print(f"  skipped r.{pos.x}.{pos.z} (region file too short)")
        if result.failure is not None:
            print(str(result.failure), file=sys.stderr)

    if result.failure is not None and result.failure.severity is Severity.ERROR:
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="regionsnap",
        description="regionsnap — undoable chunk deletion for region-file worlds",
    )
    ver = _regionsnap_pkg.__version__
    parser.add_argument("--version", "-V", action="version", version=f"regionsnap {ver}")
    parser.add_argument("--path", "-C", default=".", help="World directory")
    parser.add_argument("--json", "-j", action="store_true", help="JSON output")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    verbosity.add_argument("--quiet", "-q", action="store_true", help="Quiet output")

    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("status", help="List region files and their chunk counts")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("chunks", help="List the chunks present in one region")
    p.add_argument("rx", type=int, help="Region X")
    p.add_argument("rz", type=int, help="Region Z")
    p.set_defaults(func=cmd_chunks)

    p = sub.add_parser("delete", help="Delete chunks (world chunk coordinates)")
    p.add_argument("chunks", nargs="+", metavar="X,Z", help="Chunk positions")
    p.set_defaults(func=cmd_delete)

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(get_verbosity(args))
    try:
        args.func(args)
    except Exception as e:
        if getattr(args, "json", False):
            print_json({"error": str(e)})
        else:
            print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
