#!/usr/bin/env python3
import argparse
import logging
import sys

from block_registry import BlockRegistry
from block_resolver import BlockResolver
from blocks_map import build_blocks_map
from chunk_format import CorruptedChunkError
from world_manager import BackupError, WorldManager, backup_world, restore_world
from world_queue import WorldQueue
from world_storage import UnknownWorldFormatError, World

WORLD_HEIGHT = 256


def load_registry(registry_path):
    if registry_path:
        return BlockRegistry.from_json(registry_path)
    return BlockRegistry()


def run_convert(args):
    registry = load_registry(args.registry)
    blocks_map = build_blocks_map(BlockResolver(registry), args.mapping or ())
    to_bedrock = args.to == "bedrock"

    queue = WorldQueue()
    for world_path in args.worlds:
        try:
            world = World.open(world_path)
        except (FileNotFoundError, UnknownWorldFormatError) as exc:
            print(f"World {world_path} can't be converted: {exc}")
            for manager in queue.get_queue():
                manager.world.close()
            return 2
        if not args.no_backup:
            print(f'Creating a backup of "{world.folder_name}"')
            backup_world(world_path, args.backups_dir)
            print("Backup created successfully!")
        else:
            print(f'No backup will be created for the world "{world.folder_name}"')
        if not queue.add(WorldManager(world, blocks_map, args.backups_dir)):
            world.close()

    all_completed = True
    print(
        "This process could take a lot of time, so don't touch the worlds "
        "and wait patiently for the end!"
    )
    for manager in queue.get_queue():
        print(f"Starting {manager.world_name}'s conversion...")
        try:
            stats = manager.start_conversion(to_bedrock, force=args.force)
        finally:
            manager.world.close()
            queue.remove(manager.world_name)
        all_completed = all_completed and stats.completed
    return 0 if all_completed else 1


def run_restore(args):
    try:
        restore_world(args.world, args.backups_dir)
    except BackupError as exc:
        print(exc)
        return 1
    print(f'Backup of "{args.world}" restored.')
    return 0


def run_inspect(args):
    if not 0 <= args.y < WORLD_HEIGHT:
        print(f"Y must be between 0 and {WORLD_HEIGHT - 1}.")
        return 2
    registry = load_registry(args.registry)
    world = World.open(args.world)
    try:
        state = world.get_block_state_id(args.x, args.y, args.z)
        if state is None:
            print(f"No chunk stored at X: {args.x} Z: {args.z}")
            return 1
        block = registry.describe(state)
    except CorruptedChunkError as exc:
        print(f"Chunk at X: {args.x} Z: {args.z} is corrupted: {exc}")
        return 1
    finally:
        world.close()
    print(f"{block.name} (ID: {block.block_id} Meta: {block.meta})")
    print(f"X: {args.x} Y: {args.y} Z: {args.z}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        description="Convert the blocks of a world between Java and Bedrock ids."
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every replaced block and skipped chunk.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    convert = subparsers.add_parser("convert", help="Convert one world or a queue of worlds.")
    convert.add_argument(
        "worlds",
        nargs="+",
        help="World folders (contain db/ or region/); several are converted in order.",
    )
    convert.add_argument(
        "--to",
        choices=("bedrock", "java"),
        default="bedrock",
        help="Target block ids; java applies the reversed map.",
    )
    convert.add_argument(
        "--no-backup",
        action="store_true",
        help="Do not copy the world into the backups folder first.",
    )
    convert.add_argument(
        "--force",
        action="store_true",
        help="Expect the world to have no backup and skip the missing-backup warning.",
    )
    convert.add_argument(
        "--backups-dir",
        default="backups",
        help="Directory holding one backup per world name.",
    )
    convert.add_argument(
        "--registry",
        default=None,
        help='Optional JSON with extra block ids: {"blocks": {"name": id}}',
    )
    convert.add_argument(
        "--mapping",
        action="append",
        default=None,
        help="JSON rule file applied after the built-in mappings (repeatable).",
    )
    convert.set_defaults(handler=run_convert)

    restore = subparsers.add_parser("restore", help="Copy a world's backup back in place.")
    restore.add_argument("world", help="World folder to restore")
    restore.add_argument("--backups-dir", default="backups")
    restore.set_defaults(handler=run_restore)

    inspect = subparsers.add_parser("inspect", help="Show the block stored at a position.")
    inspect.add_argument("world", help="World folder")
    inspect.add_argument("x", type=int)
    inspect.add_argument("y", type=int)
    inspect.add_argument("z", type=int)
    inspect.add_argument("--registry", default=None)
    inspect.set_defaults(handler=run_inspect)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
