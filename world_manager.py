import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from chunk_converter import convert_chunk
from chunk_format import CorruptedChunkError

logger = logging.getLogger(__name__)

KICK_MESSAGE = "The server is running a world conversion, try to join later."


class BackupError(Exception):
    pass


@dataclass
class ConversionStats:
    total_chunks: int = 0
    converted_chunks: int = 0
    corrupted_chunks: int = 0
    converted_blocks: int = 0
    converted_signs: int = 0
    started_at: float = 0.0
    finished_at: float = 0.0
    completed: bool = True

    @property
    def elapsed(self):
        return max(0.0, self.finished_at - self.started_at)


def format_report(world_name, stats):
    status = "Completed" if stats.completed else "Aborted"
    lines = [
        "--- Conversion Report ---",
        f"Status: {status}",
        f"World name: {world_name}",
        f"Execution time: {stats.elapsed:.1f} second(s)",
        f"Total chunks: {stats.total_chunks}",
        f"Corrupted chunks: {stats.corrupted_chunks}",
        f"Chunks converted: {stats.converted_chunks}",
        f"Blocks converted: {stats.converted_blocks}",
        f"Signs converted: {stats.converted_signs}",
        "----------",
    ]
    return "\n".join(lines)


def backup_path(world_path, backups_dir):
    return Path(backups_dir) / Path(world_path).name


def has_backup(world_path, backups_dir):
    return backup_path(world_path, backups_dir).is_dir()


def backup_world(world_path, backups_dir):
    dest = backup_path(world_path, backups_dir)
    logger.debug("Creating a backup of %s", Path(world_path).name)
    if dest.exists():
        shutil.rmtree(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(world_path, dest)
    logger.debug("Backup successfully created")
    return dest


def restore_world(world_path, backups_dir):
    src = backup_path(world_path, backups_dir)
    logger.debug("Restoring a backup of %s", Path(world_path).name)
    if not src.is_dir():
        raise BackupError(f"The world {Path(world_path).name} never got a backup.")
    shutil.copytree(src, world_path, dirs_exist_ok=True)
    logger.debug("Successfully restored")


def iter_chunk_coordinates(provider):
    seen = set()
    for coords in provider.iter_chunk_coordinates():
        if coords in seen:
            continue
        seen.add(coords)
        yield coords


def for_each_chunk(world, callback, stats):
    """Load every stored chunk once, hand it to ``callback`` and unload it.

    ``callback(chunk, x, z)`` returns whether it changed the chunk, which
    decides whether the chunk is saved. Corrupted chunks are counted and
    skipped; any other error ends the traversal.
    """
    for chunk_x, chunk_z in iter_chunk_coordinates(world.provider):
        try:
            chunk = world.get_chunk(chunk_x, chunk_z, create=False)
            if chunk is None:
                logger.debug("Could not load chunk[%d;%d]", chunk_x, chunk_z)
                continue
            stats.total_chunks += 1
            changed = callback(chunk, chunk_x, chunk_z)
        except CorruptedChunkError as exc:
            logger.debug("Corrupted chunk[%d;%d]: %s", chunk_x, chunk_z, exc)
            stats.corrupted_chunks += 1
            world.unload_chunk(chunk_x, chunk_z, try_save=False)
            continue
        if changed:
            stats.converted_chunks += 1
        if not world.unload_chunk(chunk_x, chunk_z, True, changed):
            logger.debug("Could not unload the chunk[%d;%d]", chunk_x, chunk_z)


class WorldManager:
    def __init__(self, world, blocks_map, backups_dir, kick_sessions=None):
        self.world = world
        self.blocks_map = blocks_map
        self.backups_dir = Path(backups_dir)
        self.kick_sessions = kick_sessions
        self._reverse_map = None
        self._converting = False

    @property
    def world_name(self):
        return self.world.folder_name

    def backup(self):
        return backup_world(self.world.path, self.backups_dir)

    def restore(self):
        restore_world(self.world.path, self.backups_dir)

    def has_backup(self):
        return has_backup(self.world.path, self.backups_dir)

    def is_converting(self):
        return self._converting

    def get_blocks_map(self, to_bedrock=True):
        if to_bedrock:
            return self.blocks_map
        if self._reverse_map is None:
            self._reverse_map = self.blocks_map.reverse()
        return self._reverse_map

    def start_conversion(self, to_bedrock=True, force=False):
        """Convert every stored chunk and log the report.

        A world without a backup is still converted; ``force`` only marks the
        missing backup as expected, which keeps the warning out of the log.
        """
        if not self.has_backup():
            if force:
                logger.debug('Converting "%s" without a backup (forced).', self.world_name)
            else:
                logger.warning(
                    'The world "%s" will be converted without a backup.', self.world_name
                )

        if self.kick_sessions is not None:
            self.kick_sessions(KICK_MESSAGE)

        logger.debug('Starting world "%s" conversion...', self.world_name)
        stats = ConversionStats()
        blocks_map = self.get_blocks_map(to_bedrock)

        def convert(chunk, chunk_x, chunk_z):
            result = convert_chunk(chunk, blocks_map, to_bedrock)
            stats.converted_blocks += result.blocks
            stats.converted_signs += result.signs
            return result.changed

        self._converting = True
        stats.started_at = time.monotonic()
        try:
            for_each_chunk(self.world, convert, stats)
        except Exception:
            logger.critical("World conversion aborted", exc_info=True)
            stats.completed = False
        finally:
            stats.finished_at = time.monotonic()
            self._converting = False

        logger.debug("Conversion finished! Printing full report...")
        logger.info("\n%s", format_report(self.world_name, stats))
        return stats
