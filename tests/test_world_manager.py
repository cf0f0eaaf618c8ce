from __future__ import annotations

import logging
from pathlib import Path

import pytest

from block_registry import state_id
from chunk_format import Chunk, CorruptedChunkError
from world_manager import (
    KICK_MESSAGE,
    BackupError,
    ConversionStats,
    WorldManager,
    format_report,
)
from world_queue import WorldQueue
from world_storage import UnknownWorldFormatError, World, detect_provider

DIRT = state_id(3)
PODZOL = state_id(243)


class MemoryProvider:
    layout = "memory"

    def __init__(self, chunks=None, corrupted=(), coordinates=None):
        self.chunks = dict(chunks or {})
        self.corrupted = set(corrupted)
        self.coordinates = coordinates
        self.saved = []
        self.closed = False
        self.on_load = None

    def iter_chunk_coordinates(self):
        if self.coordinates is not None:
            return iter(self.coordinates)
        return iter(sorted(set(self.chunks) | self.corrupted))

    def load_chunk(self, chunk_x, chunk_z):
        if self.on_load is not None:
            self.on_load()
        if (chunk_x, chunk_z) in self.corrupted:
            raise CorruptedChunkError("bad chunk")
        return self.chunks.get((chunk_x, chunk_z))

    def save_chunk(self, chunk):
        self.saved.append((chunk.x, chunk.z))

    def close(self):
        self.closed = True


def dirt_chunk(x, z):
    chunk = Chunk(x, z)
    chunk.set_block_state_id(0, 0, 0, DIRT)
    return chunk


def make_manager(tmp_path: Path, provider, blocks_map, **kwargs):
    world_dir = tmp_path / "worlds" / "survival"
    world_dir.mkdir(parents=True, exist_ok=True)
    (world_dir / "level.dat").write_bytes(b"level")
    world = World(world_dir, provider)
    return WorldManager(world, blocks_map, tmp_path / "backups", **kwargs)


def test_corrupted_chunks_are_isolated(tmp_path, default_map):
    provider = MemoryProvider({(1, 0): dirt_chunk(1, 0), (2, 0): Chunk(2, 0)}, corrupted={(0, 0)})
    manager = make_manager(tmp_path, provider, default_map)

    stats = manager.start_conversion(force=True)

    assert stats.completed
    assert stats.total_chunks == 2
    assert stats.corrupted_chunks == 1
    assert stats.converted_chunks == 1
    assert stats.converted_blocks == 1
    assert provider.saved == [(1, 0)]
    assert provider.chunks[(1, 0)].get_block_state_id(0, 0, 0) == PODZOL
    assert not manager.world.is_chunk_loaded(1, 0)


def test_duplicate_coordinates_are_visited_once(tmp_path, default_map):
    provider = MemoryProvider({(0, 0): dirt_chunk(0, 0)}, coordinates=[(0, 0), (0, 0), (5, 5)])
    manager = make_manager(tmp_path, provider, default_map)

    stats = manager.start_conversion(force=True)

    assert stats.total_chunks == 1
    assert stats.converted_blocks == 1
    assert provider.saved == [(0, 0)]


def test_second_conversion_is_idempotent(tmp_path, default_map):
    provider = MemoryProvider({(0, 0): dirt_chunk(0, 0)})
    manager = make_manager(tmp_path, provider, default_map)
    manager.start_conversion(force=True)

    stats = manager.start_conversion(force=True)

    assert stats.converted_chunks == 0
    assert stats.converted_blocks == 0
    assert provider.saved == [(0, 0)]


def test_reverse_conversion_uses_the_reverse_map(tmp_path, default_map):
    chunk = Chunk(0, 0)
    chunk.set_block_state_id(0, 0, 0, PODZOL)
    manager = make_manager(tmp_path, MemoryProvider({(0, 0): chunk}), default_map)

    stats = manager.start_conversion(to_bedrock=False, force=True)

    assert stats.converted_blocks == 1
    assert chunk.get_block_state_id(0, 0, 0) == DIRT
    assert manager.get_blocks_map(False) is manager.get_blocks_map(False)
    assert manager.get_blocks_map(True) is default_map


def test_fatal_error_aborts_and_reports(tmp_path, default_map, caplog):
    class BrokenProvider(MemoryProvider):
        def iter_chunk_coordinates(self):
            raise RuntimeError("disk on fire")

    manager = make_manager(tmp_path, BrokenProvider(), default_map)
    caplog.set_level(logging.INFO, logger="world_manager")

    stats = manager.start_conversion(force=True)

    assert not stats.completed
    assert not manager.is_converting()
    assert "Status: Aborted" in caplog.text
    assert "World name: survival" in caplog.text


def test_is_converting_only_while_running(tmp_path, default_map):
    provider = MemoryProvider({(0, 0): dirt_chunk(0, 0)})
    manager = make_manager(tmp_path, provider, default_map)
    seen = []
    provider.on_load = lambda: seen.append(manager.is_converting())

    assert not manager.is_converting()
    manager.start_conversion(force=True)

    assert seen == [True]
    assert not manager.is_converting()


def test_sessions_are_kicked_before_converting(tmp_path, default_map):
    messages = []
    manager = make_manager(tmp_path, MemoryProvider(), default_map, kick_sessions=messages.append)
    manager.start_conversion(force=True)
    assert messages == [KICK_MESSAGE]


def test_conversion_without_backup_warns_and_proceeds(tmp_path, default_map, caplog):
    provider = MemoryProvider({(0, 0): dirt_chunk(0, 0)})
    manager = make_manager(tmp_path, provider, default_map)
    caplog.set_level(logging.INFO, logger="world_manager")

    stats = manager.start_conversion()

    assert stats.completed
    assert stats.converted_chunks == 1
    assert provider.saved == [(0, 0)]
    assert 'The world "survival" will be converted without a backup.' in caplog.text
    assert "Status: Completed" in caplog.text


def test_forced_conversion_without_backup_does_not_warn(tmp_path, default_map, caplog):
    manager = make_manager(tmp_path, MemoryProvider(), default_map)
    caplog.set_level(logging.INFO, logger="world_manager")

    manager.start_conversion(force=True)

    assert not [r for r in caplog.records if r.levelno == logging.WARNING]


def test_conversion_with_backup_does_not_warn(tmp_path, default_map, caplog):
    manager = make_manager(tmp_path, MemoryProvider(), default_map)
    manager.backup()
    caplog.set_level(logging.INFO, logger="world_manager")

    manager.start_conversion()

    assert "without a backup" not in caplog.text


def test_backup_and_restore(tmp_path, default_map):
    manager = make_manager(tmp_path, MemoryProvider(), default_map)
    assert not manager.has_backup()
    with pytest.raises(BackupError):
        manager.restore()

    dest = manager.backup()
    assert manager.has_backup()
    assert (dest / "level.dat").read_bytes() == b"level"

    (manager.world.path / "level.dat").write_bytes(b"changed")
    manager.restore()
    assert (manager.world.path / "level.dat").read_bytes() == b"level"


def test_report_layout():
    stats = ConversionStats(
        total_chunks=10,
        converted_chunks=4,
        corrupted_chunks=1,
        converted_blocks=120,
        converted_signs=2,
        started_at=1.0,
        finished_at=3.25,
    )
    report = format_report("survival", stats).splitlines()
    assert report[0] == "--- Conversion Report ---"
    assert report[1] == "Status: Completed"
    assert "Execution time: 2.2 second(s)" in report or "Execution time: 2.3 second(s)" in report
    assert "Blocks converted: 120" in report
    assert report[-1] == "----------"


def test_world_queue_keeps_one_entry_per_world(tmp_path, default_map):
    manager = make_manager(tmp_path, MemoryProvider(), default_map)
    queue = WorldQueue()
    assert queue.is_empty()
    assert queue.add(manager)
    assert not queue.add(manager)
    assert "survival" in queue
    assert len(queue) == 1
    assert queue.get_queue() == [manager]
    assert queue.remove("survival")
    assert not queue.remove("survival")
    queue.add(manager)
    queue.clear()
    assert queue.is_empty()


def test_detect_provider_rejects_unknown_layouts(tmp_path):
    with pytest.raises(FileNotFoundError):
        detect_provider(tmp_path / "missing")
    (tmp_path / "region").mkdir()
    with pytest.raises(UnknownWorldFormatError):
        detect_provider(tmp_path)


def test_detect_provider_picks_region_variant(tmp_path):
    (tmp_path / "region").mkdir()
    (tmp_path / "region" / "r.0.0.mcapm").write_bytes(b"")
    provider = detect_provider(tmp_path)
    assert provider.codec.name == "pmanvil"


def test_world_block_lookup_uses_global_coordinates(tmp_path, default_map):
    chunk = Chunk(-1, 2)
    chunk.set_block_state_id(15, 70, 3, DIRT)
    world = World(tmp_path, MemoryProvider({(-1, 2): chunk}))
    assert world.get_block_state_id(-1, 70, 35) == DIRT
    assert world.get_block_state_id(100, 0, 0) is None
    world.close()
    assert world.provider.closed
