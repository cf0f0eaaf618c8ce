import logging
from pathlib import Path

from chunk_format import Chunk, CorruptedChunkError
from leveldb_format import LevelDBProvider
from region_format import REGION_CODECS, REGION_DETECTION_ORDER, RegionProvider

logger = logging.getLogger(__name__)


class UnknownWorldFormatError(Exception):
    pass


def detect_provider(world_path):
    world_path = Path(world_path)
    if not world_path.is_dir():
        raise FileNotFoundError(f"World folder not found: {world_path}")
    if (world_path / "db").is_dir():
        return LevelDBProvider.open(world_path)
    region_dir = world_path / "region"
    if region_dir.is_dir():
        for name in REGION_DETECTION_ORDER:
            codec = REGION_CODECS[name]
            if any(region_dir.glob(f"r.*.*.{codec.extension}")):
                return RegionProvider(world_path, codec)
    raise UnknownWorldFormatError(f"Unrecognised world storage in {world_path}")


class World:
    """Chunk store over one provider: chunks stay cached until unloaded."""

    def __init__(self, path, provider):
        self.path = Path(path)
        self.provider = provider
        self._chunks = {}

    @classmethod
    def open(cls, path):
        return cls(path, detect_provider(path))

    @property
    def folder_name(self):
        return self.path.name

    @property
    def layout(self):
        return self.provider.layout

    def get_chunk(self, chunk_x, chunk_z, create=False):
        chunk = self._chunks.get((chunk_x, chunk_z))
        if chunk is not None:
            return chunk
        chunk = self.provider.load_chunk(chunk_x, chunk_z)
        if chunk is None:
            if not create:
                return None
            chunk = Chunk(chunk_x, chunk_z)
        self._chunks[(chunk_x, chunk_z)] = chunk
        return chunk

    def is_chunk_loaded(self, chunk_x, chunk_z):
        return (chunk_x, chunk_z) in self._chunks

    def unload_chunk(self, chunk_x, chunk_z, try_save=True, changed=True):
        chunk = self._chunks.pop((chunk_x, chunk_z), None)
        if chunk is None:
            return False
        if try_save and changed:
            try:
                self.provider.save_chunk(chunk)
            except (OSError, ValueError, CorruptedChunkError) as exc:
                logger.warning("Failed to save chunk[%d;%d]: %s", chunk_x, chunk_z, exc)
                return False
        return True

    def get_block_state_id(self, x, y, z):
        chunk = self.get_chunk(x >> 4, z >> 4)
        if chunk is None:
            return None
        return chunk.get_block_state_id(x & 15, y, z & 15)

    def close(self):
        self._chunks.clear()
        self.provider.close()
