"""Legacy Bedrock LevelDB chunk storage.

Keys are ``x:i32le z:i32le tag [extra]`` for the overworld. Sub-chunk values
in the legacy versions hold 4096 block ids and 2048 meta nibbles in XZY order,
followed by light data that is carried through untouched.
"""

import io
import logging
import struct
from pathlib import Path

import nbtlib

from chunk_format import (
    BLOCKS_PER_SUBCHUNK,
    NIBBLES_LEN,
    SUBCHUNK_COUNT,
    XZY_ORDER,
    Chunk,
    CorruptedChunkError,
    NBTReader,
    SubChunk,
    pack_legacy_blocks,
    parse_nbt,
    tile_from_nbt,
    unpack_legacy_blocks,
)

logger = logging.getLogger(__name__)

LAYOUT_LEVELDB = "leveldb"

TAG_VERSION = b"v"
TAG_SUBCHUNK_PREFIX = b"\x2f"
TAG_BLOCK_ENTITY = b"1"
CHUNK_KEY_LEN = 9

LEGACY_SUBCHUNK_VERSIONS = (0, 2, 3, 4, 5, 6, 7)
SUBCHUNK_BLOCKS_END = 1 + BLOCKS_PER_SUBCHUNK + NIBBLES_LEN
# Sky light (full) followed by block light (dark) for newly created sub-chunks.
DEFAULT_LIGHT = b"\xff" * NIBBLES_LEN + b"\x00" * NIBBLES_LEN


def chunk_key_prefix(chunk_x, chunk_z):
    return struct.pack("<ii", chunk_x, chunk_z)


def parse_version_key(key):
    """Return the chunk coordinates of a chunk-version key, or None."""
    if len(key) != CHUNK_KEY_LEN or key[-1:] != TAG_VERSION:
        return None
    return struct.unpack("<ii", key[:8])


def subchunk_key(chunk_x, chunk_z, sub_y):
    return chunk_key_prefix(chunk_x, chunk_z) + TAG_SUBCHUNK_PREFIX + bytes([sub_y])


def decode_subchunk(value):
    if not value:
        raise CorruptedChunkError("Empty sub-chunk value")
    version = value[0]
    if version not in LEGACY_SUBCHUNK_VERSIONS:
        raise CorruptedChunkError(f"Unsupported sub-chunk version {version}")
    if len(value) < SUBCHUNK_BLOCKS_END:
        raise CorruptedChunkError(f"Sub-chunk too short: {len(value)} bytes")
    ids = value[1 : 1 + BLOCKS_PER_SUBCHUNK]
    meta = value[1 + BLOCKS_PER_SUBCHUNK : SUBCHUNK_BLOCKS_END]
    states = unpack_legacy_blocks(ids, meta, order=XZY_ORDER)
    return SubChunk(states), version, value[SUBCHUNK_BLOCKS_END:]


def encode_subchunk(sub_chunk, version=0, trailer=DEFAULT_LIGHT):
    ids, meta, _ = pack_legacy_blocks(sub_chunk.states, XZY_ORDER, allow_add=False)
    return bytes([version]) + ids + meta + trailer


def parse_block_entities(data):
    reader = NBTReader(data)
    tiles = []
    while reader.remaining():
        tiles.append(parse_nbt(reader, "little"))
    return tiles


def serialize_block_entities(tiles):
    buff = io.BytesIO()
    for nbt in tiles:
        if not isinstance(nbt, nbtlib.File):
            nbt = nbtlib.File(nbt)
        nbt.write(buff, byteorder="little")
    return buff.getvalue()


def open_database(world_path):
    import plyvel

    return plyvel.DB(str(Path(world_path) / "db"), create_if_missing=False)


class LevelDBProvider:
    layout = LAYOUT_LEVELDB

    def __init__(self, world_path, db):
        self.path = Path(world_path)
        self.db = db

    @classmethod
    def open(cls, world_path):
        return cls(world_path, open_database(world_path))

    def iter_keys(self):
        for key, _ in self.db.iterator():
            yield key

    def iter_chunk_coordinates(self):
        for key in self.iter_keys():
            coords = parse_version_key(key)
            if coords is not None:
                yield coords

    def load_chunk(self, chunk_x, chunk_z):
        prefix = chunk_key_prefix(chunk_x, chunk_z)
        if self.db.get(prefix + TAG_VERSION) is None:
            return None
        sub_chunks = []
        stored = {}
        for sub_y in range(SUBCHUNK_COUNT):
            value = self.db.get(subchunk_key(chunk_x, chunk_z, sub_y))
            if value is None:
                sub_chunks.append(SubChunk())
                continue
            sub_chunk, version, trailer = decode_subchunk(value)
            sub_chunks.append(sub_chunk)
            stored[sub_y] = (version, trailer)
        tiles = []
        tile_data = self.db.get(prefix + TAG_BLOCK_ENTITY)
        if tile_data:
            tiles = [tile_from_nbt(nbt) for nbt in parse_block_entities(tile_data)]
        return Chunk(chunk_x, chunk_z, sub_chunks, tiles, storage=stored)

    def save_chunk(self, chunk):
        stored = chunk.storage or {}
        for sub_y, sub_chunk in enumerate(chunk.sub_chunks):
            if sub_y not in stored and sub_chunk.is_empty_fast():
                continue
            version, trailer = stored.get(sub_y, (0, DEFAULT_LIGHT))
            self.db.put(
                subchunk_key(chunk.x, chunk.z, sub_y),
                encode_subchunk(sub_chunk, version, trailer),
            )
        if chunk.tiles:
            self.db.put(
                chunk_key_prefix(chunk.x, chunk.z) + TAG_BLOCK_ENTITY,
                serialize_block_entities([tile.nbt for tile in chunk.tiles]),
            )
        logger.debug("Saved chunk[%d;%d] to LevelDB", chunk.x, chunk.z)

    def close(self):
        self.db.close()
