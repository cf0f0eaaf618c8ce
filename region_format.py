import gzip
import io
import logging
import os
import re
import struct
import time
import zlib
from pathlib import Path

import nbtlib
import numpy as np

from chunk_format import (
    BLOCKS_PER_SUBCHUNK,
    NIBBLES_LEN,
    SUBCHUNK_COUNT,
    XZY_ORDER,
    Chunk,
    CorruptedChunkError,
    NBTReader,
    SubChunk,
    get_nibble,
    pack_legacy_blocks,
    parse_nbt,
    set_nibble,
    tile_from_nbt,
    unpack_legacy_blocks,
)

logger = logging.getLogger(__name__)

SECTOR_BYTES = 4096
REGION_HEADER_BYTES = SECTOR_BYTES * 2
REGION_WIDTH = 32
CHUNKS_PER_REGION = REGION_WIDTH * REGION_WIDTH
MAX_CHUNK_SECTORS = 255

COMPRESSION_GZIP = 1
COMPRESSION_ZLIB = 2
COMPRESSION_NONE = 3

LAYOUT_REGION = "region"

MCREGION_HEIGHT = 128
MCREGION_BLOCKS = 16 * 16 * MCREGION_HEIGHT


def chunk_index(chunk_x, chunk_z):
    return (chunk_x & 31) + (chunk_z & 31) * REGION_WIDTH


def region_coords(chunk_x, chunk_z):
    return chunk_x >> 5, chunk_z >> 5


def region_chunk_coords(region_x, region_z):
    """Every chunk coordinate a region file can hold, present or not."""
    base_x = region_x << 5
    base_z = region_z << 5
    for chunk_x in range(base_x, base_x + REGION_WIDTH):
        for chunk_z in range(base_z, base_z + REGION_WIDTH):
            yield chunk_x, chunk_z


def decompress_chunk(payload, compression):
    try:
        if compression == COMPRESSION_GZIP:
            return gzip.decompress(payload)
        if compression == COMPRESSION_ZLIB:
            return zlib.decompress(payload)
    except (OSError, EOFError, zlib.error) as exc:
        raise CorruptedChunkError(f"Failed to decompress chunk: {exc}") from exc
    if compression == COMPRESSION_NONE:
        return payload
    raise CorruptedChunkError(f"Unknown chunk compression type: {compression}")


def compress_chunk(data, compression=COMPRESSION_ZLIB):
    if compression == COMPRESSION_GZIP:
        return gzip.compress(data)
    if compression == COMPRESSION_NONE:
        return data
    return zlib.compress(data)


def _location(header, index):
    entry = struct.unpack_from(">I", header, index * 4)[0]
    return entry >> 8, entry & 0xFF


class RegionFile:
    def __init__(self, path):
        self.path = Path(path)

    def read_chunk(self, index):
        """Return the decompressed NBT bytes for a chunk, or None if absent."""
        with open(self.path, "rb") as f:
            header = f.read(SECTOR_BYTES)
            if not header:
                return None
            if len(header) < SECTOR_BYTES:
                raise CorruptedChunkError(f"{self.path.name} has a truncated header")
            sector_offset, sector_count = _location(header, index)
            if sector_offset == 0:
                return None
            if sector_offset < 2 or sector_count == 0:
                raise CorruptedChunkError(
                    f"{self.path.name}: chunk {index} points into the header"
                )
            f.seek(sector_offset * SECTOR_BYTES)
            head = f.read(5)
            if len(head) < 5:
                raise CorruptedChunkError(
                    f"{self.path.name}: chunk {index} points past the end of the file"
                )
            length, compression = struct.unpack(">IB", head)
            if length <= 1 or length + 4 > sector_count * SECTOR_BYTES:
                raise CorruptedChunkError(
                    f"{self.path.name}: chunk {index} has invalid length {length}"
                )
            data = f.read(length - 1)
        if len(data) < length - 1:
            raise CorruptedChunkError(f"{self.path.name}: chunk {index} is truncated")
        return decompress_chunk(data, compression)

    def write_chunk(self, index, data, compression=COMPRESSION_ZLIB):
        payload = compress_chunk(data, compression)
        blob = struct.pack(">IB", len(payload) + 1, compression) + payload
        sectors = (len(blob) + SECTOR_BYTES - 1) // SECTOR_BYTES
        if sectors > MAX_CHUNK_SECTORS:
            raise ValueError(f"Chunk too large for region format ({sectors} sectors)")

        mode = "r+b" if self.path.exists() else "w+b"
        with open(self.path, mode) as f:
            header = bytearray(f.read(REGION_HEADER_BYTES))
            if len(header) < REGION_HEADER_BYTES:
                header.extend(b"\x00" * (REGION_HEADER_BYTES - len(header)))
            sector_offset, sector_count = _location(header, index)
            if sector_offset < 2 or sector_count < sectors:
                f.seek(0, os.SEEK_END)
                end = max(f.tell(), REGION_HEADER_BYTES)
                sector_offset = (end + SECTOR_BYTES - 1) // SECTOR_BYTES
            f.seek(sector_offset * SECTOR_BYTES)
            f.write(blob + b"\x00" * (sectors * SECTOR_BYTES - len(blob)))
            struct.pack_into(">I", header, index * 4, (sector_offset << 8) | sectors)
            struct.pack_into(">I", header, SECTOR_BYTES + index * 4, int(time.time()))
            f.seek(0)
            f.write(header)

    def chunk_indexes(self):
        with open(self.path, "rb") as f:
            header = f.read(SECTOR_BYTES)
        if len(header) < SECTOR_BYTES:
            return []
        return [i for i in range(CHUNKS_PER_REGION) if _location(header, i)[0] != 0]


def byte_array(data):
    return nbtlib.ByteArray(np.frombuffer(bytes(data), dtype=np.int8))


def parse_chunk_nbt(data):
    reader = NBTReader(data)
    nbt_file = parse_nbt(reader, "big")
    if reader.remaining():
        raise CorruptedChunkError(f"{reader.remaining()} stray bytes after the chunk NBT")
    return nbt_file


def serialize_chunk_nbt(nbt_file):
    buf = io.BytesIO()
    nbt_file.write(buf, byteorder="big")
    return buf.getvalue()


def _level(nbt_file):
    root = nbt_file["Level"] if "Level" in nbt_file else nbt_file
    if not isinstance(root, nbtlib.Compound):
        raise CorruptedChunkError("Chunk root is not a compound")
    return root


def _read_tiles(root):
    tiles = root.get("TileEntities")
    if tiles is None:
        return []
    return [tile_from_nbt(tile) for tile in tiles if isinstance(tile, nbtlib.Compound)]


class AnvilChunkCodec:
    """Anvil sections: Y, Blocks, Data and optional Add, stored in YZX order."""

    name = "anvil"
    extension = "mca"
    order = None

    def decode(self, chunk_x, chunk_z, nbt_file):
        root = _level(nbt_file)
        sub_chunks = [SubChunk() for _ in range(SUBCHUNK_COUNT)]
        for section in root.get("Sections") or []:
            try:
                sec_y = int(section["Y"])
                blocks = bytes(section["Blocks"])
                data = bytes(section["Data"])
            except (KeyError, TypeError, ValueError) as exc:
                raise CorruptedChunkError(f"Malformed section: {exc}") from exc
            if not 0 <= sec_y < SUBCHUNK_COUNT:
                continue
            add = section.get("Add")
            states = unpack_legacy_blocks(
                blocks, data, bytes(add) if add is not None else None, self.order
            )
            sub_chunks[sec_y] = SubChunk(states)
        return Chunk(chunk_x, chunk_z, sub_chunks, _read_tiles(root), storage=nbt_file)

    def encode(self, chunk):
        nbt_file = chunk.storage
        if nbt_file is None:
            nbt_file = nbtlib.File({"Level": nbtlib.Compound({
                "xPos": nbtlib.Int(chunk.x),
                "zPos": nbtlib.Int(chunk.z),
            })})
        root = _level(nbt_file)
        if root.get("Sections") is None:
            root["Sections"] = nbtlib.List[nbtlib.Compound]()
        sections = {int(section["Y"]): section for section in root["Sections"]}
        for sec_y, sub_chunk in enumerate(chunk.sub_chunks):
            section = sections.get(sec_y)
            if section is None:
                if sub_chunk.is_empty_fast():
                    continue
                section = nbtlib.Compound({
                    "Y": nbtlib.Byte(sec_y),
                    "SkyLight": byte_array(b"\xff" * NIBBLES_LEN),
                    "BlockLight": byte_array(bytes(NIBBLES_LEN)),
                })
                root["Sections"].append(section)
            blocks, data, add = pack_legacy_blocks(
                sub_chunk.states, self.order, allow_add=self.order is None
            )
            section["Blocks"] = byte_array(blocks)
            section["Data"] = byte_array(data)
            if add is not None:
                section["Add"] = byte_array(add)
            elif "Add" in section:
                del section["Add"]
        return nbt_file


class PMAnvilChunkCodec(AnvilChunkCodec):
    """Anvil layout with sections stored in XZY order and no Add array."""

    name = "pmanvil"
    extension = "mcapm"
    order = XZY_ORDER


class McRegionChunkCodec:
    """A single 128-high column: Level.Blocks / Level.Data in XZY order."""

    name = "mcregion"
    extension = "mcr"
    sub_chunk_count = MCREGION_HEIGHT // 16

    def decode(self, chunk_x, chunk_z, nbt_file):
        root = _level(nbt_file)
        try:
            blocks = bytes(root["Blocks"])
            data = bytes(root["Data"])
        except (KeyError, TypeError, ValueError) as exc:
            raise CorruptedChunkError(f"Malformed McRegion chunk: {exc}") from exc
        if len(blocks) < MCREGION_BLOCKS or len(data) < MCREGION_BLOCKS // 2:
            raise CorruptedChunkError(
                f"McRegion arrays too short: blocks={len(blocks)} data={len(data)}"
            )
        sub_chunks = []
        for sub_y in range(self.sub_chunk_count):
            states = [0] * BLOCKS_PER_SUBCHUNK
            for x in range(16):
                for z in range(16):
                    column = (x << 11) | (z << 7) | (sub_y << 4)
                    for y in range(16):
                        idx = column | y
                        states[(y << 8) | (z << 4) | x] = (blocks[idx] << 4) | get_nibble(data, idx)
            sub_chunks.append(SubChunk(states))
        return Chunk(chunk_x, chunk_z, sub_chunks, _read_tiles(root), storage=nbt_file)

    def encode(self, chunk):
        nbt_file = chunk.storage
        root = _level(nbt_file)
        for sub_y in range(self.sub_chunk_count, SUBCHUNK_COUNT):
            if not chunk.sub_chunks[sub_y].is_empty_fast():
                raise ValueError(f"McRegion chunks cannot hold blocks above y={MCREGION_HEIGHT}")
        blocks = bytearray(MCREGION_BLOCKS)
        data = bytearray(MCREGION_BLOCKS // 2)
        for sub_y in range(self.sub_chunk_count):
            states = chunk.sub_chunks[sub_y].states
            for x in range(16):
                for z in range(16):
                    column = (x << 11) | (z << 7) | (sub_y << 4)
                    for y in range(16):
                        idx = column | y
                        state = states[(y << 8) | (z << 4) | x]
                        if state >> 4 > 0xFF:
                            raise ValueError(f"Block id {state >> 4} does not fit in McRegion")
                        blocks[idx] = state >> 4
                        set_nibble(data, idx, state & 0x0F)
        root["Blocks"] = byte_array(blocks)
        root["Data"] = byte_array(data)
        return nbt_file


REGION_CODECS = {
    codec.name: codec for codec in (AnvilChunkCodec(), PMAnvilChunkCodec(), McRegionChunkCodec())
}
# Probe order when detecting which region format a world uses.
REGION_DETECTION_ORDER = ("anvil", "pmanvil", "mcregion")


class RegionProvider:
    layout = LAYOUT_REGION

    def __init__(self, world_path, codec):
        self.path = Path(world_path)
        self.codec = codec
        self.region_dir = self.path / "region"

    @property
    def extension(self):
        return self.codec.extension

    def region_path(self, region_x, region_z):
        return self.region_dir / f"r.{region_x}.{region_z}.{self.extension}"

    def iter_region_files(self):
        pattern = re.compile(r"^r\.(-?\d+)\.(-?\d+)\." + re.escape(self.extension) + "$")
        if not self.region_dir.is_dir():
            raise FileNotFoundError(f"No region/ folder found in {self.path}")
        found = []
        for filename in sorted(os.listdir(self.region_dir)):
            match = pattern.match(filename)
            if match:
                found.append((int(match.group(1)), int(match.group(2)), self.region_dir / filename))
        return found

    def iter_chunk_coordinates(self):
        for region_x, region_z, _ in self.iter_region_files():
            yield from region_chunk_coords(region_x, region_z)

    def load_chunk(self, chunk_x, chunk_z):
        path = self.region_path(*region_coords(chunk_x, chunk_z))
        if not path.exists():
            return None
        data = RegionFile(path).read_chunk(chunk_index(chunk_x, chunk_z))
        if data is None:
            return None
        return self.codec.decode(chunk_x, chunk_z, parse_chunk_nbt(data))

    def save_chunk(self, chunk):
        nbt_file = self.codec.encode(chunk)
        path = self.region_path(*region_coords(chunk.x, chunk.z))
        RegionFile(path).write_chunk(chunk_index(chunk.x, chunk.z), serialize_chunk_nbt(nbt_file))

    def close(self):
        pass
