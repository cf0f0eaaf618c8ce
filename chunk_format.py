"""In-memory chunk model shared by the region and LevelDB storage codecs."""

import io

import nbtlib

CHUNK_WIDTH = 16
SUBCHUNK_HEIGHT = 16
SUBCHUNK_COUNT = 16
BLOCKS_PER_SUBCHUNK = CHUNK_WIDTH * CHUNK_WIDTH * SUBCHUNK_HEIGHT
NIBBLES_LEN = BLOCKS_PER_SUBCHUNK // 2

SIGN_TILE_IDS = ("Sign", "minecraft:sign")
SIGN_LINES = 4


class CorruptedChunkError(Exception):
    pass


class NBTReader(io.BytesIO):
    """In-memory stream for nbtlib that fails on short reads.

    nbtlib reads a missing number as 0 and a missing string as the bytes that
    are left, so a truncated payload would otherwise parse into a partial tag.
    """

    def __init__(self, data):
        super().__init__(data)
        self.size = len(data)

    def read(self, size=-1):
        data = super().read(size)
        if size is not None and size >= 0 and len(data) < size:
            raise CorruptedChunkError(
                f"NBT data truncated: wanted {size} bytes at offset {self.tell() - len(data)}, "
                f"got {len(data)}"
            )
        return data

    def remaining(self):
        return self.size - self.tell()


def parse_nbt(reader, byteorder):
    """Parse one root compound from ``reader`` or raise CorruptedChunkError."""
    try:
        return nbtlib.File.parse(reader, byteorder=byteorder)
    except CorruptedChunkError:
        raise
    except Exception as exc:
        raise CorruptedChunkError(f"Invalid NBT: {exc}") from exc


def index_block(x, y, z):
    return ((y & 15) << 8) | ((z & 15) << 4) | (x & 15)


def index_block_xzy(x, y, z):
    return ((x & 15) << 8) | ((z & 15) << 4) | (y & 15)


# storage index (XZY) -> sub-chunk index (YZX)
XZY_ORDER = tuple(
    index_block((i >> 8) & 15, i & 15, (i >> 4) & 15) for i in range(BLOCKS_PER_SUBCHUNK)
)


def get_nibble(buf, idx):
    b = buf[idx >> 1]
    if idx & 1:
        return (b >> 4) & 0x0F
    return b & 0x0F


def set_nibble(buf, idx, value):
    byte_index = idx >> 1
    if idx & 1:
        buf[byte_index] = (buf[byte_index] & 0x0F) | ((value & 0x0F) << 4)
    else:
        buf[byte_index] = (buf[byte_index] & 0xF0) | (value & 0x0F)


def unpack_legacy_blocks(ids, meta, add=None, order=None):
    if len(ids) < BLOCKS_PER_SUBCHUNK or len(meta) < NIBBLES_LEN:
        raise CorruptedChunkError(
            f"Block arrays too short: ids={len(ids)} meta={len(meta)}"
        )
    if add is not None and len(add) < NIBBLES_LEN:
        raise CorruptedChunkError(f"Add array too short: {len(add)}")
    states = [0] * BLOCKS_PER_SUBCHUNK
    for idx in range(BLOCKS_PER_SUBCHUNK):
        block_id = ids[idx]
        if add is not None:
            block_id |= get_nibble(add, idx) << 8
        target = idx if order is None else order[idx]
        states[target] = (block_id << 4) | get_nibble(meta, idx)
    return states


def pack_legacy_blocks(states, order=None, allow_add=True):
    ids = bytearray(BLOCKS_PER_SUBCHUNK)
    meta = bytearray(NIBBLES_LEN)
    add = bytearray(NIBBLES_LEN)
    has_add = False
    for idx in range(BLOCKS_PER_SUBCHUNK):
        state = states[idx if order is None else order[idx]]
        block_id = state >> 4
        if block_id > 0xFF:
            if not allow_add:
                raise ValueError(f"Block id {block_id} does not fit in a byte array")
            set_nibble(add, idx, block_id >> 8)
            has_add = True
        ids[idx] = block_id & 0xFF
        set_nibble(meta, idx, state & 0x0F)
    return bytes(ids), bytes(meta), (bytes(add) if has_add else None)


class SubChunk:
    """16x16x16 block states in YZX order.

    Keeps a running count of non-zero states so emptiness is known without
    scanning the cells.
    """

    __slots__ = ("states", "_filled")

    def __init__(self, states=None):
        if states is None:
            self.states = [0] * BLOCKS_PER_SUBCHUNK
            self._filled = 0
            return
        if len(states) != BLOCKS_PER_SUBCHUNK:
            raise CorruptedChunkError(f"Sub-chunk holds {len(states)} blocks")
        self.states = list(states)
        self._filled = BLOCKS_PER_SUBCHUNK - self.states.count(0)

    def get_block_state_id(self, x, y, z):
        return self.states[index_block(x, y, z)]

    def set_block_state_id(self, x, y, z, state):
        idx = index_block(x, y, z)
        previous = self.states[idx]
        if previous == 0 and state != 0:
            self._filled += 1
        elif previous != 0 and state == 0:
            self._filled -= 1
        self.states[idx] = state

    def is_empty_fast(self):
        return self._filled == 0


class Tile:
    def __init__(self, nbt):
        self.nbt = nbt

    @property
    def tile_id(self):
        return str(self.nbt.get("id", ""))

    @property
    def position(self):
        return int(self.nbt.get("x", 0)), int(self.nbt.get("y", 0)), int(self.nbt.get("z", 0))


class SignTile(Tile):
    def get_text(self):
        if "Text1" not in self.nbt and isinstance(self.nbt.get("Text"), nbtlib.String):
            lines = str(self.nbt["Text"]).split("\n")
        else:
            lines = [str(self.nbt.get(f"Text{i}", "")) for i in range(1, SIGN_LINES + 1)]
        lines = lines[:SIGN_LINES]
        return lines + [""] * (SIGN_LINES - len(lines))

    def set_text(self, line1="", line2="", line3="", line4=""):
        lines = (line1, line2, line3, line4)
        if "Text1" not in self.nbt and isinstance(self.nbt.get("Text"), nbtlib.String):
            self.nbt["Text"] = nbtlib.String("\n".join(lines))
            return
        for i, line in enumerate(lines, start=1):
            self.nbt[f"Text{i}"] = nbtlib.String(line)


def tile_from_nbt(nbt):
    if str(nbt.get("id", "")) in SIGN_TILE_IDS:
        return SignTile(nbt)
    return Tile(nbt)


class Chunk:
    """A 16x16 column split into 16-high sub-chunks.

    ``storage`` holds whatever the codec that loaded the chunk needs to write
    it back (the parsed NBT root, preserved light bytes, ...).
    """

    def __init__(self, x, z, sub_chunks=None, tiles=None, storage=None):
        self.x = x
        self.z = z
        self.sub_chunks = list(sub_chunks) if sub_chunks is not None else []
        while len(self.sub_chunks) < SUBCHUNK_COUNT:
            self.sub_chunks.append(SubChunk())
        self.tiles = list(tiles) if tiles is not None else []
        self.storage = storage

    def get_sub_chunk(self, index):
        return self.sub_chunks[index]

    def get_tiles(self):
        return list(self.tiles)

    def get_block_state_id(self, x, y, z):
        return self.sub_chunks[y >> 4].get_block_state_id(x, y & 15, z)

    def set_block_state_id(self, x, y, z, state):
        self.sub_chunks[y >> 4].set_block_state_id(x, y & 15, z, state)
