import logging
from dataclasses import dataclass

from chunk_format import CHUNK_WIDTH, SUBCHUNK_HEIGHT, SignTile
from text_format import flatten_sign_line

logger = logging.getLogger(__name__)

SIGN_BLOCKS = frozenset(("standing_sign", "wall_sign"))


@dataclass
class ChunkConversion:
    changed: bool = False
    blocks: int = 0
    signs: int = 0


def convert_signs(chunk):
    """Flatten rich-text sign lines to coloured plain text; returns signs rewritten."""
    converted = 0
    for tile in chunk.get_tiles():
        if not isinstance(tile, SignTile):
            continue
        text = tile.get_text()
        lines = [flatten_sign_line(line) for line in text]
        if lines == text:
            continue
        tile.set_text(*lines)
        converted += 1
    return converted


def convert_chunk(chunk, blocks_map, to_bedrock=True, registry=None):
    """Rewrite every mapped block of ``chunk`` in place.

    Only the variant 0 entry of the map is consulted. Sign text is converted
    once per chunk, and only towards Bedrock.
    """
    if registry is None:
        registry = blocks_map.registry
    result = ChunkConversion()
    signs_processed = False
    debug = logger.isEnabledFor(logging.DEBUG)

    for sub_chunk in chunk.sub_chunks:
        if sub_chunk.is_empty_fast():
            continue
        for y in range(SUBCHUNK_HEIGHT):
            for x in range(CHUNK_WIDTH):
                for z in range(CHUNK_WIDTH):
                    state = sub_chunk.get_block_state_id(x, y, z)
                    block = registry.describe(state)
                    if block.is_air:
                        continue

                    if block.name in SIGN_BLOCKS and to_bedrock:
                        if signs_processed:
                            continue
                        logger.debug("Found a chunk[%d;%d] containing signs...", chunk.x, chunk.z)
                        signs = convert_signs(chunk)
                        if signs:
                            result.signs += signs
                            result.changed = True
                        signs_processed = True
                        continue

                    target = blocks_map.get(state, 0)
                    if target is None:
                        continue
                    if debug:
                        logger.debug(
                            'Replaced block "%s" with "%s"',
                            block.name,
                            registry.describe(target).name,
                        )
                    sub_chunk.set_block_state_id(x, y, z, target)
                    result.changed = True
                    result.blocks += 1

    return result
