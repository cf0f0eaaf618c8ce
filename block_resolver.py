"""Turns block identifier strings into legacy state ids.

Resolution is an ordered pipeline of strategies; the first one that yields a
state wins. Names that nothing resolves become the registry default (air),
which the remap table treats as "skip this rule".
"""

import logging

logger = logging.getLogger(__name__)

NAMESPACE_SEPARATOR = ":"

# Dye colours in legacy meta order (white = 0 ... black = 15).
COLORS = (
    "white",
    "orange",
    "magenta",
    "light_blue",
    "yellow",
    "lime",
    "pink",
    "gray",
    "silver",
    "cyan",
    "purple",
    "blue",
    "brown",
    "green",
    "red",
    "black",
)
COLOR_ALIASES = {"light_gray": "silver"}

BLOCK_ALIASES = {
    "invisible_bedrock": "invisiblebedrock",
    "oak_trapdoor": "trapdoor",
    "wooden_trapdoor": "trapdoor",
    "dirt_path": "grass_path",
    "sign": "standing_sign",
    "oak_sign": "standing_sign",
    "oak_wall_sign": "wall_sign",
    "item_frame": "frame",
    "sea_lantern": "sealantern",
    "slime_block": "slime",
    "magma_block": "magma",
    "terracotta": "hardened_clay",
    "cobweb": "web",
    "lily_pad": "waterlily",
    "note_block": "noteblock",
    "spawner": "mob_spawner",
    "glowing_obsidian": "glowingobsidian",
    "nether_reactor": "netherreactor",
    "melon": "melon_block",
    "stone_bricks": "stonebrick",
    "bricks": "brick_block",
    "nether_bricks": "nether_brick",
    "red_nether_bricks": "red_nether_brick",
}

# Families whose colour lives in the meta nibble of a single block.
COLORED_FAMILIES = (
    "wool",
    "carpet",
    "concrete",
    "concrete_powder",
    "stained_glass",
    "stained_glass_pane",
    "stained_hardened_clay",
    "shulker_box",
)
FAMILY_ALIASES = {"terracotta": "stained_hardened_clay"}


def strip_namespace(block_id):
    if NAMESPACE_SEPARATOR in block_id:
        return block_id.split(NAMESPACE_SEPARATOR, 1)[1]
    return block_id


def split_color_prefix(name):
    """Return ``(canonical_color, family)`` or ``(None, name)``."""
    candidates = sorted(COLORS + tuple(COLOR_ALIASES), key=len, reverse=True)
    for color in candidates:
        prefix = color + "_"
        if name.startswith(prefix) and len(name) > len(prefix):
            return COLOR_ALIASES.get(color, color), name[len(prefix):]
    return None, name


class DirectMatch:
    def resolve(self, registry, name):
        return registry.from_name(name)


class AliasTable:
    def __init__(self, aliases=None):
        self.aliases = dict(BLOCK_ALIASES if aliases is None else aliases)

    def resolve(self, registry, name):
        alias = self.aliases.get(name)
        if alias is None:
            return None
        return registry.from_name(alias)


class FamilyHeuristic:
    def resolve(self, registry, name):
        color, family = split_color_prefix(name)
        if color is None:
            return None
        family = FAMILY_ALIASES.get(family, family)
        state = registry.from_name(f"{color}_{family}")
        if state is not None:
            return state
        if family in COLORED_FAMILIES:
            base = registry.from_name(family)
            if base is not None:
                return registry.with_variant(base, COLORS.index(color))
        return None


class RegistryDefault:
    def resolve(self, registry, name):
        return registry.default_state()


DEFAULT_STRATEGIES = (DirectMatch(), AliasTable(), FamilyHeuristic(), RegistryDefault())


class BlockResolver:
    def __init__(self, registry, strategies=DEFAULT_STRATEGIES):
        self.registry = registry
        self.strategies = tuple(strategies)
        self.default_state = registry.default_state()

    def resolve(self, block_id):
        name = strip_namespace(block_id).strip().lower()
        try:
            for strategy in self.strategies:
                state = strategy.resolve(self.registry, name)
                if state is not None:
                    return state
        except Exception:
            logger.debug("Failed to resolve block %r", block_id, exc_info=True)
        return self.default_state

    def is_default(self, state):
        return state == self.default_state
