import json
import logging

from block_resolver import COLORS

logger = logging.getLogger(__name__)

# (target facing, source key variant) for glazed terracotta.
GLAZED_TERRACOTTA_FACINGS = ((3, 0), (4, 1), (2, 2), (5, 3))
# (target variant, source key variant) corrections applied after the end rod broadcast.
END_ROD_OVERRIDES = ((3, 2), (2, 3), (5, 4), (4, 5))


class BlocksMap:
    """Source state id -> {variant -> target state id}.

    Later rules overwrite earlier ones for the same (state, variant) key.
    """

    def __init__(self, resolver):
        self.resolver = resolver
        self.registry = resolver.registry
        self._map = {}
        self.skipped = 0

    def add_mapping(
        self, source_id, source_meta, target_id, target_meta, source_meta_override=None
    ):
        """Store ``source_id`` at key variant ``source_meta_override`` (or
        ``source_meta``) -> the resolved ``target_id``.

        ``target_meta`` only names the rule in logs; the stored target is the
        resolved block state as is, so rules that differ only in target meta
        write the same value.
        """
        source_state = self.resolver.resolve(source_id)
        target_state = self.resolver.resolve(target_id)
        if self.resolver.is_default(source_state) or self.resolver.is_default(target_state):
            logger.debug(
                "Skipping mapping %s:%d -> %s:%d", source_id, source_meta, target_id, target_meta
            )
            self.skipped += 1
            return False
        key_meta = source_meta if source_meta_override is None else source_meta_override
        self._map.setdefault(source_state, {})[key_meta] = target_state
        return True

    def get(self, state, variant=0):
        variants = self._map.get(state)
        if variants is None:
            return None
        return variants.get(variant)

    def variants(self, state):
        return dict(self._map.get(state, {}))

    def items(self):
        for source_state, variants in self._map.items():
            for variant, target_state in variants.items():
                yield source_state, variant, target_state

    def reverse(self):
        reversed_map = BlocksMap(self.resolver)
        for source_state, variant, target_state in self.items():
            reversed_map._map.setdefault(target_state, {})[variant] = source_state
        return reversed_map

    def load_rules(self, path):
        with open(path, "r", encoding="utf-8") as f:
            rules = json.load(f)
        if isinstance(rules, dict):
            rules = rules.get("rules", [])
        added = 0
        for rule in rules:
            try:
                source = rule["source"]
                target = rule["target"]
            except KeyError as exc:
                raise ValueError(f"Mapping rule in {path} is missing {exc}") from exc
            if self.add_mapping(
                source,
                int(rule.get("source_variant", 0)),
                target,
                0,
                rule.get("variant_override"),
            ):
                added += 1
        logger.debug("Loaded %d extra mapping rules from %s", added, path)
        return added

    def __len__(self):
        return sum(len(variants) for variants in self._map.values())

    def __contains__(self, state):
        return state in self._map


def load_default_mappings(blocks_map):
    """Java -> Bedrock rules, in the order their overrides depend on."""
    blocks_map.add_mapping("minecraft:dirt", 0, "minecraft:podzol", 0)

    for i, j in zip(range(1, 6), range(5, 0, -1)):
        blocks_map.add_mapping("minecraft:stone_button", i, "minecraft:stone_button", j)

    for i in range(16):
        blocks_map.add_mapping("minecraft:invisible_bedrock", 0, "minecraft:stained_glass", i)

    for i in range(16):
        blocks_map.add_mapping("minecraft:trapdoor", i, "minecraft:trapdoor", 15 - i)

    for i in range(16):
        blocks_map.add_mapping("minecraft:iron_trapdoor", i, "minecraft:iron_trapdoor", 15 - i)

    for i in range(16):
        blocks_map.add_mapping("minecraft:grass_path", 0, "minecraft:end_rod", i)

    for target_meta, key_meta in END_ROD_OVERRIDES:
        blocks_map.add_mapping("minecraft:grass_path", 0, "minecraft:end_rod", target_meta, key_meta)

    for color in COLORS:
        block = f"minecraft:{color}_glazed_terracotta"
        for target_meta, key_meta in GLAZED_TERRACOTTA_FACINGS:
            blocks_map.add_mapping(block, 0, block, target_meta, key_meta)

    return blocks_map


def build_blocks_map(resolver, rule_paths=()):
    blocks_map = load_default_mappings(BlocksMap(resolver))
    for path in rule_paths:
        blocks_map.load_rules(path)
    logger.debug(
        "Block map ready: %d entries, %d rules skipped", len(blocks_map), blocks_map.skipped
    )
    return blocks_map
