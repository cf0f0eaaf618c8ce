from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from block_registry import BlockRegistry  # noqa: E402
from block_resolver import BlockResolver  # noqa: E402
from blocks_map import BlocksMap, build_blocks_map  # noqa: E402


class FakeLevelDB:
    """Dict-backed stand-in for a plyvel.DB handle."""

    def __init__(self, data=None):
        self.data = dict(data or {})
        self.closed = False

    def iterator(self):
        for key in sorted(self.data):
            yield key, self.data[key]

    def get(self, key, default=None):
        return self.data.get(key, default)

    def put(self, key, value):
        self.data[key] = value

    def close(self):
        self.closed = True


@pytest.fixture()
def registry() -> BlockRegistry:
    return BlockRegistry()


@pytest.fixture()
def resolver(registry) -> BlockResolver:
    return BlockResolver(registry)


@pytest.fixture()
def default_map(resolver) -> BlocksMap:
    return build_blocks_map(resolver)


@pytest.fixture()
def empty_map(resolver) -> BlocksMap:
    return BlocksMap(resolver)
