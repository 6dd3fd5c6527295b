"""Shared fixtures for tournament engine tests."""

import random

import pytest

from pokerfloor.config import Settings
from pokerfloor.tournament.engine import TournamentEngine

from factories import T0, make_tournament


class MockRedis:
    """In-memory stand-in for the redis.asyncio hash commands."""

    def __init__(self):
        self._hashes: dict[str, dict] = {}

    async def delete(self, *keys):
        count = 0
        for key in keys:
            if key in self._hashes:
                del self._hashes[key]
                count += 1
        return count

    async def exists(self, key):
        return int(key in self._hashes)

    async def hset(self, key, field=None, value=None, mapping=None):
        record = self._hashes.setdefault(key, {})
        if mapping:
            record.update(mapping)
        if field is not None:
            record[field] = value
        return len(mapping or ()) + (field is not None)

    async def hgetall(self, key):
        return dict(self._hashes.get(key, {}))


@pytest.fixture
def mock_redis() -> MockRedis:
    return MockRedis()


@pytest.fixture
def now():
    return T0


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def settings() -> Settings:
    return Settings(random_seed=42, snapshot_hmac_key="test-key")


@pytest.fixture
def engine(settings: Settings) -> TournamentEngine:
    return TournamentEngine(settings=settings)


@pytest.fixture
def tournament():
    """12명, 2 테이블(9석)에 착석한 진행 중 토너먼트."""
    return make_tournament(players=12, tables=2)
