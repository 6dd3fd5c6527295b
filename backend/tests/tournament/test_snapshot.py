"""
Snapshot Store Tests.

Redis 스냅샷 저장/복구와 무결성 검사.
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from pokerfloor.tournament.dealers import assign_dealer, generate_dealer_schedule
from pokerfloor.tournament.ledger import eliminate_player
from pokerfloor.tournament.models import (
    BlockedSeat,
    DealPayout,
    Player,
    TournamentPhase,
    TournamentType,
)
from pokerfloor.tournament.snapshot import (
    SnapshotStore,
    tournament_from_dict,
    tournament_to_dict,
)
from pokerfloor.utils.errors import SnapshotIntegrityError

from factories import T0, make_flights, make_tables, make_tournament, manual_ladder


@pytest.fixture
def store(mock_redis) -> SnapshotStore:
    return SnapshotStore(mock_redis, hmac_key="test-key")


@pytest.fixture
def busy_tournament():
    """스냅샷 필드 대부분이 채워진 토너먼트."""
    t = make_tournament(
        players=6,
        tables=2,
        type=TournamentType.MULTI_FLIGHT,
        phase=TournamentPhase.DAY2,
        flights=make_flights("f-a"),
        blocked_seats=(BlockedSeat(table_id=1, seat=9),),
        payout_settings=manual_ladder([400, 200]),
        deal_payouts=(DealPayout(player_id="p-1", amount=400),),
        last_clock_start=T0,
        scheduled_start_time=T0 - timedelta(hours=1),
    )
    t = eliminate_player(t, "e-2", T0).tournament
    t = assign_dealer(t, "d-1").tournament
    schedule = generate_dealer_schedule(
        make_tables(2), ["d-1", "d-2", "d-3"], start=T0, duration_hours=1, granularity_minutes=20
    )
    return replace(
        t,
        dealer_schedule=schedule,
        pre_merge_snapshot=make_tournament(players=2, tables=1),
        pre_day2_draw_entries=t.entries,
    )


class TestCodec:
    def test_dict_round_trip(self, busy_tournament):
        data = tournament_to_dict(busy_tournament)

        assert tournament_from_dict(data) == busy_tournament

    def test_enums_are_plain_values(self, busy_tournament):
        data = tournament_to_dict(busy_tournament)

        assert data["type"] == "multi_flight"
        assert data["entries"][1]["status"] == "eliminated"
        assert data["last_elimination"]["entry"]["id"] == "e-2"


class TestSnapshotStore:
    @pytest.mark.asyncio
    async def test_save_and_load(self, store, busy_tournament):
        metadata = await store.save(busy_tournament)

        loaded = await store.load(busy_tournament.id)

        assert loaded == busy_tournament
        assert metadata.active_players == busy_tournament.active_count
        assert metadata.size_bytes > 0

    @pytest.mark.asyncio
    async def test_missing_snapshot(self, store):
        assert await store.load("t-unknown") is None

    @pytest.mark.asyncio
    async def test_tampered_snapshot_rejected(self, store, mock_redis, busy_tournament):
        await store.save(busy_tournament)
        key = f"tournament:snapshot:{busy_tournament.id}"
        await mock_redis.hset(key, "checksum", "0" * 64)

        with pytest.raises(SnapshotIntegrityError):
            await store.load(busy_tournament.id)

    @pytest.mark.asyncio
    async def test_wrong_key_rejected(self, mock_redis, busy_tournament):
        await SnapshotStore(mock_redis, hmac_key="key-a").save(busy_tournament)

        with pytest.raises(SnapshotIntegrityError):
            await SnapshotStore(mock_redis, hmac_key="key-b").load(busy_tournament.id)

    @pytest.mark.asyncio
    async def test_players_stored_separately(self, store, mock_redis):
        t = make_tournament(players=2, tables=1)
        players = [Player(id="p-1", nickname="Ann", created_at=T0), Player(id="p-2", nickname="Ben", created_at=T0)]

        await store.save(t, players)

        assert await mock_redis.exists("tournament:players")
        assert sorted(await store.load_players(), key=lambda p: p.id) == players

    @pytest.mark.asyncio
    async def test_delete(self, store):
        t = make_tournament(players=1)
        await store.save(t)

        await store.delete(t.id)

        assert await store.load(t.id) is None

    @pytest.mark.asyncio
    async def test_custom_prefix(self, mock_redis):
        store = SnapshotStore(mock_redis, hmac_key="k", key_prefix="floor:snap")
        t = make_tournament(players=1)

        await store.save(t)

        assert await mock_redis.exists(f"floor:snap:{t.id}")

    @pytest.mark.asyncio
    async def test_from_settings(self, settings, mock_redis):
        store = SnapshotStore.from_settings(settings, redis_client=mock_redis)
        t = make_tournament(players=2, tables=1)

        await store.save(t)

        assert store.key_prefix == settings.snapshot_key_prefix
        assert await SnapshotStore(mock_redis, hmac_key="test-key").load(t.id) == t
