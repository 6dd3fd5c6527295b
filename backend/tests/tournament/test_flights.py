"""
Multi-Flight Merge Tests.

플라이트 상태, Day 2 머지, 시트 드로우와 각각의 되돌리기.
"""

from dataclasses import replace

import pytest

from pokerfloor.tournament.flights import (
    best_stacks,
    generate_day2_seat_draw,
    perform_merge,
    undo_day2_seat_draw,
    undo_merge,
    update_flight_status,
)
from pokerfloor.tournament.models import (
    EliminationSnapshot,
    EntryStatus,
    FlightStatus,
    TournamentPhase,
    TournamentStatus,
    TournamentType,
)
from pokerfloor.utils.errors import ErrorCode

from factories import make_entry, make_flights, make_tables, make_tournament


def multi_flight(**kwargs):
    defaults = dict(type=TournamentType.MULTI_FLIGHT, flights=make_flights("f-a", "f-b"))
    defaults.update(kwargs)
    return make_tournament(**defaults)


@pytest.fixture
def qualified():
    """5명이 두 플라이트 모두 통과 (플라이트 B 스택이 더 큰 사람: p-2, p-4)."""
    entries = []
    for n in range(1, 6):
        a_chips = 20000 + n * 1000
        b_chips = a_chips + (5000 if n % 2 == 0 else -5000)
        entries.append(
            make_entry(
                n,
                chips=a_chips,
                player_id=f"p-{n}",
                flight_id="f-a",
                status=EntryStatus.QUALIFIED_DAY2,
            )
        )
        entries.append(
            make_entry(
                n + 100,
                chips=b_chips,
                player_id=f"p-{n}",
                flight_id="f-b",
                status=EntryStatus.QUALIFIED_DAY2,
            )
        )
    t = multi_flight(tables=2)
    return replace(t, entries=tuple(entries))


class TestFlightStatus:
    def test_only_one_flight_runs(self):
        t = multi_flight()
        t = update_flight_status(t, "f-a", FlightStatus.RUNNING).tournament

        updated = update_flight_status(t, "f-b", FlightStatus.RUNNING).tournament

        assert updated.get_flight("f-a").status == FlightStatus.SCHEDULED
        assert updated.running_flight.id == "f-b"

    def test_completing_qualifies_active_entries(self):
        t = multi_flight(tables=1)
        entries = (
            make_entry(1, table_id=1, seat=1, flight_id="f-a"),
            make_entry(2, flight_id="f-a", status=EntryStatus.ELIMINATED),
            make_entry(3, table_id=1, seat=2, flight_id="f-b"),
        )
        t = replace(t, entries=entries)

        updated = update_flight_status(t, "f-a", FlightStatus.COMPLETED).tournament

        assert updated.get_entry("e-1").status == EntryStatus.QUALIFIED_DAY2
        assert not updated.get_entry("e-1").is_seated
        assert updated.get_entry("e-2").status == EntryStatus.ELIMINATED
        assert updated.get_entry("e-3").status == EntryStatus.ACTIVE

    def test_unknown_flight(self):
        result = update_flight_status(multi_flight(), "f-x", FlightStatus.RUNNING)

        assert result.error.code == ErrorCode.FLIGHT_NOT_FOUND


class TestMerge:
    def test_one_active_entry_per_player(self, qualified, rng):
        merged = perform_merge(qualified, rng).tournament

        active = merged.active_entries
        discarded = [e for e in merged.entries if e.status == EntryStatus.MERGE_DISCARDED]
        assert len(active) == 5
        assert len(discarded) == 5
        assert {e.player_id for e in active} == {f"p-{n}" for n in range(1, 6)}
        for entry in active:
            twin = next(e for e in discarded if e.player_id == entry.player_id)
            assert entry.chip_count > twin.chip_count
        assert all(e.is_seated for e in active)
        assert merged.counted_entries == 5

    def test_merge_moves_to_day2_paused(self, qualified, rng):
        merged = perform_merge(qualified, rng).tournament

        assert merged.phase == TournamentPhase.DAY2
        assert merged.status == TournamentStatus.PAUSED
        assert merged.last_clock_start is None
        assert merged.pre_merge_snapshot is qualified

    def test_merge_clears_elimination_undo(self, qualified, rng):
        busted = make_entry(9, chips=0, flight_id="f-a", status=EntryStatus.ELIMINATED)
        t = replace(
            qualified,
            entries=qualified.entries + (busted,),
            last_elimination=EliminationSnapshot(entry=make_entry(9, flight_id="f-a")),
        )

        merged = perform_merge(t, rng).tournament

        assert merged.last_elimination is None
        assert undo_merge(merged).tournament.last_elimination is not None

    def test_merge_outside_flights_phase_is_noop(self, rng):
        t = make_tournament(players=4, tables=1)

        assert perform_merge(t, rng).tournament is t

    def test_merge_needs_seats(self, qualified, rng):
        cramped = replace(qualified, tables=make_tables(1, seats=4))

        result = perform_merge(cramped, rng)

        assert result.error.code == ErrorCode.INSUFFICIENT_SEATS
        assert result.tournament is cramped

    def test_undo_merge(self, qualified, rng):
        merged = perform_merge(qualified, rng).tournament

        assert undo_merge(merged).tournament == qualified
        assert undo_merge(qualified).tournament is qualified

    def test_best_stacks_tie_keeps_earlier_entry(self):
        entries = [
            make_entry(1, chips=500, player_id="p-x", status=EntryStatus.QUALIFIED_DAY2),
            make_entry(2, chips=500, player_id="p-x", status=EntryStatus.QUALIFIED_DAY2),
        ]

        assert best_stacks(entries)["p-x"].id == "e-1"


class TestDay2SeatDraw:
    @pytest.fixture
    def day2(self):
        t = multi_flight(players=6, tables=3, chips=[600, 500, 400, 300, 200, 100])
        return replace(t, phase=TournamentPhase.DAY2)

    def test_serpentine_deal(self, day2, rng):
        drawn = generate_day2_seat_draw(day2, rng).tournament

        tables = {e.id: e.table_id for e in drawn.entries}
        assert tables == {"e-1": 1, "e-2": 2, "e-3": 3, "e-4": 3, "e-5": 2, "e-6": 1}
        assert len({(e.table_id, e.seat) for e in drawn.entries}) == 6
        assert drawn.pre_day2_draw_entries == day2.entries

    def test_undo_draw(self, day2, rng):
        drawn = generate_day2_seat_draw(day2, rng).tournament

        undone = undo_day2_seat_draw(drawn).tournament

        assert undone.entries == day2.entries
        assert undone.pre_day2_draw_entries is None
        assert undo_day2_seat_draw(undone).tournament is undone

    def test_draw_before_merge_rejected(self, rng):
        t = multi_flight(players=2, tables=1)

        result = generate_day2_seat_draw(t, rng)

        assert result.error.code == ErrorCode.INVALID_PHASE
        assert result.tournament is t

    def test_draw_without_tables(self, day2, rng):
        result = generate_day2_seat_draw(replace(day2, tables=()), rng)

        assert result.error.code == ErrorCode.NO_TABLES

    def test_overflowing_table_aborts(self, day2, rng):
        cramped = replace(day2, tables=make_tables(1, seats=5))

        result = generate_day2_seat_draw(cramped, rng)

        assert result.error.code == ErrorCode.INSUFFICIENT_SEATS
        assert result.tournament is cramped
