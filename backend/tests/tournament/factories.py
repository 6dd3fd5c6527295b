"""
Tournament test factories.

Plain builders usable from fixtures and from Hypothesis tests alike.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence, Tuple

from pokerfloor.tournament.models import (
    Entry,
    EntryStatus,
    Flight,
    Level,
    Payout,
    PayoutMode,
    PayoutSettings,
    PokerTable,
    Tournament,
    TournamentStatus,
)

T0 = datetime(2026, 3, 14, 18, 0, tzinfo=timezone.utc)


def make_tables(count: int, seats: int = 9) -> Tuple[PokerTable, ...]:
    return tuple(PokerTable(id=i, name=f"Table {i}", seats=seats) for i in range(1, count + 1))


def make_entry(
    n: int,
    chips: int = 10000,
    table_id: Optional[int] = None,
    seat: Optional[int] = None,
    status: EntryStatus = EntryStatus.ACTIVE,
    player_id: Optional[str] = None,
    flight_id: Optional[str] = None,
) -> Entry:
    return Entry(
        id=f"e-{n}",
        player_id=player_id or f"p-{n}",
        flight_id=flight_id,
        status=status,
        chip_count=chips,
        table_id=table_id,
        seat=seat,
        registered_at=T0,
    )


def make_levels(count: int = 5, minutes: int = 20) -> Tuple[Level, ...]:
    return tuple(
        Level(level=i, small_blind=100 * i, big_blind=200 * i, duration_minutes=minutes)
        for i in range(1, count + 1)
    )


def manual_ladder(amounts: Sequence[int]) -> PayoutSettings:
    return PayoutSettings(
        mode=PayoutMode.MANUAL,
        manual_payouts=tuple(Payout(rank=i + 1, amount=a) for i, a in enumerate(amounts)),
    )


def make_tournament(
    players: int = 0,
    tables: int = 0,
    seats: int = 9,
    seated: bool = True,
    chips: Optional[Iterable[int]] = None,
    **kwargs,
) -> Tournament:
    """
    Tournament with ``players`` Active entries e-1..e-n.

    Seated entries are dealt round-robin: entry i sits at table
    ``i % tables + 1``, seat ``i // tables + 1``.
    """
    table_list = make_tables(tables, seats)
    stacks = list(chips) if chips is not None else [10000 + 100 * i for i in range(players)]
    entries = []
    for i in range(players):
        table_id = seat = None
        if seated and tables:
            table_id = i % tables + 1
            seat = i // tables + 1
        entries.append(make_entry(i + 1, chips=stacks[i], table_id=table_id, seat=seat))

    defaults = dict(
        id="t-test",
        name="Sunday Deepstack",
        status=TournamentStatus.RUNNING,
        buyin=100,
        starting_stack=10000,
        levels=make_levels(),
        clock_time_remaining=1200,
    )
    defaults.update(kwargs)
    return Tournament(tables=table_list, entries=tuple(entries), **defaults)


def make_flights(*ids: str) -> Tuple[Flight, ...]:
    return tuple(Flight(id=flight_id, name=f"Day 1{flight_id[-1].upper()}") for flight_id in ids)


def seat_counts(tournament: Tournament) -> dict:
    counts = {t.id: 0 for t in tournament.tables}
    for e in tournament.entries:
        if e.status == EntryStatus.ACTIVE and e.table_id is not None:
            counts[e.table_id] += 1
    return counts


def occupied_seats(tournament: Tournament) -> list:
    return [
        (e.table_id, e.seat)
        for e in tournament.entries
        if e.status == EntryStatus.ACTIVE and e.is_seated
    ]


def with_status(tournament: Tournament, entry_id: str, status: EntryStatus) -> Tournament:
    entry = tournament.get_entry(entry_id)
    return tournament.with_entries([replace(entry, status=status)])
