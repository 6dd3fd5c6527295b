"""
Multi-Flight Merge Engine.

멀티 플라이트 토너먼트: 플라이트 상태 관리, Day 2 머지, Day 2 시트 드로우.

- 한 번에 하나의 플라이트만 Running
- 플라이트 종료 시 남은 Active 엔트리 → QualifiedDay2
- 머지: 플레이어별 최대 스택 엔트리만 Active, 나머지 MergeDiscarded
- 머지/시트 드로우는 각각 1단계 되돌리기 지원
"""

import random
from dataclasses import replace
from typing import Dict, List, Optional

from pokerfloor.logging_config import get_logger
from pokerfloor.utils.errors import (
    ErrorCode,
    InsufficientSeatsError,
    InvalidActionError,
    NotFoundError,
)

from .models import (
    Entry,
    EntryStatus,
    FlightStatus,
    Tournament,
    TournamentPhase,
    TournamentStatus,
    TournamentType,
    Transition,
)
from .balancer import usable_capacity
from .seating import seat_in_order

logger = get_logger(__name__)


def update_flight_status(
    tournament: Tournament,
    flight_id: str,
    status: FlightStatus,
) -> Transition:
    """
    Move a flight through Scheduled → Running → Completed.

    Starting a flight sends any other Running flight back to Scheduled.
    Completing a flight qualifies its Active entries for Day 2.
    """
    if tournament.get_flight(flight_id) is None:
        return Transition.rejected(
            tournament, NotFoundError(ErrorCode.FLIGHT_NOT_FOUND, "Flight", flight_id)
        )

    entries = tournament.entries
    if status == FlightStatus.COMPLETED:
        entries = tuple(
            replace(e, status=EntryStatus.QUALIFIED_DAY2, table_id=None, seat=None)
            if e.flight_id == flight_id and e.status == EntryStatus.ACTIVE
            else e
            for e in entries
        )

    flights = []
    for flight in tournament.flights:
        if flight.id == flight_id:
            flights.append(replace(flight, status=status))
        elif status == FlightStatus.RUNNING and flight.status == FlightStatus.RUNNING:
            flights.append(replace(flight, status=FlightStatus.SCHEDULED))
        else:
            flights.append(flight)

    logger.info(
        "flight_status_changed",
        tournament_id=tournament.id,
        flight_id=flight_id,
        status=status.value,
    )
    return Transition(tournament=replace(tournament, entries=entries, flights=tuple(flights)))


def best_stacks(entries: List[Entry]) -> Dict[str, Entry]:
    """Highest-stack qualified entry per player; the earlier entry wins ties."""
    best: Dict[str, Entry] = {}
    for entry in entries:
        if entry.status != EntryStatus.QUALIFIED_DAY2:
            continue
        current = best.get(entry.player_id)
        if current is None or entry.chip_count > current.chip_count:
            best[entry.player_id] = entry
    return best


def perform_merge(tournament: Tournament, rng: Optional[random.Random] = None) -> Transition:
    """
    Merge the flights into the Day 2 field.

    Only applies to a multi-flight tournament still in its flights phase;
    anywhere else it is a no-op. The whole pre-merge tournament is kept for
    a single undo. The elimination undo slot does not carry over into Day 2.
    """
    if not tournament.in_flights_phase:
        return Transition(tournament=tournament)

    best_ids = {e.id for e in best_stacks(list(tournament.entries)).values()}
    merged = []
    for entry in tournament.entries:
        if entry.id in best_ids:
            merged.append(replace(entry, status=EntryStatus.ACTIVE, table_id=None, seat=None))
        elif entry.status == EntryStatus.QUALIFIED_DAY2:
            merged.append(
                replace(entry, status=EntryStatus.MERGE_DISCARDED, table_id=None, seat=None)
            )
        elif entry.status == EntryStatus.ACTIVE:
            merged.append(entry.unseated())
        else:
            merged.append(entry)

    active = [e for e in merged if e.status == EntryStatus.ACTIVE]
    capacity = usable_capacity(tournament)
    if len(active) > capacity:
        return Transition.rejected(
            tournament, InsufficientSeatsError(required=len(active), available=capacity)
        )

    order = [e.id for e in sorted(active, key=lambda e: e.chip_count, reverse=True)]
    entries, _ = seat_in_order(merged, tournament.tables, tournament.blocked_seats, order, rng)

    logger.info(
        "flights_merged",
        tournament_id=tournament.id,
        day2_players=len(active),
        discarded=sum(1 for e in entries if e.status == EntryStatus.MERGE_DISCARDED),
    )
    return Transition(
        tournament=replace(
            tournament,
            entries=entries,
            phase=TournamentPhase.DAY2,
            status=TournamentStatus.PAUSED,
            last_clock_start=None,
            pre_merge_snapshot=tournament,
            pre_day2_draw_entries=None,
            last_elimination=None,
        )
    )


def undo_merge(tournament: Tournament) -> Transition:
    if tournament.pre_merge_snapshot is None:
        return Transition(tournament=tournament)
    logger.info("merge_undone", tournament_id=tournament.id)
    return Transition(tournament=tournament.pre_merge_snapshot)


def generate_day2_seat_draw(
    tournament: Tournament,
    rng: Optional[random.Random] = None,
) -> Transition:
    """
    Deal the Day 2 field across tables in serpentine order.

    Active entries, biggest stack first, go to tables 1, 2, .., n, n, .., 1,
    1, 2, ...; each table's players then get its free seats in shuffled
    order. If any table receives more players than it has unblocked seats
    the draw is abandoned and the snapshot returned untouched.
    """
    rng = rng or random.Random()
    if tournament.type != TournamentType.MULTI_FLIGHT or tournament.phase != TournamentPhase.DAY2:
        return Transition.rejected(
            tournament,
            InvalidActionError(
                "Day 2 seat draw is only available after the merge",
                details={"phase": tournament.phase.value},
                code=ErrorCode.INVALID_PHASE,
            ),
        )
    if not tournament.tables:
        return Transition.rejected(
            tournament,
            InvalidActionError("No tables configured", code=ErrorCode.NO_TABLES),
        )

    active = sorted(tournament.active_entries, key=lambda e: e.chip_count, reverse=True)
    tables = tournament.tables
    by_table: Dict[int, List[Entry]] = {t.id: [] for t in tables}

    idx, direction = 0, 1
    for entry in active:
        by_table[tables[idx].id].append(entry)
        idx += direction
        if idx < 0 or idx >= len(tables):
            direction *= -1
            idx += direction

    blocked = tournament.blocked_seat_set
    placed: Dict[str, Entry] = {}
    for table in tables:
        players = by_table[table.id]
        seats = [s for s in table.seat_numbers if (table.id, s) not in blocked]
        if len(players) > len(seats):
            logger.warning(
                "day2_draw_aborted",
                tournament_id=tournament.id,
                table_id=table.id,
                players=len(players),
                seats=len(seats),
            )
            return Transition.rejected(
                tournament,
                InsufficientSeatsError(
                    required=len(players),
                    available=len(seats),
                    message=f"Table {table.id}: not enough seats for the draw",
                ),
            )
        rng.shuffle(seats)
        for entry, seat in zip(players, seats):
            placed[entry.id] = replace(entry, table_id=table.id, seat=seat)

    logger.info("day2_seat_draw", tournament_id=tournament.id, players=len(placed))
    return Transition(
        tournament=replace(
            tournament.with_entries(placed.values()),
            pre_day2_draw_entries=tournament.entries,
        )
    )


def undo_day2_seat_draw(tournament: Tournament) -> Transition:
    if tournament.pre_day2_draw_entries is None:
        return Transition(tournament=tournament)
    return Transition(
        tournament=replace(
            tournament,
            entries=tournament.pre_day2_draw_entries,
            pre_day2_draw_entries=None,
        )
    )
