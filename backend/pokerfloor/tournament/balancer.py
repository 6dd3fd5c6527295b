"""
Table Lifecycle Manager.

테이블 해체(break), 전체 재배치(rebalance), 테이블/좌석 관리.

핵심 설계 원칙:
1. 해체 시 인원이 적은 테이블의 빈 좌석부터 수집 (해체하면서 밸런싱)
2. 좌석이 부족하면 아무것도 바꾸지 않고 거부
3. 이미 사람이 있거나 막힌 좌석으로의 이동은 조용히 건너뜀 (재적용 안전)
"""

import random
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from pokerfloor.logging_config import get_logger
from pokerfloor.utils.errors import (
    ErrorCode,
    InsufficientSeatsError,
    InvalidActionError,
    NotFoundError,
)

from .models import (
    BlockedSeat,
    Entry,
    EntryStatus,
    MoveSlip,
    PokerTable,
    SeatAssignment,
    Tournament,
    Transition,
)
from .seating import assign_seat, free_seats, is_seat_available, seat_in_order, table_counts

logger = get_logger(__name__)


def _table_missing(tournament: Tournament, table_id: int) -> Transition:
    return Transition.rejected(
        tournament, NotFoundError(ErrorCode.TABLE_NOT_FOUND, "Table", table_id)
    )


def players_at(tournament: Tournament, table_id: int) -> List[Entry]:
    """Active entries seated at a table, by seat number."""
    return sorted(
        (
            e
            for e in tournament.entries
            if e.status == EntryStatus.ACTIVE and e.table_id == table_id and e.seat is not None
        ),
        key=lambda e: e.seat,
    )


def usable_capacity(tournament: Tournament) -> int:
    """Total seats minus blocked seats that exist on current tables."""
    total = sum(t.seats for t in tournament.tables)
    blocked = sum(
        1
        for b in tournament.blocked_seats
        if (table := tournament.get_table(b.table_id)) is not None
        and b.seat in table.seat_numbers
    )
    return total - blocked


def can_break(tournament: Tournament, table_id: int) -> bool:
    """True if the other tables have free seats for everyone at ``table_id``."""
    if tournament.get_table(table_id) is None:
        return False
    moving = len(players_at(tournament, table_id))
    if moving == 0:
        return False
    available = sum(
        len(free_seats(t, tournament.entries, tournament.blocked_seats))
        for t in tournament.tables
        if t.id != table_id
    )
    return moving <= available


def plan_table_break(
    tournament: Tournament,
    table_id: int,
    rng: Optional[random.Random] = None,
) -> Optional[Tuple[SeatAssignment, ...]]:
    """
    Plan where each player of a broken table goes.

    Free seats are gathered from the least-occupied tables first until there
    are enough, then shuffled and paired one-to-one with the players.
    Returns None when the other tables cannot absorb everyone.
    """
    rng = rng or random.Random()
    moving = players_at(tournament, table_id)
    counts = table_counts(tournament.entries, tournament.tables)
    others = sorted(
        (t for t in tournament.tables if t.id != table_id),
        key=lambda t: counts[t.id],
    )

    targets: List[Tuple[int, int]] = []
    for table in others:
        if len(targets) >= len(moving):
            break
        targets.extend(
            (table.id, seat)
            for seat in free_seats(table, tournament.entries, tournament.blocked_seats)
        )

    if len(targets) < len(moving):
        return None

    rng.shuffle(targets)
    return tuple(
        SeatAssignment(entry_id=entry.id, table_id=table, seat=seat)
        for entry, (table, seat) in zip(moving, targets)
    )


def break_table(
    tournament: Tournament,
    table_id: int,
    assignments: Optional[Sequence[SeatAssignment]] = None,
    rng: Optional[random.Random] = None,
) -> Transition:
    """
    Move everyone off a table and remove it.

    Precomputed ``assignments`` are applied as given, skipping any whose
    target seat is taken or blocked; anyone left without a seat waits
    unseated. Without assignments a plan is computed, and the break is
    rejected if there is no room.
    """
    table = tournament.get_table(table_id)
    if table is None:
        return _table_missing(tournament, table_id)

    if assignments is None:
        plan = plan_table_break(tournament, table_id, rng)
        if plan is None:
            return Transition.rejected(
                tournament,
                InvalidActionError(
                    f"Not enough free seats to break table {table_id}",
                    details={"tableId": table_id},
                    code=ErrorCode.TABLE_CANNOT_BREAK,
                ),
            )
        assignments = plan

    remaining_tables = tuple(t for t in tournament.tables if t.id != table_id)
    entries = list(tournament.entries)
    by_id = {e.id: i for i, e in enumerate(entries)}
    slips: List[MoveSlip] = []

    for assignment in assignments:
        idx = by_id.get(assignment.entry_id)
        if idx is None:
            continue
        entry = entries[idx]
        if not entry.is_active or entry.table_id != table_id:
            continue
        if not is_seat_available(
            assignment.table_id,
            assignment.seat,
            remaining_tables,
            entries,
            tournament.blocked_seats,
            exclude=entry.id,
        ):
            continue
        entries[idx] = replace(entry, table_id=assignment.table_id, seat=assignment.seat)
        slips.append(
            MoveSlip(
                entry_id=entry.id,
                player_id=entry.player_id,
                table_id=assignment.table_id,
                seat=assignment.seat,
                from_table_id=table_id,
                from_seat=entry.seat,
            )
        )

    entries = [e.unseated() if e.table_id == table_id else e for e in entries]
    logger.info(
        "table_broken",
        tournament_id=tournament.id,
        table_id=table_id,
        moved=len(slips),
    )
    return Transition(
        tournament=replace(
            tournament,
            entries=tuple(entries),
            tables=remaining_tables,
            blocked_seats=tuple(b for b in tournament.blocked_seats if b.table_id != table_id),
        ),
        move_slips=tuple(slips),
    )


def rebalance_all(tournament: Tournament, rng: Optional[random.Random] = None) -> Transition:
    """
    Reseat every Active entry from scratch, biggest stacks placed first.

    Rejected, with nothing changed, if the Active entries outnumber the
    usable seats.
    """
    active = tournament.active_entries
    capacity = usable_capacity(tournament)
    if len(active) > capacity:
        return Transition.rejected(
            tournament, InsufficientSeatsError(required=len(active), available=capacity)
        )

    cleared = tuple(e.unseated() if e.is_active else e for e in tournament.entries)
    order = [e.id for e in sorted(active, key=lambda e: e.chip_count, reverse=True)]
    entries, _ = seat_in_order(cleared, tournament.tables, tournament.blocked_seats, order, rng)

    before = {e.id: e for e in active}
    slips = tuple(
        MoveSlip(
            entry_id=e.id,
            player_id=e.player_id,
            table_id=e.table_id,
            seat=e.seat,
            from_table_id=before[e.id].table_id,
            from_seat=before[e.id].seat,
        )
        for e in entries
        if e.id in before
        and e.is_seated
        and (e.table_id, e.seat) != (before[e.id].table_id, before[e.id].seat)
    )
    logger.info("tables_rebalanced", tournament_id=tournament.id, moved=len(slips))
    return Transition(tournament=replace(tournament, entries=entries), move_slips=slips)


# =============================================================================
# Table and seat administration
# =============================================================================


def add_table(
    tournament: Tournament,
    name: Optional[str] = None,
    seats: int = 9,
    room: str = "",
) -> Transition:
    new_id = max((t.id for t in tournament.tables), default=0) + 1
    table = PokerTable(id=new_id, name=name or f"Table {new_id}", seats=seats, room=room)
    return Transition(tournament=replace(tournament, tables=tournament.tables + (table,)))


def update_table(tournament: Tournament, table: PokerTable) -> Transition:
    """Replace a table; entries on seats that no longer exist are unseated."""
    if tournament.get_table(table.id) is None:
        return _table_missing(tournament, table.id)
    entries = tuple(
        e.unseated() if e.table_id == table.id and e.seat not in table.seat_numbers else e
        for e in tournament.entries
    )
    return Transition(
        tournament=replace(
            tournament,
            tables=tuple(table if t.id == table.id else t for t in tournament.tables),
            entries=entries,
        )
    )


def delete_table(tournament: Tournament, table_id: int) -> Transition:
    if tournament.get_table(table_id) is None:
        return _table_missing(tournament, table_id)
    return Transition(
        tournament=replace(
            tournament,
            tables=tuple(t for t in tournament.tables if t.id != table_id),
            entries=tuple(
                e.unseated() if e.table_id == table_id else e for e in tournament.entries
            ),
            blocked_seats=tuple(b for b in tournament.blocked_seats if b.table_id != table_id),
        )
    )


def block_seat(tournament: Tournament, table_id: int, seat: int) -> Transition:
    table = tournament.get_table(table_id)
    if table is None:
        return _table_missing(tournament, table_id)
    if seat not in table.seat_numbers:
        return Transition.rejected(
            tournament,
            InvalidActionError(
                f"Table {table_id} has no seat {seat}",
                details={"tableId": table_id, "seat": seat},
            ),
        )
    if (table_id, seat) in tournament.blocked_seat_set:
        return Transition(tournament=tournament)
    return Transition(
        tournament=replace(
            tournament,
            blocked_seats=tournament.blocked_seats + (BlockedSeat(table_id=table_id, seat=seat),),
        )
    )


def unblock_seat(tournament: Tournament, table_id: int, seat: int) -> Transition:
    return Transition(
        tournament=replace(
            tournament,
            blocked_seats=tuple(
                b
                for b in tournament.blocked_seats
                if not (b.table_id == table_id and b.seat == seat)
            ),
        )
    )


def seat_entry(
    tournament: Tournament,
    entry_id: str,
    rng: Optional[random.Random] = None,
) -> Transition:
    """Run the allocator for one entry (e.g. from the waiting list)."""
    entry = tournament.get_entry(entry_id)
    if entry is None:
        return Transition.rejected(
            tournament, NotFoundError(ErrorCode.ENTRY_NOT_FOUND, "Entry", entry_id)
        )
    entries, assigned = assign_seat(
        tournament.entries, tournament.tables, tournament.blocked_seats, entry_id, rng
    )
    if not assigned:
        return Transition.rejected(
            tournament,
            InsufficientSeatsError(
                required=1, available=0, message="No free seat for this entry"
            ),
        )
    seated = next(e for e in entries if e.id == entry_id)
    slip = MoveSlip(
        entry_id=entry_id,
        player_id=entry.player_id,
        table_id=seated.table_id,
        seat=seated.seat,
        from_table_id=entry.table_id,
        from_seat=entry.seat,
    )
    return Transition(tournament=replace(tournament, entries=entries), move_slips=(slip,))


def move_player(
    tournament: Tournament,
    entry_id: str,
    table_id: int,
    seat: int,
) -> Transition:
    """Move an entry to a specific seat; ignored if that seat is taken or blocked."""
    entry = tournament.get_entry(entry_id)
    if entry is None:
        return Transition.rejected(
            tournament, NotFoundError(ErrorCode.ENTRY_NOT_FOUND, "Entry", entry_id)
        )
    if tournament.get_table(table_id) is None:
        return _table_missing(tournament, table_id)
    if (entry.table_id, entry.seat) == (table_id, seat):
        return Transition(tournament=tournament)
    if not is_seat_available(
        table_id,
        seat,
        tournament.tables,
        tournament.entries,
        tournament.blocked_seats,
        exclude=entry_id,
    ):
        return Transition(tournament=tournament)

    slip = MoveSlip(
        entry_id=entry_id,
        player_id=entry.player_id,
        table_id=table_id,
        seat=seat,
        from_table_id=entry.table_id,
        from_seat=entry.seat,
    )
    return Transition(
        tournament=tournament.with_entries([replace(entry, table_id=table_id, seat=seat)]),
        move_slips=(slip,),
    )


def table_summary(tournament: Tournament) -> List[dict]:
    """Per-table occupancy for floor displays."""
    counts = table_counts(tournament.entries, tournament.tables)
    return [
        {
            "table_id": t.id,
            "name": t.name,
            "players": counts[t.id],
            "free_seats": len(free_seats(t, tournament.entries, tournament.blocked_seats)),
            "can_break": can_break(tournament, t.id),
        }
        for t in tournament.tables
    ]
