"""
Dealer Rotation Scheduler.

딜러 로테이션: 테이블을 블록(5/4/3/2 테이블)으로 나누고 블록마다
테이블 수 + 1 명의 딜러를 배정. 남는 1명이 매 슬롯 돌아가며 휴식.

- 블록 구성이 불가능하면 스케줄 생성 실패 (부분 스케줄 없음)
- swap_minutes 마다 같은 크기 블록끼리 딜러 팀 교체
- 딜러 근무(shift) 상태 머신: assigned → working ↔ on_break → off_duty
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pokerfloor.logging_config import get_logger
from pokerfloor.utils.errors import ErrorCode, NotFoundError

from .models import (
    DealerSchedule,
    DealerShift,
    DealerShiftStatus,
    PokerTable,
    ScheduleSlot,
    Tournament,
    Transition,
    utcnow,
)

logger = get_logger(__name__)

DEFAULT_BLOCK_SIZES: Tuple[int, ...] = (5, 4, 3, 2)


@dataclass(frozen=True)
class DealerBlock:
    """Group of tables served by one rotating team of ``len(tables) + 1`` dealers."""

    tables: Tuple[PokerTable, ...]
    dealers: Tuple[str, ...]

    @property
    def schema(self) -> str:
        return f"{len(self.tables)}T-{len(self.dealers)}D"


def partition_blocks(
    tables: Iterable[PokerTable],
    dealer_ids: Sequence[str],
    sizes: Sequence[int] = DEFAULT_BLOCK_SIZES,
) -> Optional[List[DealerBlock]]:
    """
    Greedily cut tables (ordered by id) into blocks, largest size first.

    Returns None if any table is left without a block.
    """
    remaining_tables = sorted(tables, key=lambda t: t.id)
    remaining_dealers = list(dealer_ids)
    blocks: List[DealerBlock] = []

    for size in sorted(sizes, reverse=True):
        needed = size + 1
        while len(remaining_tables) >= size and len(remaining_dealers) >= needed:
            blocks.append(
                DealerBlock(
                    tables=tuple(remaining_tables[:size]),
                    dealers=tuple(remaining_dealers[:needed]),
                )
            )
            remaining_tables = remaining_tables[size:]
            remaining_dealers = remaining_dealers[needed:]

    if remaining_tables:
        logger.warning(
            "dealer_partition_failed",
            unassigned_tables=len(remaining_tables),
            dealers=len(dealer_ids),
        )
        return None
    return blocks


def _swap_teams(teams: List[Tuple[str, ...]], blocks: Sequence[DealerBlock]) -> List[Tuple[str, ...]]:
    """Cycle teams one step among blocks with the same number of tables."""
    rotated = list(teams)
    groups: Dict[int, List[int]] = {}
    for i, block in enumerate(blocks):
        groups.setdefault(len(block.tables), []).append(i)
    for positions in groups.values():
        if len(positions) < 2:
            continue
        moved = [teams[p] for p in positions[1:]] + [teams[positions[0]]]
        for p, team in zip(positions, moved):
            rotated[p] = team
    return rotated


def generate_dealer_schedule(
    tables: Iterable[PokerTable],
    dealer_ids: Sequence[str],
    start: datetime,
    duration_hours: float,
    granularity_minutes: int,
    swap_minutes: int = 120,
    sizes: Sequence[int] = DEFAULT_BLOCK_SIZES,
) -> Optional[DealerSchedule]:
    """
    Build a time-sliced dealer → table schedule.

    In slot ``s`` table ``i`` of a block is dealt by ``team[(i + s) % len(team)]``,
    so every dealer visits every table of the block and sits out once per
    cycle. Each time another ``swap_minutes`` of schedule time has elapsed,
    teams move to another block of the same size; the slot that crosses the
    boundary takes the new teams even when the granularity does not divide
    ``swap_minutes``. Teams never move between blocks of different sizes, so
    a layout without two equal-sized blocks (5T + 4T, say) keeps its teams.

    Returns:
        The schedule, or None if the tables cannot be partitioned with the
        available dealers.
    """
    if granularity_minutes <= 0:
        raise ValueError("granularity_minutes must be positive")

    blocks = partition_blocks(tables, dealer_ids, sizes)
    if blocks is None:
        return None

    teams = [b.dealers for b in blocks]
    total_minutes = int(duration_hours * 60)
    slots: List[ScheduleSlot] = []
    period = 0

    for minute in range(0, total_minutes, granularity_minutes):
        if swap_minutes > 0:
            while period < minute // swap_minutes:
                teams = _swap_teams(teams, blocks)
                period += 1

        slot_index = minute // granularity_minutes
        assignments: Dict[str, str] = {}
        for block, team in zip(blocks, teams):
            for i, table in enumerate(block.tables):
                assignments[table.key] = team[(i + slot_index) % len(team)]
        slots.append(
            ScheduleSlot(start=start + timedelta(minutes=minute), assignments=assignments)
        )

    logger.info(
        "dealer_schedule_generated",
        blocks=[b.schema for b in blocks],
        slots=len(slots),
    )
    return DealerSchedule(slots=tuple(slots))


def current_dealer(tournament: Tournament, table_id: int, now: datetime) -> Optional[str]:
    """Scheduled dealer for a table, falling back to the manual assignment."""
    if tournament.dealer_schedule is not None:
        dealer = tournament.dealer_schedule.dealer_for_table(table_id, now)
        if dealer is not None:
            return dealer
    table = tournament.get_table(table_id)
    return table.dealer_id if table else None


def scheduled_rotation(tournament: Tournament, now: datetime) -> List[Tuple[int, Optional[str]]]:
    """Table → dealer pairs the schedule prescribes at ``now`` (existing tables only)."""
    if tournament.dealer_schedule is None:
        return []
    slot = tournament.dealer_schedule.assignments_at(now)
    return [(t.id, slot[t.key]) for t in tournament.tables if t.key in slot]


def set_dealer_schedule(tournament: Tournament, schedule: DealerSchedule) -> Transition:
    return Transition(tournament=replace(tournament, dealer_schedule=schedule))


# =============================================================================
# Dealer shifts
# =============================================================================


def _map_shifts(tournament: Tournament, fn) -> Tournament:
    return replace(tournament, dealer_shifts=tuple(fn(s) for s in tournament.dealer_shifts))


def assign_dealer(tournament: Tournament, dealer_id: str) -> Transition:
    """Add a dealer to the tournament unless they already have an open shift."""
    if any(
        s.dealer_id == dealer_id and s.status != DealerShiftStatus.OFF_DUTY
        for s in tournament.dealer_shifts
    ):
        return Transition(tournament=tournament)
    shift = DealerShift(dealer_id=dealer_id)
    return Transition(
        tournament=replace(tournament, dealer_shifts=tournament.dealer_shifts + (shift,))
    )


def unassign_dealer(tournament: Tournament, dealer_id: str) -> Transition:
    """Remove a dealer who has not started working yet."""
    return Transition(
        tournament=replace(
            tournament,
            dealer_shifts=tuple(
                s
                for s in tournament.dealer_shifts
                if not (s.dealer_id == dealer_id and s.status == DealerShiftStatus.ASSIGNED)
            ),
        )
    )


def start_dealer_service(
    tournament: Tournament,
    dealer_id: str,
    now: Optional[datetime] = None,
) -> Transition:
    now = now or utcnow()
    return Transition(
        tournament=_map_shifts(
            tournament,
            lambda s: replace(s, status=DealerShiftStatus.WORKING, shift_start=now)
            if s.dealer_id == dealer_id and s.status == DealerShiftStatus.ASSIGNED
            else s,
        )
    )


def start_all_dealers(tournament: Tournament, now: Optional[datetime] = None) -> Transition:
    now = now or utcnow()
    return Transition(
        tournament=_map_shifts(
            tournament,
            lambda s: replace(s, status=DealerShiftStatus.WORKING, shift_start=now)
            if s.status == DealerShiftStatus.ASSIGNED
            else s,
        )
    )


def end_dealer_shift(
    tournament: Tournament,
    dealer_id: str,
    now: Optional[datetime] = None,
) -> Transition:
    """Close the dealer's shift and take them off any table."""
    now = now or utcnow()
    updated = _map_shifts(
        tournament,
        lambda s: replace(s, status=DealerShiftStatus.OFF_DUTY, shift_end=now)
        if s.dealer_id == dealer_id and s.status != DealerShiftStatus.OFF_DUTY
        else s,
    )
    tables = tuple(
        replace(t, dealer_id=None, dealer_assigned_at=None) if t.dealer_id == dealer_id else t
        for t in updated.tables
    )
    return Transition(tournament=replace(updated, tables=tables))


def toggle_dealer_break(
    tournament: Tournament,
    dealer_id: str,
    now: Optional[datetime] = None,
) -> Transition:
    now = now or utcnow()

    def toggle(shift: DealerShift) -> DealerShift:
        if shift.dealer_id != dealer_id:
            return shift
        if shift.status == DealerShiftStatus.WORKING:
            return replace(shift, status=DealerShiftStatus.ON_BREAK, break_start=now)
        if shift.status == DealerShiftStatus.ON_BREAK:
            return replace(shift, status=DealerShiftStatus.WORKING, break_start=None)
        return shift

    return Transition(tournament=_map_shifts(tournament, toggle))


def perform_dealer_rotation(
    tournament: Tournament,
    assignments: Sequence[Tuple[int, Optional[str]]],
    now: Optional[datetime] = None,
) -> Transition:
    """Put dealers on tables. Unknown tables are skipped; ``None`` clears a table."""
    now = now or utcnow()
    wanted = dict(assignments)
    tables = tuple(
        replace(t, dealer_id=wanted[t.id], dealer_assigned_at=now) if t.id in wanted else t
        for t in tournament.tables
    )
    placed = {d for table_id, d in wanted.items() if d and tournament.get_table(table_id)}
    updated = replace(tournament, tables=tables)
    updated = _map_shifts(
        updated,
        lambda s: replace(s, last_table_assigned_at=now) if s.dealer_id in placed else s,
    )
    return Transition(tournament=updated)


def assign_dealer_to_table(
    tournament: Tournament,
    table_id: int,
    dealer_id: Optional[str],
    now: Optional[datetime] = None,
) -> Transition:
    if tournament.get_table(table_id) is None:
        return Transition.rejected(
            tournament, NotFoundError(ErrorCode.TABLE_NOT_FOUND, "Table", table_id)
        )
    return perform_dealer_rotation(tournament, [(table_id, dealer_id)], now)
