"""
Seat Allocator.

새 엔트리를 가장 인원이 적은 테이블의 빈 좌석에 배정.

핵심 설계 원칙:
1. 테이블 간 인원 차이 최소화 (±1 이내 유지)
2. 같은 인원의 테이블 중에서는 무작위 선택 (특정 테이블 편향 방지)
3. 막힌 좌석(blocked seat)은 절대 배정하지 않음
4. 빈 좌석이 없으면 대기열(table/seat = None)로 남김
"""

import random
from collections import Counter, defaultdict
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .models import BlockedSeat, Entry, EntryStatus, PokerTable


def _occupied(entries: Iterable[Entry], exclude: Optional[str] = None) -> Set[Tuple[int, int]]:
    return {
        (e.table_id, e.seat)
        for e in entries
        if e.id != exclude and e.status == EntryStatus.ACTIVE and e.is_seated
    }


def table_counts(
    entries: Iterable[Entry],
    tables: Iterable[PokerTable],
    exclude: Optional[str] = None,
) -> Dict[int, int]:
    """Active-entry count per table id (tables without players map to 0)."""
    counts = Counter(
        e.table_id
        for e in entries
        if e.id != exclude and e.status == EntryStatus.ACTIVE and e.is_seated
    )
    return {t.id: counts.get(t.id, 0) for t in tables}


def free_seats(
    table: PokerTable,
    entries: Iterable[Entry],
    blocked_seats: Iterable[BlockedSeat],
    exclude: Optional[str] = None,
) -> List[int]:
    """Seat numbers on ``table`` that are neither occupied nor blocked, ascending."""
    occupied = _occupied(entries, exclude)
    blocked = {(b.table_id, b.seat) for b in blocked_seats}
    return [
        seat
        for seat in table.seat_numbers
        if (table.id, seat) not in occupied and (table.id, seat) not in blocked
    ]


def _place(
    entries: Sequence[Entry],
    entry_id: str,
    table_id: Optional[int],
    seat: Optional[int],
) -> Tuple[Entry, ...]:
    return tuple(
        replace(e, table_id=table_id, seat=seat) if e.id == entry_id else e
        for e in entries
    )


def assign_seat(
    entries: Sequence[Entry],
    tables: Sequence[PokerTable],
    blocked_seats: Iterable[BlockedSeat],
    entry_id: str,
    rng: Optional[random.Random] = None,
) -> Tuple[Tuple[Entry, ...], bool]:
    """
    Seat one entry at the least-occupied table with a free seat.

    Tables are grouped by their current Active-entry count and visited in
    ascending order; each group is shuffled, and a free seat on the first
    table that has one is chosen uniformly at random.

    Returns:
        (entries', assigned). When no seat is free the entry's table/seat
        are cleared (waiting list) and ``assigned`` is False.
    """
    rng = rng or random.Random()
    blocked_seats = tuple(blocked_seats)

    others = [e for e in entries if e.id != entry_id]
    counts = table_counts(others, tables)

    groups: Dict[int, List[PokerTable]] = defaultdict(list)
    for table in tables:
        groups[counts[table.id]].append(table)

    for count in sorted(groups):
        candidates = list(groups[count])
        rng.shuffle(candidates)
        for table in candidates:
            seats = free_seats(table, others, blocked_seats)
            if seats:
                seat = rng.choice(seats)
                return _place(entries, entry_id, table.id, seat), True

    return _place(entries, entry_id, None, None), False


def seat_in_order(
    entries: Sequence[Entry],
    tables: Sequence[PokerTable],
    blocked_seats: Iterable[BlockedSeat],
    entry_ids: Iterable[str],
    rng: Optional[random.Random] = None,
) -> Tuple[Tuple[Entry, ...], List[str]]:
    """Run the allocator for each id in order. Returns (entries', unplaced ids)."""
    rng = rng or random.Random()
    blocked_seats = tuple(blocked_seats)
    result = tuple(entries)
    unplaced: List[str] = []
    for entry_id in entry_ids:
        result, assigned = assign_seat(result, tables, blocked_seats, entry_id, rng)
        if not assigned:
            unplaced.append(entry_id)
    return result, unplaced


def waiting_list(entries: Iterable[Entry]) -> List[Entry]:
    """Active entries without a seat, first registered first."""
    return sorted(
        (e for e in entries if e.status == EntryStatus.ACTIVE and not e.is_seated),
        key=lambda e: e.registered_at,
    )


def is_seat_available(
    table_id: int,
    seat: int,
    tables: Iterable[PokerTable],
    entries: Iterable[Entry],
    blocked_seats: Iterable[BlockedSeat],
    exclude: Optional[str] = None,
) -> bool:
    """True if the seat exists, is not blocked and no Active entry sits there."""
    table = next((t for t in tables if t.id == table_id), None)
    if table is None or seat not in table.seat_numbers:
        return False
    if any(b.table_id == table_id and b.seat == seat for b in blocked_seats):
        return False
    return (table_id, seat) not in _occupied(entries, exclude)
