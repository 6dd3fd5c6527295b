"""
Tournament Data Models.

Immutable state representations for tournament entities.
Every director action produces a new Tournament snapshot (copy-on-write);
nothing here is ever mutated in place.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from pokerfloor.utils.errors import TournamentError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TournamentType(str, Enum):
    STANDARD = "standard"
    MULTI_FLIGHT = "multi_flight"


class TournamentPhase(str, Enum):
    """Multi-flight progression."""

    FLIGHTS = "flights"  # Day 1 플라이트 진행
    DAY2 = "day2"  # 머지 이후
    FINAL = "final"
    COMPLETE = "complete"


class TournamentStatus(str, Enum):
    """Tournament lifecycle states."""

    SCHEDULED = "scheduled"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class EntryStatus(str, Enum):
    ACTIVE = "active"
    REENTRY_PENDING = "reentry_pending"  # 리엔트리 대기
    ELIMINATED = "eliminated"
    QUALIFIED_DAY2 = "qualified_day2"
    MERGE_DISCARDED = "merge_discarded"  # 머지 시 더 작은 스택


class FlightStatus(str, Enum):
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"


class TransactionType(str, Enum):
    BUYIN = "buyin"
    REBUY = "rebuy"
    ADDON = "addon"
    DEALER_BONUS = "dealer_bonus"
    PAYOUT = "payout"


class DealerShiftStatus(str, Enum):
    ASSIGNED = "assigned"
    WORKING = "working"
    ON_BREAK = "on_break"
    OFF_DUTY = "off_duty"


class PayoutMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


@dataclass(frozen=True)
class Player:
    """Player profile. Stored outside the tournament snapshot."""

    id: str
    nickname: str
    first_name: str = ""
    last_name: str = ""
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Level:
    """Blind level configuration."""

    level: int
    small_blind: int
    big_blind: int
    ante: int = 0
    duration_minutes: int = 20
    is_break: bool = False

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60


@dataclass(frozen=True)
class PokerTable:
    """Physical table. Seats are numbered ``1..seats``."""

    id: int
    name: str = ""
    seats: int = 9
    room: str = ""
    dealer_id: Optional[str] = None
    dealer_assigned_at: Optional[datetime] = None

    @property
    def seat_numbers(self) -> range:
        return range(1, self.seats + 1)

    @property
    def key(self) -> str:
        """Table key used by dealer schedules."""
        return f"T{self.id}"


@dataclass(frozen=True)
class BlockedSeat:
    table_id: int
    seat: int


@dataclass(frozen=True)
class Flight:
    """Independent starting field of a multi-flight tournament."""

    id: str
    name: str = ""
    status: FlightStatus = FlightStatus.SCHEDULED
    current_level: int = 1
    clock_time_remaining: int = 0
    last_clock_start: Optional[datetime] = None
    late_registration_closed: bool = False


@dataclass(frozen=True)
class Entry:
    """
    One player's participation instance.

    elimination_index is the knock-out order (1 = first out); the final rank
    is derived from it and the counted entrant total, never stored here.
    elimination_rank only carries the shared display rank of a
    simultaneous elimination.
    """

    id: str
    player_id: str
    flight_id: Optional[str] = None
    status: EntryStatus = EntryStatus.ACTIVE
    chip_count: int = 0
    buyins: int = 1
    addons: int = 0
    dealer_bonuses: int = 0
    table_id: Optional[int] = None
    seat: Optional[int] = None
    elimination_index: Optional[int] = None
    elimination_rank: Optional[int] = None
    registered_at: datetime = field(default_factory=utcnow)
    bustout_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == EntryStatus.ACTIVE

    @property
    def is_seated(self) -> bool:
        return self.table_id is not None and self.seat is not None

    def unseated(self) -> "Entry":
        return replace(self, table_id=None, seat=None)


@dataclass(frozen=True)
class Transaction:
    """Append-only ledger line. Positive = cost to player, negative = payout."""

    id: str
    type: TransactionType
    entry_id: str
    player_id: str
    amount: int
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Payout:
    rank: int
    amount: int


@dataclass(frozen=True)
class PayoutSettings:
    mode: PayoutMode = PayoutMode.AUTO
    manual_payouts: Tuple[Payout, ...] = ()


@dataclass(frozen=True)
class DealPayout:
    player_id: str
    amount: int


@dataclass(frozen=True)
class DealerShift:
    dealer_id: str
    status: DealerShiftStatus = DealerShiftStatus.ASSIGNED
    shift_start: Optional[datetime] = None
    shift_end: Optional[datetime] = None
    break_start: Optional[datetime] = None
    last_table_assigned_at: Optional[datetime] = None


@dataclass(frozen=True)
class ScheduleSlot:
    """Dealer assignments from ``start`` until the next slot (table key → dealer id)."""

    start: datetime
    assignments: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DealerSchedule:
    slots: Tuple[ScheduleSlot, ...] = ()

    def assignments_at(self, now: datetime) -> Dict[str, str]:
        """Latest slot not after ``now``; empty before the schedule begins."""
        starts = [slot.start for slot in self.slots]
        idx = bisect.bisect_right(starts, now)
        if idx == 0:
            return {}
        return dict(self.slots[idx - 1].assignments)

    def dealer_for_table(self, table_id: int, now: datetime) -> Optional[str]:
        return self.assignments_at(now).get(f"T{table_id}")


@dataclass(frozen=True)
class MoveSlip:
    """Seat change notice handed to the printing collaborator."""

    entry_id: str
    player_id: str
    table_id: int
    seat: int
    from_table_id: Optional[int] = None
    from_seat: Optional[int] = None


@dataclass(frozen=True)
class SeatAssignment:
    entry_id: str
    table_id: int
    seat: int


@dataclass(frozen=True)
class EliminationSnapshot:
    """Single-slot undo record of the last elimination."""

    entry: Entry
    winner: Optional[Entry] = None
    taken_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Tournament:
    """
    Tournament aggregate root.

    Clock: ``clock_time_remaining`` is the stored remaining seconds of the
    current level; ``last_clock_start`` is None while the clock is stopped.
    """

    id: str = field(default_factory=lambda: str(uuid4()))
    name: str = "Tournament"
    type: TournamentType = TournamentType.STANDARD
    phase: TournamentPhase = TournamentPhase.FLIGHTS
    status: TournamentStatus = TournamentStatus.SCHEDULED

    # 바이인/애드온 경제
    buyin: int = 0
    starting_stack: int = 0
    rebuys_allowed: bool = False
    addon_cost: int = 0
    addon_chips: int = 0
    dealer_bonus_cost: int = 0
    dealer_bonus_chips: int = 0

    levels: Tuple[Level, ...] = ()
    tables: Tuple[PokerTable, ...] = ()
    flights: Tuple[Flight, ...] = ()
    entries: Tuple[Entry, ...] = ()
    transactions: Tuple[Transaction, ...] = ()
    blocked_seats: Tuple[BlockedSeat, ...] = ()
    dealer_shifts: Tuple[DealerShift, ...] = ()
    dealer_schedule: Optional[DealerSchedule] = None

    # 클럭
    current_level: int = 1
    clock_time_remaining: int = 0
    last_clock_start: Optional[datetime] = None
    scheduled_start_time: Optional[datetime] = None

    late_registration_closed: bool = False
    payout_settings: PayoutSettings = field(default_factory=PayoutSettings)
    deal_payouts: Tuple[DealPayout, ...] = ()

    # 1단계 되돌리기 슬롯
    pre_merge_snapshot: Optional["Tournament"] = None
    pre_day2_draw_entries: Optional[Tuple[Entry, ...]] = None
    last_elimination: Optional[EliminationSnapshot] = None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def in_flights_phase(self) -> bool:
        return (
            self.type == TournamentType.MULTI_FLIGHT
            and self.phase == TournamentPhase.FLIGHTS
        )

    @property
    def running_flight(self) -> Optional[Flight]:
        for flight in self.flights:
            if flight.status == FlightStatus.RUNNING:
                return flight
        return None

    @property
    def active_entries(self) -> List[Entry]:
        return [e for e in self.entries if e.status == EntryStatus.ACTIVE]

    @property
    def active_count(self) -> int:
        return len(self.active_entries)

    @property
    def counted_entries(self) -> int:
        """Entrant total used for rank and payout math."""
        return sum(1 for e in self.entries if e.status != EntryStatus.MERGE_DISCARDED)

    @property
    def eliminated_count(self) -> int:
        return sum(1 for e in self.entries if e.elimination_index is not None)

    @property
    def blocked_seat_set(self) -> set[Tuple[int, int]]:
        return {(b.table_id, b.seat) for b in self.blocked_seats}

    def get_entry(self, entry_id: str) -> Optional[Entry]:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def get_table(self, table_id: int) -> Optional[PokerTable]:
        for table in self.tables:
            if table.id == table_id:
                return table
        return None

    def get_flight(self, flight_id: str) -> Optional[Flight]:
        for flight in self.flights:
            if flight.id == flight_id:
                return flight
        return None

    def has_payout(self, entry_id: str) -> bool:
        return any(
            tx.entry_id == entry_id and tx.type == TransactionType.PAYOUT
            for tx in self.transactions
        )

    def payout_for_entry(self, entry_id: str) -> int:
        """Amount paid to an entry (positive), 0 when unpaid."""
        return sum(
            -tx.amount
            for tx in self.transactions
            if tx.entry_id == entry_id and tx.type == TransactionType.PAYOUT
        )

    # ------------------------------------------------------------------
    # Copy-on-write helpers
    # ------------------------------------------------------------------

    def with_entries(self, updated: Iterable[Entry]) -> "Tournament":
        """Replace entries by id, keeping registration order."""
        by_id = {e.id: e for e in updated}
        if not by_id:
            return self
        return replace(
            self,
            entries=tuple(by_id.get(e.id, e) for e in self.entries),
        )

    def with_transactions(self, *txs: Transaction) -> "Tournament":
        if not txs:
            return self
        return replace(self, transactions=self.transactions + tuple(txs))

    def with_flight(self, flight: Flight) -> "Tournament":
        return replace(
            self,
            flights=tuple(flight if f.id == flight.id else f for f in self.flights),
        )


@dataclass(frozen=True)
class Transition:
    """
    Result of a state transition.

    On failure ``tournament`` is the untouched input snapshot and ``error``
    says why; the caller decides whether to surface or raise it.
    """

    tournament: Tournament
    error: Optional[TournamentError] = None
    move_slips: Tuple[MoveSlip, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def rejected(cls, tournament: Tournament, error: TournamentError) -> "Transition":
        return cls(tournament=tournament, error=error)
