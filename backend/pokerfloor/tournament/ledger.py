"""
Elimination & Payout Ledger.

엔트리 상태 머신과 탈락 → 순위 → 상금 트랜잭션 변환.

Status machine:
    Active --(bust, re-entry open)--> ReEntryPending --(rebuy)--> Active
    ReEntryPending --(registration closes / director)--> Eliminated
    Active --(bust, re-entry closed)--> Eliminated
    Active --(flight completes)--> QualifiedDay2

Elimination index is the knock-out order; final rank is
``counted_entries - elimination_index + 1``. Each entry receives at most one
payout transaction, with the deterministic id ``tx-payout-<entry id>``.
"""

import random
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from pokerfloor.logging_config import get_logger
from pokerfloor.utils.errors import (
    ErrorCode,
    InvalidActionError,
    NotFoundError,
)

from .models import (
    DealPayout,
    EliminationSnapshot,
    Entry,
    EntryStatus,
    Payout,
    PayoutSettings,
    Player,
    Tournament,
    TournamentStatus,
    Transaction,
    TransactionType,
    Transition,
    utcnow,
)
from .payouts import active_payouts, payout_for_rank, remaining_payouts
from .seating import assign_seat, is_seat_available

logger = get_logger(__name__)


def payout_tx_id(entry_id: str) -> str:
    return f"tx-payout-{entry_id}"


def final_rank(tournament: Tournament, elimination_index: int) -> int:
    return tournament.counted_entries - elimination_index + 1


def registration_open(tournament: Tournament, entry: Entry) -> bool:
    """Whether a busted entry may still re-enter."""
    if not tournament.rebuys_allowed:
        return False
    if tournament.in_flights_phase:
        flight = tournament.running_flight
        if flight is None or flight.id != entry.flight_id:
            return False
        return not flight.late_registration_closed
    return not tournament.late_registration_closed


def _payout_tx(
    tournament: Tournament,
    entry: Entry,
    rank: int,
    ladder: Sequence[Payout],
    now: datetime,
) -> Optional[Transaction]:
    # 플라이트 단계에서는 상금 없음
    if tournament.in_flights_phase:
        return None
    if tournament.has_payout(entry.id):
        return None
    payout = payout_for_rank(ladder, rank)
    if payout is None or payout.amount <= 0:
        return None
    return Transaction(
        id=payout_tx_id(entry.id),
        type=TransactionType.PAYOUT,
        entry_id=entry.id,
        player_id=entry.player_id,
        amount=-payout.amount,
        timestamp=now,
    )


def _mark_eliminated(tournament: Tournament, entry: Entry, now: datetime) -> Entry:
    return replace(
        entry,
        status=EntryStatus.ELIMINATED,
        elimination_index=tournament.eliminated_count + 1,
        elimination_rank=None,
        table_id=None,
        seat=None,
        bustout_at=entry.bustout_at or now,
    )


def _eliminate(
    tournament: Tournament,
    entry: Entry,
    now: datetime,
    rounding_unit: int,
) -> Tournament:
    eliminated = _mark_eliminated(tournament, entry, now)
    ladder = active_payouts(tournament, rounding_unit)
    rank = final_rank(tournament, eliminated.elimination_index)
    tx = _payout_tx(tournament, entry, rank, ladder, now)

    updated = tournament.with_entries([eliminated])
    if tx is not None:
        updated = updated.with_transactions(tx)
    logger.info(
        "entry_eliminated",
        tournament_id=tournament.id,
        entry_id=entry.id,
        elimination_index=eliminated.elimination_index,
        rank=rank,
        payout=-tx.amount if tx else 0,
    )
    return updated


def _complete_if_finished(
    tournament: Tournament,
    now: datetime,
    rounding_unit: int,
) -> Tuple[Tournament, Optional[Entry]]:
    """Returns (tournament', winner as it was before auto-elimination)."""
    if tournament.in_flights_phase:
        return tournament, None
    if tournament.status == TournamentStatus.COMPLETED:
        return tournament, None

    active = tournament.active_entries
    if len(tournament.entries) <= 1 or len(active) > 1:
        return tournament, None

    winner: Optional[Entry] = None
    if len(active) == 1:
        winner = active[0]
        tournament = _eliminate(tournament, winner, now, rounding_unit)

    logger.info(
        "tournament_completed",
        tournament_id=tournament.id,
        winner_entry_id=winner.id if winner else None,
    )
    return (
        replace(tournament, status=TournamentStatus.COMPLETED, last_clock_start=None),
        winner,
    )


def check_and_complete(
    tournament: Tournament,
    now: Optional[datetime] = None,
    rounding_unit: int = 5,
) -> Tournament:
    """
    Auto-eliminate the last Active entry and complete the tournament.

    Applies when at least two entries exist and at most one is Active;
    skipped during the flights phase of a multi-flight tournament.
    """
    completed, _ = _complete_if_finished(tournament, now or utcnow(), rounding_unit)
    return completed


# =============================================================================
# Registration / rebuy / add-on
# =============================================================================


@dataclass(frozen=True)
class RegistrationResult:
    transition: Transition
    players: Tuple[Player, ...]
    entry_id: Optional[str] = None
    seated: bool = False


def _find_player(
    players: Sequence[Player],
    player_id: Optional[str],
    nickname: Optional[str],
) -> Optional[Player]:
    if player_id:
        return next((p for p in players if p.id == player_id), None)
    if nickname:
        wanted = nickname.casefold()
        return next((p for p in players if p.nickname.casefold() == wanted), None)
    return None


def register_player(
    tournament: Tournament,
    players: Sequence[Player],
    flight_id: Optional[str] = None,
    nickname: Optional[str] = None,
    player_id: Optional[str] = None,
    add_dealer_bonus: bool = False,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> RegistrationResult:
    """
    Create an Active entry and seat it.

    The player is reused by id, else by case-insensitive nickname, else a new
    profile is created from the nickname. When no seat is free the entry
    waits unseated.
    """
    now = now or utcnow()
    players = tuple(players)

    if flight_id is not None and tournament.get_flight(flight_id) is None:
        return RegistrationResult(
            transition=Transition.rejected(
                tournament, NotFoundError(ErrorCode.FLIGHT_NOT_FOUND, "Flight", flight_id)
            ),
            players=players,
        )

    player = _find_player(players, player_id, nickname)
    if player is None:
        if player_id or not nickname:
            return RegistrationResult(
                transition=Transition.rejected(
                    tournament,
                    NotFoundError(ErrorCode.PLAYER_NOT_FOUND, "Player", player_id or nickname),
                ),
                players=players,
            )
        player = Player(id=f"p-{uuid4().hex[:12]}", nickname=nickname, created_at=now)
        players = players + (player,)

    bonus_chips = tournament.dealer_bonus_chips if add_dealer_bonus else 0
    entry = Entry(
        id=f"e-{uuid4().hex[:12]}",
        player_id=player.id,
        flight_id=flight_id,
        status=EntryStatus.ACTIVE,
        chip_count=tournament.starting_stack + bonus_chips,
        dealer_bonuses=1 if add_dealer_bonus else 0,
        registered_at=now,
    )

    entries, seated = assign_seat(
        tournament.entries + (entry,),
        tournament.tables,
        tournament.blocked_seats,
        entry.id,
        rng,
    )

    txs = [
        Transaction(
            id=f"tx-buyin-{entry.id}",
            type=TransactionType.BUYIN,
            entry_id=entry.id,
            player_id=player.id,
            amount=tournament.buyin,
            timestamp=now,
        )
    ]
    if add_dealer_bonus:
        txs.append(
            Transaction(
                id=f"tx-dbonus-{entry.id}",
                type=TransactionType.DEALER_BONUS,
                entry_id=entry.id,
                player_id=player.id,
                amount=tournament.dealer_bonus_cost,
                timestamp=now,
            )
        )

    updated = replace(tournament, entries=entries).with_transactions(*txs)
    logger.info(
        "player_registered",
        tournament_id=tournament.id,
        entry_id=entry.id,
        player_id=player.id,
        seated=seated,
    )
    return RegistrationResult(
        transition=Transition(tournament=updated),
        players=players,
        entry_id=entry.id,
        seated=seated,
    )


def rebuy(
    tournament: Tournament,
    entry_id: str,
    add_dealer_bonus: bool = False,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> Transition:
    """ReEntryPending → Active with a fresh stack and a new seat."""
    now = now or utcnow()
    entry = tournament.get_entry(entry_id)
    if entry is None:
        return Transition.rejected(
            tournament, NotFoundError(ErrorCode.ENTRY_NOT_FOUND, "Entry", entry_id)
        )
    if entry.status != EntryStatus.REENTRY_PENDING:
        return Transition(tournament=tournament)

    rebought = replace(
        entry,
        status=EntryStatus.ACTIVE,
        buyins=entry.buyins + 1,
        chip_count=tournament.starting_stack
        + (tournament.dealer_bonus_chips if add_dealer_bonus else 0),
        dealer_bonuses=entry.dealer_bonuses + (1 if add_dealer_bonus else 0),
        elimination_index=None,
        elimination_rank=None,
        bustout_at=None,
    )
    entries, _ = assign_seat(
        tournament.with_entries([rebought]).entries,
        tournament.tables,
        tournament.blocked_seats,
        entry_id,
        rng,
    )

    txs = [
        Transaction(
            id=f"tx-rebuy-{entry_id}-{rebought.buyins}",
            type=TransactionType.REBUY,
            entry_id=entry_id,
            player_id=entry.player_id,
            amount=tournament.buyin,
            timestamp=now,
        )
    ]
    if add_dealer_bonus:
        txs.append(
            Transaction(
                id=f"tx-dbonus-{entry_id}-{rebought.dealer_bonuses}",
                type=TransactionType.DEALER_BONUS,
                entry_id=entry_id,
                player_id=entry.player_id,
                amount=tournament.dealer_bonus_cost,
                timestamp=now,
            )
        )

    last = tournament.last_elimination
    if last is not None and last.entry.id == entry_id:
        last = None

    updated = replace(tournament, entries=entries, last_elimination=last)
    logger.info("player_rebuy", tournament_id=tournament.id, entry_id=entry_id)
    return Transition(tournament=updated.with_transactions(*txs))


def addon(
    tournament: Tournament,
    entry_id: str,
    now: Optional[datetime] = None,
) -> Transition:
    """One add-on per entry; a second request is ignored."""
    entry = tournament.get_entry(entry_id)
    if entry is None:
        return Transition.rejected(
            tournament, NotFoundError(ErrorCode.ENTRY_NOT_FOUND, "Entry", entry_id)
        )
    if entry.addons > 0:
        return Transition(tournament=tournament)

    tx = Transaction(
        id=f"tx-addon-{entry_id}",
        type=TransactionType.ADDON,
        entry_id=entry_id,
        player_id=entry.player_id,
        amount=tournament.addon_cost,
        timestamp=now or utcnow(),
    )
    updated = tournament.with_entries(
        [replace(entry, addons=1, chip_count=entry.chip_count + tournament.addon_chips)]
    )
    return Transition(tournament=updated.with_transactions(tx))


def update_chip_counts(tournament: Tournament, updates: Mapping[str, int]) -> Transition:
    missing = [entry_id for entry_id in updates if tournament.get_entry(entry_id) is None]
    if missing:
        return Transition.rejected(
            tournament, NotFoundError(ErrorCode.ENTRY_NOT_FOUND, "Entry", missing[0])
        )
    changed = [
        replace(e, chip_count=updates[e.id]) for e in tournament.entries if e.id in updates
    ]
    return Transition(tournament=tournament.with_entries(changed))


# =============================================================================
# Eliminations
# =============================================================================


def eliminate_player(
    tournament: Tournament,
    entry_id: str,
    now: Optional[datetime] = None,
    rounding_unit: int = 5,
) -> Transition:
    """
    Bust an Active entry.

    While re-entry is open the entry becomes ReEntryPending; otherwise it is
    eliminated, ranked and paid. Entries that are not Active are left as
    they are, so replaying the action changes nothing.
    """
    now = now or utcnow()
    entry = tournament.get_entry(entry_id)
    if entry is None:
        return Transition.rejected(
            tournament, NotFoundError(ErrorCode.ENTRY_NOT_FOUND, "Entry", entry_id)
        )
    if entry.status != EntryStatus.ACTIVE:
        return Transition(tournament=tournament)

    if registration_open(tournament, entry):
        return Transition(tournament=_to_pending(tournament, entry, now))

    updated = _eliminate(tournament, entry, now, rounding_unit)
    updated, winner = _complete_if_finished(updated, now, rounding_unit)
    return Transition(
        tournament=replace(
            updated,
            last_elimination=EliminationSnapshot(entry=entry, winner=winner, taken_at=now),
        )
    )


def _to_pending(tournament: Tournament, entry: Entry, now: datetime) -> Tournament:
    pending = replace(
        entry,
        status=EntryStatus.REENTRY_PENDING,
        table_id=None,
        seat=None,
        bustout_at=now,
    )
    logger.info("entry_reentry_pending", tournament_id=tournament.id, entry_id=entry.id)
    return replace(
        tournament.with_entries([pending]),
        last_elimination=EliminationSnapshot(entry=entry, taken_at=now),
    )


def set_reentry_pending(
    tournament: Tournament,
    entry_id: str,
    now: Optional[datetime] = None,
) -> Transition:
    """Director override: bust into ReEntryPending regardless of registration."""
    entry = tournament.get_entry(entry_id)
    if entry is None:
        return Transition.rejected(
            tournament, NotFoundError(ErrorCode.ENTRY_NOT_FOUND, "Entry", entry_id)
        )
    if entry.status != EntryStatus.ACTIVE:
        return Transition(tournament=tournament)
    return Transition(tournament=_to_pending(tournament, entry, now or utcnow()))


def eliminate_pending_player(
    tournament: Tournament,
    entry_id: str,
    now: Optional[datetime] = None,
    rounding_unit: int = 5,
) -> Transition:
    """ReEntryPending → Eliminated (player declined to re-enter)."""
    now = now or utcnow()
    entry = tournament.get_entry(entry_id)
    if entry is None:
        return Transition.rejected(
            tournament, NotFoundError(ErrorCode.ENTRY_NOT_FOUND, "Entry", entry_id)
        )
    if entry.status != EntryStatus.REENTRY_PENDING:
        return Transition(tournament=tournament)

    updated = _eliminate(tournament, entry, now, rounding_unit)
    updated, winner = _complete_if_finished(updated, now, rounding_unit)
    return Transition(
        tournament=replace(
            updated,
            last_elimination=EliminationSnapshot(entry=entry, winner=winner, taken_at=now),
        )
    )


def simultaneous_elimination(
    tournament: Tournament,
    entry_ids: Sequence[str],
    now: Optional[datetime] = None,
    rounding_unit: int = 5,
) -> Transition:
    """
    Eliminate several Active entries on the same hand.

    Elimination indices are assigned shortest stack first. The k entries
    jointly occupy the final ranks of those indices and all display the
    worst of them. The ladder amounts of those ranks are pooled and split
    evenly; the integer remainder goes to the first entry in elimination
    order. Clears the undo slot.
    """
    now = now or utcnow()
    ids = list(dict.fromkeys(entry_ids))
    if len(ids) < 2:
        return Transition.rejected(
            tournament,
            InvalidActionError(
                "Simultaneous elimination needs at least two entries",
                details={"entryIds": ids},
                code=ErrorCode.NOT_ENOUGH_ENTRIES,
            ),
        )

    entries: List[Entry] = []
    for entry_id in ids:
        entry = tournament.get_entry(entry_id)
        if entry is None:
            return Transition.rejected(
                tournament, NotFoundError(ErrorCode.ENTRY_NOT_FOUND, "Entry", entry_id)
            )
        if entry.status != EntryStatus.ACTIVE:
            return Transition.rejected(
                tournament,
                InvalidActionError(
                    f"Entry is not active: {entry_id}",
                    details={"entryId": entry_id, "status": entry.status.value},
                    code=ErrorCode.INVALID_ENTRY_STATUS,
                ),
            )
        entries.append(entry)

    k = len(entries)
    ordered = sorted(entries, key=lambda e: e.chip_count)
    indices = [tournament.eliminated_count + i + 1 for i in range(k)]
    ranks = [final_rank(tournament, index) for index in indices]
    shared_rank = max(ranks)

    ladder = active_payouts(tournament, rounding_unit)
    total = sum(p.amount for p in (payout_for_rank(ladder, r) for r in ranks) if p)
    share, remainder = divmod(total, k)

    eliminated: List[Entry] = []
    txs: List[Transaction] = []
    for i, (entry, index) in enumerate(zip(ordered, indices)):
        eliminated.append(
            replace(
                entry,
                status=EntryStatus.ELIMINATED,
                elimination_index=index,
                elimination_rank=shared_rank,
                table_id=None,
                seat=None,
                bustout_at=now,
            )
        )
        amount = share + (remainder if i == 0 else 0)
        if amount > 0 and not tournament.in_flights_phase and not tournament.has_payout(entry.id):
            txs.append(
                Transaction(
                    id=payout_tx_id(entry.id),
                    type=TransactionType.PAYOUT,
                    entry_id=entry.id,
                    player_id=entry.player_id,
                    amount=-amount,
                    timestamp=now,
                )
            )

    updated = tournament.with_entries(eliminated).with_transactions(*txs)
    updated, _ = _complete_if_finished(updated, now, rounding_unit)
    logger.info(
        "simultaneous_elimination",
        tournament_id=tournament.id,
        entry_ids=[e.id for e in ordered],
        shared_rank=shared_rank,
        pooled=total,
    )
    return Transition(tournament=replace(updated, last_elimination=None))


def undo_last_elimination(tournament: Tournament) -> Transition:
    """
    Restore the entry held in the undo slot and drop its payout.

    If that elimination completed the tournament, the auto-eliminated winner
    is restored too. A restored entry whose old seat has since been taken is
    put back unseated. No-op when the slot is empty.
    """
    snapshot = tournament.last_elimination
    if snapshot is None:
        return Transition(tournament=tournament)

    restored = [snapshot.entry] + ([snapshot.winner] if snapshot.winner else [])
    restored_ids = {e.id for e in restored}

    others = [e for e in tournament.entries if e.id not in restored_ids]
    fixed: List[Entry] = []
    for entry in restored:
        if entry.status == EntryStatus.ACTIVE and entry.is_seated and not is_seat_available(
            entry.table_id,
            entry.seat,
            tournament.tables,
            others + fixed,
            tournament.blocked_seats,
        ):
            entry = entry.unseated()
        fixed.append(entry)

    updated = tournament.with_entries(fixed)
    transactions = tuple(
        tx
        for tx in updated.transactions
        if not (tx.type == TransactionType.PAYOUT and tx.entry_id in restored_ids)
    )
    status = updated.status
    if status == TournamentStatus.COMPLETED and updated.active_count > 1:
        status = TournamentStatus.RUNNING

    logger.info(
        "elimination_undone",
        tournament_id=tournament.id,
        entry_id=snapshot.entry.id,
    )
    return Transition(
        tournament=replace(
            updated,
            transactions=transactions,
            status=status,
            last_elimination=None,
        )
    )


def close_late_registration(
    tournament: Tournament,
    flight_id: Optional[str] = None,
    now: Optional[datetime] = None,
    rounding_unit: int = 5,
) -> Transition:
    """
    Close re-entry for one flight or for the whole tournament.

    Pending entries (of that flight, or all of them) are eliminated in
    bust-out order. Closing tournament-wide also settles every eliminated
    entry that has not been paid yet. Clears the undo slot.
    """
    now = now or utcnow()
    flight = None
    if flight_id is not None:
        flight = tournament.get_flight(flight_id)
        if flight is None:
            return Transition.rejected(
                tournament, NotFoundError(ErrorCode.FLIGHT_NOT_FOUND, "Flight", flight_id)
            )

    pending = [
        e
        for e in tournament.entries
        if e.status == EntryStatus.REENTRY_PENDING
        and (flight_id is None or e.flight_id == flight_id)
    ]
    pending.sort(key=lambda e: (e.bustout_at is None, e.bustout_at or now))

    updated = tournament
    for entry in pending:
        updated = updated.with_entries([_mark_eliminated(updated, entry, now)])

    if flight is not None:
        updated = updated.with_flight(replace(flight, late_registration_closed=True))
    else:
        updated = replace(updated, late_registration_closed=True)
        updated = _settle_unpaid(updated, now, rounding_unit)

    updated, _ = _complete_if_finished(updated, now, rounding_unit)
    logger.info(
        "late_registration_closed",
        tournament_id=tournament.id,
        flight_id=flight_id,
        eliminated=len(pending),
    )
    return Transition(tournament=replace(updated, last_elimination=None))


def _settle_unpaid(tournament: Tournament, now: datetime, rounding_unit: int) -> Tournament:
    ladder = active_payouts(tournament, rounding_unit)
    txs = []
    for entry in tournament.entries:
        if entry.status != EntryStatus.ELIMINATED or entry.elimination_index is None:
            continue
        tx = _payout_tx(
            tournament, entry, final_rank(tournament, entry.elimination_index), ladder, now
        )
        if tx is not None:
            txs.append(tx)
    return tournament.with_transactions(*txs)


# =============================================================================
# Payout settings / deals
# =============================================================================


def update_payout_settings(tournament: Tournament, settings: PayoutSettings) -> Transition:
    return Transition(tournament=replace(tournament, payout_settings=settings))


def finalize_deal(
    tournament: Tournament,
    payouts: Iterable[DealPayout],
    rounding_unit: int = 5,
) -> Transition:
    """Record agreed deal payouts. The caller guarantees the total."""
    payouts = tuple(payouts)
    pool = sum(
        remaining_payouts(active_payouts(tournament, rounding_unit), tournament.active_count)
    )
    agreed = sum(p.amount for p in payouts)
    if agreed != pool:
        logger.warning(
            "deal_total_mismatch",
            tournament_id=tournament.id,
            agreed=agreed,
            remaining_pool=pool,
        )
    return Transition(tournament=replace(tournament, deal_payouts=payouts))
