"""
Tournament Engine.

디렉터 액션 하나를 현재 스냅샷에 적용하여 새 스냅샷을 반환.

- Single writer: the host applies one action at a time.
- Nothing is mutated; every result carries a fresh Tournament.
- Expected failures come back in ``ActionResult.error`` with the input
  snapshot untouched.
"""

import random
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Sequence, Tuple, assert_never

from pokerfloor.config import Settings, get_settings
from pokerfloor.logging_config import get_logger, tournament_context
from pokerfloor.utils.errors import DealerPoolError, TournamentError

from . import balancer, clock, dealers, flights, icm, ledger
from .actions import (
    Action,
    AddTable,
    AdvanceClock,
    AssignDealerToTable,
    AssignDealerToTournament,
    AssignSeat,
    BlockSeat,
    BreakTable,
    BulkUpdateChipCounts,
    CloseLateRegistration,
    DeleteTable,
    EliminatePendingPlayer,
    EliminatePlayer,
    EndDealerShift,
    FinalizeDeal,
    GenerateDay2SeatDraw,
    GenerateDealerSchedule,
    MovePlayer,
    NextLevel,
    PerformDealerRotation,
    PerformMerge,
    PlayerAddon,
    PlayerRebuy,
    PreviousLevel,
    RebalanceTables,
    RegisterPlayer,
    SetClockTime,
    SetReEntryPending,
    SetScheduledStartTime,
    SimultaneousElimination,
    StartAllDealers,
    StartDealerService,
    ToggleClock,
    ToggleDealerBreak,
    UnassignDealer,
    UnblockSeat,
    UndoDay2SeatDraw,
    UndoLastElimination,
    UndoMerge,
    UpdateChipCount,
    UpdateFlightStatus,
    UpdateLevelStructure,
    UpdatePayoutSettings,
    UpdateTable,
)
from .models import (
    DealPayout,
    Level,
    MoveSlip,
    Payout,
    PayoutSettings,
    Player,
    PokerTable,
    SeatAssignment,
    Tournament,
    Transition,
    utcnow,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class ActionResult:
    """Outcome of applying one action."""

    tournament: Tournament
    players: Tuple[Player, ...] = ()
    error: Optional[TournamentError] = None
    move_slips: Tuple[MoveSlip, ...] = ()
    # 티켓 출력 대상 엔트리 (등록/리바이)
    ticket_entry_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> "ActionResult":
        if self.error is not None:
            raise self.error
        return self


class TournamentEngine:
    """
    Applies director actions to tournament snapshots.

    Usage:
        engine = TournamentEngine()
        result = engine.apply(tournament, parse_action(payload), players)
        if result.ok:
            await store.save(result.tournament, result.players)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings()
        self.rng = rng or random.Random(self.settings.random_seed)

    @property
    def _unit(self) -> int:
        return self.settings.payout_rounding_unit

    def propose_deal(
        self,
        tournament: Tournament,
        method: icm.DealMethod = icm.DealMethod.ICM,
    ) -> icm.DealProposal:
        """Deal proposal for the remaining players (read-only, rounded per settings)."""
        return icm.propose_deal(
            tournament,
            method,
            rounding_unit=self.settings.deal_rounding_unit,
            payout_rounding_unit=self._unit,
        )

    def apply(
        self,
        tournament: Tournament,
        action: Action,
        players: Sequence[Player] = (),
        now: Optional[datetime] = None,
    ) -> ActionResult:
        with tournament_context(tournament.id, action=action.type):
            result = self._dispatch(tournament, action, tuple(players), now or utcnow())

            if result.error is not None:
                logger.warning(
                    "action_rejected",
                    error_code=result.error.code,
                    error=result.error.message,
                )
            else:
                logger.debug("action_applied", slips=len(result.move_slips))
        return result

    def _dispatch(
        self,
        tournament: Tournament,
        action: Action,
        players: Tuple[Player, ...],
        now: datetime,
    ) -> ActionResult:
        ticket: Optional[str] = None

        match action:
            case RegisterPlayer():
                registration = ledger.register_player(
                    tournament,
                    players,
                    flight_id=action.flight_id,
                    nickname=action.nickname,
                    player_id=action.player_id,
                    add_dealer_bonus=action.add_dealer_bonus,
                    now=now,
                    rng=self.rng,
                )
                result = registration.transition
                players = registration.players
                if action.print_ticket and result.ok:
                    ticket = registration.entry_id
            case PlayerRebuy():
                result = ledger.rebuy(
                    tournament, action.entry_id, action.add_dealer_bonus, now, self.rng
                )
                if action.print_ticket and result.ok:
                    ticket = action.entry_id
            case PlayerAddon():
                result = ledger.addon(tournament, action.entry_id, now)
            case UpdateChipCount():
                result = ledger.update_chip_counts(
                    tournament, {action.entry_id: action.chip_count}
                )
            case BulkUpdateChipCounts():
                result = ledger.update_chip_counts(
                    tournament, {u.entry_id: u.chip_count for u in action.updates}
                )
            case EliminatePlayer():
                result = ledger.eliminate_player(tournament, action.entry_id, now, self._unit)
            case SetReEntryPending():
                result = ledger.set_reentry_pending(tournament, action.entry_id, now)
            case EliminatePendingPlayer():
                result = ledger.eliminate_pending_player(
                    tournament, action.entry_id, now, self._unit
                )
            case SimultaneousElimination():
                result = ledger.simultaneous_elimination(
                    tournament, action.entry_ids, now, self._unit
                )
            case UndoLastElimination():
                result = ledger.undo_last_elimination(tournament)
            case CloseLateRegistration():
                result = ledger.close_late_registration(
                    tournament, action.flight_id, now, self._unit
                )
            case FinalizeDeal():
                result = ledger.finalize_deal(
                    tournament,
                    [DealPayout(player_id=p.player_id, amount=p.amount) for p in action.payouts],
                    self._unit,
                )
            case UpdatePayoutSettings():
                result = ledger.update_payout_settings(
                    tournament,
                    PayoutSettings(
                        mode=action.mode,
                        manual_payouts=tuple(
                            Payout(rank=p.rank, amount=p.amount) for p in action.manual_payouts
                        ),
                    ),
                )
            case AssignSeat():
                result = balancer.seat_entry(tournament, action.entry_id, self.rng)
            case MovePlayer():
                result = balancer.move_player(
                    tournament, action.entry_id, action.table_id, action.seat
                )
            case BreakTable():
                assignments = None
                if action.assignments is not None:
                    assignments = [
                        SeatAssignment(entry_id=a.entry_id, table_id=a.table_id, seat=a.seat)
                        for a in action.assignments
                    ]
                result = balancer.break_table(
                    tournament, action.table_id, assignments, self.rng
                )
                if not action.print_slips:
                    result = replace(result, move_slips=())
            case RebalanceTables():
                result = balancer.rebalance_all(tournament, self.rng)
            case AddTable():
                result = balancer.add_table(
                    tournament,
                    name=action.name,
                    seats=action.seats or self.settings.default_table_seats,
                    room=action.room,
                )
            case UpdateTable():
                existing = tournament.get_table(action.table.id)
                result = balancer.update_table(
                    tournament,
                    PokerTable(
                        id=action.table.id,
                        name=action.table.name,
                        seats=action.table.seats,
                        room=action.table.room,
                        dealer_id=action.table.dealer_id,
                        dealer_assigned_at=existing.dealer_assigned_at if existing else None,
                    ),
                )
            case DeleteTable():
                result = balancer.delete_table(tournament, action.table_id)
            case BlockSeat():
                result = balancer.block_seat(tournament, action.table_id, action.seat)
            case UnblockSeat():
                result = balancer.unblock_seat(tournament, action.table_id, action.seat)
            case UpdateFlightStatus():
                result = flights.update_flight_status(
                    tournament, action.flight_id, action.status
                )
            case PerformMerge():
                result = flights.perform_merge(tournament, self.rng)
            case UndoMerge():
                result = flights.undo_merge(tournament)
            case GenerateDay2SeatDraw():
                result = flights.generate_day2_seat_draw(tournament, self.rng)
            case UndoDay2SeatDraw():
                result = flights.undo_day2_seat_draw(tournament)
            case AssignDealerToTournament():
                result = dealers.assign_dealer(tournament, action.dealer_id)
            case UnassignDealer():
                result = dealers.unassign_dealer(tournament, action.dealer_id)
            case StartDealerService():
                result = dealers.start_dealer_service(tournament, action.dealer_id, now)
            case StartAllDealers():
                result = dealers.start_all_dealers(tournament, now)
            case EndDealerShift():
                result = dealers.end_dealer_shift(tournament, action.dealer_id, now)
            case ToggleDealerBreak():
                result = dealers.toggle_dealer_break(tournament, action.dealer_id, now)
            case AssignDealerToTable():
                result = dealers.assign_dealer_to_table(
                    tournament, action.table_id, action.dealer_id, now
                )
            case PerformDealerRotation():
                pairs = [(a.table_id, a.dealer_id) for a in action.assignments]
                if not pairs:
                    pairs = dealers.scheduled_rotation(tournament, now)
                result = dealers.perform_dealer_rotation(tournament, pairs, now)
            case GenerateDealerSchedule():
                result = self._generate_dealer_schedule(tournament, action)
            case ToggleClock():
                result = clock.toggle_clock(tournament, action.running, now)
            case SetClockTime():
                result = clock.set_clock_time(tournament, action.seconds, now)
            case NextLevel():
                result = clock.next_level(tournament, now)
            case PreviousLevel():
                result = clock.previous_level(tournament, now)
            case AdvanceClock():
                result = clock.advance_clock(tournament, now)
            case UpdateLevelStructure():
                result = clock.update_level_structure(
                    tournament,
                    [
                        Level(
                            level=lv.level,
                            small_blind=lv.small_blind,
                            big_blind=lv.big_blind,
                            ante=lv.ante,
                            duration_minutes=lv.duration_minutes,
                            is_break=lv.is_break,
                        )
                        for lv in action.levels
                    ],
                )
            case SetScheduledStartTime():
                result = clock.set_scheduled_start(tournament, action.time)
            case _:
                assert_never(action)

        return ActionResult(
            tournament=result.tournament,
            players=players,
            error=result.error,
            move_slips=result.move_slips,
            ticket_entry_id=ticket,
        )

    def _generate_dealer_schedule(
        self,
        tournament: Tournament,
        action: GenerateDealerSchedule,
    ) -> Transition:
        schedule = dealers.generate_dealer_schedule(
            tournament.tables,
            action.dealer_ids,
            start=action.start,
            duration_hours=action.duration_hours,
            granularity_minutes=action.granularity,
            swap_minutes=self.settings.dealer_block_swap_minutes,
            sizes=self.settings.dealer_block_sizes,
        )
        if schedule is None:
            return Transition.rejected(
                tournament,
                DealerPoolError(tables=len(tournament.tables), dealers=len(action.dealer_ids)),
            )
        return dealers.set_dealer_schedule(tournament, schedule)
