"""
Director actions.

A closed set of validated payloads, one model per action, discriminated by
``type``. The sync/UI layer hands raw dicts to ``parse_action``; the engine
matches on the model class.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from pokerfloor.utils.errors import ErrorCode, InvalidActionError

from .models import FlightStatus, PayoutMode


class ActionBase(BaseModel):
    """Base for all actions: immutable, camelCase aliases accepted."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
        extra="forbid",
    )


class PayloadBase(ActionBase):
    pass


# =============================================================================
# Nested payloads
# =============================================================================


class SeatAssignmentIn(PayloadBase):
    entry_id: str
    table_id: int
    seat: int = Field(..., ge=1)


class DealPayoutIn(PayloadBase):
    player_id: str
    amount: int = Field(..., ge=0)


class PayoutIn(PayloadBase):
    rank: int = Field(..., ge=1)
    amount: int = Field(..., ge=0)


class LevelIn(PayloadBase):
    level: int = Field(..., ge=1)
    small_blind: int = Field(..., ge=0)
    big_blind: int = Field(..., ge=0)
    ante: int = Field(default=0, ge=0)
    duration_minutes: int = Field(..., ge=1)
    is_break: bool = False


class TableIn(PayloadBase):
    id: int
    name: str = ""
    seats: int = Field(default=9, ge=1, le=12)
    room: str = ""
    dealer_id: Optional[str] = None


class ChipUpdateIn(PayloadBase):
    entry_id: str
    chip_count: int = Field(..., ge=0)


class DealerAssignmentIn(PayloadBase):
    table_id: int
    dealer_id: Optional[str] = None


# =============================================================================
# Player actions
# =============================================================================


class RegisterPlayer(ActionBase):
    type: Literal["register_player"] = "register_player"
    flight_id: Optional[str] = None
    nickname: Optional[str] = None
    player_id: Optional[str] = None
    add_dealer_bonus: bool = False
    print_ticket: bool = False

    @model_validator(mode="after")
    def check_identity(self) -> "RegisterPlayer":
        if not self.nickname and not self.player_id:
            raise ValueError("nickname or playerId is required")
        return self


class PlayerRebuy(ActionBase):
    type: Literal["player_rebuy"] = "player_rebuy"
    entry_id: str
    add_dealer_bonus: bool = False
    print_ticket: bool = False


class PlayerAddon(ActionBase):
    type: Literal["player_addon"] = "player_addon"
    entry_id: str


class UpdateChipCount(ActionBase):
    type: Literal["update_chip_count"] = "update_chip_count"
    entry_id: str
    chip_count: int = Field(..., ge=0)


class BulkUpdateChipCounts(ActionBase):
    type: Literal["bulk_update_chip_counts"] = "bulk_update_chip_counts"
    updates: tuple[ChipUpdateIn, ...]


class EliminatePlayer(ActionBase):
    type: Literal["eliminate_player"] = "eliminate_player"
    entry_id: str


class SetReEntryPending(ActionBase):
    type: Literal["set_reentry_pending"] = "set_reentry_pending"
    entry_id: str


class EliminatePendingPlayer(ActionBase):
    type: Literal["eliminate_pending_player"] = "eliminate_pending_player"
    entry_id: str


class SimultaneousElimination(ActionBase):
    type: Literal["simultaneous_elimination"] = "simultaneous_elimination"
    # 2개 미만은 엔진에서 거부 (실패 신호로 반환)
    entry_ids: tuple[str, ...]


class UndoLastElimination(ActionBase):
    type: Literal["undo_last_elimination"] = "undo_last_elimination"


class CloseLateRegistration(ActionBase):
    type: Literal["close_late_registration"] = "close_late_registration"
    flight_id: Optional[str] = None


class FinalizeDeal(ActionBase):
    type: Literal["finalize_deal"] = "finalize_deal"
    payouts: tuple[DealPayoutIn, ...]


class UpdatePayoutSettings(ActionBase):
    type: Literal["update_payout_settings"] = "update_payout_settings"
    mode: PayoutMode = PayoutMode.AUTO
    manual_payouts: tuple[PayoutIn, ...] = ()


# =============================================================================
# Seating / tables
# =============================================================================


class AssignSeat(ActionBase):
    type: Literal["assign_seat"] = "assign_seat"
    entry_id: str


class MovePlayer(ActionBase):
    type: Literal["move_player"] = "move_player"
    entry_id: str
    table_id: int
    seat: int = Field(..., ge=1)


class BreakTable(ActionBase):
    type: Literal["break_table"] = "break_table"
    table_id: int
    # None이면 엔진이 직접 배치 계획 생성
    assignments: Optional[tuple[SeatAssignmentIn, ...]] = None
    print_slips: bool = False


class RebalanceTables(ActionBase):
    type: Literal["rebalance_tables"] = "rebalance_tables"


class AddTable(ActionBase):
    type: Literal["add_table"] = "add_table"
    name: Optional[str] = None
    seats: Optional[int] = Field(default=None, ge=1, le=12)
    room: str = ""


class UpdateTable(ActionBase):
    type: Literal["update_table"] = "update_table"
    table: TableIn


class DeleteTable(ActionBase):
    type: Literal["delete_table"] = "delete_table"
    table_id: int


class BlockSeat(ActionBase):
    type: Literal["block_seat"] = "block_seat"
    table_id: int
    seat: int = Field(..., ge=1)


class UnblockSeat(ActionBase):
    type: Literal["unblock_seat"] = "unblock_seat"
    table_id: int
    seat: int = Field(..., ge=1)


# =============================================================================
# Flights
# =============================================================================


class UpdateFlightStatus(ActionBase):
    type: Literal["update_flight_status"] = "update_flight_status"
    flight_id: str
    status: FlightStatus


class PerformMerge(ActionBase):
    type: Literal["perform_merge"] = "perform_merge"


class UndoMerge(ActionBase):
    type: Literal["undo_merge"] = "undo_merge"


class GenerateDay2SeatDraw(ActionBase):
    type: Literal["generate_day2_seat_draw"] = "generate_day2_seat_draw"


class UndoDay2SeatDraw(ActionBase):
    type: Literal["undo_day2_seat_draw"] = "undo_day2_seat_draw"


# =============================================================================
# Dealers
# =============================================================================


class AssignDealerToTournament(ActionBase):
    type: Literal["assign_dealer_to_tournament"] = "assign_dealer_to_tournament"
    dealer_id: str


class UnassignDealer(ActionBase):
    type: Literal["unassign_dealer"] = "unassign_dealer"
    dealer_id: str


class StartDealerService(ActionBase):
    type: Literal["start_dealer_service"] = "start_dealer_service"
    dealer_id: str


class StartAllDealers(ActionBase):
    type: Literal["start_all_dealers"] = "start_all_dealers"


class EndDealerShift(ActionBase):
    type: Literal["end_dealer_shift"] = "end_dealer_shift"
    dealer_id: str


class ToggleDealerBreak(ActionBase):
    type: Literal["toggle_dealer_break"] = "toggle_dealer_break"
    dealer_id: str


class AssignDealerToTable(ActionBase):
    type: Literal["assign_dealer_to_table"] = "assign_dealer_to_table"
    table_id: int
    dealer_id: Optional[str] = None


class PerformDealerRotation(ActionBase):
    type: Literal["perform_dealer_rotation"] = "perform_dealer_rotation"
    # 비어 있으면 현재 시각의 스케줄 슬롯을 적용
    assignments: tuple[DealerAssignmentIn, ...] = ()


class GenerateDealerSchedule(ActionBase):
    type: Literal["generate_dealer_schedule"] = "generate_dealer_schedule"
    dealer_ids: tuple[str, ...]
    start: datetime
    duration_hours: float = Field(..., gt=0)
    granularity: int = Field(..., ge=1, description="Slot length in minutes")


# =============================================================================
# Clock
# =============================================================================


class ToggleClock(ActionBase):
    type: Literal["toggle_clock"] = "toggle_clock"
    running: bool


class SetClockTime(ActionBase):
    type: Literal["set_clock_time"] = "set_clock_time"
    seconds: int = Field(..., ge=0)


class NextLevel(ActionBase):
    type: Literal["next_level"] = "next_level"


class PreviousLevel(ActionBase):
    type: Literal["previous_level"] = "previous_level"


class AdvanceClock(ActionBase):
    type: Literal["advance_clock"] = "advance_clock"


class UpdateLevelStructure(ActionBase):
    type: Literal["update_level_structure"] = "update_level_structure"
    levels: tuple[LevelIn, ...]


class SetScheduledStartTime(ActionBase):
    type: Literal["set_scheduled_start_time"] = "set_scheduled_start_time"
    time: Optional[datetime] = None


Action = Annotated[
    Union[
        RegisterPlayer,
        PlayerRebuy,
        PlayerAddon,
        UpdateChipCount,
        BulkUpdateChipCounts,
        EliminatePlayer,
        SetReEntryPending,
        EliminatePendingPlayer,
        SimultaneousElimination,
        UndoLastElimination,
        CloseLateRegistration,
        FinalizeDeal,
        UpdatePayoutSettings,
        AssignSeat,
        MovePlayer,
        BreakTable,
        RebalanceTables,
        AddTable,
        UpdateTable,
        DeleteTable,
        BlockSeat,
        UnblockSeat,
        UpdateFlightStatus,
        PerformMerge,
        UndoMerge,
        GenerateDay2SeatDraw,
        UndoDay2SeatDraw,
        AssignDealerToTournament,
        UnassignDealer,
        StartDealerService,
        StartAllDealers,
        EndDealerShift,
        ToggleDealerBreak,
        AssignDealerToTable,
        PerformDealerRotation,
        GenerateDealerSchedule,
        ToggleClock,
        SetClockTime,
        NextLevel,
        PreviousLevel,
        AdvanceClock,
        UpdateLevelStructure,
        SetScheduledStartTime,
    ],
    Field(discriminator="type"),
]

_action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


def parse_action(data: dict[str, Any]) -> Action:
    """
    Validate a raw action payload.

    Raises:
        InvalidActionError: unknown ``type`` or malformed payload
    """
    try:
        return _action_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidActionError(
            "Invalid action payload",
            details={"errors": e.errors(include_url=False, include_context=False)},
            code=ErrorCode.INVALID_PAYLOAD,
        ) from e
