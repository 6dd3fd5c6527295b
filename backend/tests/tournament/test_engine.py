"""
Tournament Engine Tests.

액션 파싱과 엔진 디스패치: 결과 스냅샷, 실패 신호, 슬립/티켓.
"""

import pytest
from pydantic import ValidationError
from structlog.testing import capture_logs

from pokerfloor.config import Settings
from pokerfloor.tournament.actions import (
    BreakTable,
    EliminatePlayer,
    GenerateDealerSchedule,
    PerformDealerRotation,
    RegisterPlayer,
    parse_action,
)
from pokerfloor.tournament.engine import TournamentEngine
from pokerfloor.tournament.models import (
    EntryStatus,
    FlightStatus,
    TournamentType,
    TransactionType,
)
from pokerfloor.utils.errors import ErrorCode, InvalidActionError, TournamentError

from factories import T0, make_flights, make_tournament, manual_ladder


# =============================================================================
# Action parsing
# =============================================================================


class TestParseAction:
    def test_camel_case_payload(self):
        action = parse_action(
            {"type": "register_player", "nickname": "Alice", "printTicket": True}
        )

        assert isinstance(action, RegisterPlayer)
        assert action.print_ticket is True

    def test_snake_case_payload(self):
        action = parse_action({"type": "eliminate_player", "entry_id": "e-1"})

        assert action == EliminatePlayer(entry_id="e-1")

    def test_unknown_type(self):
        with pytest.raises(InvalidActionError) as exc_info:
            parse_action({"type": "shuffle_up_and_deal"})

        assert exc_info.value.code == ErrorCode.INVALID_PAYLOAD

    def test_register_needs_identity(self):
        with pytest.raises(InvalidActionError):
            parse_action({"type": "register_player"})

    def test_extra_fields_rejected(self):
        with pytest.raises(InvalidActionError):
            parse_action({"type": "undo_merge", "force": True})

    def test_nested_payloads(self):
        action = parse_action(
            {
                "type": "break_table",
                "tableId": 3,
                "assignments": [{"entryId": "e-1", "tableId": 1, "seat": 4}],
            }
        )

        assert action.assignments[0].seat == 4

    def test_actions_are_immutable(self):
        action = EliminatePlayer(entry_id="e-1")

        with pytest.raises(ValidationError):
            action.entry_id = "e-2"


# =============================================================================
# Engine dispatch
# =============================================================================


class TestEngineApply:
    def test_register_with_ticket(self, engine):
        t = make_tournament(players=0, tables=2)

        result = engine.apply(t, RegisterPlayer(nickname="Alice", print_ticket=True), now=T0)

        assert result.ok
        assert len(result.players) == 1
        assert result.ticket_entry_id == result.tournament.entries[0].id
        assert result.tournament.entries[0].registered_at == T0

    def test_rejection_leaves_snapshot(self, engine):
        t = make_tournament(players=2, tables=1)

        result = engine.apply(t, parse_action({"type": "eliminate_player", "entryId": "nope"}))

        assert not result.ok
        assert result.tournament is t
        assert result.error.to_dict()["errorCode"] == "ENTRY_NOT_FOUND"
        with pytest.raises(TournamentError):
            result.raise_for_error()

    def test_rejection_is_logged(self, engine):
        t = make_tournament(players=5, tables=1)

        with capture_logs() as logs:
            engine.apply(
                t, parse_action({"type": "simultaneous_elimination", "entryIds": ["e-1"]})
            )

        rejected = [log for log in logs if log["event"] == "action_rejected"]
        assert rejected[0]["error_code"] == ErrorCode.NOT_ENOUGH_ENTRIES

    def test_eliminate_twice_pays_once(self, engine):
        t = make_tournament(players=2, tables=1)
        action = EliminatePlayer(entry_id="e-2")

        once = engine.apply(t, action, now=T0).tournament
        twice = engine.apply(once, action, now=T0).tournament

        assert twice.get_entry("e-2").elimination_index == 1
        assert sum(1 for tx in twice.transactions if tx.type == TransactionType.PAYOUT) == 1

    def test_break_table_slips_only_when_requested(self, engine):
        t = make_tournament(players=6, tables=3)

        silent = engine.apply(t, BreakTable(table_id=3), now=T0)
        printed = engine.apply(t, BreakTable(table_id=3, print_slips=True), now=T0)

        assert silent.move_slips == ()
        assert len(printed.move_slips) == 2

    def test_add_table_uses_default_seats(self):
        engine = TournamentEngine(settings=Settings(default_table_seats=6))

        result = engine.apply(make_tournament(), parse_action({"type": "add_table"}))

        assert result.tournament.tables[0].seats == 6

    def test_dealer_schedule_failure(self, engine):
        t = make_tournament(tables=3)
        action = GenerateDealerSchedule(
            dealer_ids=("d-1", "d-2", "d-3"), start=T0, duration_hours=2, granularity=20
        )

        result = engine.apply(t, action)

        assert result.error.code == ErrorCode.DEALER_POOL_INSUFFICIENT
        assert result.tournament is t

    def test_rotation_follows_schedule(self, engine):
        t = make_tournament(tables=2)
        action = GenerateDealerSchedule(
            dealer_ids=("d-1", "d-2", "d-3"), start=T0, duration_hours=2, granularity=20
        )
        t = engine.apply(t, action).tournament

        rotated = engine.apply(t, PerformDealerRotation(), now=T0).tournament

        assert [tb.dealer_id for tb in rotated.tables] == ["d-1", "d-2"]

    def test_flight_workflow(self, engine):
        t = make_tournament(
            tables=2,
            type=TournamentType.MULTI_FLIGHT,
            flights=make_flights("f-a", "f-b"),
        )
        players = ()
        for flight_id in ("f-a", "f-b"):
            t = engine.apply(
                t,
                parse_action(
                    {"type": "update_flight_status", "flightId": flight_id, "status": "running"}
                ),
            ).tournament
            for nickname in ("Ann", "Ben"):
                result = engine.apply(
                    t, RegisterPlayer(flight_id=flight_id, nickname=nickname), players
                )
                t, players = result.tournament, result.players
            t = engine.apply(
                t,
                parse_action(
                    {"type": "update_flight_status", "flightId": flight_id, "status": "completed"}
                ),
            ).tournament

        assert t.get_flight("f-b").status == FlightStatus.COMPLETED
        assert len(players) == 2

        merged = engine.apply(t, parse_action({"type": "perform_merge"})).tournament
        drawn = engine.apply(merged, parse_action({"type": "generate_day2_seat_draw"}))

        assert sum(1 for e in merged.entries if e.status == EntryStatus.MERGE_DISCARDED) == 2
        assert drawn.ok
        assert all(e.is_seated for e in drawn.tournament.active_entries)

    def test_same_seed_same_seats(self, settings):
        t = make_tournament(players=0, tables=4)

        first = TournamentEngine(settings=settings).apply(t, RegisterPlayer(nickname="A"))
        second = TournamentEngine(settings=settings).apply(t, RegisterPlayer(nickname="A"))

        a, b = first.tournament.entries[0], second.tournament.entries[0]
        assert (a.table_id, a.seat) == (b.table_id, b.seat)

    def test_deal_proposal_uses_configured_rounding(self, engine):
        t = make_tournament(
            players=2,
            chips=[10000, 30000],
            payout_settings=manual_ladder([700, 300]),
        )

        proposal = engine.propose_deal(t)

        assert [(p.player_id, p.amount) for p in proposal.payouts] == [("p-2", 600), ("p-1", 400)]
        assert engine.propose_deal(t) == proposal
