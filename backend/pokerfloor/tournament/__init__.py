"""
Tournament floor state engine.

This package provides:
- Immutable tournament snapshots and the action set that transforms them
- Seat allocation, table breaks and rebalancing
- Elimination ledger, payout ladders and ICM deal proposals
- Multi-flight merge and Day 2 seat draw
- Dealer rotation schedules and the level clock
- Redis snapshot persistence
"""

from .actions import Action, parse_action
from .engine import ActionResult, TournamentEngine
from .icm import DealMethod, IcmCalculator, propose_deal
from .models import (
    Entry,
    EntryStatus,
    Flight,
    FlightStatus,
    Level,
    MoveSlip,
    Player,
    PokerTable,
    Tournament,
    TournamentPhase,
    TournamentStatus,
    TournamentType,
    Transition,
)
from .payouts import calculate_payouts
from .ranking import calculate_points, final_standings
from .snapshot import SnapshotStore

__all__ = [
    "Action",
    "parse_action",
    "ActionResult",
    "TournamentEngine",
    "DealMethod",
    "IcmCalculator",
    "propose_deal",
    "Entry",
    "EntryStatus",
    "Flight",
    "FlightStatus",
    "Level",
    "MoveSlip",
    "Player",
    "PokerTable",
    "Tournament",
    "TournamentPhase",
    "TournamentStatus",
    "TournamentType",
    "Transition",
    "calculate_payouts",
    "calculate_points",
    "final_standings",
    "SnapshotStore",
]
