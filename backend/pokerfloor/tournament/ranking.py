"""
Standings and season points.

순위표: 생존자(칩 순) → 탈락자(최종 순위 순).
Final rank is derived from the elimination index and the counted entrant
total; a simultaneous elimination's shared rank takes precedence for display.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .ledger import final_rank
from .models import Entry, EntryStatus, Tournament


@dataclass(frozen=True)
class StandingRow:
    """Single standings row."""

    rank: Optional[int]
    entry_id: str
    player_id: str
    chip_count: int
    status: EntryStatus
    payout: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "entry_id": self.entry_id,
            "player_id": self.player_id,
            "chip_count": self.chip_count,
            "status": self.status.value,
            "payout": self.payout,
        }


def display_rank(tournament: Tournament, entry: Entry) -> Optional[int]:
    if entry.elimination_rank is not None:
        return entry.elimination_rank
    if entry.elimination_index is None:
        return None
    return final_rank(tournament, entry.elimination_index)


def final_standings(tournament: Tournament) -> List[StandingRow]:
    """
    Current standings.

    Active entries come first, by chips (ranked 1..n while more than one
    remains), followed by eliminated entries by final rank.
    """
    active = sorted(tournament.active_entries, key=lambda e: e.chip_count, reverse=True)
    rows = [
        StandingRow(
            rank=i + 1,
            entry_id=e.id,
            player_id=e.player_id,
            chip_count=e.chip_count,
            status=e.status,
        )
        for i, e in enumerate(active)
    ]

    out = [
        e
        for e in tournament.entries
        if e.status == EntryStatus.ELIMINATED and e.elimination_index is not None
    ]
    out.sort(key=lambda e: (display_rank(tournament, e), -e.elimination_index))
    rows.extend(
        StandingRow(
            rank=display_rank(tournament, e),
            entry_id=e.id,
            player_id=e.player_id,
            chip_count=e.chip_count,
            status=e.status,
            payout=tournament.payout_for_entry(e.id),
        )
        for e in out
    )
    return rows


def calculate_points(buyin: float, total_entrants: int, rank: int) -> float:
    """
    Season points for a finish.

    (100 + log10(buy-in) * 25) * cbrt(entrants) / sqrt(rank), two decimals.
    """
    if total_entrants <= 0 or rank <= 0 or buyin < 0:
        return 0.0
    buyin_factor = math.log10(buyin or 1) * 25
    multiplier = total_entrants ** (1 / 3) / math.sqrt(rank)
    return round((100 + buyin_factor) * multiplier, 2)


def tournament_points(tournament: Tournament) -> Dict[str, float]:
    """Best points per player for a completed tournament."""
    entrants = tournament.counted_entries
    points: Dict[str, float] = {}
    for row in final_standings(tournament):
        if row.rank is None:
            continue
        value = calculate_points(tournament.buyin, entrants, row.rank)
        points[row.player_id] = max(points.get(row.player_id, 0.0), value)
    return points
