"""
Snapshot persistence boundary.

토너먼트 스냅샷을 Redis에 저장/복구 (gzip + HMAC 무결성 검사).

One record per tournament holds the full nested snapshot; player profiles
live in a separate hash and are referenced by id.
"""

import gzip
import hashlib
import hmac
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

import redis.asyncio as redis

from pokerfloor.config import Settings, get_settings
from pokerfloor.logging_config import get_logger
from pokerfloor.utils.errors import SnapshotIntegrityError
from pokerfloor.utils.json_utils import json_dumps_bytes, json_loads

from .models import (
    BlockedSeat,
    DealerSchedule,
    DealerShift,
    DealerShiftStatus,
    DealPayout,
    EliminationSnapshot,
    Entry,
    EntryStatus,
    Flight,
    FlightStatus,
    Level,
    Payout,
    PayoutMode,
    PayoutSettings,
    Player,
    PokerTable,
    ScheduleSlot,
    Tournament,
    TournamentPhase,
    TournamentStatus,
    TournamentType,
    Transaction,
    TransactionType,
    utcnow,
)

logger = get_logger(__name__)


# =============================================================================
# Codec
# =============================================================================


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _ser_entry(e: Entry) -> Dict[str, Any]:
    return {
        "id": e.id,
        "player_id": e.player_id,
        "flight_id": e.flight_id,
        "status": e.status.value,
        "chip_count": e.chip_count,
        "buyins": e.buyins,
        "addons": e.addons,
        "dealer_bonuses": e.dealer_bonuses,
        "table_id": e.table_id,
        "seat": e.seat,
        "elimination_index": e.elimination_index,
        "elimination_rank": e.elimination_rank,
        "registered_at": _dt(e.registered_at),
        "bustout_at": _dt(e.bustout_at),
    }


def _de_entry(d: Dict[str, Any]) -> Entry:
    return Entry(
        id=d["id"],
        player_id=d["player_id"],
        flight_id=d.get("flight_id"),
        status=EntryStatus(d["status"]),
        chip_count=d["chip_count"],
        buyins=d["buyins"],
        addons=d["addons"],
        dealer_bonuses=d["dealer_bonuses"],
        table_id=d.get("table_id"),
        seat=d.get("seat"),
        elimination_index=d.get("elimination_index"),
        elimination_rank=d.get("elimination_rank"),
        registered_at=_parse_dt(d["registered_at"]),
        bustout_at=_parse_dt(d.get("bustout_at")),
    )


def _ser_table(t: PokerTable) -> Dict[str, Any]:
    return {
        "id": t.id,
        "name": t.name,
        "seats": t.seats,
        "room": t.room,
        "dealer_id": t.dealer_id,
        "dealer_assigned_at": _dt(t.dealer_assigned_at),
    }


def _ser_flight(f: Flight) -> Dict[str, Any]:
    return {
        "id": f.id,
        "name": f.name,
        "status": f.status.value,
        "current_level": f.current_level,
        "clock_time_remaining": f.clock_time_remaining,
        "last_clock_start": _dt(f.last_clock_start),
        "late_registration_closed": f.late_registration_closed,
    }


def _ser_level(lv: Level) -> Dict[str, Any]:
    return {
        "level": lv.level,
        "small_blind": lv.small_blind,
        "big_blind": lv.big_blind,
        "ante": lv.ante,
        "duration_minutes": lv.duration_minutes,
        "is_break": lv.is_break,
    }


def _ser_tx(tx: Transaction) -> Dict[str, Any]:
    return {
        "id": tx.id,
        "type": tx.type.value,
        "entry_id": tx.entry_id,
        "player_id": tx.player_id,
        "amount": tx.amount,
        "timestamp": _dt(tx.timestamp),
    }


def _ser_shift(s: DealerShift) -> Dict[str, Any]:
    return {
        "dealer_id": s.dealer_id,
        "status": s.status.value,
        "shift_start": _dt(s.shift_start),
        "shift_end": _dt(s.shift_end),
        "break_start": _dt(s.break_start),
        "last_table_assigned_at": _dt(s.last_table_assigned_at),
    }


def _ser_schedule(schedule: Optional[DealerSchedule]) -> Optional[list]:
    if schedule is None:
        return None
    return [
        {"start": _dt(slot.start), "assignments": dict(slot.assignments)}
        for slot in schedule.slots
    ]


def _de_schedule(data: Optional[list]) -> Optional[DealerSchedule]:
    if data is None:
        return None
    return DealerSchedule(
        slots=tuple(
            ScheduleSlot(start=_parse_dt(s["start"]), assignments=dict(s["assignments"]))
            for s in data
        )
    )


def tournament_to_dict(t: Tournament) -> Dict[str, Any]:
    """Canonical JSON-ready form of a snapshot (undo slots included)."""
    last = t.last_elimination
    return {
        "id": t.id,
        "name": t.name,
        "type": t.type.value,
        "phase": t.phase.value,
        "status": t.status.value,
        "buyin": t.buyin,
        "starting_stack": t.starting_stack,
        "rebuys_allowed": t.rebuys_allowed,
        "addon_cost": t.addon_cost,
        "addon_chips": t.addon_chips,
        "dealer_bonus_cost": t.dealer_bonus_cost,
        "dealer_bonus_chips": t.dealer_bonus_chips,
        "levels": [_ser_level(lv) for lv in t.levels],
        "tables": [_ser_table(tb) for tb in t.tables],
        "flights": [_ser_flight(f) for f in t.flights],
        "entries": [_ser_entry(e) for e in t.entries],
        "transactions": [_ser_tx(tx) for tx in t.transactions],
        "blocked_seats": [{"table_id": b.table_id, "seat": b.seat} for b in t.blocked_seats],
        "dealer_shifts": [_ser_shift(s) for s in t.dealer_shifts],
        "dealer_schedule": _ser_schedule(t.dealer_schedule),
        "current_level": t.current_level,
        "clock_time_remaining": t.clock_time_remaining,
        "last_clock_start": _dt(t.last_clock_start),
        "scheduled_start_time": _dt(t.scheduled_start_time),
        "late_registration_closed": t.late_registration_closed,
        "payout_settings": {
            "mode": t.payout_settings.mode.value,
            "manual_payouts": [
                {"rank": p.rank, "amount": p.amount} for p in t.payout_settings.manual_payouts
            ],
        },
        "deal_payouts": [{"player_id": p.player_id, "amount": p.amount} for p in t.deal_payouts],
        "pre_merge_snapshot": (
            tournament_to_dict(t.pre_merge_snapshot) if t.pre_merge_snapshot else None
        ),
        "pre_day2_draw_entries": (
            [_ser_entry(e) for e in t.pre_day2_draw_entries]
            if t.pre_day2_draw_entries is not None
            else None
        ),
        "last_elimination": (
            {
                "entry": _ser_entry(last.entry),
                "winner": _ser_entry(last.winner) if last.winner else None,
                "taken_at": _dt(last.taken_at),
            }
            if last
            else None
        ),
    }


def tournament_from_dict(d: Dict[str, Any]) -> Tournament:
    last = d.get("last_elimination")
    draw = d.get("pre_day2_draw_entries")
    payout_settings = d.get("payout_settings") or {}
    return Tournament(
        id=d["id"],
        name=d["name"],
        type=TournamentType(d["type"]),
        phase=TournamentPhase(d["phase"]),
        status=TournamentStatus(d["status"]),
        buyin=d["buyin"],
        starting_stack=d["starting_stack"],
        rebuys_allowed=d["rebuys_allowed"],
        addon_cost=d["addon_cost"],
        addon_chips=d["addon_chips"],
        dealer_bonus_cost=d["dealer_bonus_cost"],
        dealer_bonus_chips=d["dealer_bonus_chips"],
        levels=tuple(Level(**lv) for lv in d["levels"]),
        tables=tuple(
            PokerTable(
                id=tb["id"],
                name=tb["name"],
                seats=tb["seats"],
                room=tb["room"],
                dealer_id=tb.get("dealer_id"),
                dealer_assigned_at=_parse_dt(tb.get("dealer_assigned_at")),
            )
            for tb in d["tables"]
        ),
        flights=tuple(
            Flight(
                id=f["id"],
                name=f["name"],
                status=FlightStatus(f["status"]),
                current_level=f["current_level"],
                clock_time_remaining=f["clock_time_remaining"],
                last_clock_start=_parse_dt(f.get("last_clock_start")),
                late_registration_closed=f["late_registration_closed"],
            )
            for f in d["flights"]
        ),
        entries=tuple(_de_entry(e) for e in d["entries"]),
        transactions=tuple(
            Transaction(
                id=tx["id"],
                type=TransactionType(tx["type"]),
                entry_id=tx["entry_id"],
                player_id=tx["player_id"],
                amount=tx["amount"],
                timestamp=_parse_dt(tx["timestamp"]),
            )
            for tx in d["transactions"]
        ),
        blocked_seats=tuple(BlockedSeat(**b) for b in d["blocked_seats"]),
        dealer_shifts=tuple(
            DealerShift(
                dealer_id=s["dealer_id"],
                status=DealerShiftStatus(s["status"]),
                shift_start=_parse_dt(s.get("shift_start")),
                shift_end=_parse_dt(s.get("shift_end")),
                break_start=_parse_dt(s.get("break_start")),
                last_table_assigned_at=_parse_dt(s.get("last_table_assigned_at")),
            )
            for s in d["dealer_shifts"]
        ),
        dealer_schedule=_de_schedule(d.get("dealer_schedule")),
        current_level=d["current_level"],
        clock_time_remaining=d["clock_time_remaining"],
        last_clock_start=_parse_dt(d.get("last_clock_start")),
        scheduled_start_time=_parse_dt(d.get("scheduled_start_time")),
        late_registration_closed=d["late_registration_closed"],
        payout_settings=PayoutSettings(
            mode=PayoutMode(payout_settings.get("mode", PayoutMode.AUTO.value)),
            manual_payouts=tuple(Payout(**p) for p in payout_settings.get("manual_payouts", [])),
        ),
        deal_payouts=tuple(DealPayout(**p) for p in d.get("deal_payouts", [])),
        pre_merge_snapshot=(
            tournament_from_dict(d["pre_merge_snapshot"]) if d.get("pre_merge_snapshot") else None
        ),
        pre_day2_draw_entries=tuple(_de_entry(e) for e in draw) if draw is not None else None,
        last_elimination=(
            EliminationSnapshot(
                entry=_de_entry(last["entry"]),
                winner=_de_entry(last["winner"]) if last.get("winner") else None,
                taken_at=_parse_dt(last["taken_at"]),
            )
            if last
            else None
        ),
    )


def player_to_dict(p: Player) -> Dict[str, Any]:
    return {
        "id": p.id,
        "nickname": p.nickname,
        "first_name": p.first_name,
        "last_name": p.last_name,
        "created_at": _dt(p.created_at),
    }


def player_from_dict(d: Dict[str, Any]) -> Player:
    return Player(
        id=d["id"],
        nickname=d["nickname"],
        first_name=d.get("first_name", ""),
        last_name=d.get("last_name", ""),
        created_at=_parse_dt(d["created_at"]),
    )


# =============================================================================
# Store
# =============================================================================


@dataclass
class SnapshotMetadata:
    tournament_id: str = ""
    saved_at: datetime = field(default_factory=utcnow)
    active_players: int = 0
    size_bytes: int = 0
    checksum: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tournament_id": self.tournament_id,
            "saved_at": self.saved_at.isoformat(),
            "active_players": self.active_players,
            "size_bytes": self.size_bytes,
            "checksum": self.checksum,
        }


def _field(record: Dict[Any, Any], name: str) -> Any:
    if name in record:
        return record[name]
    return record.get(name.encode())


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else value


class SnapshotStore:
    """Tournament snapshot store backed by Redis."""

    KEY_PREFIX = "tournament:snapshot"
    PLAYERS_KEY = "tournament:players"

    def __init__(
        self,
        redis_client: redis.Redis,
        hmac_key: str,
        key_prefix: Optional[str] = None,
    ):
        self.redis = redis_client
        self._hmac_key = hmac_key.encode()
        self.key_prefix = key_prefix or self.KEY_PREFIX

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        redis_client: Optional[redis.Redis] = None,
    ) -> "SnapshotStore":
        """Build a store from settings, connecting to ``redis_url`` unless a client is given."""
        settings = settings or get_settings()
        if redis_client is None:
            redis_client = redis.from_url(settings.redis_url)
        return cls(
            redis_client,
            hmac_key=settings.snapshot_hmac_key,
            key_prefix=settings.snapshot_key_prefix,
        )

    def _key(self, tid: str) -> str:
        return f"{self.key_prefix}:{tid}"

    def _compute_checksum(self, data: bytes) -> str:
        return hmac.new(self._hmac_key, data, hashlib.sha256).hexdigest()

    async def save(
        self,
        tournament: Tournament,
        players: Iterable[Player] = (),
    ) -> SnapshotMetadata:
        """Persist the tournament record and upsert the given player profiles."""
        compressed = gzip.compress(json_dumps_bytes(tournament_to_dict(tournament)))
        checksum = self._compute_checksum(compressed)
        metadata = SnapshotMetadata(
            tournament_id=tournament.id,
            active_players=tournament.active_count,
            size_bytes=len(compressed),
            checksum=checksum,
        )

        await self.redis.hset(
            self._key(tournament.id),
            mapping={
                "data": compressed,
                "checksum": checksum,
                "saved_at": metadata.saved_at.isoformat(),
            },
        )

        profiles = {p.id: json_dumps_bytes(player_to_dict(p)) for p in players}
        if profiles:
            await self.redis.hset(self.PLAYERS_KEY, mapping=profiles)

        logger.info(
            "snapshot_saved",
            tournament_id=tournament.id,
            size_bytes=metadata.size_bytes,
            players=len(profiles),
        )
        return metadata

    async def load(self, tid: str) -> Optional[Tournament]:
        """
        Load the latest snapshot.

        Raises:
            SnapshotIntegrityError: stored checksum does not match the data
        """
        record = await self.redis.hgetall(self._key(tid))
        if not record:
            return None

        data = _field(record, "data")
        checksum = _text(_field(record, "checksum")) or ""
        if data is None or not hmac.compare_digest(self._compute_checksum(data), checksum):
            logger.error("snapshot_checksum_mismatch", tournament_id=tid)
            raise SnapshotIntegrityError(tid)

        tournament = tournament_from_dict(json_loads(gzip.decompress(data)))
        logger.debug("snapshot_loaded", tournament_id=tid, saved_at=_text(_field(record, "saved_at")))
        return tournament

    async def load_players(self) -> Tuple[Player, ...]:
        raw = await self.redis.hgetall(self.PLAYERS_KEY)
        return tuple(player_from_dict(json_loads(value)) for value in raw.values())

    async def delete(self, tid: str) -> None:
        await self.redis.delete(self._key(tid))
