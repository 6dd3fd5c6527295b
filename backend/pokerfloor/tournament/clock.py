"""
Tournament Clock.

블라인드 레벨 진행과 일시정지/재개 시간 계산.

남은 시간 = 저장된 남은 시간 - (now - last_clock_start).
타이머 틱을 놓쳐도 드리프트가 생기지 않음.
During the flights phase of a multi-flight tournament the Running flight
owns the clock; otherwise the tournament does.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Sequence

from pokerfloor.logging_config import get_logger

from .models import Flight, Level, Tournament, TournamentStatus, Transition, utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClockState:
    current_level: int
    clock_time_remaining: int
    last_clock_start: Optional[datetime]

    @property
    def running(self) -> bool:
        return self.last_clock_start is not None


@dataclass(frozen=True)
class ClockView:
    level: Optional[Level]
    next_level: Optional[Level]
    remaining_seconds: int
    running: bool
    flight_id: Optional[str] = None


def remaining_seconds(stored: int, last_start: Optional[datetime], now: datetime) -> int:
    if last_start is None:
        return max(0, stored)
    elapsed = int((now - last_start).total_seconds())
    return max(0, stored - elapsed)


def clock_owner(tournament: Tournament) -> Optional[Flight]:
    """The Running flight during the flights phase, else None (tournament clock)."""
    if tournament.in_flights_phase:
        return tournament.running_flight
    return None


def get_clock(tournament: Tournament) -> ClockState:
    source = clock_owner(tournament) or tournament
    return ClockState(
        current_level=source.current_level,
        clock_time_remaining=source.clock_time_remaining,
        last_clock_start=source.last_clock_start,
    )


def _set_clock(tournament: Tournament, state: ClockState) -> Tournament:
    flight = clock_owner(tournament)
    fields = dict(
        current_level=state.current_level,
        clock_time_remaining=state.clock_time_remaining,
        last_clock_start=state.last_clock_start,
    )
    if flight is not None:
        return tournament.with_flight(replace(flight, **fields))
    return replace(tournament, **fields)


def level_at(levels: Sequence[Level], number: int) -> Optional[Level]:
    index = number - 1
    if 0 <= index < len(levels):
        return levels[index]
    return None


def toggle_clock(
    tournament: Tournament,
    running: bool,
    now: Optional[datetime] = None,
) -> Transition:
    """
    Start or pause the clock.

    Starting a Scheduled tournament whose scheduled start time has already
    passed backdates the clock to that time. Pausing stores the recomputed
    remaining time. A Completed tournament is left as it is.
    """
    if tournament.status == TournamentStatus.COMPLETED:
        return Transition(tournament=tournament)

    now = now or utcnow()
    state = get_clock(tournament)

    if running:
        if state.running:
            return Transition(tournament=replace(tournament, status=TournamentStatus.RUNNING))
        start = now
        scheduled = tournament.scheduled_start_time
        if (
            tournament.status == TournamentStatus.SCHEDULED
            and scheduled is not None
            and scheduled <= now
        ):
            start = scheduled
        state = replace(state, last_clock_start=start)
        status = TournamentStatus.RUNNING
    else:
        state = ClockState(
            current_level=state.current_level,
            clock_time_remaining=remaining_seconds(
                state.clock_time_remaining, state.last_clock_start, now
            ),
            last_clock_start=None,
        )
        status = TournamentStatus.PAUSED

    updated = replace(_set_clock(tournament, state), status=status, scheduled_start_time=None)
    logger.info("clock_toggled", tournament_id=tournament.id, running=running)
    return Transition(tournament=updated)


def set_clock_time(
    tournament: Tournament,
    seconds: int,
    now: Optional[datetime] = None,
) -> Transition:
    """Overwrite the remaining time; a running clock restarts its count from now."""
    now = now or utcnow()
    state = get_clock(tournament)
    state = replace(
        state,
        clock_time_remaining=max(0, seconds),
        last_clock_start=now if state.running else None,
    )
    return Transition(tournament=_set_clock(tournament, state))


def next_level(tournament: Tournament, now: Optional[datetime] = None) -> Transition:
    """
    Advance to the next level with its full duration.

    A running clock keeps running: if the current level had already expired
    the new level starts at the expiry moment, otherwise now. A stopped clock
    stays stopped. No-op on the last level.
    """
    now = now or utcnow()
    state = get_clock(tournament)
    upcoming = level_at(tournament.levels, state.current_level + 1)
    if level_at(tournament.levels, state.current_level) is None or upcoming is None:
        return Transition(tournament=tournament)

    start: Optional[datetime] = None
    if state.last_clock_start is not None:
        expiry = state.last_clock_start + timedelta(seconds=state.clock_time_remaining)
        start = min(expiry, now)

    state = ClockState(
        current_level=upcoming.level,
        clock_time_remaining=upcoming.duration_seconds,
        last_clock_start=start,
    )
    logger.info("level_changed", tournament_id=tournament.id, level=upcoming.level)
    return Transition(tournament=_set_clock(tournament, state))


def previous_level(tournament: Tournament, now: Optional[datetime] = None) -> Transition:
    """Step back one level with a full duration; no-op on the first level."""
    now = now or utcnow()
    state = get_clock(tournament)
    previous = level_at(tournament.levels, state.current_level - 1)
    if previous is None:
        return Transition(tournament=tournament)

    state = ClockState(
        current_level=previous.level,
        clock_time_remaining=previous.duration_seconds,
        last_clock_start=now if state.running else None,
    )
    logger.info("level_changed", tournament_id=tournament.id, level=previous.level)
    return Transition(tournament=_set_clock(tournament, state))


def advance_clock(tournament: Tournament, now: Optional[datetime] = None) -> Transition:
    """
    Roll over every level that has expired by ``now``.

    After the last level expires the clock stops at zero.
    """
    now = now or utcnow()
    state = get_clock(tournament)
    changed = False

    while state.running:
        expiry = state.last_clock_start + timedelta(seconds=state.clock_time_remaining)
        if expiry > now:
            break
        upcoming = level_at(tournament.levels, state.current_level + 1)
        if upcoming is None:
            state = replace(state, clock_time_remaining=0, last_clock_start=None)
        else:
            state = ClockState(
                current_level=upcoming.level,
                clock_time_remaining=upcoming.duration_seconds,
                last_clock_start=expiry,
            )
        changed = True

    if not changed:
        return Transition(tournament=tournament)
    logger.info("clock_advanced", tournament_id=tournament.id, level=state.current_level)
    return Transition(tournament=_set_clock(tournament, state))


def update_level_structure(tournament: Tournament, levels: Sequence[Level]) -> Transition:
    return Transition(tournament=replace(tournament, levels=tuple(levels)))


def set_scheduled_start(tournament: Tournament, when: Optional[datetime]) -> Transition:
    return Transition(tournament=replace(tournament, scheduled_start_time=when))


def clock_view(tournament: Tournament, now: Optional[datetime] = None) -> ClockView:
    now = now or utcnow()
    state = get_clock(tournament)
    owner = clock_owner(tournament)
    return ClockView(
        level=level_at(tournament.levels, state.current_level),
        next_level=level_at(tournament.levels, state.current_level + 1),
        remaining_seconds=remaining_seconds(
            state.clock_time_remaining, state.last_clock_start, now
        ),
        running=state.running,
        flight_id=owner.id if owner else None,
    )
