"""
Tournament Clock Tests.

레벨 진행, 일시정지/재개 시 남은 시간 계산, 플라이트 클럭 소유권.
"""

from dataclasses import replace
from datetime import timedelta

from pokerfloor.tournament.clock import (
    advance_clock,
    clock_view,
    get_clock,
    next_level,
    previous_level,
    remaining_seconds,
    set_clock_time,
    set_scheduled_start,
    toggle_clock,
)
from pokerfloor.tournament.models import (
    FlightStatus,
    TournamentStatus,
    TournamentType,
)

from factories import T0, make_flights, make_levels, make_tournament


def paused(**kwargs):
    return make_tournament(status=TournamentStatus.PAUSED, **kwargs)


def running(start=T0, remaining=1200, **kwargs):
    return make_tournament(
        status=TournamentStatus.RUNNING,
        last_clock_start=start,
        clock_time_remaining=remaining,
        **kwargs,
    )


class TestToggle:
    def test_start(self):
        t = toggle_clock(paused(), True, T0).tournament

        assert t.status == TournamentStatus.RUNNING
        assert t.last_clock_start == T0
        assert t.clock_time_remaining == 1200

    def test_pause_stores_remaining(self):
        t = toggle_clock(running(), False, T0 + timedelta(seconds=300)).tournament

        assert t.status == TournamentStatus.PAUSED
        assert t.last_clock_start is None
        assert t.clock_time_remaining == 900

    def test_start_backdated_to_scheduled_time(self):
        t = make_tournament(
            status=TournamentStatus.SCHEDULED,
            scheduled_start_time=T0,
        )

        started = toggle_clock(t, True, T0 + timedelta(minutes=3)).tournament

        assert started.last_clock_start == T0
        assert started.scheduled_start_time is None
        assert clock_view(started, T0 + timedelta(minutes=3)).remaining_seconds == 1020

    def test_future_scheduled_time_not_used(self):
        t = make_tournament(
            status=TournamentStatus.SCHEDULED,
            scheduled_start_time=T0 + timedelta(hours=1),
        )

        assert toggle_clock(t, True, T0).tournament.last_clock_start == T0

    def test_starting_a_running_clock_keeps_it(self):
        t = running()

        assert toggle_clock(t, True, T0 + timedelta(minutes=5)).tournament.last_clock_start == T0

    def test_completed_tournament_stays_completed(self):
        t = make_tournament(status=TournamentStatus.COMPLETED)

        assert toggle_clock(t, True, T0).tournament is t
        assert toggle_clock(t, False, T0).tournament is t


class TestLevels:
    def test_next_level_while_running(self):
        now = T0 + timedelta(minutes=5)

        t = next_level(running(), now).tournament

        assert t.current_level == 2
        assert t.clock_time_remaining == 1200
        assert t.last_clock_start == now

    def test_next_level_after_expiry_starts_at_expiry(self):
        t = next_level(running(remaining=60), T0 + timedelta(minutes=5)).tournament

        assert t.last_clock_start == T0 + timedelta(seconds=60)

    def test_next_level_keeps_stopped_clock_stopped(self):
        t = next_level(paused(), T0).tournament

        assert t.current_level == 2
        assert t.last_clock_start is None

    def test_next_level_on_last_level_is_noop(self):
        t = paused(current_level=5)

        assert next_level(t, T0).tournament is t

    def test_previous_level(self):
        t = previous_level(paused(current_level=3, clock_time_remaining=10), T0).tournament

        assert t.current_level == 2
        assert t.clock_time_remaining == 1200
        assert previous_level(paused(), T0).tournament.current_level == 1

    def test_set_clock_time(self):
        now = T0 + timedelta(minutes=1)

        t = set_clock_time(running(), 90, now).tournament

        assert t.clock_time_remaining == 90
        assert t.last_clock_start == now


class TestAdvance:
    def test_rolls_over_expired_levels(self):
        t = running(remaining=60, levels=make_levels(5, minutes=1))
        now = T0 + timedelta(seconds=150)

        advanced = advance_clock(t, now).tournament

        assert advanced.current_level == 3
        assert advanced.last_clock_start == T0 + timedelta(seconds=120)
        assert clock_view(advanced, now).remaining_seconds == 30

    def test_stops_after_last_level(self):
        t = running(remaining=60, levels=make_levels(2, minutes=1))

        advanced = advance_clock(t, T0 + timedelta(minutes=10)).tournament

        assert advanced.current_level == 2
        assert advanced.clock_time_remaining == 0
        assert advanced.last_clock_start is None

    def test_nothing_expired(self):
        t = running()

        assert advance_clock(t, T0 + timedelta(seconds=10)).tournament is t


class TestClockOwner:
    def test_running_flight_owns_clock(self):
        flights = make_flights("f-a", "f-b")
        flights = (
            replace(flights[0], status=FlightStatus.RUNNING, clock_time_remaining=600),
            flights[1],
        )
        t = make_tournament(type=TournamentType.MULTI_FLIGHT, flights=flights)

        started = toggle_clock(t, True, T0).tournament

        assert started.get_flight("f-a").last_clock_start == T0
        assert started.last_clock_start is None
        assert get_clock(started).clock_time_remaining == 600
        assert clock_view(started, T0).flight_id == "f-a"


class TestHelpers:
    def test_remaining_seconds_never_negative(self):
        assert remaining_seconds(60, T0, T0 + timedelta(minutes=5)) == 0
        assert remaining_seconds(60, None, T0) == 60

    def test_scheduled_start(self):
        t = set_scheduled_start(make_tournament(), T0).tournament

        assert t.scheduled_start_time == T0

    def test_view_next_level(self):
        view = clock_view(paused(), T0)

        assert view.level.level == 1
        assert view.next_level.level == 2
        assert not view.running
