"""
Equity Calculator (ICM) Tests.

ICM 기대값, 칩 촙, 딜 제안 반올림.
"""

import pytest
from hypothesis import given, settings, strategies as st

from pokerfloor.tournament.icm import (
    DealMethod,
    IcmCalculator,
    chip_chop,
    icm_equity,
    propose_deal,
    round_to_pool,
)

from factories import make_tournament, manual_ladder


class TestIcmEquity:
    def test_heads_up(self):
        assert icm_equity([3000, 1000], [70, 30]) == pytest.approx([60.0, 40.0])

    def test_keeps_input_order(self):
        assert icm_equity([1000, 3000], [70, 30]) == pytest.approx([40.0, 60.0])

    def test_equal_stacks_split_evenly(self):
        equities = icm_equity([500, 500, 500], [50, 30, 20])

        assert equities == pytest.approx([100 / 3] * 3)

    def test_empty_inputs(self):
        assert icm_equity([], [100]) == []
        assert icm_equity([100], []) == []

    def test_single_player_takes_everything_left(self):
        assert icm_equity([100], [70, 30]) == pytest.approx([100.0])

    def test_cache_is_per_calculator(self):
        calculator = IcmCalculator()
        calculator.equity([300, 200, 100], [60, 30, 10])

        assert calculator.cache_size > 0
        assert IcmCalculator().cache_size == 0

    @given(
        stacks=st.lists(st.integers(min_value=1, max_value=1_000_000), min_size=1, max_size=6),
        payouts=st.lists(st.integers(min_value=0, max_value=100_000), min_size=1, max_size=6),
    )
    @settings(max_examples=80, deadline=None)
    def test_equity_is_conserved(self, stacks, payouts):
        """Property: total equity equals the total of the prizes."""
        equities = icm_equity(stacks, payouts)

        assert len(equities) == len(stacks)
        assert sum(equities) == pytest.approx(sum(payouts), rel=1e-9, abs=1e-6)


class TestChipChopAndRounding:
    def test_chip_chop_proportional(self):
        assert chip_chop([3000, 1000], 1000) == pytest.approx([750.0, 250.0])

    def test_chip_chop_without_chips(self):
        assert chip_chop([0, 0], 100) == pytest.approx([50.0, 50.0])

    def test_round_to_pool_sums_exactly(self):
        assert round_to_pool([60.4, 39.6], 100, unit=10) == [60, 40]

    def test_rounding_remainder_goes_to_first(self):
        assert round_to_pool([33.3, 33.3, 33.4], 100, unit=10) == [40, 30, 30]


class TestProposeDeal:
    @pytest.fixture
    def heads_up(self):
        t = make_tournament(
            players=2,
            chips=[10000, 30000],
            payout_settings=manual_ladder([700, 300]),
        )
        return t

    def test_icm_deal_ordered_by_chips(self, heads_up):
        proposal = propose_deal(heads_up, DealMethod.ICM, rounding_unit=100)

        assert proposal.pool == 1000
        assert [(p.player_id, p.amount) for p in proposal.payouts] == [
            ("p-2", 600),
            ("p-1", 400),
        ]
        assert proposal.total == proposal.pool

    def test_chip_chop_deal(self, heads_up):
        proposal = propose_deal(heads_up, DealMethod.CHIP_CHOP, rounding_unit=50)

        assert [p.amount for p in proposal.payouts] == [750, 250]

    def test_no_active_players(self):
        proposal = propose_deal(make_tournament(players=0))

        assert proposal.payouts == ()
