"""
Equity Calculator (ICM) and deal proposals.

Independent Chip Model: 칩 스택을 상금 기대값으로 환산.
딜 메이킹 시 남은 상금을 ICM 또는 칩 비율(chip chop)로 분배 제안.

The recursion is exponential in player count without memoization; each
IcmCalculator keeps its own cache, so one calculator should be used per
deal session and then discarded.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from pokerfloor.logging_config import get_logger

from .models import DealPayout, Tournament
from .payouts import active_payouts, remaining_payouts

logger = get_logger(__name__)

IcmKey = Tuple[Tuple[float, ...], Tuple[float, ...]]


class DealMethod(str, Enum):
    ICM = "icm"
    CHIP_CHOP = "chip_chop"


class IcmCalculator:
    """ICM equity with a per-instance memo keyed by (stacks, payouts)."""

    def __init__(self) -> None:
        self._cache: Dict[IcmKey, Tuple[float, ...]] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def equity(self, stacks: Sequence[float], payouts: Sequence[float]) -> List[float]:
        """
        Prize equity per stack, in the same order as ``stacks``.

        Args:
            stacks: Chip counts
            payouts: Remaining prizes, 1st place first

        Returns:
            One equity per stack; empty if either input is empty.
        """
        if not stacks or not payouts:
            return []
        return list(self._equity(tuple(stacks), tuple(payouts)))

    def _equity(self, stacks: Tuple[float, ...], payouts: Tuple[float, ...]) -> Tuple[float, ...]:
        if not payouts:
            return (0.0,) * len(stacks)

        key = (stacks, payouts)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if len(stacks) == 1:
            result: Tuple[float, ...] = (float(sum(payouts)),)
            self._cache[key] = result
            return result

        total = sum(stacks)
        if total == 0:
            share = sum(payouts) / len(stacks)
            result = (share,) * len(stacks)
            self._cache[key] = result
            return result

        equities = [0.0] * len(stacks)
        for i, stack in enumerate(stacks):
            p_first = stack / total
            if p_first == 0:
                continue
            equities[i] += p_first * payouts[0]

            rest = stacks[:i] + stacks[i + 1:]
            sub = self._equity(rest, payouts[1:])
            # 제외된 i를 건너뛰며 원래 순서대로 귀속
            for j, sub_equity in zip((j for j in range(len(stacks)) if j != i), sub):
                equities[j] += p_first * sub_equity

        result = tuple(equities)
        self._cache[key] = result
        return result


def icm_equity(stacks: Sequence[float], payouts: Sequence[float]) -> List[float]:
    """One-shot ICM with a throwaway cache."""
    return IcmCalculator().equity(stacks, payouts)


def chip_chop(stacks: Sequence[float], pool: float) -> List[float]:
    """Split ``pool`` proportionally to chips (equal split when no chips)."""
    if not stacks:
        return []
    total = sum(stacks)
    if total == 0:
        return [pool / len(stacks)] * len(stacks)
    return [stack / total * pool for stack in stacks]


def round_to_pool(raw: Sequence[float], pool: int, unit: int = 100) -> List[int]:
    """
    Round each share to the nearest ``unit`` and give the rounding remainder
    to the first share (the chip leader), so the result sums to ``pool``.
    """
    if not raw:
        return []
    rounded = [int(round(value / unit)) * unit for value in raw]
    rounded[0] += pool - sum(rounded)
    return rounded


@dataclass(frozen=True)
class DealProposal:
    method: DealMethod
    pool: int
    payouts: Tuple[DealPayout, ...]
    raw: Tuple[float, ...]

    @property
    def total(self) -> int:
        return sum(p.amount for p in self.payouts)


def propose_deal(
    tournament: Tournament,
    method: DealMethod = DealMethod.ICM,
    rounding_unit: int = 100,
    payout_rounding_unit: int = 5,
    calculator: Optional[IcmCalculator] = None,
) -> DealProposal:
    """
    Propose a deal among the Active entries.

    The pool is the sum of the ladder prizes for the places still in play.
    Players are ordered by descending chips; shares are rounded to
    ``rounding_unit`` with the remainder going to the chip leader.
    """
    players = sorted(tournament.active_entries, key=lambda e: e.chip_count, reverse=True)
    ladder = active_payouts(tournament, payout_rounding_unit)
    prizes = remaining_payouts(ladder, len(players))
    pool = sum(prizes)

    if not players:
        return DealProposal(method=method, pool=pool, payouts=(), raw=())

    stacks = [e.chip_count for e in players]
    if method == DealMethod.CHIP_CHOP:
        raw = chip_chop(stacks, pool)
    else:
        raw = (calculator or IcmCalculator()).equity(stacks, prizes)
        if not raw:
            raw = [0.0] * len(players)

    amounts = round_to_pool(raw, pool, rounding_unit)
    logger.debug(
        "deal_proposed",
        tournament_id=tournament.id,
        method=method.value,
        pool=pool,
        players=len(players),
    )
    return DealProposal(
        method=method,
        pool=pool,
        payouts=tuple(
            DealPayout(player_id=e.player_id, amount=amount)
            for e, amount in zip(players, amounts)
        ),
        raw=tuple(raw),
    )
