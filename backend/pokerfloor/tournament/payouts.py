"""
Payout Ladder.

상금 풀과 참가자 수로 순위별 상금표 계산.

- 입상 인원: 참가자 수 구간별 계단 함수
- 각 순위 금액은 rounding_unit 배수로 내림
- 내림으로 생긴 나머지는 전부 1위에 합산 (총합 == 상금 풀)
- 수동 상금표가 설정되면 그대로 사용 (반올림 없음)
"""

from typing import Dict, List, Optional, Sequence, Tuple

from .models import Payout, PayoutMode, Tournament

# 입상 인원별 분배율 (천분율)
PAYOUT_STRUCTURES: Dict[int, Tuple[int, ...]] = {
    1: (1000,),
    2: (650, 350),
    3: (500, 300, 200),
    4: (450, 250, 180, 120),
    5: (400, 230, 150, 120, 100),
    7: (380, 220, 150, 100, 70, 50, 30),
    9: (350, 220, 150, 100, 70, 50, 30, 15, 15),
}

# (최소 참가자 수, 입상 인원) - 큰 구간부터
PAID_PLACES_THRESHOLDS: Tuple[Tuple[int, int], ...] = (
    (50, 9),
    (40, 7),
    (30, 5),
    (20, 4),
    (10, 3),
    (5, 2),
    (2, 1),
)


def paid_places(total_entrants: int) -> int:
    for minimum, places in PAID_PLACES_THRESHOLDS:
        if total_entrants >= minimum:
            return places
    return 0


def calculate_payouts(
    prize_pool: int,
    total_entrants: int,
    rounding_unit: int = 5,
) -> List[Payout]:
    """
    Derive the rank → prize ladder.

    Args:
        prize_pool: Total amount to distribute
        total_entrants: Counted entries (merge-discarded excluded)
        rounding_unit: Each place is floored to a multiple of this

    Returns:
        Payouts ordered by rank; their amounts sum exactly to ``prize_pool``.
        Empty when there is nothing to pay or nobody to pay it to.
    """
    if prize_pool <= 0 or total_entrants <= 0:
        return []

    places = paid_places(total_entrants)
    if places == 0:
        return []

    amounts = []
    for per_mille in PAYOUT_STRUCTURES[places]:
        raw = prize_pool * per_mille // 1000
        amounts.append(raw // rounding_unit * rounding_unit)

    amounts[0] += prize_pool - sum(amounts)
    return [Payout(rank=i + 1, amount=amount) for i, amount in enumerate(amounts)]


def prize_pool(tournament: Tournament) -> int:
    buyins = sum(e.buyins for e in tournament.entries)
    addons = sum(e.addons for e in tournament.entries)
    return buyins * tournament.buyin + addons * tournament.addon_cost


def active_payouts(tournament: Tournament, rounding_unit: int = 5) -> List[Payout]:
    """The ladder in force: manual list verbatim, otherwise the derived one."""
    settings = tournament.payout_settings
    if settings.mode == PayoutMode.MANUAL:
        return sorted(settings.manual_payouts, key=lambda p: p.rank)
    return calculate_payouts(
        prize_pool(tournament), tournament.counted_entries, rounding_unit
    )


def payout_for_rank(ladder: Sequence[Payout], rank: int) -> Optional[Payout]:
    for payout in ladder:
        if payout.rank == rank:
            return payout
    return None


def remaining_payouts(ladder: Sequence[Payout], remaining_players: int) -> List[int]:
    """Amounts still to be won by the last ``remaining_players`` entries, 1st first."""
    ordered = sorted(ladder, key=lambda p: p.rank)
    return [p.amount for p in ordered if p.rank <= remaining_players]
