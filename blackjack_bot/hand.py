"""
手牌点数计算
计算所有可能的点数组合（A 可为 1 或 11）、爆牌、Blackjack 与庄家停牌线
"""
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from blackjack_bot.cards import Card, Rank


MAX_HAND_VALUE = 21
DEALER_MINIMUM = 17
# 爆牌时没有有效点数
NO_VALID_TOTAL = -1


def calculate_possible_hand_values(cards: Sequence[Card]) -> List[int]:
    """
    计算手牌所有可能的点数（降序，去重）

    从 {0} 开始，每张牌把当前集合与该牌的每个可能点数分别相加后取并集。
    每个 A 都独立地算作 1 或 11，重复值在每一步合并，
    因此集合大小始终很小，不会随 A 的数量指数增长。

    Args:
        cards: 手牌

    Returns:
        所有可能的点数，从大到小排列
    """
    sums = {0}
    for card in cards:
        sums = {total + value for total in sums for value in card.values}
    return sorted(sums, reverse=True)


def get_non_busted_hand_values(cards: Sequence[Card]) -> List[int]:
    """
    获取未爆牌的点数（降序），第一个即为最优点数

    Args:
        cards: 手牌

    Returns:
        不超过 21 的点数列表
    """
    return [value for value in calculate_possible_hand_values(cards) if value <= MAX_HAND_VALUE]


def calculate_hand_value(cards: Sequence[Card]) -> int:
    """
    计算手牌最优点数

    Args:
        cards: 手牌

    Returns:
        不超过 21 的最大点数；爆牌时返回 NO_VALID_TOTAL
    """
    values = get_non_busted_hand_values(cards)
    if values:
        return values[0]
    return NO_VALID_TOTAL


def is_bust(cards: Sequence[Card]) -> bool:
    """
    判断是否爆牌（所有可能点数都超过 21）

    Args:
        cards: 手牌

    Returns:
        是否爆牌
    """
    return not get_non_busted_hand_values(cards)


def has_reached_dealer_minimum(cards: Sequence[Card]) -> bool:
    """判断是否有某个未爆牌的点数达到庄家停牌线（17-21）"""
    return any(DEALER_MINIMUM <= value <= MAX_HAND_VALUE
               for value in calculate_possible_hand_values(cards))


def is_blackjack(cards: Sequence[Card]) -> bool:
    """
    判断是否为 Blackjack（恰好两张牌、最优点数 21、其中有一张 A）

    Args:
        cards: 手牌

    Returns:
        是否为 Blackjack
    """
    return (
        len(cards) == 2
        and calculate_hand_value(cards) == MAX_HAND_VALUE
        and any(card.rank == Rank.ACE for card in cards)
    )


@dataclass(frozen=True)
class HandValue:
    """手牌评估结果"""
    non_busted_values: Tuple[int, ...]
    best_value: int
    is_busted: bool
    has_reached_dealer_minimum: bool
    has_blackjack: bool


def evaluate_hand(cards: Sequence[Card]) -> HandValue:
    """
    一次性评估手牌

    Args:
        cards: 手牌

    Returns:
        HandValue 评估结果
    """
    possible = calculate_possible_hand_values(cards)
    non_busted = tuple(value for value in possible if value <= MAX_HAND_VALUE)
    best = non_busted[0] if non_busted else NO_VALID_TOTAL

    return HandValue(
        non_busted_values=non_busted,
        best_value=best,
        is_busted=not non_busted,
        has_reached_dealer_minimum=any(value >= DEALER_MINIMUM for value in non_busted),
        has_blackjack=(
            len(cards) == 2
            and best == MAX_HAND_VALUE
            and any(card.rank == Rank.ACE for card in cards)
        ),
    )
