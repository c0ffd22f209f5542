"""
牌桌座位
庄家与下注玩家两种座位，持有手牌并维护手牌状态；
玩家的扣注与派奖通过显式传入的账本完成
"""
import math
from typing import List

from blackjack_bot.cards import Card
from blackjack_bot.hand import HandValue, evaluate_hand
from blackjack_bot.models import HandState


# 账本交易类型
BET_REASON = 'blackjack_bet'
DOUBLE_DOWN_REASON = 'blackjack_double'
PAYOUT_REASON = 'blackjack_payout'
REFUND_REASON = 'blackjack_refund'


class Seat:
    """座位基类：手牌与手牌状态"""

    is_dealer = False

    def __init__(self):
        self._cards: List[Card] = []
        self._hand_value: HandValue = evaluate_hand(self._cards)
        self._hand_state = HandState.NORMAL

    def give_cards(self, *cards: Card) -> None:
        """
        发牌给该座位，并重新计算手牌状态

        Args:
            cards: 一张或多张牌
        """
        self._cards.extend(cards)
        self._hand_value = evaluate_hand(self._cards)

        if self._hand_state == HandState.SURRENDERED:
            return
        if self._hand_value.is_busted:
            self._hand_state = HandState.BUSTED
        elif self._hand_value.has_blackjack:
            self._hand_state = HandState.BLACKJACK
        else:
            self._hand_state = HandState.NORMAL

    @property
    def cards(self) -> List[Card]:
        """当前手牌（副本）"""
        return list(self._cards)

    @property
    def hand_state(self) -> HandState:
        return self._hand_state

    @property
    def hand_value(self) -> HandValue:
        return self._hand_value

    @property
    def is_busted(self) -> bool:
        return self._hand_value.is_busted

    @property
    def has_blackjack(self) -> bool:
        return self._hand_value.has_blackjack

    @property
    def non_busted_hand_values(self) -> List[int]:
        """未爆牌的点数，从大到小"""
        return list(self._hand_value.non_busted_values)

    @property
    def highest_non_busted_hand_value(self) -> int:
        """最优点数，爆牌时为 -1"""
        return self._hand_value.best_value

    @property
    def has_reached_dealer_minimum(self) -> bool:
        return self._hand_value.has_reached_dealer_minimum

    @property
    def may_draw_card(self) -> bool:
        """只有 NORMAL 状态可以继续要牌"""
        return self._hand_state == HandState.NORMAL

    @property
    def formatted_name(self) -> str:
        raise NotImplementedError


class Dealer(Seat):
    """庄家座位：没有下注，也不参与账本"""

    is_dealer = True
    NAME = "庄家"

    @property
    def formatted_name(self) -> str:
        return self.NAME

    def __repr__(self) -> str:
        return f"Dealer(cards={self._cards!r})"


class Participant(Seat):
    """下注玩家座位"""

    def __init__(self, user_id: int, username: str, bet: int):
        """
        初始化玩家座位

        Args:
            user_id: 用户 ID
            username: 用户名（用于显示）
            bet: 下注金额，必须为正整数

        Raises:
            ValueError: 下注金额无效
        """
        if isinstance(bet, bool) or not isinstance(bet, int) or bet < 1:
            raise ValueError("下注金额必须是正整数")
        super().__init__()
        self.user_id = user_id
        self.username = username
        self._bet = bet
        self._has_acted = False

    @property
    def bet(self) -> int:
        return self._bet

    @property
    def has_acted(self) -> bool:
        """本局是否已经行动过"""
        return self._has_acted

    @property
    def formatted_name(self) -> str:
        return f"@{self.username}"

    def mark_acted(self) -> None:
        self._has_acted = True

    @property
    def may_surrender(self) -> bool:
        """投降只能作为本局第一个操作"""
        return self.may_draw_card and not self._has_acted

    @property
    def may_double_down(self) -> bool:
        """加倍只能作为本局第一个操作"""
        return self.may_draw_card and not self._has_acted

    def set_surrendered(self) -> None:
        """
        标记为投降

        Raises:
            RuntimeError: 已经行动过或手牌不是 NORMAL 状态
        """
        if not self.may_surrender:
            raise RuntimeError("只能在第一次行动时投降")
        self._hand_state = HandState.SURRENDERED
        self._has_acted = True

    async def confiscate_bet(self, ledger) -> None:
        """
        从账本扣除下注金额（加入牌局时调用一次）

        Args:
            ledger: 账本，提供 adjust_balance(user_id, delta, reason)
        """
        await ledger.adjust_balance(self.user_id, -self._bet, BET_REASON)

    async def double_bet(self, ledger) -> None:
        """
        加倍：再扣除一份同额下注，下注金额翻倍

        Args:
            ledger: 账本
        """
        await ledger.adjust_balance(self.user_id, -self._bet, DOUBLE_DOWN_REASON)
        self._bet *= 2

    async def reward_player(self, ledger, multiplier: float) -> int:
        """
        按倍数派奖，向下取整

        Args:
            ledger: 账本
            multiplier: 下注金额的返还倍数

        Returns:
            实际派发的金额
        """
        reward = math.floor(self._bet * multiplier)
        if reward > 0:
            await ledger.adjust_balance(self.user_id, reward, PAYOUT_REASON)
        return reward

    async def refund_bet(self, ledger) -> int:
        """退还全部下注（牌局异常中止时）"""
        await ledger.adjust_balance(self.user_id, self._bet, REFUND_REASON)
        return self._bet

    def __repr__(self) -> str:
        return (
            f"Participant(user_id={self.user_id!r}, bet={self._bet!r}, "
            f"state={self._hand_state.value}, cards={self._cards!r})"
        )
