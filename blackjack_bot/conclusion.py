"""
牌局结算
把结束时的玩家按结果分组，并按规则倍数派奖
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Sequence, Tuple

from blackjack_bot.cards import Card
from blackjack_bot.models import HandState
from blackjack_bot.player import Dealer, Participant
from blackjack_bot.rules import BlackjackRules

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """玩家本局结果"""
    BUSTED = "busted"
    SURRENDERED = "surrendered"
    LOWER = "lower"
    EQUAL = "equal"
    HIGHER = "higher"
    BLACKJACK = "blackjack"


@dataclass(frozen=True)
class GameConclusion:
    """一局结束时的结果快照，各组互不相交"""
    dealer_busted: bool
    dealer_value: int
    dealer_has_blackjack: bool
    dealer_cards: Tuple[Card, ...] = ()
    busted_players: Tuple[Participant, ...] = ()
    lower_score_than_dealer_players: Tuple[Participant, ...] = ()
    same_score_as_dealer_players: Tuple[Participant, ...] = ()
    higher_score_than_dealer_players: Tuple[Participant, ...] = ()
    players_with_blackjack: Tuple[Participant, ...] = ()
    surrendered_players: Tuple[Participant, ...] = ()

    @property
    def buckets(self) -> Dict[Outcome, Tuple[Participant, ...]]:
        return {
            Outcome.BUSTED: self.busted_players,
            Outcome.SURRENDERED: self.surrendered_players,
            Outcome.LOWER: self.lower_score_than_dealer_players,
            Outcome.EQUAL: self.same_score_as_dealer_players,
            Outcome.HIGHER: self.higher_score_than_dealer_players,
            Outcome.BLACKJACK: self.players_with_blackjack,
        }

    @property
    def winners(self) -> Tuple[Participant, ...]:
        """赢过庄家的玩家"""
        return self.players_with_blackjack + self.higher_score_than_dealer_players

    def outcome_of(self, player: Participant) -> Outcome:
        """
        获取玩家的结果

        Raises:
            KeyError: 玩家不在本局中
        """
        for outcome, players in self.buckets.items():
            if player in players:
                return outcome
        raise KeyError(player.user_id)


def classify_player(player: Participant, dealer: Dealer, rules: BlackjackRules) -> Outcome:
    """
    判断单个玩家相对庄家的结果

    Args:
        player: 玩家座位
        dealer: 庄家座位
        rules: 规则

    Returns:
        结果分类
    """
    if player.hand_state == HandState.SURRENDERED:
        return Outcome.SURRENDERED
    if player.is_busted:
        return Outcome.BUSTED
    if player.has_blackjack:
        if rules.dealer_blackjack_pushes and dealer.has_blackjack:
            return Outcome.EQUAL
        return Outcome.BLACKJACK

    # 庄家爆牌时点数为 -1，任何未爆牌的玩家都更高
    player_value = player.highest_non_busted_hand_value
    dealer_value = dealer.highest_non_busted_hand_value
    if player_value > dealer_value:
        return Outcome.HIGHER
    if player_value == dealer_value:
        return Outcome.EQUAL
    return Outcome.LOWER


def conclude_game(
    players: Sequence[Participant],
    dealer: Dealer,
    rules: BlackjackRules
) -> GameConclusion:
    """
    计算本局结论

    Args:
        players: 按加入顺序排列的玩家
        dealer: 庄家
        rules: 规则

    Returns:
        GameConclusion 快照
    """
    grouped = {outcome: [] for outcome in Outcome}
    for player in players:
        grouped[classify_player(player, dealer, rules)].append(player)

    return GameConclusion(
        dealer_busted=dealer.is_busted,
        dealer_value=dealer.highest_non_busted_hand_value,
        dealer_has_blackjack=dealer.has_blackjack,
        dealer_cards=tuple(dealer.cards),
        busted_players=tuple(grouped[Outcome.BUSTED]),
        lower_score_than_dealer_players=tuple(grouped[Outcome.LOWER]),
        same_score_as_dealer_players=tuple(grouped[Outcome.EQUAL]),
        higher_score_than_dealer_players=tuple(grouped[Outcome.HIGHER]),
        players_with_blackjack=tuple(grouped[Outcome.BLACKJACK]),
        surrendered_players=tuple(grouped[Outcome.SURRENDERED]),
    )


def payout_multiplier(outcome: Outcome, rules: BlackjackRules) -> float:
    """
    获取结果对应的返还倍数

    Args:
        outcome: 结果
        rules: 规则

    Returns:
        下注金额的返还倍数（含本金）
    """
    if outcome == Outcome.BLACKJACK:
        return rules.blackjack_multiplier
    if outcome == Outcome.HIGHER:
        return rules.win_multiplier
    if outcome == Outcome.EQUAL:
        return rules.even_multiplier
    if outcome == Outcome.SURRENDERED:
        return rules.surrender_multiplier
    return 0


async def reward_players(
    conclusion: GameConclusion,
    ledger,
    rules: BlackjackRules
) -> Dict[int, int]:
    """
    按结论派奖

    Args:
        conclusion: 本局结论
        ledger: 账本
        rules: 规则

    Returns:
        {user_id: 派发金额}，没有奖金的玩家为 0，派奖失败的玩家不在其中
    """
    payouts: Dict[int, int] = {}
    for outcome, players in conclusion.buckets.items():
        multiplier = payout_multiplier(outcome, rules)
        for player in players:
            if multiplier <= 0:
                payouts[player.user_id] = 0
                continue
            try:
                payouts[player.user_id] = await player.reward_player(ledger, multiplier)
            except Exception as e:
                # 一名玩家派奖失败不影响其他玩家
                logger.error(
                    f"Failed to pay user {player.user_id} (bet {player.bet}, {outcome.value}): {e}",
                    exc_info=True
                )
    logger.info(f"Rewarded players: {payouts}")
    return payouts
