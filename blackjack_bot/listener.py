"""
21点游戏事件监听器
"""


class BlackjackGameListener:
    """
    21点游戏事件监听器

    事件按发生顺序送达：发牌完成、零到多次玩家超时、零到多次庄家要牌，
    最后是一次游戏结束（或异常中止）。默认实现什么都不做。
    """

    async def on_cards_dealt(self, source, dealer, starting_seat) -> None:
        """
        首轮发牌完成

        Args:
            source: 事件来源
            dealer: 庄家座位
            starting_seat: 第一个行动的座位（可能是庄家）
        """

    async def on_player_turn_timed_out(self, source, timed_out_seat, next_seat) -> None:
        """
        玩家行动超时，视为停牌

        Args:
            source: 事件来源
            timed_out_seat: 超时的玩家座位
            next_seat: 下一个行动的座位
        """

    async def on_dealer_drew_card(self, source, dealer, card) -> None:
        """
        庄家要了一张牌

        Args:
            source: 事件来源
            dealer: 庄家座位
            card: 抽到的牌
        """

    async def on_game_ended(self, source, conclusion, payouts) -> None:
        """
        游戏结束

        Args:
            source: 事件来源
            conclusion: GameConclusion 结论
            payouts: {user_id: 派发金额}
        """

    async def on_game_aborted(self, source, reason: str) -> None:
        """
        游戏异常中止，下注已退还

        Args:
            source: 事件来源
            reason: 中止原因
        """
