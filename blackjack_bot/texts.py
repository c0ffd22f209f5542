"""
21点消息文本
把牌局状态与事件格式化为发送到群组的中文消息
"""
from typing import Dict, Optional, Sequence

from blackjack_bot.cards import Card, format_hand
from blackjack_bot.conclusion import GameConclusion, Outcome
from blackjack_bot.models import ChatStatistics, HandState
from blackjack_bot.player import Participant, Seat
from blackjack_bot.rules import BlackjackRules


OUTCOME_LABELS = {
    Outcome.BLACKJACK: "🎉 Blackjack",
    Outcome.HIGHER: "✅ 赢",
    Outcome.EQUAL: "🤝 平局",
    Outcome.LOWER: "❌ 输",
    Outcome.BUSTED: "💥 爆牌",
    Outcome.SURRENDERED: "🏳️ 投降",
}


class BlackjackTexts:
    """21点消息模板"""

    @staticmethod
    def format_values(seat: Seat) -> str:
        """
        格式化座位的点数，软牌显示所有可能的点数

        Args:
            seat: 座位

        Returns:
            例如 "17 或 7"、"爆牌"、"Blackjack"
        """
        if seat.hand_state == HandState.BLACKJACK:
            return "Blackjack"
        if seat.is_busted:
            return "爆牌"
        values = seat.non_busted_hand_values
        if not values:
            return "0"
        return " 或 ".join(str(value) for value in values)

    @staticmethod
    def seat_line(seat: Seat) -> str:
        """一行座位信息：名字、手牌和点数"""
        line = f"{seat.formatted_name}: {format_hand(seat.cards)} ({BlackjackTexts.format_values(seat)})"
        if isinstance(seat, Participant):
            line += f" 下注 {seat.bet}"
            if seat.hand_state == HandState.SURRENDERED:
                line += " [投降]"
        return line

    @staticmethod
    def game_started(join_message: str, seconds: float, rules: BlackjackRules) -> str:
        """新开局消息"""
        return (
            f"🃏 21点开局！\n\n"
            f"{join_message}\n\n"
            f"⏳ {seconds:g} 秒后发牌，其他人可以用 /bet 金额 加入"
            f"（最多 {rules.max_players} 人）"
        )

    @staticmethod
    def table(dealer: Seat, players: Sequence[Participant]) -> str:
        """当前牌桌"""
        lines = [f"🎩 {BlackjackTexts.seat_line(dealer)}", ""]
        lines.extend(f"👤 {BlackjackTexts.seat_line(player)}" for player in players)
        return "\n".join(lines)

    @staticmethod
    def turn_prompt(seat: Optional[Seat], seconds: float) -> str:
        """
        提示下一个行动的座位

        Args:
            seat: 下一个座位，可能是庄家
            seconds: 玩家行动时限
        """
        if seat is None:
            return ""
        if seat.is_dealer:
            return "🎩 所有玩家行动完毕，轮到庄家"
        return (
            f"👉 轮到 {seat.formatted_name} ({BlackjackTexts.format_values(seat)})，"
            f"请在 {seconds:g} 秒内行动"
        )

    @staticmethod
    def cards_dealt(
        dealer: Seat,
        players: Sequence[Participant],
        starting_seat: Seat,
        rules: BlackjackRules
    ) -> str:
        """发牌完成的消息"""
        return (
            f"🃏 发牌完毕\n\n"
            f"{BlackjackTexts.table(dealer, players)}\n\n"
            f"{BlackjackTexts.turn_prompt(starting_seat, rules.player_turn_seconds)}"
        )

    @staticmethod
    def action_result(message: str, seat: Optional[Seat], next_seat: Optional[Seat], rules: BlackjackRules) -> str:
        """
        玩家操作成功后的消息

        Args:
            message: 牌局返回的操作描述
            seat: 行动的玩家（显示其手牌）
            next_seat: 现在轮到的座位
            rules: 规则
        """
        text = message
        if seat is not None:
            text += f"\n{BlackjackTexts.seat_line(seat)}"
        prompt = BlackjackTexts.turn_prompt(next_seat, rules.player_turn_seconds)
        if prompt:
            text += f"\n\n{prompt}"
        return text

    @staticmethod
    def turn_timed_out(timed_out_seat: Seat, next_seat: Seat, rules: BlackjackRules) -> str:
        """玩家超时消息"""
        return (
            f"⏰ {timed_out_seat.formatted_name} 超时，自动停牌\n\n"
            f"{BlackjackTexts.turn_prompt(next_seat, rules.player_turn_seconds)}"
        )

    @staticmethod
    def dealer_drew(dealer: Seat, card: Card) -> str:
        """庄家要牌消息"""
        return f"🎩 庄家要到了 {card}\n{BlackjackTexts.seat_line(dealer)}"

    @staticmethod
    def conclusion(conclusion: GameConclusion, payouts: Dict[int, int]) -> str:
        """
        结算消息

        Args:
            conclusion: 本局结论
            payouts: {user_id: 派发金额}
        """
        if conclusion.dealer_busted:
            dealer_result = "爆牌"
        elif conclusion.dealer_has_blackjack:
            dealer_result = "Blackjack"
        else:
            dealer_result = str(conclusion.dealer_value)

        lines = [
            "🏁 本局结束",
            "",
            f"🎩 庄家: {format_hand(conclusion.dealer_cards)} ({dealer_result})",
            "",
        ]

        for outcome, players in conclusion.buckets.items():
            for player in players:
                payout = payouts.get(player.user_id, 0)
                lines.append(
                    f"{OUTCOME_LABELS[outcome]} {player.formatted_name}: "
                    f"{format_hand(player.cards)} 下注 {player.bet}，获得 {payout}"
                )

        return "\n".join(lines)

    @staticmethod
    def aborted(reason: str) -> str:
        """牌局中止消息"""
        return f"⚠️ 本局已取消：{reason}\n所有下注已退还"

    @staticmethod
    def statistics(stats: ChatStatistics) -> str:
        """群组统计消息"""
        return (
            f"📊 本群21点统计\n\n"
            f"🎲 已完成局数: {stats.games_played}\n"
            f"🎩 庄家累计盈亏: {stats.dealer_balance:+d} 金币"
        )

    @staticmethod
    def help(rules: BlackjackRules) -> str:
        """玩法说明"""
        text = (
            f"🃏 21点玩法\n\n"
            f"/bet 金额 - 开局或加入当前牌局（至少 {rules.min_bet} 金币）\n"
            f"/hit - 要牌\n"
            f"/stand - 停牌\n"
        )
        if rules.surrender_allowed:
            text += "/surrender - 投降（只能第一次行动时，退还一半下注）\n"
        if rules.double_down_allowed:
            text += "/double - 加倍（只能第一次行动时，只再要一张牌）\n"
        text += (
            f"/bjstats - 本群统计\n\n"
            f"规则:\n"
            f"🃏 每局最多 {rules.max_players} 名玩家，开局后等待 {rules.join_wait_seconds:g} 秒发牌\n"
            f"🃏 A 可以算 1 点或 11 点，J、Q、K 都算 10 点\n"
            f"🃏 每位玩家有 {rules.player_turn_seconds:g} 秒行动时间，超时自动停牌\n"
            f"🃏 庄家点数不到 17 必须要牌\n"
            f"🃏 Blackjack 返还 {rules.blackjack_multiplier:g} 倍，赢返还 {rules.win_multiplier:g} 倍，平局退还下注"
        )
        return text
