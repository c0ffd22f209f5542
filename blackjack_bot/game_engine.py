"""
21点游戏引擎
一局多人21点的状态机：等待加入、发牌、玩家轮流行动（含超时）、庄家自动要牌与结算
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from blackjack_bot.cards import Card, EmptyShoeError, Shoe
from blackjack_bot.conclusion import GameConclusion, conclude_game, reward_players
from blackjack_bot.listener import BlackjackGameListener
from blackjack_bot.models import GameState, HandState
from blackjack_bot.player import Dealer, Participant, Seat
from blackjack_bot.rules import DEFAULT_RULES, BlackjackRules
from blackjack_bot.timers import AsyncioTimerService, TimerHandle, TimerService

logger = logging.getLogger(__name__)


class GameStateError(Exception):
    """状态机被错误使用（程序错误）"""


@dataclass(frozen=True)
class HitResult:
    """要牌（或加倍）的结果"""
    card: Card                  # 抽到的牌
    current_seat: Participant   # 要牌的玩家
    next_seat: Seat             # 现在轮到的座位，可能仍是该玩家，也可能是庄家


class BlackjackGame:
    """一局进行中的21点游戏"""

    NOT_PLAYER_TURNS = "当前不在玩家行动阶段"
    NOT_YOUR_TURN = "现在不是你的回合"

    def __init__(
        self,
        chat_id: int,
        ledger,
        rules: Optional[BlackjackRules] = None,
        timer_service: Optional[TimerService] = None,
        shoe: Optional[Shoe] = None
    ):
        """
        初始化游戏

        Args:
            chat_id: 群组 ID
            ledger: 账本，提供 get_balance(user_id) 和 adjust_balance(user_id, delta, reason)
            rules: 规则，默认 DEFAULT_RULES
            timer_service: 计时服务，默认使用 asyncio
            shoe: 牌靴，默认按规则新建
        """
        self.chat_id = chat_id
        self.ledger = ledger
        self.rules = rules or DEFAULT_RULES
        self._timer_service = timer_service or AsyncioTimerService()
        self._shoe = shoe or Shoe.create(self.rules.deck_count)

        self._dealer = Dealer()
        self._players: List[Participant] = []
        self._listeners: List[BlackjackGameListener] = []

        self._state = GameState.INITIALIZING
        self._turn_index = -1
        self._timer: Optional[TimerHandle] = None
        # 每次调度或取消计时器都会递增，过期的回调据此变成空操作
        self._generation = 0
        self._lock = asyncio.Lock()

        self._conclusion: Optional[GameConclusion] = None
        self._payouts: Dict[int, int] = {}
        self._aborted = False

    # ============ 查询 ============

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def players(self) -> List[Participant]:
        """按加入顺序排列的玩家（副本）"""
        return list(self._players)

    @property
    def dealer(self) -> Dealer:
        return self._dealer

    @property
    def turn_index(self) -> int:
        return self._turn_index

    @property
    def current_seat(self) -> Optional[Seat]:
        """当前行动的座位；轮转越过最后一名玩家后为庄家，发牌前为 None"""
        if self._turn_index < 0:
            return None
        if self._turn_index >= len(self._players):
            return self._dealer
        return self._players[self._turn_index]

    @property
    def conclusion(self) -> Optional[GameConclusion]:
        return self._conclusion

    @property
    def payouts(self) -> Dict[int, int]:
        return dict(self._payouts)

    @property
    def is_aborted(self) -> bool:
        return self._aborted

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def get_player(self, user_id: int) -> Optional[Participant]:
        """按用户 ID 查找玩家"""
        for player in self._players:
            if player.user_id == user_id:
                return player
        return None

    def subscribe(self, listener: BlackjackGameListener) -> None:
        """订阅游戏事件（重复订阅无效）"""
        if listener not in self._listeners:
            self._listeners.append(listener)

    # ============ 加入与开始 ============

    async def join_game(self, user_id: int, username: str, bet: int) -> Tuple[bool, str]:
        """
        加入本局游戏，成功后立即扣除下注

        Args:
            user_id: 用户 ID
            username: 用户名
            bet: 下注金额

        Returns:
            (成功, 消息) 元组
        """
        async with self._lock:
            if self._state not in (GameState.INITIALIZING, GameState.AWAITING_PLAYERS):
                return False, "游戏已经开始，无法加入"

            if len(self._players) >= self.rules.max_players:
                return False, f"每局最多只能有 {self.rules.max_players} 名玩家"

            if self.get_player(user_id) is not None:
                return False, "你已经在本局游戏中了"

            if isinstance(bet, bool) or not isinstance(bet, int) or bet < self.rules.min_bet:
                return False, f"下注金额必须是不小于 {self.rules.min_bet} 的整数"

            balance = await self.ledger.get_balance(user_id)
            if balance < bet:
                return False, f"余额不足，当前余额：{balance}"

            player = Participant(user_id, username, bet)
            await player.confiscate_bet(self.ledger)
            self._players.append(player)

            logger.info(f"User {user_id} joined blackjack game in chat {self.chat_id} with bet {bet}")
            return True, f"{player.formatted_name} 加入了本局 21 点，下注 {bet} 金币"

    def initialize_game(self) -> float:
        """
        开始等待玩家加入，计时结束后自动发牌

        Returns:
            距离发牌的秒数

        Raises:
            GameStateError: 重复初始化或没有任何玩家
        """
        if self._state != GameState.INITIALIZING:
            raise GameStateError("游戏已经初始化过了，这是程序错误")
        if not self._players:
            raise GameStateError("没有任何玩家，无法开始游戏")

        self._state = GameState.AWAITING_PLAYERS
        self._schedule(self.rules.join_wait_seconds, self._deal_cards)
        logger.info(f"Blackjack game in chat {self.chat_id} awaiting players")
        return self.rules.join_wait_seconds

    # ============ 玩家操作 ============

    async def stand(self, user_id: int) -> Tuple[bool, str, Optional[Seat]]:
        """
        停牌

        Args:
            user_id: 用户 ID

        Returns:
            (成功, 消息, 下一个行动的座位) 元组
        """
        async with self._lock:
            seat, error = self._current_participant(user_id)
            if seat is None:
                return False, error, None

            self._cancel_timer()
            seat.mark_acted()
            next_seat = self._start_next_seat_turn()
            return True, f"{seat.formatted_name} 停牌", next_seat

    async def hit(self, user_id: int) -> Tuple[bool, str, Optional[HitResult]]:
        """
        要牌；爆牌则轮到下一位，否则重新计时

        Args:
            user_id: 用户 ID

        Returns:
            (成功, 消息, HitResult) 元组

        Raises:
            EmptyShoeError: 牌靴耗尽，本局已中止
        """
        async with self._lock:
            seat, error = self._current_participant(user_id)
            if seat is None:
                return False, error, None

            self._cancel_timer()
            card = await self._draw_or_abort()
            seat.give_cards(card)
            seat.mark_acted()

            if seat.is_busted:
                next_seat = self._start_next_seat_turn()
            else:
                self._schedule_player_turn_timeout()
                next_seat = seat

            return True, f"{seat.formatted_name} 要到了 {card}", HitResult(card, seat, next_seat)

    async def surrender(self, user_id: int) -> Tuple[bool, str, Optional[Seat]]:
        """
        投降，只能作为第一次行动；结算时返还一半下注

        Args:
            user_id: 用户 ID

        Returns:
            (成功, 消息, 下一个行动的座位) 元组
        """
        async with self._lock:
            seat, error = self._current_participant(user_id)
            if seat is None:
                return False, error, None

            if not self.rules.surrender_allowed:
                return False, "本桌不允许投降", None
            if not seat.may_surrender:
                return False, "只能在第一次行动时投降", None

            self._cancel_timer()
            seat.set_surrendered()
            next_seat = self._start_next_seat_turn()
            return True, f"{seat.formatted_name} 投降了", next_seat

    async def double_down(self, user_id: int) -> Tuple[bool, str, Optional[HitResult]]:
        """
        加倍：只能作为第一次行动，再付一份下注，只要一张牌后结束回合

        Args:
            user_id: 用户 ID

        Returns:
            (成功, 消息, HitResult) 元组

        Raises:
            EmptyShoeError: 牌靴耗尽，本局已中止
        """
        async with self._lock:
            seat, error = self._current_participant(user_id)
            if seat is None:
                return False, error, None

            if not self.rules.double_down_allowed:
                return False, "本桌不允许加倍", None
            if not seat.may_double_down:
                return False, "只能在第一次行动时加倍", None

            balance = await self.ledger.get_balance(user_id)
            if balance < seat.bet:
                return False, f"余额不足，无法加倍。当前余额：{balance}，需要：{seat.bet}", None

            self._cancel_timer()
            await seat.double_bet(self.ledger)
            card = await self._draw_or_abort()
            seat.give_cards(card)
            seat.mark_acted()
            next_seat = self._start_next_seat_turn()

            message = f"{seat.formatted_name} 加倍，下注 {seat.bet} 金币，要到了 {card}"
            return True, message, HitResult(card, seat, next_seat)

    async def abort(self, reason: str) -> bool:
        """
        中止本局并退还所有下注

        Args:
            reason: 中止原因

        Returns:
            是否真的中止了（已结束的游戏返回 False）
        """
        async with self._lock:
            if self._state == GameState.ENDED:
                return False
            await self._abort_round(reason)
            return True

    def close(self) -> None:
        """取消所有未触发的计时器，之后引擎不再接受任何操作"""
        self._cancel_timer()
        self._state = GameState.ENDED

    # ============ 内部流程 ============

    def _current_participant(self, user_id: int) -> Tuple[Optional[Participant], str]:
        if self._state != GameState.PLAYER_TURNS:
            return None, self.NOT_PLAYER_TURNS
        seat = self.current_seat
        if seat is None or seat.is_dealer or seat.user_id != user_id:
            return None, self.NOT_YOUR_TURN
        return seat, ""

    def _schedule(self, delay: float, callback) -> None:
        """调度唯一的计时器，旧的计时器先被取消"""
        self._cancel_timer()
        generation = self._generation

        async def fire():
            async with self._lock:
                if generation != self._generation or self._state == GameState.ENDED:
                    logger.debug(f"Ignoring stale timer in chat {self.chat_id}")
                    return
                self._timer = None
                await callback()

        self._timer = self._timer_service.schedule(delay, fire)

    def _cancel_timer(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_player_turn_timeout(self) -> None:
        turn_index = self._turn_index
        self._schedule(
            self.rules.player_turn_seconds,
            lambda: self._on_player_turn_timeout(turn_index)
        )

    async def _draw_or_abort(self) -> Card:
        try:
            return self._shoe.draw()
        except EmptyShoeError as e:
            await self._abort_round(str(e))
            raise

    async def _deal_cards(self) -> None:
        self._state = GameState.DEALING_CARDS
        logger.info(f"Dealing cards in chat {self.chat_id} to {len(self._players)} players")

        try:
            self._shoe.shuffle()
            for player in self._players:
                player.give_cards(self._shoe.draw())
            self._dealer.give_cards(self._shoe.draw())
            for player in self._players:
                player.give_cards(self._shoe.draw())
        except EmptyShoeError as e:
            await self._abort_round(str(e))
            return

        self._state = GameState.PLAYER_TURNS
        starting_seat = self._start_next_seat_turn()
        await self._notify('on_cards_dealt', self._dealer, starting_seat)

    def _start_next_seat_turn(self) -> Seat:
        """
        轮到下一个可以行动的座位

        跳过不能再要牌的玩家；越过最后一名玩家后轮到庄家，
        庄家回合在一个行动间隔后开始。
        """
        for _ in range(len(self._players) + 1):
            self._turn_index += 1
            seat = self.current_seat

            if seat.is_dealer:
                self._schedule(self.rules.time_between_actions, self._execute_dealer_turn)
                return seat

            if seat.may_draw_card:
                self._schedule_player_turn_timeout()
                return seat

            logger.debug(f"Skipping seat {self._turn_index} ({seat.hand_state.value})")

        raise GameStateError("轮转次数超过座位数量")

    async def _on_player_turn_timeout(self, turn_index: int) -> None:
        if self._state != GameState.PLAYER_TURNS or self._turn_index != turn_index:
            logger.debug(f"Turn timeout for seat {turn_index} arrived after the turn moved on")
            return

        timed_out_seat = self.current_seat
        logger.info(f"Seat {turn_index} in chat {self.chat_id} timed out")
        next_seat = self._start_next_seat_turn()
        await self._notify('on_player_turn_timed_out', timed_out_seat, next_seat)

    def _has_normal_players(self) -> bool:
        return any(player.hand_state == HandState.NORMAL for player in self._players)

    async def _execute_dealer_turn(self) -> None:
        self._state = GameState.DEALER_TURN
        logger.info(f"Dealer turn in chat {self.chat_id}")

        # 所有玩家都已爆牌、Blackjack 或投降时庄家不要牌
        if not self._has_normal_players():
            await self._end_game()
            return

        await self._dealer_step()

    async def _dealer_step(self) -> None:
        if self._dealer.is_busted or self._dealer.has_reached_dealer_minimum:
            await self._end_game()
            return

        try:
            card = self._shoe.draw()
        except EmptyShoeError as e:
            await self._abort_round(str(e))
            return

        self._dealer.give_cards(card)
        await self._notify('on_dealer_drew_card', self._dealer, card)
        self._schedule(self.rules.time_between_actions, self._dealer_step)

    async def _end_game(self) -> None:
        self._cancel_timer()
        self._state = GameState.ENDED

        self._conclusion = conclude_game(self._players, self._dealer, self.rules)
        self._payouts = await reward_players(self._conclusion, self.ledger, self.rules)

        logger.info(
            f"Blackjack game in chat {self.chat_id} ended, dealer "
            f"{'busted' if self._conclusion.dealer_busted else self._conclusion.dealer_value}"
        )
        await self._notify('on_game_ended', self._conclusion, dict(self._payouts))

    async def _abort_round(self, reason: str) -> None:
        logger.error(f"Aborting blackjack game in chat {self.chat_id}: {reason}")
        self._cancel_timer()
        self._state = GameState.ENDED
        self._aborted = True

        for player in self._players:
            try:
                await player.refund_bet(self.ledger)
            except Exception as e:
                logger.error(f"Failed to refund {player.bet} to user {player.user_id}: {e}", exc_info=True)

        await self._notify('on_game_aborted', reason)

    async def _notify(self, event: str, *args) -> None:
        for listener in list(self._listeners):
            try:
                await getattr(listener, event)(self, *args)
            except Exception as e:
                logger.error(f"Listener {listener!r} failed on {event}: {e}", exc_info=True)
