"""
群组牌局管理器
每个群组一个实例：同一时间最多一局游戏，转发游戏事件，并累计庄家盈亏统计
"""
import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from blackjack_bot.cards import Shoe
from blackjack_bot.game_engine import BlackjackGame, HitResult
from blackjack_bot.listener import BlackjackGameListener
from blackjack_bot.models import ChatStatistics, GameState
from blackjack_bot.player import Participant, Seat
from blackjack_bot.repositories import StatisticsRepository
from blackjack_bot.rules import DEFAULT_RULES, BlackjackRules
from blackjack_bot.timers import TimerService

logger = logging.getLogger(__name__)


class ChatGameManager(BlackjackGameListener):
    """管理单个群组的21点牌局"""

    NO_GAME_RUNNING = "当前没有进行中的21点游戏"
    GAME_ALREADY_RUNNING = "当前已有进行中的游戏，请等待游戏结束"

    def __init__(
        self,
        chat_id: int,
        ledger,
        rules: Optional[BlackjackRules] = None,
        timer_service: Optional[TimerService] = None,
        stats_repo: Optional[StatisticsRepository] = None,
        shoe_factory: Optional[Callable[[], Shoe]] = None
    ):
        """
        初始化群组牌局管理器

        Args:
            chat_id: 群组 ID
            ledger: 账本（AccountManager）
            rules: 规则
            timer_service: 计时服务
            stats_repo: 统计仓储（可选，不提供则只在内存中统计）
            shoe_factory: 每局新建牌靴的工厂（可选）
        """
        self.chat_id = chat_id
        self.ledger = ledger
        self.rules = rules or DEFAULT_RULES
        self.timer_service = timer_service
        self.stats_repo = stats_repo
        self.shoe_factory = shoe_factory or (lambda: Shoe.create(self.rules.deck_count))

        self._game: Optional[BlackjackGame] = None
        self._listeners: List[BlackjackGameListener] = []
        self._statistics: Optional[ChatStatistics] = None
        # 开局与加入串行执行，发起者加入成功前其他人看不到这局
        self._entry_lock = asyncio.Lock()

    # ============ 查询 ============

    @property
    def game(self) -> Optional[BlackjackGame]:
        return self._game

    @property
    def game_is_running(self) -> bool:
        return self._game is not None and self._game.state != GameState.ENDED

    @property
    def can_start_new_game(self) -> bool:
        return not self.game_is_running

    @property
    def players(self) -> List[Participant]:
        """当前牌局的玩家，没有牌局时为空列表"""
        if self._game is None:
            return []
        return self._game.players

    def subscribe(self, listener: BlackjackGameListener) -> None:
        """订阅本群组的游戏事件（事件来源为本管理器）"""
        if listener not in self._listeners:
            self._listeners.append(listener)

    async def get_statistics(self) -> ChatStatistics:
        """
        获取本群组的统计

        Returns:
            ChatStatistics 对象
        """
        if self._statistics is None:
            if self.stats_repo is not None:
                self._statistics = await self.stats_repo.get_statistics(self.chat_id)
            else:
                self._statistics = ChatStatistics(chat_id=self.chat_id)
        return self._statistics

    # ============ 开局与加入 ============

    async def start_new_game(self, user_id: int, username: str, bet: int) -> Tuple[bool, str, float]:
        """
        开始新的一局，发起者自动加入

        Args:
            user_id: 发起者用户 ID
            username: 发起者用户名
            bet: 下注金额

        Returns:
            (成功, 消息, 距离发牌的秒数) 元组
        """
        async with self._entry_lock:
            return await self._start_new_game(user_id, username, bet)

    async def join_game(self, user_id: int, username: str, bet: int) -> Tuple[bool, str]:
        """
        加入当前牌局

        Args:
            user_id: 用户 ID
            username: 用户名
            bet: 下注金额

        Returns:
            (成功, 消息) 元组
        """
        async with self._entry_lock:
            return await self._join_game(user_id, username, bet)

    async def place_bet(self, user_id: int, username: str, bet: int) -> Tuple[bool, str, bool]:
        """
        下注：没有牌局时开局，否则加入当前牌局

        Args:
            user_id: 用户 ID
            username: 用户名
            bet: 下注金额

        Returns:
            (成功, 消息, 是否新开局) 元组
        """
        async with self._entry_lock:
            if not self.game_is_running:
                success, message, _ = await self._start_new_game(user_id, username, bet)
                return success, message, success
            success, message = await self._join_game(user_id, username, bet)
            return success, message, False

    async def _start_new_game(self, user_id: int, username: str, bet: int) -> Tuple[bool, str, float]:
        if self.game_is_running:
            return False, self.GAME_ALREADY_RUNNING, 0

        game = BlackjackGame(
            chat_id=self.chat_id,
            ledger=self.ledger,
            rules=self.rules,
            timer_service=self.timer_service,
            shoe=self.shoe_factory()
        )

        success, message = await game.join_game(user_id, username, bet)
        if not success:
            # 发起者未能加入，这局从未公开
            return False, message, 0

        game.subscribe(self)
        seconds = game.initialize_game()
        self._game = game
        logger.info(f"User {user_id} started a blackjack game in chat {self.chat_id}")
        return True, message, seconds

    async def _join_game(self, user_id: int, username: str, bet: int) -> Tuple[bool, str]:
        if not self.game_is_running:
            return False, self.NO_GAME_RUNNING
        return await self._game.join_game(user_id, username, bet)

    # ============ 玩家操作 ============

    async def stand(self, user_id: int) -> Tuple[bool, str, Optional[Seat]]:
        """停牌"""
        if self._game is None:
            return False, self.NO_GAME_RUNNING, None
        return await self._game.stand(user_id)

    async def hit(self, user_id: int) -> Tuple[bool, str, Optional[HitResult]]:
        """要牌"""
        if self._game is None:
            return False, self.NO_GAME_RUNNING, None
        return await self._game.hit(user_id)

    async def surrender(self, user_id: int) -> Tuple[bool, str, Optional[Seat]]:
        """投降"""
        if self._game is None:
            return False, self.NO_GAME_RUNNING, None
        return await self._game.surrender(user_id)

    async def double_down(self, user_id: int) -> Tuple[bool, str, Optional[HitResult]]:
        """加倍"""
        if self._game is None:
            return False, self.NO_GAME_RUNNING, None
        return await self._game.double_down(user_id)

    async def close(self, reason: str = "牌局已被关闭") -> None:
        """中止当前牌局（退还下注）并释放计时器"""
        game = self._game
        if game is None:
            return
        await game.abort(reason)
        game.close()
        self._game = None

    # ============ 事件转发 ============

    async def on_cards_dealt(self, source, dealer, starting_seat) -> None:
        await self._forward('on_cards_dealt', dealer, starting_seat)

    async def on_player_turn_timed_out(self, source, timed_out_seat, next_seat) -> None:
        await self._forward('on_player_turn_timed_out', timed_out_seat, next_seat)

    async def on_dealer_drew_card(self, source, dealer, card) -> None:
        await self._forward('on_dealer_drew_card', dealer, card)

    async def on_game_ended(self, source, conclusion, payouts) -> None:
        if source is self._game:
            self._game = None

        total_bets = sum(player.bet for player in source.players)
        dealer_delta = total_bets - sum(payouts.values())

        statistics = await self.get_statistics()
        statistics.record_game(dealer_delta)
        if self.stats_repo is not None:
            await self.stats_repo.record_game(self.chat_id, dealer_delta)

        logger.info(f"Chat {self.chat_id} dealer balance is now {statistics.dealer_balance}")
        await self._forward('on_game_ended', conclusion, payouts)

    async def on_game_aborted(self, source, reason: str) -> None:
        if source is self._game:
            self._game = None
        await self._forward('on_game_aborted', reason)

    async def _forward(self, event: str, *args) -> None:
        for listener in list(self._listeners):
            try:
                await getattr(listener, event)(self, *args)
            except Exception as e:
                logger.error(f"Listener {listener!r} failed on {event}: {e}", exc_info=True)
