"""
21点游戏管理器
按群组维护牌局管理器，为命令处理器提供统一入口
"""
import logging
from typing import Callable, Dict, Optional

from blackjack_bot.account_manager import AccountManager
from blackjack_bot.cards import Shoe
from blackjack_bot.chat_game_manager import ChatGameManager
from blackjack_bot.listener import BlackjackGameListener
from blackjack_bot.repositories import StatisticsRepository
from blackjack_bot.rules import DEFAULT_RULES, BlackjackRules
from blackjack_bot.timers import AsyncioTimerService, TimerService

logger = logging.getLogger(__name__)


class BlackjackManager:
    """21点游戏管理器，chat_id -> ChatGameManager"""

    def __init__(
        self,
        account_mgr: AccountManager,
        rules: Optional[BlackjackRules] = None,
        stats_repo: Optional[StatisticsRepository] = None,
        timer_service: Optional[TimerService] = None,
        listener: Optional[BlackjackGameListener] = None,
        shoe_factory: Optional[Callable[[], Shoe]] = None
    ):
        """
        初始化21点游戏管理器

        Args:
            account_mgr: 账户管理器（账本）
            rules: 规则
            stats_repo: 统计仓储（可选）
            timer_service: 计时服务，默认使用 asyncio
            listener: 订阅所有群组牌局事件的监听器（可选）
            shoe_factory: 牌靴工厂（可选，测试时用于固定牌序）
        """
        self.account_mgr = account_mgr
        self.rules = rules or DEFAULT_RULES
        self.stats_repo = stats_repo
        self.timer_service = timer_service or AsyncioTimerService()
        self.listener = listener
        self.shoe_factory = shoe_factory
        self.sessions: Dict[int, ChatGameManager] = {}

    def get_session(self, chat_id: int) -> Optional[ChatGameManager]:
        """
        获取群组的牌局管理器

        Args:
            chat_id: 群组 ID

        Returns:
            牌局管理器，如果不存在返回 None
        """
        return self.sessions.get(chat_id)

    def get_or_create_session(self, chat_id: int) -> ChatGameManager:
        """
        获取或创建群组的牌局管理器

        Args:
            chat_id: 群组 ID

        Returns:
            牌局管理器
        """
        session = self.sessions.get(chat_id)
        if session is None:
            session = ChatGameManager(
                chat_id=chat_id,
                ledger=self.account_mgr,
                rules=self.rules,
                timer_service=self.timer_service,
                stats_repo=self.stats_repo,
                shoe_factory=self.shoe_factory
            )
            if self.listener is not None:
                session.subscribe(self.listener)
            self.sessions[chat_id] = session
            logger.info(f"Created blackjack session for chat {chat_id}")
        return session

    async def close_all(self) -> int:
        """
        中止所有进行中的牌局并退还下注

        Returns:
            被中止的牌局数量
        """
        closed = 0
        for session in self.sessions.values():
            if session.game_is_running:
                await session.close("机器人正在关闭，本局已取消并退还下注")
                closed += 1
        return closed
