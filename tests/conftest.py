"""
测试公共工具
手动触发的计时服务、内存账本、固定牌序的牌靴和临时数据库
"""
import os
import tempfile
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Tuple

import pytest

from blackjack_bot.account_manager import AccountManager
from blackjack_bot.cards import Card, Rank, Shoe, Suit
from blackjack_bot.database import DatabaseManager
from blackjack_bot.repositories import UserRepository, TransactionRepository, StatisticsRepository
from blackjack_bot.timers import TimerHandle, TimerService


class ManualTimerHandle(TimerHandle):
    """只有被测试显式触发才会执行的计时器"""

    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self.fired = False
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualTimerService(TimerService):
    """记录所有调度，测试代码决定何时触发"""

    def __init__(self):
        self.handles: List[ManualTimerHandle] = []

    def schedule(self, delay: float, callback) -> TimerHandle:
        handle = ManualTimerHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[ManualTimerHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    async def fire_next(self) -> Optional[ManualTimerHandle]:
        """触发最早的未取消计时器，没有则返回 None"""
        pending = self.pending
        if not pending:
            return None
        handle = pending[0]
        handle.fired = True
        await handle.callback()
        return handle

    async def run_until_idle(self, max_steps: int = 100) -> int:
        """不断触发计时器直到没有待执行的计时器"""
        steps = 0
        while self.pending:
            if steps >= max_steps:
                raise AssertionError("计时器没有停止")
            await self.fire_next()
            steps += 1
        return steps


class MemoryLedger:
    """内存账本，记录每一笔余额变动"""

    def __init__(self, default_balance: int = 1000):
        self.default_balance = default_balance
        self.balances: Dict[int, int] = {}
        self.history: List[Tuple[int, int, str]] = []

    async def get_balance(self, user_id: int) -> int:
        return self.balances.get(user_id, self.default_balance)

    async def adjust_balance(self, user_id: int, delta: int, reason: str) -> int:
        balance = self.balances.get(user_id, self.default_balance) + delta
        self.balances[user_id] = balance
        self.history.append((user_id, delta, reason))
        return balance

    def reasons_for(self, user_id: int) -> List[str]:
        return [reason for uid, _, reason in self.history if uid == user_id]


def card(rank: Rank, suit: Suit = Suit.SPADES) -> Card:
    return Card(suit, rank)


def stacked_shoe(*ranks: Rank) -> Shoe:
    """
    按给定顺序发牌的牌靴（不洗牌）

    发牌顺序：每位玩家一张、庄家一张、每位玩家再一张，之后是要牌和庄家的牌
    """
    cards = [card(rank) for rank in ranks]
    return Shoe(list(reversed(cards)), shuffle_function=lambda cards: None)


@asynccontextmanager
async def temp_database():
    """Hypothesis 测试中每个样例使用独立的临时数据库"""
    fd, db_path = tempfile.mkstemp(suffix='.db')
    os.close(fd)

    db = DatabaseManager(db_path, pool_size=2)
    try:
        await db.initialize()
        yield db
    finally:
        await db.close()
        for path in (db_path, db_path + '-wal', db_path + '-shm'):
            if os.path.exists(path):
                os.unlink(path)


@pytest.fixture
def timer_service():
    return ManualTimerService()


@pytest.fixture
def ledger():
    return MemoryLedger()


@pytest.fixture
async def db_manager():
    """创建临时数据库用于测试"""
    fd, db_path = tempfile.mkstemp(suffix='.db')
    os.close(fd)

    db = DatabaseManager(db_path, pool_size=2)
    await db.initialize()

    yield db

    await db.close()
    for path in (db_path, db_path + '-wal', db_path + '-shm'):
        if os.path.exists(path):
            os.unlink(path)


@pytest.fixture
def user_repo(db_manager):
    return UserRepository(db_manager)


@pytest.fixture
def tx_repo(db_manager):
    return TransactionRepository(db_manager)


@pytest.fixture
def stats_repo(db_manager):
    return StatisticsRepository(db_manager)


@pytest.fixture
def account_manager(user_repo, tx_repo):
    return AccountManager(user_repo, tx_repo)
