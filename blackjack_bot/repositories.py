"""
仓储层
用户账户、交易记录和群组统计的读写

写操作可以传入事务中的连接 conn，这样多条写入会在同一个
DatabaseManager.transaction 中提交；不传时各自独立提交。
"""
from typing import Optional, List
import time

import aiosqlite

from blackjack_bot.database import DatabaseManager
from blackjack_bot.models import User, Transaction, ChatStatistics


# 新用户初始金币
INITIAL_BALANCE = 1000


class _Repository:

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def _write(self, query: str, params: tuple, conn: Optional[aiosqlite.Connection]) -> None:
        if conn is None:
            await self.db.execute(query, params)
        else:
            await conn.execute(query, params)


class UserRepository(_Repository):
    """用户账户"""

    async def create_user(self, telegram_id: int, username: str) -> User:
        """
        创建新用户，初始 1000 金币

        Args:
            telegram_id: Telegram 用户 ID
            username: 显示名

        Returns:
            创建的用户对象
        """
        now = int(time.time())
        await self._write(
            "INSERT INTO users (telegram_id, username, balance, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (telegram_id, username, INITIAL_BALANCE, now, now),
            None
        )
        return User(telegram_id, username, INITIAL_BALANCE, now, now)

    async def get_user(self, telegram_id: int) -> Optional[User]:
        row = await self.db.fetch_one("SELECT * FROM users WHERE telegram_id = ?", (telegram_id,))
        return User.from_dict(row) if row else None

    async def update_balance(
        self,
        telegram_id: int,
        amount: int,
        conn: Optional[aiosqlite.Connection] = None
    ) -> None:
        """
        增减余额

        Args:
            telegram_id: Telegram 用户 ID
            amount: 变动量，负数为扣除
            conn: 事务中的连接（可选）
        """
        await self._write(
            "UPDATE users SET balance = balance + ?, updated_at = ? WHERE telegram_id = ?",
            (amount, int(time.time()), telegram_id),
            conn
        )


class TransactionRepository(_Repository):
    """余额变动记录"""

    async def log_transaction(
        self,
        user_id: int,
        amount: int,
        transaction_type: str,
        description: Optional[str] = None,
        conn: Optional[aiosqlite.Connection] = None
    ) -> None:
        """
        记录一笔余额变动

        Args:
            user_id: 用户 ID
            amount: 变动量
            transaction_type: 交易类型，例如 blackjack_bet
            description: 中文描述
            conn: 事务中的连接（可选）
        """
        await self._write(
            "INSERT INTO transactions (user_id, amount, type, description, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (user_id, amount, transaction_type, description, int(time.time())),
            conn
        )

    async def get_user_history(self, user_id: int, limit: int = 50) -> List[Transaction]:
        """用户的交易记录，最新的在前"""
        rows = await self.db.fetch_all(
            "SELECT * FROM transactions WHERE user_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (user_id, limit)
        )
        return [Transaction.from_dict(row) for row in rows]


class StatisticsRepository(_Repository):
    """群组21点统计"""

    async def get_statistics(self, chat_id: int) -> ChatStatistics:
        """
        获取群组统计，没有记录时返回全 0 的统计

        Args:
            chat_id: 群组 ID

        Returns:
            ChatStatistics 对象
        """
        row = await self.db.fetch_one("SELECT * FROM chat_statistics WHERE chat_id = ?", (chat_id,))
        if row:
            return ChatStatistics.from_dict(row)
        return ChatStatistics(chat_id=chat_id)

    async def record_game(self, chat_id: int, dealer_delta: int) -> None:
        """
        累加一局的庄家盈亏和局数

        Args:
            chat_id: 群组 ID
            dealer_delta: 本局庄家盈亏
        """
        await self._write(
            """INSERT INTO chat_statistics (chat_id, dealer_balance, games_played, updated_at)
               VALUES (?, ?, 1, ?)
               ON CONFLICT(chat_id) DO UPDATE SET
                   dealer_balance = dealer_balance + excluded.dealer_balance,
                   games_played = games_played + 1,
                   updated_at = excluded.updated_at""",
            (chat_id, dealer_delta, int(time.time())),
            None
        )
