"""
数据库模块
SQLite（WAL 模式）连接池，账户、交易记录和群组统计三张表
"""
import aiosqlite
import asyncio
from typing import Awaitable, Callable, List, Optional
from contextlib import asynccontextmanager


SCHEMA = (
    # 用户账户（账本）
    """CREATE TABLE IF NOT EXISTS users (
        telegram_id INTEGER PRIMARY KEY,
        username TEXT NOT NULL,
        balance INTEGER NOT NULL DEFAULT 1000,
        created_at INTEGER NOT NULL,
        updated_at INTEGER NOT NULL
    )""",
    # 余额变动记录
    """CREATE TABLE IF NOT EXISTS transactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        amount INTEGER NOT NULL,
        type TEXT NOT NULL,
        description TEXT,
        created_at INTEGER NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users(telegram_id)
    )""",
    """CREATE INDEX IF NOT EXISTS idx_user_transactions
        ON transactions(user_id, created_at DESC)""",
    # 群组庄家盈亏
    """CREATE TABLE IF NOT EXISTS chat_statistics (
        chat_id INTEGER PRIMARY KEY,
        dealer_balance INTEGER NOT NULL DEFAULT 0,
        games_played INTEGER NOT NULL DEFAULT 0,
        updated_at INTEGER NOT NULL
    )""",
)

Operation = Callable[[aiosqlite.Connection], Awaitable[None]]


class DatabaseManager:
    """账本数据库，池中的连接供并发的牌局共用"""

    def __init__(self, db_path: str, pool_size: int = 10):
        self.db_path = db_path
        self.pool_size = pool_size
        self._pool: asyncio.Queue = asyncio.Queue(maxsize=pool_size)
        self._init_lock = asyncio.Lock()
        # 建表用的主连接，None 表示尚未连接
        self._connection: Optional[aiosqlite.Connection] = None

    async def _open(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self.db_path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
        await conn.execute("PRAGMA busy_timeout=5000")
        return conn

    async def initialize(self) -> None:
        """打开连接池并建表，重复调用无副作用"""
        async with self._init_lock:
            if self._connection is None:
                # 主连接先打开，WAL 模式在池连接之前生效
                self._connection = await self._open()
                for _ in range(self.pool_size):
                    await self._pool.put(await self._open())

        for statement in SCHEMA:
            await self._connection.execute(statement)
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
        while not self._pool.empty():
            conn = await self._pool.get()
            await conn.close()

    @asynccontextmanager
    async def _borrow(self):
        conn = await self._pool.get()
        try:
            yield conn
        finally:
            await self._pool.put(conn)

    async def execute(self, query: str, params: tuple = ()) -> None:
        """执行一条写语句并提交"""
        async with self._borrow() as conn:
            await conn.execute(query, params)
            await conn.commit()

    async def fetch_one(self, query: str, params: tuple = ()) -> Optional[dict]:
        async with self._borrow() as conn:
            cursor = await conn.execute(query, params)
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def fetch_all(self, query: str, params: tuple = ()) -> List[dict]:
        async with self._borrow() as conn:
            cursor = await conn.execute(query, params)
            return [dict(row) for row in await cursor.fetchall()]

    async def transaction(self, operations: List[Operation]) -> None:
        """
        在同一连接上依次执行 operations，全部成功才提交

        扣注和对应的交易记录通过这里一起写入，任何一步抛出异常都会
        回滚并把异常原样抛给调用者。

        Args:
            operations: async 函数列表，每个接收事务中的连接
        """
        async with self._borrow() as conn:
            try:
                await conn.execute("BEGIN IMMEDIATE")
                for operation in operations:
                    await operation(conn)
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise
