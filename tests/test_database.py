"""
数据库层单元测试
测试数据库初始化、表创建、事务提交和回滚
"""
import pytest

from blackjack_bot.database import DatabaseManager


INSERT_USER = (
    "INSERT INTO users (telegram_id, username, balance, created_at, updated_at) "
    "VALUES (?, ?, ?, ?, ?)"
)


class TestDatabaseInitialization:
    """测试数据库初始化"""

    @pytest.mark.parametrize("table", ["users", "transactions", "chat_statistics"])
    async def test_database_creates_tables(self, db_manager, table):
        """测试创建所有表"""
        result = await db_manager.fetch_one(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table,)
        )
        assert result is not None
        assert result['name'] == table

    async def test_database_creates_indexes(self, db_manager):
        """测试创建索引"""
        result = await db_manager.fetch_one(
            "SELECT name FROM sqlite_master WHERE type='index' AND name=?",
            ("idx_user_transactions",)
        )
        assert result is not None

    async def test_database_enables_wal_mode(self, db_manager):
        """测试启用 WAL 模式"""
        result = await db_manager.fetch_one("PRAGMA journal_mode")
        assert result['journal_mode'].upper() == 'WAL'

    async def test_initialize_is_idempotent(self, db_manager):
        """重复初始化不会报错也不会丢数据"""
        await db_manager.execute(INSERT_USER, (1, 'user1', 1000, 1000000, 1000000))

        await db_manager.initialize()

        result = await db_manager.fetch_one("SELECT * FROM users WHERE telegram_id = ?", (1,))
        assert result is not None


class TestDatabaseOperations:
    """测试数据库 CRUD 操作"""

    async def test_execute_insert(self, db_manager):
        """测试插入操作"""
        await db_manager.execute(INSERT_USER, (12345, 'testuser', 1000, 1000000, 1000000))

        result = await db_manager.fetch_one(
            "SELECT * FROM users WHERE telegram_id = ?",
            (12345,)
        )
        assert result is not None
        assert result['username'] == 'testuser'
        assert result['balance'] == 1000

    async def test_fetch_one_returns_none_when_no_result(self, db_manager):
        """测试查询不存在的数据返回 None"""
        result = await db_manager.fetch_one(
            "SELECT * FROM users WHERE telegram_id = ?",
            (99999,)
        )
        assert result is None

    async def test_fetch_all_returns_multiple_rows(self, db_manager):
        """测试查询多行数据"""
        for i in range(3):
            await db_manager.execute(INSERT_USER, (i, f'user{i}', 1000 + i * 100, 1000000, 1000000))

        results = await db_manager.fetch_all("SELECT * FROM users ORDER BY telegram_id")
        assert [row['telegram_id'] for row in results] == [0, 1, 2]


class TestDatabaseTransactions:
    """测试事务提交和回滚"""

    async def test_transaction_commits_on_success(self, db_manager):
        """测试事务成功时提交：扣注并记录交易"""
        await db_manager.execute(INSERT_USER, (1, 'user1', 1000, 1000000, 1000000))

        async def deduct(conn):
            await conn.execute("UPDATE users SET balance = balance - ? WHERE telegram_id = ?", (100, 1))

        async def log(conn):
            await conn.execute(
                "INSERT INTO transactions (user_id, amount, type, description, created_at) VALUES (?, ?, ?, ?, ?)",
                (1, -100, 'blackjack_bet', '21点下注', 1000000)
            )

        await db_manager.transaction([deduct, log])

        user = await db_manager.fetch_one("SELECT balance FROM users WHERE telegram_id = ?", (1,))
        assert user['balance'] == 900
        rows = await db_manager.fetch_all("SELECT * FROM transactions WHERE user_id = ?", (1,))
        assert len(rows) == 1

    async def test_transaction_rolls_back_on_error(self, db_manager):
        """测试事务失败时回滚"""
        async def operation1(conn):
            await conn.execute(INSERT_USER, (1, 'user1', 1000, 1000000, 1000000))

        async def operation2(conn):
            # 重复的主键
            await conn.execute(INSERT_USER, (1, 'user2', 2000, 1000000, 1000000))

        with pytest.raises(Exception):
            await db_manager.transaction([operation1, operation2])

        result = await db_manager.fetch_one("SELECT * FROM users WHERE telegram_id = ?", (1,))
        assert result is None

    async def test_connection_returned_to_pool_after_error(self, db_manager):
        """事务失败后连接归还连接池，后续查询仍可进行"""
        async def broken(conn):
            await conn.execute("SELECT * FROM no_such_table")

        for _ in range(db_manager.pool_size + 1):
            with pytest.raises(Exception):
                await db_manager.transaction([broken])

        result = await db_manager.fetch_one("SELECT COUNT(*) AS n FROM users")
        assert result['n'] == 0


async def test_close_and_reconnect(tmp_path):
    """关闭后可以重新初始化"""
    db = DatabaseManager(str(tmp_path / "bot.db"), pool_size=1)
    await db.initialize()
    await db.execute(INSERT_USER, (7, 'user7', 1000, 1000000, 1000000))
    await db.close()

    await db.initialize()
    result = await db.fetch_one("SELECT * FROM users WHERE telegram_id = ?", (7,))
    await db.close()

    assert result['username'] == 'user7'
