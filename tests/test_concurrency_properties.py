"""
并发控制属性测试
使用 Hypothesis 进行属性测试，验证用户操作串行化、用户操作隔离性和装饰器行为
"""
import pytest
import asyncio
from unittest.mock import MagicMock
from hypothesis import given, strategies as st, settings

from blackjack_bot.concurrency import UserLockManager, with_user_lock


@settings(max_examples=5)
@given(
    user_id=st.integers(min_value=1, max_value=999999999),
    num_operations=st.integers(min_value=2, max_value=5)
)
@pytest.mark.asyncio
async def test_property_user_operations_serialized(user_id, num_operations):
    """
    用户操作串行化
    对于任何单个用户的多个并发请求（例如连续点击按钮），应该按顺序处理
    """
    lock_manager = UserLockManager()
    execution_order = []

    async def operation(op_id: int):
        async with lock_manager.hold(user_id):
            execution_order.append(f"start_{op_id}")
            await asyncio.sleep(0.01)
            execution_order.append(f"end_{op_id}")

    await asyncio.gather(*(operation(i) for i in range(num_operations)))

    # 每个操作的 start 和 end 必须相邻
    for i in range(0, len(execution_order), 2):
        start, end = execution_order[i], execution_order[i + 1]
        assert start.startswith("start_")
        assert end == start.replace("start_", "end_")


@settings(max_examples=5)
@given(
    user1_id=st.integers(min_value=1, max_value=999999999),
    user2_id=st.integers(min_value=1, max_value=999999999)
)
@pytest.mark.asyncio
async def test_property_user_operations_isolated(user1_id, user2_id):
    """
    用户操作隔离性
    不同用户的锁互不影响
    """
    if user1_id == user2_id:
        return

    lock_manager = UserLockManager()
    async with lock_manager.hold(user1_id):
        # 用户1持有锁时，用户2可以立即获得自己的锁
        async with lock_manager.hold(user2_id):
            assert (await lock_manager.get_lock(user1_id)).locked()
            assert (await lock_manager.get_lock(user2_id)).locked()

    assert not (await lock_manager.get_lock(user1_id)).locked()
    assert not (await lock_manager.get_lock(user2_id)).locked()


async def test_same_user_gets_same_lock():
    lock_manager = UserLockManager()

    assert await lock_manager.get_lock(1) is await lock_manager.get_lock(1)
    assert await lock_manager.get_lock(1) is not await lock_manager.get_lock(2)


async def test_hold_releases_on_error():
    lock_manager = UserLockManager()

    with pytest.raises(RuntimeError):
        async with lock_manager.hold(3):
            raise RuntimeError("boom")

    assert not (await lock_manager.get_lock(3)).locked()


class LockedHandlers:
    def __init__(self, user_locks=None):
        self.user_locks = user_locks
        self.seen_locked = None

    @with_user_lock()
    async def handler(self, update, context):
        if self.user_locks is not None:
            lock = await self.user_locks.get_lock(update.effective_user.id)
            self.seen_locked = lock.locked()
        return "done"


async def test_with_user_lock_holds_lock_during_handler():
    handlers = LockedHandlers(UserLockManager())
    update = MagicMock()
    update.effective_user.id = 7

    result = await handlers.handler(update, MagicMock())

    assert result == "done"
    assert handlers.seen_locked is True
    assert not (await handlers.user_locks.get_lock(7)).locked()


async def test_with_user_lock_without_manager():
    handlers = LockedHandlers()
    update = MagicMock()
    update.effective_user.id = 7

    assert await handlers.handler(update, MagicMock()) == "done"


async def test_with_user_lock_ignores_updates_without_user():
    handlers = LockedHandlers(UserLockManager())
    update = MagicMock()
    update.effective_user = None

    assert await handlers.handler(update, MagicMock()) is None


async def test_with_user_lock_serializes_button_presses():
    """同一用户连点两次按钮，第二次在第一次完成后才执行"""
    order = []

    class SlowHandlers:
        user_locks = UserLockManager()

        @with_user_lock()
        async def handler(self, update, context):
            order.append("enter")
            await asyncio.sleep(0.01)
            order.append("exit")

    handlers = SlowHandlers()
    update = MagicMock()
    update.effective_user.id = 9

    await asyncio.gather(handlers.handler(update, MagicMock()), handlers.handler(update, MagicMock()))

    assert order == ["enter", "exit", "enter", "exit"]
