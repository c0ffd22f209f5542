"""
并发控制模块
同一用户的命令和按钮回调串行执行，避免连点按钮时重复要牌或重复下注
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict
from functools import wraps


class UserLockManager:
    """按用户 ID 分配 asyncio.Lock"""

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()

    async def get_lock(self, user_id: int) -> asyncio.Lock:
        """
        获取指定用户的锁，不存在则创建

        Args:
            user_id: 用户 ID

        Returns:
            用户的 asyncio.Lock 实例
        """
        async with self._global_lock:
            return self._locks.setdefault(user_id, asyncio.Lock())

    @asynccontextmanager
    async def hold(self, user_id: int):
        """在 async with 块内持有用户锁"""
        lock = await self.get_lock(user_id)
        async with lock:
            yield


def with_user_lock(lock_manager_attr: str = 'user_locks'):
    """
    装饰器：BotHandlers 的处理器在用户锁内执行

    Args:
        lock_manager_attr: 处理器实例上 UserLockManager 的属性名
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(self, update, context, *args, **kwargs):
            user = update.effective_user
            if not user:
                return

            lock_manager = getattr(self, lock_manager_attr, None)
            if lock_manager is None:
                return await func(self, update, context, *args, **kwargs)

            async with lock_manager.hold(user.id):
                return await func(self, update, context, *args, **kwargs)

        return wrapper
    return decorator
