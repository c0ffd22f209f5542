"""
计时服务
一次性延时回调与取消，用于等待玩家加入、玩家行动超时和庄家行动间隔
"""
import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle:
    """已调度的计时器句柄"""

    def cancel(self) -> None:
        raise NotImplementedError

    @property
    def cancelled(self) -> bool:
        raise NotImplementedError


class TimerService:
    """计时服务接口"""

    def schedule(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """
        在 delay 秒后执行一次 callback

        Args:
            delay: 延迟（秒）
            callback: 异步回调

        Returns:
            可取消的计时器句柄
        """
        raise NotImplementedError


class AsyncioTimerHandle(TimerHandle):
    """基于 asyncio.Task 的计时器句柄"""

    def __init__(self, task: asyncio.Task):
        self._task = task
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        if not self._task.done():
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def task(self) -> asyncio.Task:
        return self._task


class AsyncioTimerService(TimerService):
    """使用 asyncio.create_task + asyncio.sleep 实现的计时服务"""

    def schedule(self, delay: float, callback: TimerCallback) -> TimerHandle:
        async def run_later():
            await asyncio.sleep(delay)
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Timer callback failed: {e}", exc_info=True)

        return AsyncioTimerHandle(asyncio.create_task(run_later()))
