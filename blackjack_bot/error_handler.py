"""
错误处理模块
用户可见的错误提示、发送消息的重试，以及 Application 的全局错误处理器
"""
import asyncio
import logging
from typing import Any, Callable, Optional, Sequence
from telegram import Update
from telegram.ext import ContextTypes
from telegram.error import (
    TelegramError,
    NetworkError,
    RetryAfter,
    BadRequest,
    Forbidden,
)

logger = logging.getLogger(__name__)

# 每次重试前的等待秒数，用尽后把最后一次的异常抛出
RETRY_DELAYS = (1.0, 2.0, 4.0)


class ErrorMessages:
    """回复给玩家的错误提示"""

    SYSTEM_ERROR = "❌ 系统暂时不可用，请稍后再试"
    NETWORK_ERROR = "❌ 网络连接失败，请稍后再试"
    INVALID_BET = "❌ 下注金额必须是大于 0 的整数"
    GAME_UNAVAILABLE = "❌ 21点游戏功能暂不可用"
    SHOE_EMPTY = "❌ 牌已经发完了，本局已取消并退还下注"
    UNKNOWN_ACTION = "❌ 未知的操作"

    @staticmethod
    def command_usage(usage: str, example: str) -> str:
        return f"❌ 命令格式错误\n\n用法: {usage}\n示例: {example}"

    @staticmethod
    def rejected(message: str) -> str:
        """牌局拒绝操作时回复给用户的消息"""
        return f"❌ {message}"


def parse_bet(text: str) -> Optional[int]:
    """
    解析 /bet 的金额参数

    Args:
        text: 用户输入

    Returns:
        正整数金额，无效输入返回 None
    """
    try:
        bet = int(text)
    except (TypeError, ValueError):
        return None
    return bet if bet > 0 else None


async def retry_telegram_api(
    func: Callable[..., Any],
    *args,
    delays: Sequence[float] = RETRY_DELAYS,
    **kwargs
) -> Any:
    """
    调用 Telegram API，网络类错误按 delays 等待后重试

    RetryAfter 按 Telegram 给出的时间等待，BadRequest 和 Forbidden 直接抛出。

    Args:
        func: 要调用的异步函数
        delays: 每次重试前的等待秒数，长度即最大重试次数

    Returns:
        函数返回值
    """
    for attempt in range(len(delays) + 1):
        try:
            return await func(*args, **kwargs)
        except (BadRequest, Forbidden):
            raise
        except RetryAfter as e:
            if attempt == len(delays):
                raise
            wait_time = e.retry_after
            if hasattr(wait_time, 'total_seconds'):
                wait_time = wait_time.total_seconds()
            logger.warning(f"Rate limited, waiting {wait_time} seconds")
            await asyncio.sleep(wait_time)
        except TelegramError as e:
            if attempt == len(delays):
                raise
            logger.warning(f"Telegram error on attempt {attempt + 1}, retrying in {delays[attempt]}s: {e}")
            await asyncio.sleep(delays[attempt])


async def global_error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    全局错误处理器
    记录处理器中未捕获的异常，并尽量回复玩家一条错误提示
    """
    error = context.error

    if isinstance(error, Forbidden):
        # Bot 被移出群组或被用户阻止
        logger.warning(f"Bot forbidden: {error}")
        return

    logger.error(f"Exception while handling an update: {error}", exc_info=error)

    error_message = ErrorMessages.SYSTEM_ERROR
    if isinstance(error, NetworkError) and not isinstance(error, BadRequest):
        error_message = ErrorMessages.NETWORK_ERROR

    if isinstance(update, Update):
        try:
            if update.callback_query:
                await update.callback_query.answer(error_message, show_alert=True)
            elif update.effective_message:
                await update.effective_message.reply_text(error_message)
        except TelegramError as e:
            logger.error(f"Failed to send error message to user: {e}")
