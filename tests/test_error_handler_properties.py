"""
错误处理属性测试
使用 Hypothesis 进行属性测试，验证命令格式错误反馈、下注金额解析和 API 调用重试机制
"""
import pytest
from unittest.mock import AsyncMock, MagicMock
from hypothesis import given, strategies as st, settings
from telegram import Update
from telegram.error import NetworkError, TimedOut, RetryAfter, BadRequest, Forbidden

from blackjack_bot.error_handler import (
    ErrorMessages,
    global_error_handler,
    parse_bet,
    retry_telegram_api,
)


text_strategy = st.text(min_size=5, max_size=50, alphabet=st.characters(blacklist_categories=('Cs',)))

NO_WAIT = (0, 0, 0)


@settings(max_examples=5)
@given(usage=text_strategy, example=text_strategy)
def test_property_command_format_error_feedback(usage, example):
    """
    命令格式错误反馈
    对于任何格式错误的命令，应该返回使用说明和正确的命令格式示例
    """
    error_message = ErrorMessages.command_usage(usage, example)

    assert "❌" in error_message
    assert "命令格式错误" in error_message
    assert usage in error_message
    assert example in error_message


@settings(max_examples=20)
@given(
    text=st.one_of(
        st.text(min_size=0, max_size=10, alphabet=st.characters(blacklist_categories=('Cs',))),
        st.integers().map(str),
        st.floats(allow_nan=False, allow_infinity=False).map(str)
    )
)
def test_property_bet_parsing(text):
    """
    下注金额解析
    只有能解析为正整数的输入才是有效下注
    """
    try:
        expected = int(text)
    except ValueError:
        assert parse_bet(text) is None
        return

    if expected > 0:
        assert parse_bet(text) == expected
    else:
        assert parse_bet(text) is None


def test_parse_bet_rejects_none():
    assert parse_bet(None) is None


def test_rejected_message_prefix():
    assert ErrorMessages.rejected("现在不是你的回合") == "❌ 现在不是你的回合"


@settings(max_examples=5, deadline=None)
@given(
    retries=st.integers(min_value=1, max_value=5),
    fail_count=st.integers(min_value=0, max_value=6)
)
@pytest.mark.asyncio
async def test_property_api_retry_mechanism(retries, fail_count):
    """
    API 调用重试机制
    网络错误时最多重试 len(delays) 次，之后把异常抛出
    """
    call_count = 0

    async def mock_api_call():
        nonlocal call_count
        call_count += 1
        if call_count <= fail_count:
            raise NetworkError("Network error")
        return "success"

    delays = (0,) * retries
    if fail_count <= retries:
        result = await retry_telegram_api(mock_api_call, delays=delays)
        assert result == "success"
        assert call_count == fail_count + 1
    else:
        with pytest.raises(NetworkError):
            await retry_telegram_api(mock_api_call, delays=delays)
        assert call_count == retries + 1


async def test_timed_out_is_retried():
    send = AsyncMock(side_effect=[TimedOut(), "sent"])

    assert await retry_telegram_api(send, delays=NO_WAIT) == "sent"
    assert send.await_count == 2


async def test_retry_after_handling():
    """Telegram 返回 RetryAfter 时等待后重试"""
    call_count = 0

    async def mock_api_call():
        nonlocal call_count
        call_count += 1
        if call_count == 1:
            raise RetryAfter(retry_after=0)
        return "success"

    result = await retry_telegram_api(mock_api_call, delays=NO_WAIT)
    assert result == "success"
    assert call_count == 2


async def test_no_retry_when_delays_empty():
    send = AsyncMock(side_effect=NetworkError("down"))

    with pytest.raises(NetworkError):
        await retry_telegram_api(send, delays=())
    assert send.await_count == 1


@pytest.mark.parametrize("error", [BadRequest("Bad request"), Forbidden("Forbidden")])
async def test_non_retryable_errors(error):
    """BadRequest 和 Forbidden 不重试"""
    call_count = 0

    async def mock_api_call():
        nonlocal call_count
        call_count += 1
        raise error

    with pytest.raises(type(error)):
        await retry_telegram_api(mock_api_call, delays=NO_WAIT)
    assert call_count == 1


async def test_retry_passes_arguments():
    send = AsyncMock(return_value="sent")

    result = await retry_telegram_api(send, chat_id=-1, text="hello")

    assert result == "sent"
    send.assert_awaited_once_with(chat_id=-1, text="hello")


def make_error_update(with_callback: bool = False):
    update = MagicMock(spec=Update)
    update.effective_message = MagicMock()
    update.effective_message.reply_text = AsyncMock()
    if with_callback:
        update.callback_query = MagicMock()
        update.callback_query.answer = AsyncMock()
    else:
        update.callback_query = None
    return update


async def test_global_error_handler_replies_to_message():
    update = make_error_update()
    context = MagicMock()
    context.error = RuntimeError("boom")

    await global_error_handler(update, context)

    update.effective_message.reply_text.assert_awaited_once_with(ErrorMessages.SYSTEM_ERROR)


async def test_global_error_handler_network_error():
    update = make_error_update()
    context = MagicMock()
    context.error = TimedOut()

    await global_error_handler(update, context)

    update.effective_message.reply_text.assert_awaited_once_with(ErrorMessages.NETWORK_ERROR)


async def test_global_error_handler_answers_callback():
    update = make_error_update(with_callback=True)
    context = MagicMock()
    context.error = RuntimeError("boom")

    await global_error_handler(update, context)

    update.callback_query.answer.assert_awaited_once_with(ErrorMessages.SYSTEM_ERROR, show_alert=True)
    update.effective_message.reply_text.assert_not_awaited()


async def test_global_error_handler_ignores_forbidden():
    update = make_error_update()
    context = MagicMock()
    context.error = Forbidden("blocked")

    await global_error_handler(update, context)

    update.effective_message.reply_text.assert_not_awaited()
