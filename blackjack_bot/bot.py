"""
Telegram 21点机器人命令处理器
实现基础命令、21点牌局命令与按钮回调，以及把牌局事件发送到群组的通知器
"""
import json
import logging
from functools import wraps
from typing import Optional
from telegram import Bot, Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    Application,
    CommandHandler,
    CallbackQueryHandler,
    ContextTypes,
)

from blackjack_bot.account_manager import AccountManager
from blackjack_bot.blackjack import BlackjackManager
from blackjack_bot.cards import EmptyShoeError
from blackjack_bot.chat_game_manager import ChatGameManager
from blackjack_bot.concurrency import UserLockManager, with_user_lock
from blackjack_bot.error_handler import (
    global_error_handler,
    ErrorMessages,
    parse_bet,
    retry_telegram_api,
)
from blackjack_bot.listener import BlackjackGameListener
from blackjack_bot.player import Seat
from blackjack_bot.repositories import UserRepository
from blackjack_bot.rules import BlackjackRules
from blackjack_bot.texts import BlackjackTexts

logger = logging.getLogger(__name__)


def check_chat_allowed(func):
    """装饰器：检查群组是否在白名单中，私聊只对已注册用户开放"""
    @wraps(func)
    async def wrapper(self, update: Update, context: ContextTypes.DEFAULT_TYPE, *args, **kwargs):
        chat = update.effective_chat
        user = update.effective_user

        if not chat:
            return await func(self, update, context, *args, **kwargs)

        # 私聊：用户在白名单群组里用过才响应
        if chat.id > 0:
            if user:
                existing_user = await self.user_repo.get_user(user.id)
                if existing_user:
                    return await func(self, update, context, *args, **kwargs)
            logger.warning(f"User {user.id if user else 'unknown'} not registered, ignoring private chat")
            return

        if not self.is_chat_allowed(chat.id):
            logger.warning(f"Chat {chat.id} not in allowed list, ignoring command")
            return

        return await func(self, update, context, *args, **kwargs)
    return wrapper


class BotConfig:
    """Bot 配置类"""

    def __init__(self, config_path: str = "config/config.json"):
        """
        加载配置文件

        Args:
            config_path: 配置文件路径
        """
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
        self._load(config)

    def _load(self, config: dict) -> None:
        self.bot_token: str = config.get('bot_token', '')
        self.database_path: str = config.get('database_path', 'data/bot.db')
        self.allowed_chats: list[int] = config.get('allowed_chats', [])
        self.blackjack_rules: BlackjackRules = BlackjackRules.from_dict(config.get('blackjack', {}))

    @classmethod
    def from_dict(cls, config: dict) -> 'BotConfig':
        """从字典创建配置对象（用于测试）"""
        instance = object.__new__(cls)
        instance._load(config)
        return instance


def create_blackjack_keyboard(can_surrender: bool = True, can_double: bool = True) -> InlineKeyboardMarkup:
    """
    创建21点行动的内联键盘

    Args:
        can_surrender: 是否显示投降按钮
        can_double: 是否显示加倍按钮

    Returns:
        InlineKeyboardMarkup 对象
    """
    buttons = [
        [
            InlineKeyboardButton("🃏 要牌", callback_data="bj_hit"),
            InlineKeyboardButton("✋ 停牌", callback_data="bj_stand"),
        ]
    ]

    extra = []
    if can_double:
        extra.append(InlineKeyboardButton("💰 加倍", callback_data="bj_double"))
    if can_surrender:
        extra.append(InlineKeyboardButton("🏳️ 投降", callback_data="bj_surrender"))
    if extra:
        buttons.append(extra)

    return InlineKeyboardMarkup(buttons)


def keyboard_for_seat(seat: Optional[Seat], rules: BlackjackRules) -> Optional[InlineKeyboardMarkup]:
    """轮到玩家时返回行动键盘，轮到庄家或没有座位时返回 None"""
    if seat is None or seat.is_dealer:
        return None
    return create_blackjack_keyboard(
        can_surrender=rules.surrender_allowed and seat.may_surrender,
        can_double=rules.double_down_allowed and seat.may_double_down,
    )


class TelegramGameNotifier(BlackjackGameListener):
    """把牌局事件发送到对应群组"""

    def __init__(self, bot: Optional[Bot] = None):
        """
        初始化通知器

        Args:
            bot: Telegram Bot 实例，可以稍后通过 attach_bot 设置
        """
        self.bot = bot

    def attach_bot(self, bot: Bot) -> None:
        self.bot = bot

    async def _send(self, chat_id: int, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None) -> None:
        if self.bot is None:
            logger.warning(f"No bot attached, dropping message for chat {chat_id}")
            return
        await retry_telegram_api(
            self.bot.send_message,
            chat_id=chat_id,
            text=text,
            reply_markup=reply_markup
        )

    async def on_cards_dealt(self, source, dealer, starting_seat) -> None:
        text = BlackjackTexts.cards_dealt(dealer, source.players, starting_seat, source.rules)
        await self._send(source.chat_id, text, keyboard_for_seat(starting_seat, source.rules))

    async def on_player_turn_timed_out(self, source, timed_out_seat, next_seat) -> None:
        text = BlackjackTexts.turn_timed_out(timed_out_seat, next_seat, source.rules)
        await self._send(source.chat_id, text, keyboard_for_seat(next_seat, source.rules))

    async def on_dealer_drew_card(self, source, dealer, card) -> None:
        await self._send(source.chat_id, BlackjackTexts.dealer_drew(dealer, card))

    async def on_game_ended(self, source, conclusion, payouts) -> None:
        await self._send(source.chat_id, BlackjackTexts.conclusion(conclusion, payouts))

    async def on_game_aborted(self, source, reason: str) -> None:
        await self._send(source.chat_id, BlackjackTexts.aborted(reason))


class BotHandlers:
    """Bot 命令处理器集合"""

    def __init__(
        self,
        account_manager: AccountManager,
        user_repo: UserRepository,
        blackjack_manager: Optional[BlackjackManager] = None,
        user_locks: Optional[UserLockManager] = None,
        allowed_chats: Optional[list[int]] = None
    ):
        """
        初始化处理器

        Args:
            account_manager: 账户管理器
            user_repo: 用户仓储
            blackjack_manager: 21点游戏管理器（可选）
            user_locks: 用户锁管理器（可选）
            allowed_chats: 允许使用的群组 ID 列表（可选，为空则不限制）
        """
        self.account_manager = account_manager
        self.user_repo = user_repo
        self.blackjack_manager = blackjack_manager
        self.user_locks = user_locks or UserLockManager()
        self.allowed_chats = allowed_chats or []

    def is_chat_allowed(self, chat_id: int) -> bool:
        """
        检查群组是否在白名单中

        Args:
            chat_id: 群组 ID

        Returns:
            是否允许使用
        """
        # 白名单为空时允许所有群组
        if not self.allowed_chats:
            return True
        return chat_id in self.allowed_chats

    @staticmethod
    def _display_name(user) -> str:
        return user.username or user.first_name or str(user.id)

    @check_chat_allowed
    @with_user_lock()
    async def start_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理 /start 命令
        初始化用户账户
        """
        user = update.effective_user
        if not user:
            return

        username = self._display_name(user)

        try:
            account = await self.account_manager.ensure_user_exists(user.id, username)

            await update.message.reply_text(
                f"🎮 欢迎来到21点！\n\n"
                f"👤 用户: {username}\n"
                f"💰 余额: {account.balance} 金币\n\n"
                f"📋 可用命令:\n"
                f"/balance - 查询余额\n"
                f"/blackjack - 21点玩法说明\n"
                f"/bet 金额 - 开局或加入21点\n"
                f"/bjstats - 本群21点统计"
            )
        except Exception as e:
            logger.error(f"start_handler error: {e}", exc_info=True)
            await update.message.reply_text(ErrorMessages.SYSTEM_ERROR)

    @check_chat_allowed
    @with_user_lock()
    async def balance_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理 /balance 命令
        查询用户余额
        """
        user = update.effective_user
        if not user:
            return

        username = self._display_name(user)

        try:
            await self.account_manager.ensure_user_exists(user.id, username)
            balance = await self.account_manager.get_balance(user.id)

            await update.message.reply_text(
                f"💰 账户余额\n\n"
                f"👤 用户: {username}\n"
                f"💵 余额: {balance} 金币"
            )
        except Exception as e:
            logger.error(f"balance_handler error: {e}", exc_info=True)
            await update.message.reply_text(ErrorMessages.SYSTEM_ERROR)

    @check_chat_allowed
    async def blackjack_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理 /blackjack 命令
        显示玩法说明和当前牌桌
        """
        if self.blackjack_manager is None:
            await update.message.reply_text(ErrorMessages.GAME_UNAVAILABLE)
            return

        text = BlackjackTexts.help(self.blackjack_manager.rules)

        session = self.blackjack_manager.get_session(update.effective_chat.id)
        if session is not None and session.game is not None and session.game.players:
            text += f"\n\n当前牌桌:\n{BlackjackTexts.table(session.game.dealer, session.game.players)}"

        await update.message.reply_text(text)

    @check_chat_allowed
    @with_user_lock()
    async def bet_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理 /bet 命令
        没有进行中的牌局时开局，否则加入当前牌局

        用法: /bet 金额
        """
        user = update.effective_user
        if not user:
            return

        if self.blackjack_manager is None:
            await update.message.reply_text(ErrorMessages.GAME_UNAVAILABLE)
            return

        args = context.args
        if not args:
            await update.message.reply_text(ErrorMessages.command_usage("/bet 金额", "/bet 100"))
            return

        bet = parse_bet(args[0])
        if bet is None:
            await update.message.reply_text(ErrorMessages.INVALID_BET)
            return

        chat_id = update.effective_chat.id
        username = self._display_name(user)

        try:
            await self.account_manager.ensure_user_exists(user.id, username)

            session = self.blackjack_manager.get_or_create_session(chat_id)
            success, message, started = await session.place_bet(user.id, username, bet)

            if not success:
                await update.message.reply_text(ErrorMessages.rejected(message))
                return

            if started:
                rules = self.blackjack_manager.rules
                await update.message.reply_text(
                    BlackjackTexts.game_started(message, rules.join_wait_seconds, rules)
                )
            else:
                await update.message.reply_text(f"✅ {message}")

        except Exception as e:
            logger.error(f"bet_handler error: {e}", exc_info=True)
            await update.message.reply_text(ErrorMessages.SYSTEM_ERROR)

    async def _perform_action(self, chat_id: int, user_id: int, action: str):
        """
        执行玩家操作

        Args:
            chat_id: 群组 ID
            user_id: 用户 ID
            action: hit / stand / surrender / double

        Returns:
            (成功, 回复文本, 键盘) 元组
        """
        if self.blackjack_manager is None:
            return False, ErrorMessages.GAME_UNAVAILABLE, None

        session = self.blackjack_manager.get_session(chat_id)
        if session is None:
            return False, ErrorMessages.rejected(ChatGameManager.NO_GAME_RUNNING), None

        rules = session.rules
        player = session.game.get_player(user_id) if session.game is not None else None

        try:
            if action == "hit":
                success, message, result = await session.hit(user_id)
                next_seat = result.next_seat if result else None
            elif action == "double":
                success, message, result = await session.double_down(user_id)
                next_seat = result.next_seat if result else None
            elif action == "stand":
                success, message, next_seat = await session.stand(user_id)
            elif action == "surrender":
                success, message, next_seat = await session.surrender(user_id)
            else:
                return False, ErrorMessages.UNKNOWN_ACTION, None
        except EmptyShoeError as e:
            logger.error(f"Shoe ran out in chat {chat_id}: {e}")
            return False, ErrorMessages.SHOE_EMPTY, None

        if not success:
            return False, ErrorMessages.rejected(message), None

        text = BlackjackTexts.action_result(message, player, next_seat, rules)
        return True, text, keyboard_for_seat(next_seat, rules)

    async def _action_command(self, update: Update, action: str) -> None:
        user = update.effective_user
        if not user:
            return

        try:
            _, text, keyboard = await self._perform_action(update.effective_chat.id, user.id, action)
            await update.message.reply_text(text, reply_markup=keyboard)
        except Exception as e:
            logger.error(f"{action} command error: {e}", exc_info=True)
            await update.message.reply_text(ErrorMessages.SYSTEM_ERROR)

    @check_chat_allowed
    @with_user_lock()
    async def hit_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """处理 /hit 命令"""
        await self._action_command(update, "hit")

    @check_chat_allowed
    @with_user_lock()
    async def stand_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """处理 /stand 命令"""
        await self._action_command(update, "stand")

    @check_chat_allowed
    @with_user_lock()
    async def surrender_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """处理 /surrender 命令"""
        await self._action_command(update, "surrender")

    @check_chat_allowed
    @with_user_lock()
    async def double_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """处理 /double 命令"""
        await self._action_command(update, "double")

    @check_chat_allowed
    @with_user_lock()
    async def blackjack_callback_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理21点按钮回调

        回调数据:
        - bj_hit: 要牌
        - bj_stand: 停牌
        - bj_surrender: 投降
        - bj_double: 加倍
        """
        query = update.callback_query
        if not query:
            return

        user = update.effective_user
        if not user:
            return

        action = (query.data or "").removeprefix("bj_")

        try:
            success, text, keyboard = await self._perform_action(update.effective_chat.id, user.id, action)

            if not success:
                # 只提示按按钮的人，不打扰其他玩家
                await query.answer(text, show_alert=True)
                return

            await query.answer()
            # 旧消息的按钮已经失效
            await query.edit_message_reply_markup(reply_markup=None)
            await query.message.reply_text(text, reply_markup=keyboard)

        except Exception as e:
            logger.error(f"blackjack_callback_handler error: {e}", exc_info=True)
            await query.answer(ErrorMessages.SYSTEM_ERROR, show_alert=True)

    @check_chat_allowed
    async def stats_handler(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理 /bjstats 命令
        显示本群已完成局数和庄家累计盈亏
        """
        if self.blackjack_manager is None:
            await update.message.reply_text(ErrorMessages.GAME_UNAVAILABLE)
            return

        try:
            session = self.blackjack_manager.get_or_create_session(update.effective_chat.id)
            stats = await session.get_statistics()
            await update.message.reply_text(BlackjackTexts.statistics(stats))
        except Exception as e:
            logger.error(f"stats_handler error: {e}", exc_info=True)
            await update.message.reply_text(ErrorMessages.SYSTEM_ERROR)


def create_bot_application(config: BotConfig, handlers: BotHandlers) -> Application:
    """
    创建 Bot 应用实例

    Args:
        config: Bot 配置
        handlers: 命令处理器

    Returns:
        Application 实例
    """
    from telegram.request import HTTPXRequest

    request = HTTPXRequest(
        connection_pool_size=100,
        read_timeout=10.0,
        write_timeout=10.0,
        connect_timeout=10.0,
    )

    application = (
        Application.builder()
        .token(config.bot_token)
        .concurrent_updates(True)
        .request(request)
        .build()
    )

    # 基础命令
    application.add_handler(CommandHandler("start", handlers.start_handler))
    application.add_handler(CommandHandler("balance", handlers.balance_handler))

    # 21点命令
    application.add_handler(CommandHandler("blackjack", handlers.blackjack_handler))
    application.add_handler(CommandHandler("bet", handlers.bet_handler))
    application.add_handler(CommandHandler("hit", handlers.hit_handler))
    application.add_handler(CommandHandler("stand", handlers.stand_handler))
    application.add_handler(CommandHandler("surrender", handlers.surrender_handler))
    application.add_handler(CommandHandler("double", handlers.double_handler))
    application.add_handler(CommandHandler("bjstats", handlers.stats_handler))

    # 21点按钮回调
    application.add_handler(CallbackQueryHandler(
        handlers.blackjack_callback_handler,
        pattern="^bj_"
    ))

    application.add_error_handler(global_error_handler)

    return application
