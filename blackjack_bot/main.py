"""
Telegram 21点机器人主程序入口
实现 Bot 初始化、启动逻辑和优雅关闭
"""
import asyncio
import logging
import signal
import sys
import os
from pathlib import Path

from blackjack_bot.database import DatabaseManager
from blackjack_bot.repositories import UserRepository, TransactionRepository, StatisticsRepository
from blackjack_bot.account_manager import AccountManager
from blackjack_bot.blackjack import BlackjackManager
from blackjack_bot.concurrency import UserLockManager
from blackjack_bot.bot import BotConfig, BotHandlers, TelegramGameNotifier, create_bot_application

# 配置日志
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
# httpx 每次轮询都会打印请求日志
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


class BotApplication:
    """Bot 应用程序类，管理生命周期"""

    def __init__(self, config_path: str = "config/config.json"):
        """
        初始化 Bot 应用

        Args:
            config_path: 配置文件路径
        """
        self.config_path = config_path
        self.config = None
        self.db = None
        self.application = None
        self.blackjack_manager = None
        self._shutdown_event = asyncio.Event()

    async def initialize(self) -> None:
        """初始化所有组件"""
        logger.info("正在初始化 Bot...")

        self.config = BotConfig(self.config_path)
        logger.info(f"配置加载完成，数据库路径: {self.config.database_path}")

        db_dir = Path(self.config.database_path).parent
        db_dir.mkdir(parents=True, exist_ok=True)

        self.db = DatabaseManager(self.config.database_path)
        await self.db.initialize()
        logger.info("数据库初始化完成")

        # 仓储层
        user_repo = UserRepository(self.db)
        tx_repo = TransactionRepository(self.db)
        stats_repo = StatisticsRepository(self.db)

        # 业务层
        account_manager = AccountManager(user_repo, tx_repo)
        notifier = TelegramGameNotifier()
        self.blackjack_manager = BlackjackManager(
            account_manager,
            rules=self.config.blackjack_rules,
            stats_repo=stats_repo,
            listener=notifier
        )

        handlers = BotHandlers(
            account_manager=account_manager,
            user_repo=user_repo,
            blackjack_manager=self.blackjack_manager,
            user_locks=UserLockManager(),
            allowed_chats=self.config.allowed_chats
        )

        self.application = create_bot_application(self.config, handlers)
        notifier.attach_bot(self.application.bot)
        logger.info("Bot 应用创建完成")

    async def start(self) -> None:
        """启动 Bot"""
        if self.application is None:
            await self.initialize()

        logger.info("正在启动 Bot...")

        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling(
            drop_pending_updates=True,
            allowed_updates=["message", "callback_query"],
        )

        logger.info("Bot 已启动，正在监听消息...")

        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """停止 Bot 并清理资源"""
        logger.info("正在关闭 Bot...")

        # 先中止牌局退还下注，此时数据库和 Bot 都还可用
        if self.blackjack_manager:
            closed = await self.blackjack_manager.close_all()
            if closed:
                logger.info(f"已中止 {closed} 局进行中的21点")

        if self.application:
            if self.application.updater and self.application.updater.running:
                await self.application.updater.stop()

            if self.application.running:
                await self.application.stop()

            await self.application.shutdown()

        if self.db:
            await self.db.close()
            logger.info("数据库连接已关闭")

        logger.info("Bot 已关闭")

    def request_shutdown(self) -> None:
        """请求关闭"""
        self._shutdown_event.set()


async def main() -> None:
    """主函数"""
    config_path = os.environ.get("BOT_CONFIG_PATH", "config/config.json")

    if not Path(config_path).exists():
        logger.error(f"配置文件不存在: {config_path}")
        logger.error("请复制 config/config.example.json 到 config/config.json 并填写配置")
        sys.exit(1)

    app = BotApplication(config_path)

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("收到关闭信号")
        app.request_shutdown()

    # 仅在 Unix 系统上注册信号处理器
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

    try:
        await app.initialize()
        await app.start()
    except KeyboardInterrupt:
        logger.info("收到键盘中断")
    except Exception as e:
        logger.error(f"Bot 运行出错: {e}", exc_info=True)
    finally:
        await app.stop()


if __name__ == "__main__":
    asyncio.run(main())
