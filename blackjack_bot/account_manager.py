"""
账户管理器
处理账户相关业务逻辑，同时作为21点牌局使用的账本（查询余额、增减金币）
"""
from blackjack_bot.repositories import UserRepository, TransactionRepository, INITIAL_BALANCE
from blackjack_bot.models import User


# 交易类型对应的描述
REASON_DESCRIPTIONS = {
    'blackjack_bet': '21点下注',
    'blackjack_double': '21点加倍',
    'blackjack_payout': '21点派奖',
    'blackjack_refund': '21点退还下注',
}


class AccountManager:
    """账户管理器，处理账户相关业务逻辑"""

    def __init__(self, user_repo: UserRepository, tx_repo: TransactionRepository):
        """
        初始化账户管理器

        Args:
            user_repo: 用户仓储实例
            tx_repo: 交易仓储实例
        """
        self.user_repo = user_repo
        self.tx_repo = tx_repo

    async def ensure_user_exists(self, telegram_id: int, username: str) -> User:
        """
        确保用户存在，不存在则创建

        Args:
            telegram_id: Telegram 用户 ID
            username: Telegram 用户名

        Returns:
            用户对象
        """
        user = await self.user_repo.get_user(telegram_id)

        if user is None:
            user = await self.user_repo.create_user(telegram_id, username)
            await self.tx_repo.log_transaction(
                user_id=telegram_id,
                amount=INITIAL_BALANCE,
                transaction_type='init',
                description='账户初始化'
            )

        return user

    async def get_balance(self, telegram_id: int) -> int:
        """
        获取余额

        Args:
            telegram_id: Telegram 用户 ID

        Returns:
            用户余额，用户不存在时为 0
        """
        user = await self.user_repo.get_user(telegram_id)
        if user is None:
            return 0
        return user.balance

    async def adjust_balance(self, telegram_id: int, delta: int, reason: str) -> int:
        """
        增减余额并记录交易（同一事务）

        Args:
            telegram_id: Telegram 用户 ID
            delta: 金币变动量（正数为增加，负数为减少）
            reason: 交易类型标签，例如 blackjack_bet

        Returns:
            变动后的余额
        """
        description = REASON_DESCRIPTIONS.get(reason, reason)

        async def update_balance(conn):
            await self.user_repo.update_balance(telegram_id, delta, conn=conn)

        async def log_tx(conn):
            await self.tx_repo.log_transaction(telegram_id, delta, reason, description, conn=conn)

        await self.user_repo.db.transaction([update_balance, log_tx])
        return await self.get_balance(telegram_id)
