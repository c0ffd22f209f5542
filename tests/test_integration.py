"""
集成测试
端到端测试完整的牌局流程：真实数据库账本、真实 asyncio 计时器

测试场景:
1. 两名玩家下注 → 等待发牌 → 超时自动停牌 → 庄家要牌 → 结算 → 统计持久化
2. 关闭机器人时中止进行中的牌局并退还下注
"""
import asyncio

import pytest

from blackjack_bot.account_manager import AccountManager
from blackjack_bot.blackjack import BlackjackManager
from blackjack_bot.cards import Rank
from blackjack_bot.listener import BlackjackGameListener
from blackjack_bot.player import BET_REASON, PAYOUT_REASON, REFUND_REASON
from blackjack_bot.repositories import StatisticsRepository, TransactionRepository, UserRepository
from blackjack_bot.rules import BlackjackRules
from blackjack_bot.timers import AsyncioTimerService
from conftest import stacked_shoe


CHAT_ID = -3003

FAST_RULES = BlackjackRules(join_wait_seconds=0.01, player_turn_seconds=0.01, time_between_actions=0.01)


class RoundWatcher(BlackjackGameListener):
    """记录事件，牌局结束或中止时唤醒测试"""

    def __init__(self):
        self.events = []
        self.finished = asyncio.Event()

    async def on_cards_dealt(self, source, dealer, starting_seat):
        self.events.append('dealt')

    async def on_player_turn_timed_out(self, source, timed_out_seat, next_seat):
        self.events.append('timed_out')

    async def on_dealer_drew_card(self, source, dealer, card):
        self.events.append('dealer_drew')

    async def on_game_ended(self, source, conclusion, payouts):
        self.events.append('ended')
        self.payouts = payouts
        self.finished.set()

    async def on_game_aborted(self, source, reason):
        self.events.append('aborted')
        self.finished.set()


@pytest.fixture
async def integration_setup(db_manager):
    """创建完整的集成测试环境"""
    user_repo = UserRepository(db_manager)
    tx_repo = TransactionRepository(db_manager)
    stats_repo = StatisticsRepository(db_manager)
    account_manager = AccountManager(user_repo, tx_repo)
    watcher = RoundWatcher()

    # alice 10+10，bob 9+7，庄家 6 要到 5 和 8
    manager = BlackjackManager(
        account_manager,
        rules=FAST_RULES,
        stats_repo=stats_repo,
        timer_service=AsyncioTimerService(),
        listener=watcher,
        shoe_factory=lambda: stacked_shoe(
            Rank.TEN, Rank.NINE, Rank.SIX, Rank.KING, Rank.SEVEN,
            Rank.FIVE, Rank.EIGHT
        )
    )

    for user_id, name in ((1, 'alice'), (2, 'bob')):
        await account_manager.ensure_user_exists(user_id, name)

    return {
        'manager': manager,
        'account_manager': account_manager,
        'tx_repo': tx_repo,
        'stats_repo': stats_repo,
        'watcher': watcher,
    }


async def test_full_round_with_timeouts(integration_setup):
    manager = integration_setup['manager']
    account_manager = integration_setup['account_manager']
    tx_repo = integration_setup['tx_repo']
    watcher = integration_setup['watcher']

    session = manager.get_or_create_session(CHAT_ID)
    assert (await session.place_bet(1, 'alice', 100))[2] is True
    assert (await session.place_bet(2, 'bob', 200))[2] is False

    # 两位玩家都不行动，超时自动停牌
    await asyncio.wait_for(watcher.finished.wait(), timeout=5)

    assert watcher.events == ['dealt', 'timed_out', 'timed_out', 'dealer_drew', 'dealer_drew', 'ended']
    # 庄家 6 + 5 + 8 = 19：alice 20 赢，bob 16 输
    assert watcher.payouts == {1: 200, 2: 0}
    assert await account_manager.get_balance(1) == 1100
    assert await account_manager.get_balance(2) == 800
    assert not session.game_is_running

    history = await tx_repo.get_user_history(1)
    assert [tx.type for tx in history] == [PAYOUT_REASON, BET_REASON, 'init']

    stats = await integration_setup['stats_repo'].get_statistics(CHAT_ID)
    assert stats.games_played == 1
    assert stats.dealer_balance == 100


async def test_close_all_refunds_running_game(integration_setup):
    manager = integration_setup['manager']
    account_manager = integration_setup['account_manager']
    tx_repo = integration_setup['tx_repo']
    watcher = integration_setup['watcher']

    slow_manager = BlackjackManager(
        account_manager,
        rules=BlackjackRules(join_wait_seconds=60),
        timer_service=AsyncioTimerService(),
        listener=watcher
    )
    session = slow_manager.get_or_create_session(CHAT_ID)
    await session.place_bet(1, 'alice', 100)
    assert await account_manager.get_balance(1) == 900

    closed = await slow_manager.close_all()

    assert closed == 1
    assert watcher.events == ['aborted']
    assert await account_manager.get_balance(1) == 1000
    history = await tx_repo.get_user_history(1)
    assert history[0].type == REFUND_REASON
    assert not session.game_is_running
    assert manager.get_session(CHAT_ID) is None
