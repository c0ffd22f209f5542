"""
数据模型
定义系统中使用的枚举和数据类
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


# ============ 21点游戏枚举 ============

class GameState(Enum):
    """21点游戏阶段"""
    INITIALIZING = "initializing"           # 刚创建
    AWAITING_PLAYERS = "awaiting_players"   # 等待玩家加入
    DEALING_CARDS = "dealing_cards"         # 发牌中
    PLAYER_TURNS = "player_turns"           # 玩家依次行动
    DEALER_TURN = "dealer_turn"             # 庄家行动
    ENDED = "ended"                         # 已结束


class HandState(Enum):
    """玩家手牌状态"""
    NORMAL = "normal"               # 以上都不是
    BLACKJACK = "blackjack"         # 首两张牌 Blackjack
    BUSTED = "busted"               # 爆牌
    SURRENDERED = "surrendered"     # 已投降


# ============ 账户与统计 ============

@dataclass
class User:
    """用户模型"""
    telegram_id: int
    username: str
    balance: int
    created_at: int
    updated_at: int

    @classmethod
    def from_dict(cls, data: dict) -> 'User':
        """从字典创建 User 对象"""
        return cls(
            telegram_id=data['telegram_id'],
            username=data['username'],
            balance=data['balance'],
            created_at=data['created_at'],
            updated_at=data['updated_at']
        )


@dataclass
class Transaction:
    """交易记录模型"""
    id: int
    user_id: int
    amount: int
    type: str
    description: Optional[str]
    created_at: int

    @classmethod
    def from_dict(cls, data: dict) -> 'Transaction':
        """从字典创建 Transaction 对象"""
        return cls(
            id=data['id'],
            user_id=data['user_id'],
            amount=data['amount'],
            type=data['type'],
            description=data.get('description'),
            created_at=data['created_at']
        )


@dataclass
class ChatStatistics:
    """群组21点统计"""
    chat_id: int
    dealer_balance: int = 0     # 庄家累计盈亏（收取的下注 - 派出的奖金）
    games_played: int = 0       # 已结束的局数

    def record_game(self, dealer_delta: int) -> None:
        """
        记录一局结束后的庄家盈亏

        Args:
            dealer_delta: 本局庄家盈亏
        """
        self.dealer_balance += dealer_delta
        self.games_played += 1

    @classmethod
    def from_dict(cls, data: dict) -> 'ChatStatistics':
        """从字典创建 ChatStatistics 对象"""
        return cls(
            chat_id=data['chat_id'],
            dealer_balance=data.get('dealer_balance', 0),
            games_played=data.get('games_played', 0)
        )
