"""
21点规则配置
把人数上限、计时、赔率、投降与加倍规则集中为可配置常量
"""
from dataclasses import dataclass, fields


@dataclass(frozen=True)
class BlackjackRules:
    """21点规则"""

    max_players: int = 3                # 每局最多玩家数
    min_bet: int = 1                    # 最小下注
    deck_count: int = 1                 # 牌靴中的扑克副数

    join_wait_seconds: float = 15       # 等待玩家加入的时间
    player_turn_seconds: float = 15     # 每位玩家的行动时间
    time_between_actions: float = 3     # 庄家每次行动之间的间隔

    blackjack_multiplier: float = 2.5   # Blackjack 返还倍数（含本金）
    win_multiplier: float = 2           # 点数大于庄家
    even_multiplier: float = 1          # 平局，返还本金
    surrender_multiplier: float = 0.5   # 投降，返还一半本金

    surrender_allowed: bool = True
    double_down_allowed: bool = True
    # 双方都是天然 Blackjack 时按平局处理
    dealer_blackjack_pushes: bool = True

    def __post_init__(self):
        if self.max_players < 1:
            raise ValueError("max_players 必须大于 0")
        if self.min_bet < 1:
            raise ValueError("min_bet 必须大于 0")
        if self.deck_count < 1:
            raise ValueError("deck_count 必须大于 0")
        for name in ('join_wait_seconds', 'player_turn_seconds', 'time_between_actions'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} 不能为负数")
        for name in ('blackjack_multiplier', 'win_multiplier', 'even_multiplier', 'surrender_multiplier'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} 不能为负数")

    @classmethod
    def from_dict(cls, config: dict) -> 'BlackjackRules':
        """
        从配置字典创建规则，未知字段会被忽略

        Args:
            config: 配置字典（config.json 中的 blackjack 段）

        Returns:
            BlackjackRules 实例
        """
        known = {field.name for field in fields(cls)}
        return cls(**{key: value for key, value in config.items() if key in known})


DEFAULT_RULES = BlackjackRules()
