"""
扑克牌与牌靴
定义牌面、花色、21点牌值表，以及可洗牌、可抽牌的牌靴
"""
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence


class Suit(Enum):
    """花色"""
    SPADES = "♠"
    HEARTS = "♥"
    DIAMONDS = "♦"
    CLUBS = "♣"


class Rank(Enum):
    """牌面"""
    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"


# 在21点中，10、J、Q、K 都算作 10 点，A 可以是 1 或 11
FACE_CARD_VALUE = 10

CARD_VALUES = {
    Rank.ACE: (1, 11),
    Rank.TWO: (2,),
    Rank.THREE: (3,),
    Rank.FOUR: (4,),
    Rank.FIVE: (5,),
    Rank.SIX: (6,),
    Rank.SEVEN: (7,),
    Rank.EIGHT: (8,),
    Rank.NINE: (9,),
    Rank.TEN: (FACE_CARD_VALUE,),
    Rank.JACK: (FACE_CARD_VALUE,),
    Rank.QUEEN: (FACE_CARD_VALUE,),
    Rank.KING: (FACE_CARD_VALUE,),
}

CARDS_PER_DECK = 52


@dataclass(frozen=True)
class Card:
    """一张扑克牌"""
    suit: Suit
    rank: Rank

    @property
    def values(self) -> tuple:
        """这张牌在21点中可能的点数"""
        return CARD_VALUES[self.rank]

    def __str__(self) -> str:
        return f"{self.suit.value}{self.rank.value}"


def get_card_display(card: Card) -> str:
    """
    获取牌的显示名称

    Args:
        card: 扑克牌

    Returns:
        牌的显示名称，例如 ♠A
    """
    return str(card)


def format_hand(cards: Sequence[Card], hide_second: bool = False) -> str:
    """
    格式化手牌显示

    Args:
        cards: 手牌列表
        hide_second: 是否隐藏第二张牌

    Returns:
        格式化的手牌字符串
    """
    if not cards:
        return "无"

    if hide_second and len(cards) >= 2:
        return f"{get_card_display(cards[0])} [?]"

    return ' '.join(get_card_display(card) for card in cards)


class EmptyShoeError(Exception):
    """牌靴已空，无法继续抽牌"""


class Shoe:
    """
    牌靴：一局游戏使用的有序牌堆

    牌堆末尾视为“顶部”，抽牌从末尾取出。
    """

    def __init__(
        self,
        cards: Sequence[Card],
        shuffle_function: Optional[Callable[[List[Card]], None]] = None
    ):
        """
        初始化牌靴

        Args:
            cards: 初始牌组
            shuffle_function: 原地洗牌函数，默认使用 random.shuffle（Fisher-Yates）
        """
        self._cards: List[Card] = list(cards)
        self._shuffle_function = shuffle_function or random.shuffle

    @classmethod
    def create(
        cls,
        decks: int = 1,
        shuffle_function: Optional[Callable[[List[Card]], None]] = None
    ) -> 'Shoe':
        """
        创建由 decks 副完整扑克组成的新牌靴（未洗牌）

        Args:
            decks: 扑克副数
            shuffle_function: 洗牌函数

        Returns:
            新牌靴
        """
        if decks < 1:
            raise ValueError("牌靴至少需要一副牌")

        cards = [
            Card(suit, rank)
            for _ in range(decks)
            for suit in Suit
            for rank in Rank
        ]
        return cls(cards, shuffle_function)

    def __len__(self) -> int:
        return len(self._cards)

    @property
    def remaining(self) -> List[Card]:
        """剩余的牌（副本，末尾为顶部）"""
        return list(self._cards)

    def shuffle(self) -> None:
        """洗牌"""
        self._shuffle_function(self._cards)

    def draw(self) -> Card:
        """
        从顶部抽一张牌

        Returns:
            抽到的牌

        Raises:
            EmptyShoeError: 牌靴已空
        """
        if not self._cards:
            raise EmptyShoeError("牌靴中已经没有牌了")
        return self._cards.pop()
