# Telegram Blackjack Bot Package

from blackjack_bot.blackjack import BlackjackManager
from blackjack_bot.cards import Card, Rank, Shoe, Suit, format_hand, get_card_display
from blackjack_bot.game_engine import BlackjackGame
from blackjack_bot.hand import calculate_hand_value, is_blackjack, is_bust
