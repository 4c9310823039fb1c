"""Database models."""
from rankmatch.models.player import Player
from rankmatch.models.match import Match
from rankmatch.models.transaction import Transaction
from rankmatch.models.match_history import MatchHistory

__all__ = [
    "Player",
    "Match",
    "Transaction",
    "MatchHistory",
]
