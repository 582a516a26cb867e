"""
Tracking domain ORM models.

Exports:
- Guild
- Player
- Death
"""

from .guild import Guild
from .player import Player
from .death import Death

__all__ = [
    "Guild",
    "Player",
    "Death",
]
