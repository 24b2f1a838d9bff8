"""
Database Repositories

Focused repository classes over the entity store:
- ScoreRepository: survey responses and per-topic user scores
- GroupRepository: groups and memberships
"""

from database.repositories.base import BaseRepository
from database.repositories.groups import GroupRepository
from database.repositories.scores import ScoreRepository

__all__ = [
    "BaseRepository",
    "GroupRepository",
    "ScoreRepository",
]
