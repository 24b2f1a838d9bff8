"""Authenticated caller identity"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class User:
    """Caller resolved from a verified access token"""
    id: str
    name: Optional[str] = None
