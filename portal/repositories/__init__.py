"""
Repository layer for database access.
"""
from portal.repositories.base import BaseRepository
from portal.repositories.auth_code_repo import AuthCodeRepository
from portal.repositories.security_event_repo import SecurityEventRepository

__all__ = [
    "BaseRepository",
    "AuthCodeRepository",
    "SecurityEventRepository",
]
