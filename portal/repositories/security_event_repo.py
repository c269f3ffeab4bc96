"""
Security event repository.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from portal.models.security_event import SecurityEvent
from portal.repositories.base import BaseRepository


class SecurityEventRepository(BaseRepository[SecurityEvent]):
    """Repository for audited security events."""

    def __init__(self, db: AsyncSession):
        super().__init__(SecurityEvent, db)
