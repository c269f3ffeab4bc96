"""
Authorization code repository.
Insert on mint, one conditional update on redemption.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from portal.models.auth_code import AuthorizationCode
from portal.repositories.base import BaseRepository


class AuthCodeRepository(BaseRepository[AuthorizationCode]):
    """Repository for single-use SSO authorization codes."""

    def __init__(self, db: AsyncSession):
        super().__init__(AuthorizationCode, db)

    async def consume(
        self,
        code: str,
        client_id: str,
        now: datetime
    ) -> Optional[AuthorizationCode]:
        """
        Atomically mark a code used and return it.

        A single UPDATE ... WHERE used_at IS NULL AND expires_at > now
        RETURNING is the lookup and the write at once, so two concurrent
        redemptions cannot both match the row.

        Args:
            code: Code presented by the client
            client_id: Client the code must have been minted for
            now: Redemption time

        Returns:
            The consumed code, or None if it does not exist, belongs to
            another client, was already used or has expired
        """
        stmt = (
            update(AuthorizationCode)
            .where(
                AuthorizationCode.code == code,
                AuthorizationCode.client_id == client_id,
                AuthorizationCode.used_at.is_(None),
                AuthorizationCode.expires_at > now,
            )
            .values(used_at=now)
            .returning(AuthorizationCode)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def purge_expired(self, before: datetime) -> int:
        """
        Delete codes that expired before the given time.

        Returns:
            Number of rows removed
        """
        result = await self.db.execute(
            delete(AuthorizationCode).where(AuthorizationCode.expires_at < before)
        )
        return result.rowcount or 0
