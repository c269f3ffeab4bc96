"""
Security event logging.

Events are written on their own session in a detached task, so they are
recorded for failed requests too. A failed write is logged and dropped so
that an audit outage never blocks sign-in.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Set

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from portal.core.database import get_session_factory
from portal.models.security_event import SecurityEventType, Severity
from portal.repositories.security_event_repo import SecurityEventRepository

logger = logging.getLogger(__name__)

# Strong references to in-flight writes; the event loop only keeps weak ones.
_pending: Set[asyncio.Task] = set()


def client_ip(request: Request) -> str:
    """Client address as reported by the edge proxy, for audit records."""
    return (
        request.headers.get("x-forwarded-for")
        or request.headers.get("x-real-ip")
        or "unknown"
    )


async def flush_pending() -> None:
    """Wait for every scheduled event write to finish."""
    while _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)


class AuditLogger:
    """Fire-and-forget writer for security events of one request."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        ip_address: str = "unknown",
        user_agent: str = "unknown",
    ):
        self.session_factory = session_factory
        self.ip_address = ip_address
        self.user_agent = user_agent

    def record(
        self,
        event_type: SecurityEventType,
        severity: Severity,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Schedule an event write; never raises."""
        task = asyncio.create_task(
            self.write(
                event_type=event_type.value,
                severity=severity.value,
                user_id=user_id,
                metadata=metadata or {},
            )
        )
        _pending.add(task)
        task.add_done_callback(_pending.discard)

    async def write(
        self,
        event_type: str,
        severity: str,
        user_id: Optional[str],
        metadata: Dict[str, Any],
    ) -> None:
        try:
            async with self.session_factory() as session:
                await SecurityEventRepository(session).create(
                    event_type=event_type,
                    severity=severity,
                    user_id=user_id,
                    ip_address=self.ip_address,
                    user_agent=self.user_agent,
                    metadata_json=metadata,
                )
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to log security event {event_type}: {type(e).__name__}: {e}")


def get_audit_logger(
    request: Request,
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> AuditLogger:
    """Dependency building the audit logger for the current request."""
    return AuditLogger(
        session_factory=session_factory,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent") or "unknown",
    )
