"""
Database models.
Import all models here so Alembic and create_all can see them.
"""
from portal.models.base import Base
from portal.models.auth_code import AuthorizationCode
from portal.models.security_event import SecurityEvent, SecurityEventType, Severity

__all__ = [
    "Base",
    "AuthorizationCode",
    "SecurityEvent",
    "SecurityEventType",
    "Severity",
]
