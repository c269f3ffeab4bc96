"""
SecurityEvent model - audit trail for the SSO protocol and OAuth logins.
"""
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from portal.models.base import Base, CreatedAtMixin, UUIDMixin


class SecurityEventType(str, Enum):
    SSO_CODE_GENERATED = "SSO_CODE_GENERATED"
    SSO_CODE_EXCHANGED = "SSO_CODE_EXCHANGED"
    SSO_CODE_EXCHANGE_FAILED = "SSO_CODE_EXCHANGE_FAILED"
    SSO_COOKIE_SET = "SSO_COOKIE_SET"
    OAUTH_ERROR = "OAUTH_ERROR"
    OAUTH_SESSION_EXCHANGE_FAILED = "OAUTH_SESSION_EXCHANGE_FAILED"
    OAUTH_LOGIN_SUCCESS = "OAUTH_LOGIN_SUCCESS"


class Severity(str, Enum):
    INFO = "INFO"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class SecurityEvent(Base, UUIDMixin, CreatedAtMixin):
    """One audited security-relevant event."""

    __tablename__ = "security_events"

    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str] = mapped_column(String(255), nullable=False, default="unknown")
    user_agent: Mapped[str] = mapped_column(String(512), nullable=False, default="unknown")
    metadata_json: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    __table_args__ = (
        Index("idx_security_events_type_created", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<SecurityEvent(type={self.event_type}, severity={self.severity})>"
