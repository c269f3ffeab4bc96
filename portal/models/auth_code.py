"""
AuthorizationCode model - single-use SSO codes.

A code is created when a signed-in user asks for a session on a downstream
app and is consumed exactly once when that app's server redeems it.
"""
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from portal.models.base import Base, CreatedAtMixin, UUIDMixin


class AuthorizationCode(Base, UUIDMixin, CreatedAtMixin):
    """
    Short-lived authorization code bound to a session token.

    Exchangeable iff used_at IS NULL and expires_at is in the future.
    """

    __tablename__ = "auth_codes"

    code: Mapped[str] = mapped_column(
        String(128),
        unique=True,
        nullable=False,
        doc="Opaque URL-safe code (bearer credential for the exchange)"
    )

    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        doc="Subject of the session the code was minted from"
    )

    token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Session token released on successful exchange"
    )

    client_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        doc="Downstream application the code was minted for"
    )

    redirect_uri: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Redirect target validated at mint time"
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        doc="Absolute expiry"
    )

    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Set once when the code is redeemed"
    )

    __table_args__ = (
        Index("idx_auth_codes_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<AuthorizationCode(id={self.id}, client_id={self.client_id}, used={self.used_at is not None})>"
