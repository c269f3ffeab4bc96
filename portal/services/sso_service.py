"""
SSO authorization code service.

Issues single-use codes bound to the caller's session and redeems them for
downstream applications that authenticate with a shared secret.
"""
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portal.config import settings
from portal.core.clients import get_client_secret, is_valid_redirect_uri, parse_client_id
from portal.core.errors import (
    ClientNotConfigured,
    InvalidClient,
    InvalidCredentials,
    InvalidOrExpiredCode,
    InvalidRedirect,
    MalformedRequest,
    MissingCode,
    Unauthenticated,
    UpstreamFailure,
)
from portal.core.security import (
    SessionClaims,
    SessionTokenError,
    generate_authorization_code,
    secrets_match,
    verify_session_token,
)
from portal.models.security_event import SecurityEventType, Severity
from portal.repositories.auth_code_repo import AuthCodeRepository
from portal.schemas.sso import ExchangeCodeResponse, GenerateCodeResponse
from portal.services.audit_service import AuditLogger
from portal.services.exchange_guard import ExchangeGuard
from portal.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class SSOCodeService:
    """Service for the authorization-code handshake between subdomains."""

    def __init__(
        self,
        db: AsyncSession,
        audit: AuditLogger,
        guard: Optional[ExchangeGuard] = None,
    ):
        """Initialize SSO code service."""
        self.db = db
        self.audit = audit
        self.guard = guard or ExchangeGuard()
        self.code_repo = AuthCodeRepository(db)

    def authenticate(self, session_token: Optional[str]) -> SessionClaims:
        """
        Verify the caller's session cookie.

        Raises:
            Unauthenticated: If the cookie is absent or does not verify
        """
        if not session_token:
            raise Unauthenticated("Not authenticated")

        try:
            return verify_session_token(session_token)
        except SessionTokenError as e:
            logger.warning(f"Session verification failed: {e}")
            raise Unauthenticated("Invalid session")

    async def issue_code(
        self,
        claims: SessionClaims,
        session_token: str,
        client_id: Optional[str],
        redirect_uri: Optional[str],
    ) -> GenerateCodeResponse:
        """
        Mint a code that releases the caller's session token to one client.

        Args:
            claims: Verified claims of the caller's session
            session_token: The session token the code will release
            client_id: Requesting downstream application
            redirect_uri: Where that application expects the code

        Returns:
            GenerateCodeResponse with the code and its lifetime

        Raises:
            InvalidClient: Unknown client
            MalformedRequest: redirect_uri missing
            InvalidRedirect: redirect_uri outside the client's allow-list
            UpstreamFailure: Code could not be stored
        """
        client = parse_client_id(client_id)
        if client is None:
            raise InvalidClient()

        if not redirect_uri or not isinstance(redirect_uri, str):
            raise MalformedRequest("Missing redirect_uri")

        if not is_valid_redirect_uri(client, redirect_uri):
            logger.warning(
                f"Rejected redirect_uri for client {client.value} "
                f"(environment={settings.environment}): {redirect_uri}"
            )
            raise InvalidRedirect()

        ttl = settings.sso_code_ttl_seconds
        code = generate_authorization_code()

        try:
            await self.code_repo.create(
                code=code,
                user_id=claims.user_id,
                token=session_token,
                client_id=client.value,
                redirect_uri=redirect_uri,
                expires_at=utc_now() + timedelta(seconds=ttl),
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to store authorization code: {type(e).__name__}: {e}")
            raise UpstreamFailure("Failed to generate code")

        self.audit.record(
            SecurityEventType.SSO_CODE_GENERATED,
            Severity.INFO,
            user_id=claims.user_id,
            metadata={
                "client_id": client.value,
                "redirect_uri": redirect_uri,
                "expires_in": ttl,
            },
        )

        return GenerateCodeResponse(code=code, expires_in=ttl)

    async def exchange_code(
        self,
        code: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str],
        ip_address: str = "unknown",
    ) -> ExchangeCodeResponse:
        """
        Redeem a code for the session token it is bound to.

        Args:
            code: Code received by the downstream application
            client_id: Redeeming application
            client_secret: Shared secret of that application
            ip_address: Caller address as seen by the server, used for
                failure throttling

        Returns:
            ExchangeCodeResponse with the token and the validated redirect_uri

        Raises:
            InvalidClient: Unknown client
            ClientNotConfigured: No secret configured for the client
            TooManyAttempts: Too many recent failures for this client/address
            InvalidCredentials: Wrong or missing secret (code is left untouched)
            MissingCode: Code absent or empty
            InvalidOrExpiredCode: Unknown, foreign, used or expired code
            UpstreamFailure: Redemption could not be committed
        """
        client = parse_client_id(client_id)
        if client is None:
            raise InvalidClient()

        expected_secret = get_client_secret(client)
        if not expected_secret:
            logger.error(f"Client secret not configured for: {client.value}")
            raise ClientNotConfigured()

        await self.guard.check(client.value, ip_address)

        if not secrets_match(client_secret, expected_secret):
            logger.warning(f"Invalid client_secret for: {client.value}")
            await self.guard.record_failure(client.value, ip_address)
            raise InvalidCredentials()

        if not code or not isinstance(code, str):
            raise MissingCode()

        lookup_error: Optional[str] = None
        try:
            auth_code = await self.code_repo.consume(code, client.value, utc_now())
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Authorization code lookup failed: {type(e).__name__}: {e}")
            auth_code = None
            lookup_error = type(e).__name__

        if auth_code is None:
            if lookup_error is None:
                await self.db.rollback()
            await self.guard.record_failure(client.value, ip_address)
            self.audit.record(
                SecurityEventType.SSO_CODE_EXCHANGE_FAILED,
                Severity.MEDIUM,
                metadata={
                    "client_id": client.value,
                    "reason": "lookup_error" if lookup_error else "code_not_found_or_expired",
                    "error": lookup_error,
                },
            )
            raise InvalidOrExpiredCode()

        token, redirect_uri, user_id = auth_code.token, auth_code.redirect_uri, auth_code.user_id

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to commit code redemption: {type(e).__name__}: {e}")
            raise UpstreamFailure()

        await self.guard.reset(client.value, ip_address)

        self.audit.record(
            SecurityEventType.SSO_CODE_EXCHANGED,
            Severity.INFO,
            user_id=user_id,
            metadata={
                "client_id": client.value,
                "redirect_uri": redirect_uri,
            },
        )

        return ExchangeCodeResponse(token=token, redirect_uri=redirect_uri)

    async def purge_expired(self, grace: timedelta = timedelta(hours=1)) -> int:
        """Delete codes that expired more than `grace` ago."""
        removed = await self.code_repo.purge_expired(utc_now() - grace)
        await self.db.commit()
        logger.info(f"Purged {removed} expired authorization codes")
        return removed
