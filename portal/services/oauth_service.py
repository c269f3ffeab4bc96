"""
OAuth login service.

Starts the provider handshake through the identity backend and turns a
completed callback into a cross-subdomain session token.
"""
import logging
from typing import Optional
from urllib.parse import urlencode, urljoin, urlparse

from portal.config import settings
from portal.core.errors import MalformedRequest, UpstreamFailure
from portal.core.identity_client import (
    SUPPORTED_PROVIDERS,
    AuthorizationRequest,
    IdentityAPIException,
    IdentityClient,
    IdentityUser,
    identity_client,
)
from portal.core.security import create_session_token

logger = logging.getLogger(__name__)

DEFAULT_POST_LOGIN_PATH = "/profile"


def is_supported_provider(provider: Optional[str]) -> bool:
    return provider in SUPPORTED_PROVIDERS


def is_trusted_host(hostname: Optional[str]) -> bool:
    """Hosts under the trusted suffix, plus localhost outside production."""
    if not hostname:
        return False
    suffix = settings.trusted_domain_suffix
    if hostname.endswith(suffix) or hostname == suffix.lstrip("."):
        return True
    return hostname == "localhost" and not settings.is_production


def validate_post_login_redirect(redirect: Optional[str]) -> str:
    """
    Validate the destination stored before an OAuth login.

    Absolute URLs must be http(s) with a host; anything else must be a path
    starting with '/'. Absolute URLs outside the trusted domain are accepted
    but logged; the callback falls back to the default page for them.

    Raises:
        MalformedRequest: Missing or unusable redirect
    """
    if not redirect or not isinstance(redirect, str):
        raise MalformedRequest("Missing redirect parameter")

    if redirect.startswith("http://") or redirect.startswith("https://"):
        try:
            hostname = urlparse(redirect).hostname
        except ValueError:
            raise MalformedRequest("Invalid redirect URL")
        if not hostname:
            raise MalformedRequest("Invalid redirect URL")
        if not is_trusted_host(hostname):
            logger.warning(f"Suspicious redirect URL: {redirect}")
        return redirect

    if not redirect.startswith("/"):
        raise MalformedRequest("Invalid redirect path")

    return redirect


def resolve_final_redirect(redirect: Optional[str]) -> str:
    """
    Absolute destination after login.

    Relative paths resolve against the portal URL; absolute URLs are kept
    only on trusted hosts.
    """
    if not redirect:
        redirect = DEFAULT_POST_LOGIN_PATH

    if redirect.startswith("http://") or redirect.startswith("https://"):
        try:
            hostname = urlparse(redirect).hostname
        except ValueError:
            hostname = None
        if is_trusted_host(hostname):
            return redirect
        logger.warning(f"Dropping untrusted post-login redirect: {redirect}")
        redirect = DEFAULT_POST_LOGIN_PATH

    if not redirect.startswith("/") or redirect.startswith("//"):
        redirect = DEFAULT_POST_LOGIN_PATH

    return urljoin(settings.app_url.rstrip("/") + "/", redirect.lstrip("/"))


def login_error_url(error: str) -> str:
    """Portal login page carrying an error indicator."""
    return f"{settings.app_url.rstrip('/')}/login?{urlencode({'error': error})}"


def sso_complete_url(token: str, final_redirect: str) -> str:
    """Intermediate page that sets the session cookie and then navigates on."""
    query = urlencode({"token": token, "redirect": final_redirect})
    return f"{settings.app_url.rstrip('/')}/sso-complete?{query}"


class OAuthService:
    """Service wrapping the identity backend's OAuth handshake."""

    def __init__(self, client: Optional[IdentityClient] = None):
        self.client = client or identity_client

    def callback_url(self, provider: str) -> str:
        return f"{settings.app_url.rstrip('/')}/api/auth/callback/{provider}"

    def start(self, provider: Optional[str]) -> AuthorizationRequest:
        """
        Build the provider authorization request.

        Raises:
            MalformedRequest: Unsupported provider
            UpstreamFailure: Identity backend not usable
        """
        if not is_supported_provider(provider):
            raise MalformedRequest("Invalid OAuth provider")

        try:
            return self.client.build_authorization_request(provider, self.callback_url(provider))
        except IdentityAPIException as e:
            logger.error(f"OAuth init failed for {provider}: {e}")
            raise UpstreamFailure("Failed to initiate OAuth flow")

    async def complete(self, auth_code: str, code_verifier: str) -> tuple[IdentityUser, str]:
        """
        Redeem the provider callback and mint the session token.

        Returns:
            The signed-in user and a fresh session token

        Raises:
            IdentityAPIException: If the identity backend rejects the exchange
        """
        user = await self.client.exchange_code_for_user(auth_code, code_verifier)
        token = create_session_token(user.id, user.email, "user")
        return user, token


def get_oauth_service() -> OAuthService:
    return OAuthService()
