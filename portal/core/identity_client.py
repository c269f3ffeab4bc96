"""
Client for the managed identity backend (GoTrue-compatible auth API).
Handles the OAuth PKCE handshake with external identity providers: building
the provider authorization URL and redeeming the provider's code for a user.
"""
import base64
import hashlib
import secrets
from dataclasses import dataclass
from typing import Optional, Dict, Any
from urllib.parse import urlencode

import httpx

from portal.config import settings


SUPPORTED_PROVIDERS = ("google", "github")
PROVIDER_SCOPES = {"github": "user:email read:user"}


class IdentityAPIException(Exception):
    """Exception raised for identity backend errors."""
    pass


@dataclass(frozen=True)
class AuthorizationRequest:
    """Provider authorization URL plus the PKCE verifier that must travel with it."""

    url: str
    code_verifier: str


@dataclass(frozen=True)
class IdentityUser:
    """User returned by the identity backend after a successful OAuth login."""

    id: str
    email: str
    metadata: Dict[str, Any]


def generate_code_verifier() -> str:
    """PKCE code verifier (RFC 7636, 43-128 characters)."""
    return secrets.token_urlsafe(64)


def code_challenge_for(verifier: str) -> str:
    """S256 code challenge for a verifier."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class IdentityClient:
    """
    Client for communicating with the managed identity backend.

    Only the OAuth handshake goes through here; user storage, passwords and
    provider credentials stay inside the backend.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize identity backend client."""
        self.base_url = (base_url if base_url is not None else settings.identity_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.identity_anon_key
        self.timeout = timeout if timeout is not None else settings.identity_api_timeout
        self.transport = transport

    def _get_headers(self) -> Dict[str, str]:
        """Get default headers for identity backend requests."""
        return {
            "apikey": self.api_key,
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def build_authorization_request(self, provider: str, redirect_to: str) -> AuthorizationRequest:
        """
        Build the provider authorization URL for a PKCE flow.

        Args:
            provider: One of SUPPORTED_PROVIDERS
            redirect_to: Callback URL the backend sends the browser back to

        Returns:
            AuthorizationRequest with the URL and the verifier to persist

        Raises:
            IdentityAPIException: If the provider is unsupported or the backend is not configured
        """
        if provider not in SUPPORTED_PROVIDERS:
            raise IdentityAPIException(f"Unsupported provider: {provider}")
        if not self.base_url:
            raise IdentityAPIException("Identity backend URL is not configured")

        verifier = generate_code_verifier()
        params = {
            "provider": provider,
            "redirect_to": redirect_to,
            "code_challenge": code_challenge_for(verifier),
            "code_challenge_method": "s256",
        }
        if provider in PROVIDER_SCOPES:
            params["scopes"] = PROVIDER_SCOPES[provider]

        return AuthorizationRequest(
            url=f"{self.base_url}/auth/v1/authorize?{urlencode(params)}",
            code_verifier=verifier,
        )

    async def exchange_code_for_user(self, auth_code: str, code_verifier: str) -> IdentityUser:
        """
        Redeem the provider's authorization code for the signed-in user.

        Args:
            auth_code: `code` query parameter from the provider callback
            code_verifier: Verifier stored when the flow started

        Returns:
            IdentityUser for the authenticated account

        Raises:
            IdentityAPIException: If the exchange fails or the backend is unreachable
        """
        async with self._client() as client:
            try:
                response = await client.post(
                    f"{self.base_url}/auth/v1/token",
                    params={"grant_type": "pkce"},
                    headers=self._get_headers(),
                    json={"auth_code": auth_code, "code_verifier": code_verifier},
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                raise IdentityAPIException(f"Session exchange failed: {e.response.text[:200]}")
            except httpx.RequestError as e:
                raise IdentityAPIException(f"Identity backend unavailable: {str(e)}")

        user = data.get("user") or {}
        if not user.get("id") or not user.get("email"):
            raise IdentityAPIException("Session exchange returned no user")

        return IdentityUser(
            id=user["id"],
            email=user["email"],
            metadata=user.get("user_metadata") or {},
        )

    async def health_check(self) -> bool:
        """Check whether the identity backend answers."""
        async with self._client() as client:
            try:
                response = await client.get(
                    f"{self.base_url}/auth/v1/health",
                    headers=self._get_headers(),
                )
                return response.is_success
            except httpx.RequestError:
                return False


# Global client instance
identity_client = IdentityClient()
