"""
SSO client for downstream subdomain servers.

A downstream app (keywords, payments, admin, labs) receives `?code=` on its
callback and redeems it server-to-server with its shared secret.
"""
from dataclasses import dataclass
from typing import Optional

import httpx


class SSOClientError(Exception):
    """Exception raised when the accounts portal refuses an exchange."""

    def __init__(self, status_code: int, error: str):
        super().__init__(f"{status_code}: {error}")
        self.status_code = status_code
        self.error = error


@dataclass(frozen=True)
class ExchangedSession:
    token: str
    redirect_uri: str


class SSOClient:
    """
    Client for redeeming authorization codes at the accounts portal.

    Example:
        ```python
        client = SSOClient("https://accounts.bfeai.com", "keywords", secret)
        session = await client.exchange_code(request.query_params["code"])
        ```
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.transport = transport

    async def exchange_code(self, code: str) -> ExchangedSession:
        """
        Exchange a code for the user's session token.

        Raises:
            SSOClientError: On any non-2xx answer or transport failure
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/api/auth/exchange-code",
                    json={
                        "code": code,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                    },
                )
            except httpx.RequestError as e:
                raise SSOClientError(503, f"Accounts portal unavailable: {e}")

        if not response.is_success:
            try:
                error = response.json().get("error", response.text)
            except ValueError:
                error = response.text
            raise SSOClientError(response.status_code, error)

        data = response.json()
        return ExchangedSession(token=data["token"], redirect_uri=data["redirect_uri"])
