"""
Client-side choreography for cookie setting across the edge platform.

Because Set-Cookie on a redirect never reaches the browser, a login is a
sequence of plain requests driven by the client:

    loading -> setting-cookie -> redirecting -> done
        \\            \\               \\
         +-----------+-+-------------+-+-> error

Each flow is an explicit state machine. ``run`` returns the final state and
where the client should navigate next; on error that is the login page, to
be visited after ``fallback_delay`` seconds. The browser pages in
portal.web render the same states in JavaScript.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional
from urllib.parse import urlencode, urljoin, urlparse

import httpx

logger = logging.getLogger(__name__)

FALLBACK_DELAY_SECONDS = 2.0
SUPPORTED_PROVIDERS = ("google", "github")


class FlowState(str, Enum):
    LOADING = "loading"
    SETTING_COOKIE = "setting-cookie"
    REDIRECTING = "redirecting"
    DONE = "done"
    ERROR = "error"


TRANSITIONS: Dict[FlowState, FrozenSet[FlowState]] = {
    FlowState.LOADING: frozenset({FlowState.SETTING_COOKIE, FlowState.ERROR}),
    FlowState.SETTING_COOKIE: frozenset({FlowState.REDIRECTING, FlowState.ERROR}),
    FlowState.REDIRECTING: frozenset({FlowState.DONE, FlowState.ERROR}),
    FlowState.DONE: frozenset(),
    FlowState.ERROR: frozenset(),
}


class InvalidTransition(Exception):
    """Raised when a flow attempts a transition missing from TRANSITIONS."""
    pass


class StepFailed(Exception):
    """A request of the choreography did not succeed."""
    pass


@dataclass
class FlowResult:
    """Terminal outcome of a flow."""

    state: FlowState
    navigate_to: str
    error_message: Optional[str] = None
    fallback_delay: float = 0.0
    history: List[FlowState] = field(default_factory=list)


class ChoreographyFlow:
    """
    Base state machine shared by the login flows.

    Args:
        http: Client pointed at the accounts portal (base_url set)
        login_path: Page to fall back to on error
    """

    def __init__(self, http: httpx.AsyncClient, login_path: str = "/login"):
        self.http = http
        self.login_path = login_path
        self.state = FlowState.LOADING
        self.history: List[FlowState] = [FlowState.LOADING]

    def transition(self, new_state: FlowState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def _absolute(self, path: str) -> str:
        return str(self.http.base_url.join(path))

    def succeed(self, navigate_to: str) -> FlowResult:
        self.transition(FlowState.DONE)
        return FlowResult(
            state=FlowState.DONE,
            navigate_to=navigate_to,
            history=list(self.history),
        )

    def fail(self, error_code: str, message: str) -> FlowResult:
        self.transition(FlowState.ERROR)
        logger.warning(f"Login choreography failed ({error_code}): {message}")
        return FlowResult(
            state=FlowState.ERROR,
            navigate_to=self._absolute(f"{self.login_path}?{urlencode({'error': error_code})}"),
            error_message=message,
            fallback_delay=FALLBACK_DELAY_SECONDS,
            history=list(self.history),
        )

    async def post_json(self, path: str, payload: dict) -> dict:
        try:
            response = await self.http.post(path, json=payload)
        except httpx.RequestError as e:
            raise StepFailed(f"{path} unreachable: {e}")
        if not response.is_success:
            raise StepFailed(f"{path} returned {response.status_code}")
        return response.json()

    async def get_json(self, path: str, params: dict) -> dict:
        try:
            response = await self.http.get(path, params=params)
        except httpx.RequestError as e:
            raise StepFailed(f"{path} unreachable: {e}")
        if not response.is_success:
            raise StepFailed(f"{path} returned {response.status_code}")
        return response.json()


class OAuthStartFlow(ChoreographyFlow):
    """
    Start an OAuth login.

    setting-cookie: POST /api/auth/set-oauth-redirect with the destination.
    redirecting:    GET /api/auth/oauth-init for the provider URL.
    done:           navigate to the provider URL.
    """

    async def run(self, provider: Optional[str], redirect: Optional[str] = None) -> FlowResult:
        if provider not in SUPPORTED_PROVIDERS:
            return self.fail("invalid_provider", "Invalid OAuth provider")

        self.transition(FlowState.SETTING_COOKIE)
        try:
            await self.post_json("/api/auth/set-oauth-redirect", {"redirect": redirect or "/"})
        except StepFailed as e:
            return self.fail("oauth_start_failed", str(e))

        self.transition(FlowState.REDIRECTING)
        try:
            data = await self.get_json("/api/auth/oauth-init", {"provider": provider})
        except StepFailed as e:
            return self.fail("oauth_start_failed", str(e))

        url = data.get("url")
        if not url:
            return self.fail("oauth_start_failed", "No authorization URL returned")

        return self.succeed(url)


def sso_landing_target(redirect: str, token: str, current_origin: str) -> str:
    """
    Where to go once the session cookie is set on the portal.

    Same-origin and relative destinations are visited directly. Other
    origins go through their own /sso-landing page so that app can set the
    cookie on its domain.
    """
    if redirect.startswith("http://") or redirect.startswith("https://"):
        target = urlparse(redirect)
        target_origin = f"{target.scheme}://{target.netloc}"
        if target_origin == current_origin.rstrip("/"):
            return redirect

        path = target.path or "/"
        if target.query:
            path = f"{path}?{target.query}"
        return f"{target_origin}/sso-landing?{urlencode({'token': token, 'redirect': path})}"

    return urljoin(current_origin.rstrip("/") + "/", redirect.lstrip("/"))


class SSOCompleteFlow(ChoreographyFlow):
    """
    Finish a login after the OAuth callback.

    setting-cookie: POST /api/auth/set-sso-cookie with the minted token.
    redirecting:    work out the destination (see sso_landing_target).
    done:           navigate there.
    """

    async def run(self, token: Optional[str], redirect: Optional[str] = None) -> FlowResult:
        if not token:
            return self.fail("sso_missing_token", "Missing token parameter")

        self.transition(FlowState.SETTING_COOKIE)
        try:
            await self.post_json("/api/auth/set-sso-cookie", {"token": token})
        except StepFailed as e:
            return self.fail("sso_cookie_failed", str(e))

        self.transition(FlowState.REDIRECTING)
        current_origin = str(self.http.base_url).rstrip("/")
        return self.succeed(sso_landing_target(redirect or "/", token, current_origin))
