"""
Python clients for the accounts portal.

- choreography: the login state machines the browser pages run
- sso_client: code exchange for downstream subdomain servers
"""
from portal.client.choreography import (
    FlowResult,
    FlowState,
    OAuthStartFlow,
    SSOCompleteFlow,
)
from portal.client.sso_client import ExchangedSession, SSOClient, SSOClientError

__all__ = [
    "FlowResult",
    "FlowState",
    "OAuthStartFlow",
    "SSOCompleteFlow",
    "ExchangedSession",
    "SSOClient",
    "SSOClientError",
]
