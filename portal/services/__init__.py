"""
Service layer exports.
Provides business logic for the application.
"""
from portal.services.audit_service import AuditLogger
from portal.services.exchange_guard import ExchangeGuard
from portal.services.oauth_service import OAuthService
from portal.services.sso_service import SSOCodeService

__all__ = [
    "AuditLogger",
    "ExchangeGuard",
    "OAuthService",
    "SSOCodeService",
]
