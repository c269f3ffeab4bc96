"""
API router exports.
Provides API endpoint routers.
"""
from portal.api.routes import auth, sso

__all__ = ["auth", "sso"]
