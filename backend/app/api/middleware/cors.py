"""
CORS Middleware Configuration for the DAO tracking backend.

Handles cross-origin requests from the web client. Allowed origins come from
settings (`cors_origins`); in development the usual local dev-server ports are
added. Every response also carries the standard security headers.
"""

import re
from typing import Any, Dict, List
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse
from starlette.types import ASGIApp

from backend.app.utils.logging import get_logger
from backend.app.utils.security import SecurityHeaders
from backend.config.settings import Settings, get_settings

logger = get_logger(__name__)

DEVELOPMENT_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8080",
    "http://127.0.0.1:8080",
]


class CORSConfiguration:
    """CORS configuration management with environment-specific settings."""

    def __init__(self, settings: Settings = None):
        self.settings = settings or get_settings()
        self.is_development = self.settings.is_development
        self._allowed_origins = self._get_allowed_origins()

    def _get_allowed_origins(self) -> List[str]:
        origins = list(self.settings.cors_origins)
        if self.is_development:
            origins.extend(origin for origin in DEVELOPMENT_ORIGINS if origin not in origins)

        validated = []
        for origin in origins:
            if self._validate_origin(origin):
                validated.append(origin)
            else:
                logger.warning("Invalid CORS origin rejected", origin=origin)
        return validated

    def _validate_origin(self, origin: str) -> bool:
        """
        Validate origin URL format.

        Only http(s) origins with a host are accepted; wildcards are refused.
        """
        try:
            parsed = urlparse(origin)
        except ValueError:
            return False
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            return False
        if re.search(r"\*", origin):
            return False
        if not self.is_development and parsed.scheme != "https":
            logger.warning("Non-HTTPS origin in production", origin=origin)
        return True

    def get_cors_kwargs(self) -> Dict[str, Any]:
        return {
            "allow_origins": self._allowed_origins,
            "allow_credentials": True,
            "allow_methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Accept", "Content-Type", "Authorization", "X-Correlation-ID"],
            "expose_headers": ["X-Correlation-ID"],
            "max_age": 300 if self.is_development else 3600,
        }


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to responses."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.headers = SecurityHeaders.get_security_headers()

    async def dispatch(self, request: Request, call_next) -> StarletteResponse:
        response = await call_next(request)
        for header, value in self.headers.items():
            if header == "Strict-Transport-Security" and request.url.scheme != "https":
                continue
            response.headers[header] = value
        return response


def setup_cors_middleware(app: FastAPI, settings: Settings = None) -> None:
    """
    Setup CORS middleware and security headers for the FastAPI application.

    Args:
        app: FastAPI application instance
        settings: Application settings (defaults to the environment)
    """
    cors_config = CORSConfiguration(settings)

    app.add_middleware(SecurityHeadersMiddleware)

    cors_kwargs = cors_config.get_cors_kwargs()
    app.add_middleware(CORSMiddleware, **cors_kwargs)

    logger.info(
        "CORS middleware configured",
        environment="development" if cors_config.is_development else "production",
        allowed_origins=cors_kwargs["allow_origins"]
    )
