"""
Security utilities for the DAO tracking backend.

This module provides the authentication seam of the API:
- Role hierarchy of platform users (admin > user > viewer)
- JWT access token issuing and verification into an Actor
- Markup stripping for every free-text field persisted
- Security event logging for denied access
- Security headers added to every response

Token issuing is only used by tooling and tests; the login flow itself lives
outside this service.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

import jwt

from backend.app.core.exceptions import AuthenticationError
from backend.app.utils.logging import get_logger
from backend.config.settings import get_settings

logger = get_logger(__name__)

MARKUP_PATTERN = re.compile(r"<[^>]*>")


class UserRole(str, Enum):
    """Platform roles carried in the access token."""
    ADMIN = "admin"
    USER = "user"
    VIEWER = "viewer"


@dataclass
class Actor:
    """The authenticated caller of a request."""
    id: str
    email: str
    role: UserRole
    name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class SecurityEventType(str, Enum):
    """Types of security events for audit logging."""
    TOKEN_REJECTED = "token_rejected"
    ACCESS_DENIED = "access_denied"
    ADMIN_ACTION = "admin_action"


@dataclass
class SecurityEvent:
    """Security event for audit logging."""
    event_type: SecurityEventType
    user_id: Optional[str]
    ip_address: Optional[str]
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)
    risk_level: str = "low"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "security_event": self.event_type.value,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
            "risk_level": self.risk_level
        }


class TokenManager:
    """JWT token management for authentication."""

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None,
                 expiry_hours: Optional[int] = None):
        settings = get_settings().security
        self.secret_key = secret_key or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.expiry_hours = expiry_hours or settings.token_expiry_hours

    def create_access_token(
        self,
        user_id: str,
        role: UserRole,
        email: str = "",
        additional_claims: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Create JWT access token.

        Args:
            user_id: User identifier
            role: User role
            email: User email address
            additional_claims: Additional JWT claims

        Returns:
            JWT token string
        """
        now = datetime.now(timezone.utc)

        payload = {
            "sub": user_id,
            "email": email,
            "role": role.value,
            "iat": now,
            "exp": now + timedelta(hours=self.expiry_hours),
            "type": "access"
        }
        if additional_claims:
            payload.update(additional_claims)

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        logger.debug("Access token created", user_id=user_id, role=role.value)
        return token

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify and decode JWT token.

        Raises:
            AuthenticationError: If token is invalid or expired
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm]
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.warning("Invalid token", error=str(e))
            raise AuthenticationError("Invalid token")

        if payload.get("type") != "access":
            raise AuthenticationError("Invalid token type")
        return payload

    def authenticate(self, token: str) -> Actor:
        """Resolve a bearer token into the acting user."""
        payload = self.verify_token(token)
        try:
            role = UserRole(payload.get("role", UserRole.VIEWER.value))
        except ValueError:
            raise AuthenticationError("Invalid token role")
        subject = payload.get("sub")
        if not subject:
            raise AuthenticationError("Invalid token subject")
        return Actor(
            id=str(subject),
            email=payload.get("email", ""),
            role=role,
            name=payload.get("name", ""),
        )


class InputSanitizer:
    """Input sanitization for free-text fields."""

    @staticmethod
    def strip_markup(value: str) -> str:
        """Remove every `<...>` substring and surrounding whitespace."""
        return MARKUP_PATTERN.sub("", value).strip()

    @staticmethod
    def strip_optional(value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return InputSanitizer.strip_markup(value)

    @staticmethod
    def is_valid_dao_id(dao_id: Optional[str]) -> bool:
        return bool(dao_id) and len(dao_id) <= 100


class SecurityEventLogger:
    """Security event logging for audit trails."""

    @staticmethod
    def log_event(
        event_type: SecurityEventType,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        risk_level: str = "low"
    ):
        event = SecurityEvent(
            event_type=event_type,
            user_id=user_id,
            ip_address=ip_address,
            timestamp=datetime.now(timezone.utc),
            details=details or {},
            risk_level=risk_level
        )

        security_logger = get_logger("security")
        if risk_level in ["high", "critical"]:
            security_logger.warning(f"Security event: {event_type.value}", **event.to_dict())
        else:
            security_logger.info(f"Security event: {event_type.value}", **event.to_dict())


class SecurityHeaders:
    """Security headers for HTTP responses."""

    @staticmethod
    def get_security_headers() -> Dict[str, str]:
        """Get standard security headers."""
        return {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            "X-XSS-Protection": "1; mode=block",
            "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
            "Referrer-Policy": "strict-origin-when-cross-origin",
            "Permissions-Policy": "geolocation=(), microphone=(), camera=()"
        }


input_sanitizer = InputSanitizer()
