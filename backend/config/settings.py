# Application configuration for the DAO tracking backend.

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database configuration settings."""
    mongodb_url: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URL"
    )
    mongodb_database: str = Field(
        default="dao_tracker",
        description="MongoDB database name"
    )
    dao_collection: str = Field(
        default="daos",
        description="Collection holding case files"
    )
    server_selection_timeout_ms: int = Field(
        default=5000,
        description="Connection check timeout in milliseconds"
    )
    enabled: bool = Field(
        default=True,
        description="Try MongoDB before falling back to in-memory storage"
    )


class NumberingSettings(BaseModel):
    """Sequence number allocation settings."""
    prefix: str = Field(
        default="DAO",
        description="Literal prefix of case-file sequence numbers"
    )
    sequence_width: int = Field(
        default=3,
        description="Zero-padded width of the numeric suffix"
    )


class MailSettings(BaseModel):
    """Outbound mail configuration settings."""
    enabled: bool = Field(
        default=False,
        description="Send emails through SMTP (logged only when disabled)"
    )
    smtp_host: str = Field(
        default="",
        description="SMTP server host"
    )
    smtp_port: int = Field(
        default=587,
        description="SMTP server port"
    )
    smtp_user: str = Field(
        default="",
        description="SMTP login"
    )
    smtp_password: str = Field(
        default="",
        description="SMTP password"
    )
    use_tls: bool = Field(
        default=True,
        description="Upgrade the SMTP connection with STARTTLS"
    )
    from_address: str = Field(
        default="DAO Tracker <noreply@2sndtechnologies.com>",
        description="Sender address"
    )
    mail_domain: str = Field(
        default="2sndtechnologies.com",
        description="Domain shown in the email footer"
    )
    brand_name: str = Field(
        default="2SND Technologies",
        description="Company name shown in the email header and footer"
    )
    logo_url: str = Field(
        default="",
        description="Logo shown at the top of emails (omitted when empty)"
    )
    team_email_cap: int = Field(
        default=50,
        description="Maximum addresses emailed for a team change"
    )
    timeout_seconds: int = Field(
        default=10,
        description="SMTP socket timeout"
    )


class SecuritySettings(BaseModel):
    """Token verification settings."""
    jwt_secret_key: str = Field(
        default="change-me-in-production",
        description="Secret used to sign and verify access tokens"
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )
    token_expiry_hours: int = Field(
        default=24,
        description="Access token lifetime"
    )


class DirectoryUser(BaseModel):
    """A known user of the platform."""
    id: str
    email: str
    name: str = ""
    role: str = "user"


class DirectorySettings(BaseModel):
    """Seed data for the default user directory."""
    users: List[DirectoryUser] = Field(
        default_factory=list,
        description="Users notified by platform-wide emails"
    )


class LoggingSettings(BaseModel):
    """Logging configuration settings."""
    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    format: str = Field(
        default="console",
        description="Log format (console/json)"
    )
    enable_correlation_ids: bool = Field(
        default=True,
        description="Enable correlation ID tracking"
    )

    def get_log_level_numeric(self) -> int:
        """Get numeric log level for the standard logging module."""
        import logging
        return getattr(logging, self.level.upper(), logging.INFO)


class Settings(BaseSettings):
    """
    Application configuration settings.

    Values come from environment variables, a `.env` file and the defaults
    below. Nested sections use the `__` delimiter, e.g. DATABASE__MONGODB_URL.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(
        default="DAO Tracker",
        description="Application name"
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    debug: bool = Field(
        default=False,
        description="Debug mode enabled"
    )

    environment: str = Field(
        default="development",
        description="Environment (development/staging/production)"
    )

    api_prefix: str = Field(
        default="/api",
        description="Prefix of every HTTP route"
    )

    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:8080"],
        description="Origins allowed to call the API"
    )

    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings,
        description="Database configuration"
    )

    numbering: NumberingSettings = Field(
        default_factory=NumberingSettings,
        description="Sequence number configuration"
    )

    mail: MailSettings = Field(
        default_factory=MailSettings,
        description="Mail configuration"
    )

    security: SecuritySettings = Field(
        default_factory=SecuritySettings,
        description="Security configuration"
    )

    directory: DirectorySettings = Field(
        default_factory=DirectorySettings,
        description="Known users"
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration"
    )

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local") or self.debug

    def to_dict(self) -> Dict[str, Any]:
        """Convert settings to dictionary for JSON serialization."""
        return self.model_dump(exclude_unset=False, exclude_none=False)

    def get_nested_setting(self, path: str, default: Any = None) -> Any:
        """
        Get a nested setting using dot notation.

        Args:
            path: Dot-separated path (e.g., "database.mongodb_url")
            default: Default value if path not found

        Returns:
            Setting value or default
        """
        try:
            current = self
            for part in path.split('.'):
                current = getattr(current, part)
            return current
        except AttributeError:
            return default

    def validate_configuration(self) -> Dict[str, List[str]]:
        """
        Validate the entire configuration.

        Returns:
            Dictionary with validation errors by section
        """
        errors: Dict[str, List[str]] = {}

        url_fields = [
            ("database.mongodb_url", self.database.mongodb_url),
        ]
        for field_path, url in url_fields:
            if not self._is_valid_url(url):
                errors.setdefault(field_path.split('.')[0], []).append(
                    f"Invalid URL: {field_path} = {url}"
                )

        positive_int_fields = [
            ("numbering.sequence_width", self.numbering.sequence_width),
            ("mail.team_email_cap", self.mail.team_email_cap),
            ("mail.smtp_port", self.mail.smtp_port),
            ("database.server_selection_timeout_ms", self.database.server_selection_timeout_ms),
        ]
        for field_path, value in positive_int_fields:
            if not isinstance(value, int) or value <= 0:
                errors.setdefault(field_path.split('.')[0], []).append(
                    f"Must be positive integer: {field_path} = {value}"
                )

        if not self.numbering.prefix.strip():
            errors.setdefault("numbering", []).append("Prefix cannot be empty")

        return errors

    def _is_valid_url(self, url: str) -> bool:
        """Check if URL is valid."""
        from urllib.parse import urlparse
        try:
            result = urlparse(url)
        except ValueError:
            return False
        return all([result.scheme, result.netloc])


# Environment variable mapping examples:
# DATABASE__MONGODB_URL=mongodb://mongo:27017
# DATABASE__ENABLED=false
# NUMBERING__PREFIX=DAO
# MAIL__ENABLED=true
# MAIL__SMTP_HOST=smtp.example.com
# SECURITY__JWT_SECRET_KEY=...
# LOGGING__LEVEL=DEBUG


def get_settings(overrides: Optional[Dict[str, Any]] = None) -> Settings:
    """Get application settings."""
    return Settings(**(overrides or {}))
