"""
Staff Directory Core - Configuration Management

Centralized configuration for environment variables, CORS, and deployment settings.
This module ensures:
- No hardcoded secrets
- No missing required variables (the process exits at startup otherwise)
- Environment-specific settings (dev/staging/prod)
- Secure defaults
"""

from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type coercion.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ==================== ENVIRONMENT ====================
    ENVIRONMENT: str = Field(
        default="development",
        description="Runtime environment: development, staging, production"
    )
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (auto-enabled in development)"
    )

    # ==================== BACKEND ====================
    SUPABASE_URL: str = Field(
        default="",
        description="Backend base URL, e.g. https://<project>.supabase.co (required)"
    )
    SUPABASE_SERVICE_ROLE_KEY: str = Field(
        default="",
        description="Privileged service-role key for the admin auth API (required)"
    )
    IDENTITY_CREATE_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for the identity create call"
    )

    # ==================== DATABASE ====================
    DATABASE_URL: str = Field(
        default="",
        description="Async SQLAlchemy URL of the backend's Postgres, postgresql+asyncpg://... (required)"
    )
    DATABASE_SSL: bool = Field(
        default=True,
        description="Require SSL for database connections"
    )

    # ==================== PROVISIONING DEFAULTS ====================
    DEFAULT_COMPANY_ID: Optional[str] = Field(
        default=None,
        description="Company stamped on new employees that do not specify one"
    )
    DEFAULT_ROLE_ID: Optional[str] = Field(
        default=None,
        description="Role reference stamped on new employees"
    )

    # ==================== CORS ====================
    CORS_ORIGINS: str = Field(
        default="",
        description="Comma-separated list of allowed origins"
    )

    # ==================== OBSERVABILITY ====================
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR"
    )

    # ==================== API ====================
    API_TITLE: str = Field(
        default="Staff Directory Core API",
        description="API title for OpenAPI docs"
    )
    API_VERSION: str = Field(
        default="1.0.0",
        description="API version"
    )

    # ==================== COMPUTED PROPERTIES ====================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def debug_enabled(self) -> bool:
        """Enable debug in development or when explicitly set"""
        return self.DEBUG or self.is_development

    @property
    def has_backend_credentials(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_ROLE_KEY)

    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS_ORIGINS into a list with environment-aware defaults.

        Production/Staging: Only specified origins
        Development: Include localhost origins
        """
        if self.CORS_ORIGINS and self.CORS_ORIGINS != "*":
            origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        else:
            origins = []

        dev_origins = [
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]

        all_origins = set(origins)
        if not self.is_production:
            all_origins.update(dev_origins)

        return sorted(all_origins)

    def validate_required(self) -> List[str]:
        """
        Variables without which the service cannot run.
        Returns list of validation errors.
        """
        errors = []
        if not self.SUPABASE_URL:
            errors.append("SUPABASE_URL is required")
        if not self.SUPABASE_SERVICE_ROLE_KEY:
            errors.append("SUPABASE_SERVICE_ROLE_KEY is required")
        if not self.DATABASE_URL:
            errors.append("DATABASE_URL is required")
        return errors

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration for production deployment.
        Returns list of validation errors.
        """
        errors = []
        if not self.is_production:
            return errors

        if self.CORS_ORIGINS == "*":
            errors.append("CORS_ORIGINS cannot be '*' in production")
        if self.SUPABASE_URL.startswith("http://"):
            errors.append("SUPABASE_URL must use https in production")
        if "localhost" in self.DATABASE_URL.lower():
            errors.append("DATABASE_URL cannot point to localhost in production")
        if self.DEBUG:
            errors.append("DEBUG should be False in production")

        return errors


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Settings are loaded once and cached for the application lifetime.
    """
    settings = Settings()
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.debug_enabled}")
    return settings


# ==================== CORS CONFIGURATION ====================

def get_cors_config(settings: Optional[Settings] = None) -> dict:
    """
    Get CORS middleware configuration.

    Returns configuration dict for CORSMiddleware.
    """
    settings = settings or get_settings()

    return {
        "allow_origins": settings.cors_origins_list,
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        "allow_headers": [
            "Authorization",
            "Content-Type",
            "Accept",
            "Origin",
            "X-Requested-With",
            "X-Request-ID",
        ],
        "expose_headers": [
            "X-Request-ID",
            "X-Process-Time",
        ],
        "max_age": 600,  # Cache preflight for 10 minutes
    }


# ==================== ENVIRONMENT VALIDATION ====================

def validate_environment(settings: Optional[Settings] = None) -> dict:
    """
    Validate all required environment variables.

    Returns a status dict with validation results. Values are never
    included, only whether each variable is set.
    """
    settings = settings or get_settings()

    status = {
        "valid": True,
        "environment": settings.ENVIRONMENT,
        "errors": [],
        "warnings": [],
        "variables": {}
    }

    required_vars = [
        ("SUPABASE_URL", settings.SUPABASE_URL),
        ("SUPABASE_SERVICE_ROLE_KEY", settings.SUPABASE_SERVICE_ROLE_KEY),
        ("DATABASE_URL", settings.DATABASE_URL),
    ]

    for name, value in required_vars:
        if not value:
            status["errors"].append(f"{name} is not set")
            status["valid"] = False
            status["variables"][name] = "Not set"
        else:
            status["variables"][name] = "Set"

    optional_vars = [
        ("SENTRY_DSN", settings.SENTRY_DSN, "Error tracking disabled"),
        ("DEFAULT_COMPANY_ID", settings.DEFAULT_COMPANY_ID, "New employees without company_id get none"),
    ]

    for name, value, warning in optional_vars:
        if not value:
            status["warnings"].append(warning)
            status["variables"][name] = "Not set"
        else:
            status["variables"][name] = "Set"

    errors = settings.validate_production_config()
    if errors:
        status["errors"].extend(errors)
        status["valid"] = False

    return status
