"""
Configuration Module
====================
Centralized environment variable loading, validation, and access.
Validates all required configuration at startup to fail fast.

NO BUSINESS LOGIC - Pure configuration management only.
"""

import os
import logging
from typing import Optional, Dict, Any, List
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from dotenv import load_dotenv


# ============================================================================
# LOGGING
# ============================================================================

logger = logging.getLogger(__name__)


# ============================================================================
# ENVIRONMENT LOADING
# ============================================================================

def load_environment():
    """
    Load environment variables from .env file if present.
    Safe to call multiple times.
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment from .env file")
    else:
        logger.info("No .env file found, using system environment variables")


# Load on module import
load_environment()


# ============================================================================
# CONFIGURATION EXCEPTION
# ============================================================================

class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def _get_required_env(key: str, description: str = None) -> str:
    """
    Get required environment variable.

    Args:
        key: Environment variable name
        description: Optional description for error message

    Returns:
        Environment variable value

    Raises:
        ConfigurationError: If variable is missing or empty
    """
    value = os.getenv(key)

    if not value or value.strip() == "":
        desc = f" ({description})" if description else ""
        raise ConfigurationError(
            f"Missing required environment variable: {key}{desc}"
        )

    return value.strip()


def _get_optional_env(key: str, default: str = None) -> Optional[str]:
    """Get optional environment variable (stripped) or default."""
    value = os.getenv(key, default)
    return value.strip() if value else default


def _get_bool_env(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on", "enabled")


def _get_int_env(key: str, default: int = None) -> Optional[int]:
    """
    Get integer environment variable.

    Raises:
        ConfigurationError: If value is not a valid integer
    """
    value = os.getenv(key)

    if not value:
        return default

    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(
            f"Invalid integer value for {key}: {value}"
        )


def _get_float_env(key: str, default: float = None) -> Optional[float]:
    """
    Get float environment variable.

    Raises:
        ConfigurationError: If value is not a valid number
    """
    value = os.getenv(key)

    if not value:
        return default

    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(
            f"Invalid numeric value for {key}: {value}"
        )


# ============================================================================
# STORAGE CONFIGURATION
# ============================================================================

SUPPORTED_BACKENDS = ["memory", "supabase"]


class StorageConfig:
    """Which persistence backend to use."""

    def __init__(self):
        self.backend = _get_optional_env("STORAGE_BACKEND", "memory").lower()

        if self.backend not in SUPPORTED_BACKENDS:
            raise ConfigurationError(
                f"Invalid STORAGE_BACKEND: {self.backend}. "
                f"Must be one of {', '.join(SUPPORTED_BACKENDS)}"
            )

        # Read timeout for remote backends (seconds)
        self.timeout = _get_float_env("STORAGE_TIMEOUT", 5.0)


# ============================================================================
# SUPABASE CONFIGURATION
# ============================================================================

class SupabaseConfig:
    """Supabase database configuration."""

    def __init__(self):
        self.url = _get_required_env(
            "SUPABASE_URL",
            "Supabase project URL"
        )

        self.key = _get_required_env(
            "SUPABASE_KEY",
            "Supabase anon or service role key"
        )

        # Validate URL format
        if not self.url.startswith("https://"):
            raise ConfigurationError(
                f"SUPABASE_URL must start with https://: {self.url}"
            )

        # Circuit breaker settings
        self.breaker_threshold = _get_int_env("SUPABASE_BREAKER_THRESHOLD", 5)
        self.breaker_timeout = _get_int_env("SUPABASE_BREAKER_TIMEOUT", 30)


# ============================================================================
# LOCALE CONFIGURATION
# ============================================================================

class LocaleConfig:
    """Wall clock used for human-readable order timestamps."""

    def __init__(self):
        self.timezone_name = _get_optional_env("DISPLAY_TIMEZONE", "America/Mexico_City")

        try:
            self.timezone = ZoneInfo(self.timezone_name)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigurationError(
                f"Unknown DISPLAY_TIMEZONE: {self.timezone_name}"
            )


# ============================================================================
# PRICING CONFIGURATION
# ============================================================================

class PricingConfig:
    """Storefront pricing rules."""

    def __init__(self):
        # Tip added to storefront orders (fraction of subtotal)
        self.tip_rate = _get_float_env("TIP_RATE", 0.10)

        if not 0.0 <= self.tip_rate <= 1.0:
            raise ConfigurationError(
                f"TIP_RATE must be between 0.0 and 1.0: {self.tip_rate}"
            )


# ============================================================================
# FALLBACK CACHE CONFIGURATION
# ============================================================================

class CacheConfig:
    """Local last-known-state cache used when persistence is down."""

    def __init__(self):
        self.enabled = _get_bool_env("FALLBACK_CACHE_ENABLED", True)
        self.directory = _get_optional_env(
            "FALLBACK_CACHE_DIR",
            str(Path.home() / ".tarascos" / "cache")
        )


# ============================================================================
# ADMIN CONFIGURATION
# ============================================================================

class AdminConfig:
    """Back-office credentials."""

    def __init__(self):
        self.email = _get_optional_env("ADMIN_EMAIL")
        self.password = _get_optional_env("ADMIN_PASSWORD")

        # When unset, back-office routes are not protected
        self.token = _get_optional_env("ADMIN_TOKEN")

        if (self.email or self.password) and not self.token:
            raise ConfigurationError(
                "ADMIN_TOKEN is required when ADMIN_EMAIL/ADMIN_PASSWORD are set"
            )

    @property
    def auth_enabled(self) -> bool:
        return bool(self.token)


# ============================================================================
# SERVER CONFIGURATION
# ============================================================================

class ServerConfig:
    """Web server configuration."""

    def __init__(self):
        self.host = _get_optional_env("HOST", "0.0.0.0")
        self.port = _get_int_env("PORT", 8000)

        # CORS settings
        self.cors_origins = _get_optional_env("CORS_ORIGINS", "*").split(",")

        # Logging
        self.log_level = _get_optional_env("LOG_LEVEL", "INFO").upper()

        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ConfigurationError(
                f"Invalid LOG_LEVEL: {self.log_level}"
            )


# ============================================================================
# MAIN CONFIGURATION CLASS
# ============================================================================

class Config:
    """
    Main configuration container.
    Loads and validates all configuration on initialization.
    """

    def __init__(self):
        """
        Initialize and validate all configuration.

        Raises:
            ConfigurationError: If any required configuration is missing or invalid
        """
        try:
            self.storage = StorageConfig()
            self.supabase = (
                SupabaseConfig() if self.storage.backend == "supabase" else None
            )
            self.pricing = PricingConfig()
            self.locale = LocaleConfig()
            self.cache = CacheConfig()
            self.admin = AdminConfig()
            self.server = ServerConfig()

            logger.info("Configuration loaded and validated successfully")

        except ConfigurationError as e:
            logger.error(f"Configuration error: {str(e)}")
            raise
        except Exception as e:
            logger.error(f"Unexpected error loading configuration: {str(e)}")
            raise ConfigurationError(f"Configuration initialization failed: {str(e)}")

    def get_safe_summary(self) -> Dict[str, Any]:
        """
        Get safe configuration summary (no secrets).

        Returns:
            Dictionary with non-sensitive configuration
        """
        return {
            "storage_backend": self.storage.backend,
            "tip_rate": self.pricing.tip_rate,
            "display_timezone": self.locale.timezone_name,
            "fallback_cache": {
                "enabled": self.cache.enabled,
                "directory": self.cache.directory,
            },
            "admin_auth": self.admin.auth_enabled,
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "log_level": self.server.log_level,
            },
        }

    def validate_runtime_dependencies(self) -> List[str]:
        """
        Validate that runtime dependencies are accessible.

        Returns:
            List of warnings (empty if all OK)
        """
        warnings = []

        if self.cache.enabled:
            cache_dir = Path(self.cache.directory)
            if cache_dir.exists() and not os.access(cache_dir, os.W_OK):
                warnings.append(
                    f"Fallback cache directory not writable: {self.cache.directory}"
                )

        if self.storage.backend == "memory":
            warnings.append(
                "STORAGE_BACKEND=memory: data is lost on restart"
            )

        return warnings


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get global configuration instance.
    Initializes on first call.

    Returns:
        Config instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    global _config

    if _config is None:
        _config = Config()

    return _config


def reload_config() -> Config:
    """
    Reload configuration from environment.
    Useful for testing or dynamic reconfiguration.
    """
    global _config
    load_environment()
    _config = Config()
    logger.info("Configuration reloaded")
    return _config


# ============================================================================
# VALIDATION FUNCTION
# ============================================================================

def validate_configuration():
    """
    Validate configuration and log summary.
    Useful for startup checks.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    config = get_config()

    summary = config.get_safe_summary()

    logger.info("Configuration Summary:")
    logger.info(f"  Storage Backend: {summary['storage_backend']}")
    logger.info(f"  Tip Rate: {summary['tip_rate']:.2%}")
    logger.info(f"  Display Timezone: {summary['display_timezone']}")
    logger.info(f"  Fallback Cache: {summary['fallback_cache']['enabled']}")
    logger.info(f"  Admin Auth: {summary['admin_auth']}")
    logger.info(f"  Server: {summary['server']['host']}:{summary['server']['port']}")
    logger.info(f"  Log Level: {summary['server']['log_level']}")

    # Check runtime dependencies
    warnings = config.validate_runtime_dependencies()
    if warnings:
        logger.warning("Configuration warnings:")
        for warning in warnings:
            logger.warning(f"  - {warning}")

    logger.info("Configuration validation complete")
