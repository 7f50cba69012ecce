"""
Configuration Validation for the Social Core

This module contains configuration validation logic. Every problem found is
collected and raised together so a misconfigured deployment reports all of
its issues in one run.
"""

import logging

from utils.exceptions import ConfigurationError
from utils.helpers import truncate_text

logger = logging.getLogger(__name__)


def validate_settings():
    """
    Validate that all required settings are properly configured.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    # Import settings here to avoid circular imports
    from config import settings

    errors = []

    if settings.STORAGE_BACKEND not in settings.STORAGE_BACKENDS:
        errors.append(
            f"STORAGE_BACKEND must be one of {', '.join(settings.STORAGE_BACKENDS)}, "
            f"got {settings.STORAGE_BACKEND!r}"
        )

    if settings.STORAGE_BACKEND == "sqlserver":
        required_vars = [
            ("DB_SERVER", settings.DB_SERVER),
            ("DB_NAME", settings.DB_NAME),
            ("DB_USER", settings.DB_USER),
            ("DB_PASSWORD", settings.DB_PASSWORD)
        ]
        for var_name, var_value in required_vars:
            if not var_value:
                errors.append(f"Missing required environment variable: {var_name}")

        if not settings.DB_CONNECTION_STRING:
            errors.append("Database connection string could not be built. Check DB_SERVER, DB_NAME, DB_USER, DB_PASSWORD.")

    # Collaborators are optional: the core keeps working without them
    if not settings.SMTP_HOST:
        logger.warning("SMTP_HOST is not configured. Verification emails will not be delivered.")

    if not all([settings.CLOUDINARY_CLOUD_NAME, settings.CLOUDINARY_API_KEY, settings.CLOUDINARY_API_SECRET]):
        logger.warning("Cloudinary credentials are incomplete. Image uploads will be rejected.")

    numeric_validations = [
        ("POST_CONTENT_MAX_LENGTH", settings.POST_CONTENT_MAX_LENGTH, 1, 100000),
        ("COMMENT_CONTENT_MAX_LENGTH", settings.COMMENT_CONTENT_MAX_LENGTH, 1, 100000),
        ("MAX_IMAGES_PER_POST", settings.MAX_IMAGES_PER_POST, 0, 100),
        ("PASSWORD_MIN_LENGTH", settings.PASSWORD_MIN_LENGTH, 1, 128),
        ("OTP_LENGTH", settings.OTP_LENGTH, 4, 10),
        ("OTP_TTL_MINUTES", settings.OTP_TTL_MINUTES, 1, 1440),
        ("DEFAULT_PAGE_SIZE", settings.DEFAULT_PAGE_SIZE, 1, settings.MAX_PAGE_SIZE),
        ("NOTIFICATION_PAGE_SIZE", settings.NOTIFICATION_PAGE_SIZE, 1, settings.MAX_PAGE_SIZE),
        ("SMTP_PORT", settings.SMTP_PORT, 1, 65535),
    ]

    for name, value, min_val, max_val in numeric_validations:
        if value < min_val or value > max_val:
            errors.append(f"{name} must be between {min_val} and {max_val}, got {value}")

    timeout_settings = [
        ("SMTP_TIMEOUT", settings.SMTP_TIMEOUT),
        ("UPLOAD_TIMEOUT", settings.UPLOAD_TIMEOUT),
        ("MAX_UPLOAD_BYTES", settings.MAX_UPLOAD_BYTES),
    ]

    for name, value in timeout_settings:
        if value <= 0:
            errors.append(f"{name} must be positive, got {value}")

    # Raise all errors at once
    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)

    return True


def get_config_summary() -> dict:
    """
    Returns a summary of current configuration (without sensitive values).
    Useful for logging startup state.
    """
    # Import settings here to avoid circular imports
    from config import settings

    return {
        "storage": {
            "backend": settings.STORAGE_BACKEND,
            "server": truncate_text(settings.DB_SERVER, 20),
            "database": settings.DB_NAME,
        },
        "collaborators": {
            "email_configured": bool(settings.SMTP_HOST),
            "object_store_configured": bool(settings.CLOUDINARY_CLOUD_NAME and settings.CLOUDINARY_API_KEY),
        },
        "content_limits": {
            "post_max_length": settings.POST_CONTENT_MAX_LENGTH,
            "comment_max_length": settings.COMMENT_CONTENT_MAX_LENGTH,
            "max_images_per_post": settings.MAX_IMAGES_PER_POST,
        },
        "otp": {
            "length": settings.OTP_LENGTH,
            "ttl_minutes": settings.OTP_TTL_MINUTES,
        },
        "pagination": {
            "default_page_size": settings.DEFAULT_PAGE_SIZE,
            "notification_page_size": settings.NOTIFICATION_PAGE_SIZE,
            "max_page_size": settings.MAX_PAGE_SIZE,
        },
    }
