"""
Configuration Settings for the Social Core

This module centralizes all configuration settings for the social core,
including environment variables, storage credentials, collaborator endpoints
and the content limits enforced by the services.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Determine the application root directory
APP_ROOT = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(dotenv_path=os.path.join(APP_ROOT, '.env'))


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Storage Settings
# =============================================================================

STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").strip().lower()  # 'memory' or 'sqlserver'
STORAGE_BACKENDS = ("memory", "sqlserver")

DB_SERVER = os.getenv("DB_SERVER", "")
DB_NAME = os.getenv("DB_NAME", "")
DB_USER = os.getenv("DB_USER", "")
DB_PASSWORD = os.getenv("DB_PASSWORD", "")

# Build connection string safely (validation happens in validate_settings())
DB_CONNECTION_STRING = (
    f"DRIVER={{ODBC Driver 18 for SQL Server}}; "
    f"SERVER={DB_SERVER}; "
    f"DATABASE={DB_NAME}; "
    f"UID={DB_USER}; "
    f"PWD={DB_PASSWORD}; "
    f"TrustServerCertificate=yes; MARS_Connection=yes;"
) if all([DB_SERVER, DB_NAME, DB_USER, DB_PASSWORD]) else ""

# =============================================================================
# Content Limits
# =============================================================================

POST_CONTENT_MAX_LENGTH = _env_int("POST_CONTENT_MAX_LENGTH", 2000)
COMMENT_CONTENT_MAX_LENGTH = _env_int("COMMENT_CONTENT_MAX_LENGTH", 1000)
MAX_IMAGES_PER_POST = _env_int("MAX_IMAGES_PER_POST", 10)
MAX_TAGS_PER_POST = _env_int("MAX_TAGS_PER_POST", 30)

# =============================================================================
# Identity Settings
# =============================================================================

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30
USERNAME_PATTERN = r"^[A-Za-z0-9_]+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$"
PASSWORD_MIN_LENGTH = _env_int("PASSWORD_MIN_LENGTH", 6)
NAME_MAX_LENGTH = 50                 # First and last name
BIO_MAX_LENGTH = 500

# OTP verification
OTP_LENGTH = _env_int("OTP_LENGTH", 6)
OTP_TTL_MINUTES = _env_int("OTP_TTL_MINUTES", 10)

# =============================================================================
# Pagination Settings
# =============================================================================

DEFAULT_PAGE_SIZE = _env_int("DEFAULT_PAGE_SIZE", 10)              # Posts and user search
NOTIFICATION_PAGE_SIZE = _env_int("NOTIFICATION_PAGE_SIZE", 20)    # Notifications and follow lists
MAX_PAGE_SIZE = _env_int("MAX_PAGE_SIZE", 100)

# =============================================================================
# Email (SMTP) Settings
# =============================================================================

SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = _env_int("SMTP_PORT", 587)
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", True)
SMTP_TIMEOUT = _env_int("SMTP_TIMEOUT", 10)          # Seconds
EMAIL_FROM = os.getenv("EMAIL_FROM", "MingleMe <noreply@mingleme.com>")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# =============================================================================
# Object Store (Cloudinary) Settings
# =============================================================================

CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "mingleme/posts")
CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"
UPLOAD_TIMEOUT = _env_int("UPLOAD_TIMEOUT", 30)      # Seconds
MAX_UPLOAD_BYTES = _env_int("MAX_UPLOAD_BYTES", 5 * 1024 * 1024)

# =============================================================================
# Search Settings
# =============================================================================

# Terms dropped from both queries and documents before stemming
SEARCH_STOP_WORDS = frozenset([
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "from",
    "has", "have", "he", "her", "his", "i", "in", "is", "it", "its", "me",
    "my", "of", "on", "or", "our", "she", "so", "that", "the", "their",
    "them", "there", "they", "this", "to", "was", "we", "were", "what",
    "when", "which", "who", "will", "with", "you", "your",
])
SEARCH_TAG_WEIGHT = 1                # Relative weight of tag matches vs content matches
SEARCH_CONTENT_WEIGHT = 1

# =============================================================================
# Logging
# =============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", os.path.join(APP_ROOT, "social_core.log"))
