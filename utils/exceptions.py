"""
Custom Exception Classes for the Social Core

This module defines custom exceptions for better error handling and
categorization of failures across the application. Every failure is scoped
to the single request that raised it; nothing here is fatal to the process.
"""


class SocialCoreError(Exception):
    """Base exception for all social core errors."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(SocialCoreError):
    """Raised when configuration validation fails or required settings are missing."""
    pass


# =============================================================================
# Request Errors (surfaced to the caller, never retried)
# =============================================================================

class InvalidInputError(SocialCoreError):
    """Raised on a schema, length or type violation, before any mutation."""
    pass


class NotFoundError(SocialCoreError):
    """Raised when the target is absent or soft-deleted."""
    pass


class ForbiddenError(SocialCoreError):
    """Raised when the actor is authenticated but not authorized for the target."""
    pass


class ConflictError(SocialCoreError):
    """Raised when a username or email is already registered."""
    pass


class AuthenticationError(SocialCoreError):
    """Raised when login credentials are wrong or the account is deactivated."""
    pass


# =============================================================================
# Collaborator Errors
# =============================================================================

class UnavailableError(SocialCoreError):
    """Raised when a downstream collaborator (object store, email) failed."""
    pass


class MediaUploadError(UnavailableError):
    """Raised when the object store rejects or fails an upload or delete."""
    pass


class EmailDeliveryError(UnavailableError):
    """Raised when an email could not be delivered and the caller must know."""
    pass


# =============================================================================
# Database Errors
# =============================================================================

class DatabaseError(SocialCoreError):
    """Base exception for database-related errors."""
    pass


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""
    pass


class QueryError(DatabaseError):
    """Raised when a database query fails."""
    pass
