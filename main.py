"""
Social Core Application

This is the main entry point for the social core. It wires the storage
backend, the external collaborators and the services together
(SocialCore / create_app) and offers a small command line for operating a
deployment: checking the configuration and creating the database schema.
"""

import sys
import argparse
import logging
from datetime import datetime
from typing import Callable, List, Optional

from config import settings
from config.validators import get_config_summary, validate_settings
from data.memory import InMemoryNotificationStorage, InMemoryPostStorage, InMemoryUserStorage
from data.protocols import NotificationStorage, PostStorage, UserStorage
from services.auth_service import AuthService
from services.content_service import ContentService
from services.credentials import WerkzeugHasher
from services.email_service import SmtpEmailService
from services.identity_service import IdentityService
from services.media_service import CloudinaryStore
from services.notification_service import NotificationService
from services.otp_service import OTPService
from services.protocols import CredentialHasher, EmailNotifier, ObjectStore
from services.reaction_service import ReactionService
from utils.exceptions import ConfigurationError, DatabaseError, SocialCoreError
from utils.helpers import utcnow
from utils.logger import get_logger, setup_file_logging

# Set up logging
logger = get_logger(__name__)


class SocialCore:
    """
    Composition root for the social core.

    Holds one instance of every service, all sharing the same storages,
    collaborators and clock.
    """

    def __init__(self, users: UserStorage, posts: PostStorage, notification_store: NotificationStorage,
                 hasher: CredentialHasher, email: EmailNotifier,
                 object_store: Optional[ObjectStore] = None,
                 clock: Callable[[], datetime] = utcnow):
        """Initialize the services on top of the given storages and collaborators."""
        self.users = users
        self.posts = posts
        self.notification_store = notification_store
        self.hasher = hasher
        self.email = email
        self.object_store = object_store
        self.clock = clock

        self.identity = IdentityService(users, posts, hasher, clock=clock)
        self.otp = OTPService(users, clock=clock)
        self.content = ContentService(posts, users, object_store=object_store, clock=clock)
        self.notifications = NotificationService(notification_store, users=users, clock=clock)
        self.reactions = ReactionService(self.content, self.identity, users, self.notifications)
        self.auth = AuthService(self.identity, self.otp, hasher, email)


def create_app(backend: Optional[str] = None, clock: Callable[[], datetime] = utcnow,
               hasher: Optional[CredentialHasher] = None, email: Optional[EmailNotifier] = None,
               object_store: Optional[ObjectStore] = None, db=None) -> SocialCore:
    """
    Build a SocialCore for the configured storage backend.

    Args:
        backend: "memory" or "sqlserver"; defaults to settings.STORAGE_BACKEND.
        clock: Source of the current time for every service.
        hasher: Password hasher; werkzeug-based by default.
        email: Email notifier; SMTP by default.
        object_store: Image store; Cloudinary by default.
        db: An existing DatabaseConnection for the sqlserver backend.

    Returns:
        SocialCore: The wired application.

    Raises:
        ConfigurationError: If the backend name is unknown.
    """
    backend = (backend or settings.STORAGE_BACKEND).lower()

    if backend == "memory":
        users, posts, notifications = (
            InMemoryUserStorage(), InMemoryPostStorage(), InMemoryNotificationStorage()
        )
    elif backend == "sqlserver":
        # Imported here so the memory backend works without an ODBC driver installed
        from data.database import (
            DatabaseConnection, SqlNotificationStorage, SqlPostStorage, SqlUserStorage,
        )
        db = db or DatabaseConnection()
        users, posts, notifications = (
            SqlUserStorage(db), SqlPostStorage(db), SqlNotificationStorage(db)
        )
    else:
        raise ConfigurationError(f"Unknown storage backend: {backend}")

    logger.info(f"Social core created with {backend} storage")
    return SocialCore(
        users, posts, notifications,
        hasher=hasher or WerkzeugHasher(),
        email=email or SmtpEmailService(),
        object_store=object_store or CloudinaryStore(),
        clock=clock,
    )


def run_check_config() -> int:
    """Validate the configuration and log a summary of it."""
    validate_settings()
    for section, values in get_config_summary().items():
        logger.info(f"{section}: {values}")
    logger.info("Configuration is valid")
    return 0


def run_init_db() -> int:
    """Create the SQL Server tables and indexes."""
    from data.database import DatabaseConnection

    validate_settings()
    if settings.STORAGE_BACKEND != "sqlserver":
        raise ConfigurationError("init-db requires STORAGE_BACKEND=sqlserver")

    db = DatabaseConnection()
    try:
        db.init_schema()
    finally:
        db.close()
    return 0


COMMANDS = {
    "check-config": run_check_config,
    "init-db": run_init_db,
}


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Social Core Application')
    parser.add_argument('command', choices=sorted(COMMANDS), help='Operation to run')
    parser.add_argument('--log-file', type=str, default=None, help='Log file path')
    parser.add_argument('--log-level', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        default=settings.LOG_LEVEL if settings.LOG_LEVEL in ('DEBUG', 'INFO', 'WARNING', 'ERROR') else 'INFO',
                        help='Logging level')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    args = parse_arguments(argv)

    # Set up logging
    log_level = getattr(logging, args.log_level)
    if args.log_file:
        setup_file_logging(args.log_file, log_level)
    else:
        get_logger().setLevel(log_level)

    logger.info(f"Running {args.command}")

    try:
        exit_code = COMMANDS[args.command]()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        exit_code = 1
    except DatabaseError as e:
        logger.error(f"Database error: {e}", exc_info=True)
        exit_code = 1
    except SocialCoreError as e:
        logger.error(f"Social core error: {e}", exc_info=True)
        exit_code = 1
    except Exception as e:
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        exit_code = 2

    logger.info(f"{args.command} finished with exit code {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
