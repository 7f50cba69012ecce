"""
Tests for the Social Core Main Application

Tests cover wiring of the services (SocialCore, create_app) and the command
line entry point with its exit codes.
"""

import pytest
from unittest.mock import MagicMock, patch
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import main
from config import settings
from data.memory import InMemoryUserStorage
from main import SocialCore, create_app
from utils.exceptions import ConfigurationError, QueryError


# =============================================================================
# Wiring Tests
# =============================================================================

class TestCreateApp:
    """Tests for create_app()."""

    def test_memory_backend(self, hasher, email_notifier, object_store):
        """The memory backend wires in-memory storages into every service."""
        app = create_app("memory", hasher=hasher, email=email_notifier, object_store=object_store)

        assert isinstance(app, SocialCore)
        assert isinstance(app.users, InMemoryUserStorage)
        assert app.reactions.content is app.content
        assert app.auth.email is email_notifier
        assert app.content.object_store is object_store

    def test_default_collaborators(self):
        """Without injected collaborators the real implementations are used."""
        from services.credentials import WerkzeugHasher
        from services.email_service import SmtpEmailService
        from services.media_service import CloudinaryStore

        app = create_app("memory")

        assert isinstance(app.hasher, WerkzeugHasher)
        assert isinstance(app.email, SmtpEmailService)
        assert isinstance(app.object_store, CloudinaryStore)

    def test_sqlserver_backend_uses_given_connection(self):
        """The sqlserver backend builds SQL storages on the given connection."""
        from data.database import SqlPostStorage, SqlUserStorage

        db = MagicMock()
        app = create_app("sqlserver", db=db)

        assert isinstance(app.users, SqlUserStorage)
        assert isinstance(app.posts, SqlPostStorage)
        assert app.users.db is db

    def test_unknown_backend(self):
        """An unknown backend name is a configuration error."""
        with pytest.raises(ConfigurationError, match="Unknown storage backend"):
            create_app("mongo")

    def test_end_to_end_scenario(self, core, email_notifier):
        """Signup, verify, login, post, like and notification work together."""
        alice = core.auth.signup("alice", "alice@example.com", "secret123", "Alice", "Smith")
        core.auth.verify_email("alice@example.com", email_notifier.last_code("alice@example.com"))
        bob = core.auth.signup("bob", "bob@example.com", "secret123", "Bob", "Jones")
        core.auth.verify_email("bob@example.com", email_notifier.last_code("bob@example.com"))

        core.auth.login("alice@example.com", "secret123")
        post = core.reactions.publish_post(alice.id, "First post!")
        core.reactions.like_post(post.id, bob.id)

        assert core.content.get_post(post.id, bob.id).is_liked is True
        assert core.notifications.list(alice.id).unread_count == 1


# =============================================================================
# Command Line Tests
# =============================================================================

class TestMain:
    """Tests for main() and its commands."""

    def test_check_config_success(self):
        """check-config exits 0 when the settings validate."""
        with patch('main.validate_settings', return_value=True):
            assert main.main(["check-config"]) == 0

    def test_check_config_failure(self):
        """A configuration error exits 1."""
        with patch('main.validate_settings', side_effect=ConfigurationError("bad")):
            assert main.main(["check-config"]) == 1

    def test_init_db_requires_sqlserver(self):
        """init-db refuses to run against the memory backend."""
        with patch('main.validate_settings', return_value=True), \
             patch.object(settings, 'STORAGE_BACKEND', 'memory'):
            assert main.main(["init-db"]) == 1

    def test_init_db_creates_schema(self):
        """init-db creates the schema and closes the connection."""
        with patch('main.validate_settings', return_value=True), \
             patch.object(settings, 'STORAGE_BACKEND', 'sqlserver'), \
             patch('data.database.DatabaseConnection') as mock_db_cls:
            assert main.main(["init-db"]) == 0

        mock_db_cls.return_value.init_schema.assert_called_once()
        mock_db_cls.return_value.close.assert_called_once()

    def test_init_db_database_error(self):
        """A database failure exits 1 and still closes the connection."""
        with patch('main.validate_settings', return_value=True), \
             patch.object(settings, 'STORAGE_BACKEND', 'sqlserver'), \
             patch('data.database.DatabaseConnection') as mock_db_cls:
            mock_db_cls.return_value.init_schema.side_effect = QueryError("no permission")
            assert main.main(["init-db"]) == 1

        mock_db_cls.return_value.close.assert_called_once()

    def test_unexpected_error_exits_2(self):
        """Anything outside the application's own errors exits 2."""
        failing = MagicMock(side_effect=RuntimeError("boom"))
        with patch.dict(main.COMMANDS, {"check-config": failing}):
            assert main.main(["check-config"]) == 2

    def test_unknown_command(self):
        """argparse rejects unknown commands."""
        with pytest.raises(SystemExit):
            main.main(["serve"])

    def test_log_file_option(self, tmp_path):
        """--log-file installs a file handler."""
        log_file = tmp_path / "social.log"
        with patch('main.validate_settings', return_value=True), \
             patch('main.setup_file_logging') as mock_setup:
            assert main.main(["check-config", "--log-file", str(log_file), "--log-level", "DEBUG"]) == 0
        mock_setup.assert_called_once_with(str(log_file), 10)
