"""
Service Protocol Definitions

This module defines typing.Protocol interfaces for the external collaborators
the social core depends on. These protocols enable loose coupling, dependency
injection, and easier testing.

Protocols defined:
- ObjectStore: Interface for storing and deleting uploaded images
- CredentialHasher: Interface for one-way password hashing
- EmailNotifier: Interface for transactional email delivery
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from data.models import ImageRef


@dataclass
class Upload:
    """Data class for one uploaded file as received from the caller."""
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class ObjectStore(Protocol):
    """Protocol defining the interface for image storage.

    Implementations should provide methods for:
    - Storing an uploaded image and returning an opaque reference
    - Deleting a previously stored image by its reference
    """

    def put(self, upload: Upload) -> ImageRef:
        """Store an image.

        Args:
            upload: The file to store.

        Returns:
            ImageRef with the public URL and the store's id.

        Raises:
            InvalidInputError: If the file is not an image or is too large.
            MediaUploadError: If the store failed.
        """
        ...

    def delete(self, ref: ImageRef) -> None:
        """Delete a stored image.

        Raises:
            MediaUploadError: If the store failed.
        """
        ...


class CredentialHasher(Protocol):
    """Protocol defining the interface for password hashing."""

    def hash(self, password: str) -> str:
        """Return a salted one-way hash of password."""
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        """Return True if password matches password_hash."""
        ...


class EmailNotifier(Protocol):
    """Protocol defining the interface for transactional email.

    Every method returns True when the message was handed to the mail server
    and False when delivery failed. Failures are logged by the implementation
    and never raised.
    """

    def send_otp(self, email: str, code: str, first_name: str) -> bool:
        """Send an account verification code."""
        ...

    def send_welcome(self, email: str, first_name: str) -> bool:
        """Send the welcome message after verification."""
        ...

    def send_password_reset(self, email: str, reset_token: str, first_name: Optional[str] = None) -> bool:
        """Send a password reset link."""
        ...
