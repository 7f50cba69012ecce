"""
Credential Hashing Module

Password hashing backed by werkzeug.security. Hashes are salted and carry
their own method prefix, so stored hashes stay verifiable if the default
method changes later.
"""

from werkzeug.security import check_password_hash, generate_password_hash


class WerkzeugHasher:
    """CredentialHasher implementation using werkzeug's salted hashes."""

    def __init__(self, method: str = "pbkdf2:sha256"):
        self.method = method

    def hash(self, password: str) -> str:
        return generate_password_hash(password, method=self.method)

    def verify(self, password: str, password_hash: str) -> bool:
        if not password_hash:
            return False
        return check_password_hash(password_hash, password)
