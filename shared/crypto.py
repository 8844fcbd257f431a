"""
Encryption of storage credentials kept in the dashboard config file.
"""

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

_MACHINE_SALT = b'melodia-credentials-v1'


class CredentialManager:
    """Fernet encryption keyed to the current machine and user."""

    @staticmethod
    def derive_key(secret: str, salt: bytes) -> bytes:
        """Derive a Fernet key from a secret using PBKDF2-SHA256."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=100000,
        )
        return base64.urlsafe_b64encode(kdf.derive(secret.encode()))

    @staticmethod
    def machine_key() -> bytes:
        """
        Key derived from the machine id and user name.

        Keeps config files unreadable when copied to another machine without
        prompting for a password on every run.
        """
        try:
            with open('/etc/machine-id', 'r') as f:
                machine_id = f.read().strip()
        except OSError:
            machine_id = os.getenv('HOSTNAME', 'default-machine')

        username = os.getenv('USER', 'default-user')
        return CredentialManager.derive_key(f"{machine_id}-{username}", _MACHINE_SALT)

    @staticmethod
    def encrypt(data: str, key: Optional[bytes] = None) -> str:
        if key is None:
            key = CredentialManager.machine_key()
        return Fernet(key).encrypt(data.encode()).decode()

    @staticmethod
    def decrypt(token: str, key: Optional[bytes] = None) -> Optional[str]:
        """Return the plain text, or None if the token cannot be decrypted here."""
        if key is None:
            key = CredentialManager.machine_key()
        try:
            return Fernet(key).decrypt(token.encode()).decode()
        except (InvalidToken, ValueError) as e:
            logger.warning("Credential decryption failed: %s", e)
            return None
