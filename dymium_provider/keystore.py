"""Secret storage in the OS keyring.

Uses ``keyring`` so secrets land in Keychain on macOS, Secret Service
(GNOME Keyring, KWallet) on Linux and Credential Manager on Windows.
Absence is never an error: loading a missing key returns None and deleting
one is a no-op.
"""

import logging
from enum import Enum

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from .errors import KeystoreError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "io.dymium.provider"


class CredentialKey(str, Enum):
    """Logical names of the stored secrets."""

    CLIENT_SECRET = "client_secret"
    PASSWORD = "password"
    REFRESH_TOKEN = "refresh_token"


class Keystore:
    """Keyring-backed credential store."""

    def __init__(self, service: str = KEYRING_SERVICE):
        self.service = service

    def save(self, key: CredentialKey, value: str) -> None:
        """Save a secret.

        Raises:
            KeystoreError: If the keyring backend fails
        """
        try:
            keyring.set_password(self.service, key.value, value)
        except KeyringError as e:
            raise KeystoreError(f"Keyring error saving {key.value}: {e}") from e
        logger.debug(f"Saved {key.value} to keystore")

    def load(self, key: CredentialKey) -> str | None:
        """Load a secret, or None if it is not stored.

        Raises:
            KeystoreError: If the keyring backend fails
        """
        try:
            return keyring.get_password(self.service, key.value)
        except KeyringError as e:
            raise KeystoreError(f"Keyring error loading {key.value}: {e}") from e

    def delete(self, key: CredentialKey) -> None:
        """Delete a secret. Deleting an absent secret succeeds.

        Raises:
            KeystoreError: If the keyring backend fails
        """
        try:
            keyring.delete_password(self.service, key.value)
            logger.debug(f"Deleted {key.value} from keystore")
        except PasswordDeleteError:
            # Already absent
            pass
        except KeyringError as e:
            raise KeystoreError(f"Keyring error deleting {key.value}: {e}") from e

    def exists(self, key: CredentialKey) -> bool:
        """Check whether a secret is stored. Backend failures count as absent."""
        try:
            return self.load(key) is not None
        except KeystoreError:
            return False
