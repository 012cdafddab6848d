"""Secret service for RSA-encrypted environment values.

A secret ``NAME`` may be supplied in plain text as ``NAME`` or encrypted as
``NAME_ENC``: base64 of RSA-OAEP(SHA-256) ciphertext made with the public key.
"""

import base64
import binascii
import logging
import os
from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from portal_sync.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


class SecretService:
    """Service for encrypting and decrypting secrets with an RSA key pair."""

    def __init__(self, app_settings=None):
        """Initialize secret service.

        Args:
            app_settings: Settings to read key locations from (defaults to global settings).
        """
        if app_settings is None:
            from portal_sync.config import settings as app_settings
        self.settings = app_settings

    def _load_private_key_pem(self) -> bytes:
        """Load the private key from RSA_PRIVATE_KEY or RSA_PRIVATE_KEY_PATH.

        Raises:
            ConfigurationError: If neither is set or the file is missing.
        """
        inline = self.settings.rsa_private_key
        if inline:
            # Keys pasted into .env usually carry literal "\n" sequences
            return inline.replace("\\n", "\n").encode()

        key_path = self.settings.rsa_private_key_path
        if not key_path:
            raise ConfigurationError("RSA_PRIVATE_KEY or RSA_PRIVATE_KEY_PATH must be set")
        if not os.path.exists(key_path):
            raise ConfigurationError(f"Private key not found at: {key_path}")
        with open(key_path, "rb") as f:
            return f.read()

    def _load_public_key_pem(self) -> bytes:
        key_path = self.settings.rsa_public_key_path
        if not key_path:
            raise ConfigurationError("RSA_PUBLIC_KEY_PATH must be set")
        if not os.path.exists(key_path):
            raise ConfigurationError(f"Public key not found at: {key_path}")
        with open(key_path, "rb") as f:
            return f.read()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt plaintext with the configured public key.

        Args:
            plaintext: The string to encrypt.

        Returns:
            The encrypted string (base64 encoded).
        """
        try:
            public_key = serialization.load_pem_public_key(self._load_public_key_pem())
        except (ValueError, UnsupportedAlgorithm) as e:
            raise ConfigurationError(f"Invalid RSA public key: {e}") from e
        ciphertext = public_key.encrypt(plaintext.encode("utf-8"), _oaep())
        return base64.b64encode(ciphertext).decode("ascii")

    def decrypt(self, ciphertext_b64: str) -> Optional[str]:
        """Decrypt a base64 ciphertext with the configured private key.

        Args:
            ciphertext_b64: The encrypted string (base64 encoded).

        Returns:
            The decrypted plaintext, or None for empty input.

        Raises:
            ConfigurationError: If the key is missing or the ciphertext cannot be decrypted.
        """
        if not ciphertext_b64:
            return None
        try:
            private_key = serialization.load_pem_private_key(self._load_private_key_pem(), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise ConfigurationError(f"Invalid RSA private key: {e}") from e
        try:
            plaintext = private_key.decrypt(base64.b64decode(ciphertext_b64), _oaep())
        except (ValueError, binascii.Error) as e:
            raise ConfigurationError(f"Failed to decrypt secret: {e}") from e
        return plaintext.decode("utf-8")

    def get_secret_env(self, name: str) -> Optional[str]:
        """Resolve a secret by name, preferring the ``<NAME>_ENC`` form.

        Both the process environment and the matching settings fields are
        consulted, so values from ``.env`` work too.

        Args:
            name: Upper-case variable name, e.g. ``PORTAL_PASSWORD``.

        Returns:
            The plaintext secret, or None if neither form is set.
        """
        encrypted = os.environ.get(f"{name}_ENC") or getattr(self.settings, f"{name.lower()}_enc", None)
        if encrypted:
            logger.debug(f"Decrypting {name}_ENC")
            return self.decrypt(encrypted)
        return os.environ.get(name) or getattr(self.settings, name.lower(), None)
