"""At-rest protection for Google tokens.

Access and refresh tokens are Fernet-encrypted before they reach the
database. The refresh token additionally gets a keyed digest
(HMAC-SHA256): Fernet output is randomized, so the refresh flow, which finds
a record *by refresh token*, needs a deterministic value to match on.

## Keys

Each secret is stretched with PBKDF2-HMAC-SHA256 (480,000 iterations, 32
bytes) and the deployment salt. The current SECRET_KEY encrypts; it and any
PREVIOUS_SECRET_KEYS decrypt (MultiFernet), so a secret can be rotated
without re-linking every user. Call `TokenCipher.rotate` on stored values to
move them onto the current key.

Digests always use the current secret. Rotating the secret therefore
invalidates stored refresh-token digests until the record is saved again.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 480_000


def derive_key(secret: str, salt: str) -> bytes:
    """Derive a urlsafe-base64 Fernet key from a secret and salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt.encode("utf-8"),
        iterations=PBKDF2_ITERATIONS,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))


class TokenCipher:
    """Encrypts, decrypts and digests tokens under one key set.

    Example:
        ```python
        cipher = TokenCipher("current-secret", salt, previous_secrets=["old-secret"])
        stored = cipher.encrypt(refresh_token)
        cipher.decrypt(stored) == refresh_token
        ```
    """

    def __init__(self, secret: str, salt: str, previous_secrets: list[str] | None = None):
        keys = [derive_key(secret, salt)]
        keys += [derive_key(old, salt) for old in previous_secrets or []]
        self._fernet = MultiFernet([Fernet(key) for key in keys])
        self._digest_key = keys[0]

    def encrypt(self, plaintext: str | None) -> str | None:
        """Encrypt a token. None and "" are stored as NULL."""
        if not plaintext:
            return None
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str | None) -> str | None:
        """Decrypt a stored token.

        Raises:
            ValueError: If no known key decrypts it
        """
        if not ciphertext:
            return None
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            logger.error("Failed to decrypt stored token: unknown key or corrupt value")
            raise ValueError("Failed to decrypt token") from e

    def rotate(self, ciphertext: str | None) -> str | None:
        """Re-encrypt a stored value under the current key."""
        if not ciphertext:
            return None
        try:
            return self._fernet.rotate(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            raise ValueError("Failed to rotate token") from e

    def digest(self, token: str) -> str:
        """Deterministic 64-char hex digest for equality lookups."""
        return hmac.new(self._digest_key, token.encode("utf-8"), hashlib.sha256).hexdigest()


_cipher: TokenCipher | None = None


def get_cipher() -> TokenCipher:
    """Cipher built from the current settings (created on first use)."""
    global _cipher

    if _cipher is None:
        from study_meetings.config import get_settings

        settings = get_settings()
        _cipher = TokenCipher(
            settings.secret_key,
            settings.encryption_salt,
            settings.previous_secret_keys,
        )
    return _cipher


def reset_cipher() -> None:
    """Forget the cached cipher, e.g. after the settings changed."""
    global _cipher
    _cipher = None
