"""
Token Encryption at Rest.

Encrypts auth and refresh tokens before they are written to the
credential store so that a copied database file does not leak a usable
bearer token.

Security model
--------------
- The key is derived at runtime from machine identity (hostname + OS
  username) via PBKDF2-HMAC-SHA256 with a per-installation random salt.
  The key is **never** persisted to disk.
- Tokens are encrypted with AES-256-GCM (confidentiality + integrity).
- The stored value stays an opaque UTF-8 string:
  ``enc:v1:<base64(nonce | tag | ciphertext)>``.
- If the machine identity or the salt changes, previously stored tokens
  fail to decrypt and the session is treated as not remembered.
"""

from __future__ import annotations

import base64
import getpass
import os
import platform
import socket
import stat
import threading
from pathlib import Path
from typing import Optional

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2

from biofield_auth.logger import StructuredLogger

_PREFIX: str = "enc:v1:"
_NONCE_LEN: int = 16
_TAG_LEN: int = 16


class TokenCipher:
    """AES-256-GCM cipher for credential-store token slots.

    Parameters
    ----------
    salt_path:
        File holding the 32-byte per-installation salt.  Created on first
        use with owner-only permissions.
    logger:
        Structured logger.
    iterations:
        PBKDF2 iteration count.
    """

    _PBKDF2_ITERATIONS: int = 600_000
    _KEY_LENGTH: int = 32  # 256 bits

    def __init__(
        self,
        salt_path: Path,
        logger: StructuredLogger,
        iterations: Optional[int] = None,
    ) -> None:
        self._salt_path: Path = salt_path
        self._logger: StructuredLogger = logger
        self._iterations: int = iterations or self._PBKDF2_ITERATIONS
        self._key: Optional[bytes] = None
        self._key_lock: threading.Lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def is_encrypted(value: str) -> bool:
        return value.startswith(_PREFIX)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt *plaintext* and return the opaque stored form.

        Raises
        ------
        OSError
            If the salt file cannot be created or read.
        """
        cipher = AES.new(self._derive_key(), AES.MODE_GCM, nonce=os.urandom(_NONCE_LEN))
        ciphertext, tag = cipher.encrypt_and_digest(plaintext.encode("utf-8"))
        blob: bytes = cipher.nonce + tag + ciphertext
        return _PREFIX + base64.b64encode(blob).decode("ascii")

    def decrypt(self, stored: str) -> Optional[str]:
        """Decrypt a value produced by :meth:`encrypt`.

        Values without the ``enc:v1:`` prefix are returned unchanged so
        that tokens written with encryption disabled remain readable.

        Returns ``None`` when the value is corrupted or was encrypted with
        a different machine identity.
        """
        if not self.is_encrypted(stored):
            return stored

        try:
            blob: bytes = base64.b64decode(stored[len(_PREFIX):], validate=True)
            nonce = blob[:_NONCE_LEN]
            tag = blob[_NONCE_LEN:_NONCE_LEN + _TAG_LEN]
            ciphertext = blob[_NONCE_LEN + _TAG_LEN:]
            cipher = AES.new(self._derive_key(), AES.MODE_GCM, nonce=nonce)
            plaintext: bytes = cipher.decrypt_and_verify(ciphertext, tag)
        except (ValueError, KeyError) as exc:
            self._logger.warning(
                "Stored token could not be decrypted (corrupted data or "
                "machine identity changed): %s",
                exc,
            )
            return None
        except OSError as exc:
            self._logger.warning("Token key unavailable: %s", exc)
            return None

        return plaintext.decode("utf-8")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _derive_key(self) -> bytes:
        """Derive (once) the 256-bit key from machine identity and salt."""
        with self._key_lock:
            if self._key is None:
                password: str = f"{socket.gethostname()}:{getpass.getuser()}"
                self._key = PBKDF2(
                    password=password,
                    salt=self._get_or_create_salt(),
                    dkLen=self._KEY_LENGTH,
                    count=self._iterations,
                    hmac_hash_module=SHA256,
                )
            return self._key

    def _get_or_create_salt(self) -> bytes:
        """Return the per-installation salt, creating it on first run.

        Raises
        ------
        OSError
            If the salt file cannot be read or written.
        """
        if self._salt_path.exists():
            data: bytes = self._salt_path.read_bytes()
            if len(data) == 32:
                return data
            self._logger.warning(
                "Salt file has unexpected length (%d); regenerating.",
                len(data),
            )

        salt: bytes = os.urandom(32)
        self._salt_path.parent.mkdir(parents=True, exist_ok=True)
        self._salt_path.write_bytes(salt)
        if platform.system() != "Windows":
            self._salt_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0o600

        self._logger.info("Per-installation session salt created at %s.", self._salt_path)
        return salt
