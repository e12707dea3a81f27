import base64
import logging
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

# === Logger Setup ===
logger = logging.getLogger(__name__)


@lru_cache(maxsize=256)
def get_derived_key(master_key: str, user_id: str) -> bytes:
    """
    Derives a user-specific encryption key using PBKDF2-HMAC.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=user_id.encode("utf-8"),
        iterations=100_000,
    )
    return base64.urlsafe_b64encode(kdf.derive(master_key.encode("utf-8")))


class TokenCipher:
    """
    Encrypts stored OAuth credentials with a key scoped to the owning user.
    """

    def __init__(self, master_key: str):
        if not master_key:
            raise RuntimeError("🚨 ENCRYPTION_KEY is not set")
        self._master_key = master_key

    def _fernet(self, user_id: str) -> Fernet:
        return Fernet(get_derived_key(self._master_key, user_id))

    def encrypt(self, value: str, user_id: str) -> str:
        return self._fernet(user_id).encrypt(value.encode()).decode()

    def decrypt(self, value: str, user_id: str) -> Optional[str]:
        """
        Returns None if decryption fails (e.g. rotated key or tampered data).
        """
        try:
            return self._fernet(user_id).decrypt(value.encode()).decode()
        except InvalidToken:
            logger.warning(f"⚠️ Invalid token for user_id={user_id}")
            return None
