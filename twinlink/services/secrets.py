"""Reversible encryption for user-supplied provider API keys.

Groq and Gemini keys saved in user settings are encrypted before they are
written to the database. HMAC-SHA256 is used as a keystream generator so
no extra dependency is needed.

Security note: This is a pragmatic improvement over plaintext storage,
but not a substitute for dedicated secret management. Keep the master
key safe and out of version control.
"""

from __future__ import annotations

import base64
import hmac
import logging
import os
import struct
from hashlib import sha256
from typing import Optional

from twinlink.services.config import PROJECT_ROOT

MASTER_KEY_FILE = PROJECT_ROOT / ".secrets_key"

logger = logging.getLogger(__name__)


def _load_master_key() -> bytes:
    # Priority: env var, then file, else generate
    env_key = os.getenv("APP_SECRET_KEY")
    if env_key:
        # Allow either raw or base64
        try:
            return base64.urlsafe_b64decode(env_key.encode())
        except ValueError:
            return env_key.encode()

    if MASTER_KEY_FILE.exists():
        return MASTER_KEY_FILE.read_bytes().strip()

    key = os.urandom(32)
    try:
        MASTER_KEY_FILE.write_bytes(key)
        os.chmod(MASTER_KEY_FILE, 0o600)
    except OSError:
        # Ephemeral key: stored provider keys won't decrypt after a restart
        logger.warning("Could not persist %s; using an ephemeral master key", MASTER_KEY_FILE)
    return key


_MASTER_KEY = _load_master_key()


def _keystream(key: bytes, nonce: bytes, length: int) -> bytes:
    out = bytearray()
    counter = 0
    while len(out) < length:
        msg = nonce + struct.pack(">I", counter)
        block = hmac.new(key, msg, sha256).digest()
        out.extend(block)
        counter += 1
    return bytes(out[:length])


def encrypt(plaintext: str) -> str:
    data = plaintext.encode("utf-8")
    nonce = os.urandom(16)
    ks = _keystream(_MASTER_KEY, nonce, len(data))
    ct = bytes([a ^ b for a, b in zip(data, ks)])
    payload = b"\x01" + nonce + ct  # versioned
    return base64.urlsafe_b64encode(payload).decode("ascii")


def decrypt(token: str) -> str:
    raw = base64.urlsafe_b64decode(token.encode("ascii"))
    if not raw or raw[0] != 1:
        raise ValueError("Unsupported secret format")
    nonce = raw[1:17]
    ct = raw[17:]
    ks = _keystream(_MASTER_KEY, nonce, len(ct))
    pt = bytes([a ^ b for a, b in zip(ct, ks)])
    return pt.decode("utf-8")


def encrypt_optional(value: Optional[str]) -> Optional[str]:
    """Encrypt a key value; blank or missing values clear the stored key."""
    if not value:
        return None
    return encrypt(value)


def decrypt_optional(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    try:
        return decrypt(token)
    except ValueError:
        logger.warning("Stored provider key could not be decrypted; ignoring it")
        return None
