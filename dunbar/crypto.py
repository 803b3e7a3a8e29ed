"""At-rest encryption for provider credentials.

Uses Fernet symmetric encryption (AES-128-CBC + HMAC-SHA256) from the
``cryptography`` library.  Encrypted values are prefixed with ``ENC:`` so
that plaintext credential files (written by hand or by an older version)
are read transparently and migrated on the next save.

Key management
--------------
A random Fernet key is generated once and stored at ``$DUNBAR_DIR/.key``
with owner-only permissions.  The key file is **separate** from the
credential files, so leaking ``google_creds.json`` alone does not expose
the refresh token.
"""

import logging
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_ENC_PREFIX = "ENC:"

# Cached Fernet instances keyed by key-file path
_fernets: dict[Path, Fernet] = {}


# ---------------------------------------------------------------------------
# File permissions
# ---------------------------------------------------------------------------

def set_strict_permissions(filepath: Path) -> None:
    """Set owner-only read/write permissions (``0600``) on *filepath*.

    Failures are **logged as warnings**; the file itself has already been written.
    """
    try:
        os.chmod(str(filepath), 0o600)
    except FileNotFoundError:
        logger.warning("Cannot set permissions: %s does not exist", filepath)
    except OSError as e:
        logger.warning("Failed to set permissions on %s: %s", filepath, e)


# ---------------------------------------------------------------------------
# Key management
# ---------------------------------------------------------------------------

def _get_or_create_key(key_file: Path) -> bytes:
    """Load the Fernet key from disk, or generate and persist a new one."""
    key_file.parent.mkdir(parents=True, exist_ok=True)

    if key_file.exists():
        key = key_file.read_bytes().strip()
        try:
            Fernet(key)  # validate
            return key
        except ValueError:
            logger.warning("Existing .key file is invalid, generating new key")

    key = Fernet.generate_key()
    key_file.write_bytes(key)
    set_strict_permissions(key_file)
    logger.info("Generated new encryption key at %s", key_file)
    return key


def _get_fernet(key_file: Path) -> Fernet:
    if key_file not in _fernets:
        _fernets[key_file] = Fernet(_get_or_create_key(key_file))
    return _fernets[key_file]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def encrypt_value(plaintext: str, key_file: Path) -> str:
    """Encrypt a non-empty string → ``"ENC:<fernet-token>"``."""
    if not plaintext or plaintext.startswith(_ENC_PREFIX):
        return plaintext
    token = _get_fernet(key_file).encrypt(plaintext.encode("utf-8"))
    return _ENC_PREFIX + token.decode("ascii")


def decrypt_value(ciphertext: str, key_file: Path) -> str:
    """Decrypt an ``"ENC:..."`` string back to plaintext.

    * Values **without** the ``ENC:`` prefix are returned unchanged.
    * If decryption fails (wrong key / corrupted), returns ``""`` and
      logs a warning so the user knows to re-run ``init``.
    """
    if not ciphertext or not ciphertext.startswith(_ENC_PREFIX):
        return ciphertext
    token = ciphertext[len(_ENC_PREFIX):]
    try:
        return _get_fernet(key_file).decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken:
        logger.warning(
            "Failed to decrypt a credential (key may have changed). "
            "The value will be treated as empty. Re-run init to enter it again."
        )
        return ""


def encrypt_fields(data: dict, fields: list[str], key_file: Path) -> dict:
    """Return a copy of *data* with the named string fields encrypted."""
    out = dict(data)
    for field in fields:
        if out.get(field):
            out[field] = encrypt_value(out[field], key_file)
    return out


def decrypt_fields(data: dict, fields: list[str], key_file: Path) -> dict:
    out = dict(data)
    for field in fields:
        if out.get(field):
            out[field] = decrypt_value(out[field], key_file)
    return out


def needs_migration(data: dict, fields: list[str]) -> bool:
    """Return True if any sensitive field is non-empty plaintext (no ENC: prefix)."""
    return any(
        data.get(field) and not str(data[field]).startswith(_ENC_PREFIX)
        for field in fields
    )
