"""
Password hashing and verification for admin and school principals.

New credentials are stored as bcrypt hashes. Two legacy formats are still
accepted so un-migrated rows keep working:
1. SHA-256 hex of password + service secret prefix
2. plaintext
Legacy rows are upgraded to bcrypt after a successful login (see needs_rehash).
"""

import hashlib
import hmac
import secrets
from typing import Optional, Tuple

import bcrypt

from study_buddy import config

# No 0/O, 1/I/l/o
CREDENTIAL_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghjkmnpqrstuvwxyz23456789"
SCHOOL_ID_PREFIX = "SCH_"
SCHOOL_ID_LENGTH = 12
PASSWORD_LENGTH = 16

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def _legacy_salt() -> str:
    return (config.SUPABASE_SERVICE_KEY or "")[:32]


def secure_compare(a: str, b: str) -> bool:
    """
    Constant-time string comparison.

    Both operands are digested to 32 bytes first, so strings of different
    lengths still go through a full-length comparison.
    """
    a_digest = hashlib.sha256(a.encode("utf-8")).digest()
    b_digest = hashlib.sha256(b.encode("utf-8")).digest()
    return hmac.compare_digest(a_digest, b_digest)


def is_bcrypt_hash(stored: Optional[str]) -> bool:
    return bool(stored) and stored.startswith(_BCRYPT_PREFIXES)


def hash_password(password: str) -> str:
    """Hash a password with bcrypt (random per-credential salt)."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def legacy_hash_password(password: str, salt: Optional[str] = None) -> str:
    """SHA-256 hex of password + shared secret prefix (pre-bcrypt format)."""
    if salt is None:
        salt = _legacy_salt()
    return hashlib.sha256((password + salt).encode("utf-8")).hexdigest()


def _check_bcrypt(password: str, stored: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))
    except ValueError:
        # Malformed hash or password over bcrypt's 72 byte limit
        return False


def verify_password(password: str, stored: Optional[str], legacy_salt: Optional[str] = None) -> bool:
    """
    Check `password` against a stored credential in any supported format.

    A bcrypt row is decided by bcrypt alone, so the stored hash string is
    never a valid password. The legacy comparisons run for every row and the
    time taken does not depend on the stored format.
    """
    if not password or not stored:
        return False

    bcrypt_row = is_bcrypt_hash(stored)
    bcrypt_ok = _check_bcrypt(password, stored) if bcrypt_row else False
    legacy_hash_ok = secure_compare(legacy_hash_password(password, legacy_salt), stored)
    plaintext_ok = secure_compare(password, stored)

    if bcrypt_row:
        return bcrypt_ok
    return legacy_hash_ok | plaintext_ok


def needs_rehash(stored: Optional[str]) -> bool:
    """True for legacy (non-bcrypt) credentials."""
    return not is_bcrypt_hash(stored)


def generate_secure_credentials() -> Tuple[str, str]:
    """
    Generate a new school login id and password.

    Returns:
        (school_id, plaintext_password). Only the hash of the password should
        be persisted; the plaintext is shown to the admin once.
    """
    school_id = SCHOOL_ID_PREFIX + "".join(
        secrets.choice(CREDENTIAL_ALPHABET) for _ in range(SCHOOL_ID_LENGTH)
    )
    password = "".join(secrets.choice(CREDENTIAL_ALPHABET) for _ in range(PASSWORD_LENGTH))
    return school_id, password
