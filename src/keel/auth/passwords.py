"""Password hashing with argon2id.

Hashes are PHC-format strings (``$argon2id$v=19$...``) safe for storage.
``needs_rehash`` lets the account service upgrade hashes after the
hasher's parameters change.

Usage::

    from keel.auth.passwords import hash_password, verify_password

    hashed = hash_password("my-password")
    ok = verify_password("my-password", hashed)
"""

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash *password* with argon2id.

    Raises:
        ValueError: If *password* is empty.
    """
    if not password:
        msg = "Password must not be empty."
        raise ValueError(msg)
    return _hasher.hash(password)


def verify_password(password: str, phc_hash: str) -> bool:
    """Return ``True`` if *password* matches *phc_hash*.

    Empty inputs and malformed hashes never verify.
    """
    if not password or not phc_hash:
        return False
    try:
        return _hasher.verify(phc_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def needs_rehash(phc_hash: str) -> bool:
    return _hasher.check_needs_rehash(phc_hash)
