"""
Identifier derivation for ledger lookups.

The ledger keys domain profiles by HASH160 of the lowercased name, that is
RIPEMD-160 over the SHA-256 digest of the UTF-8 bytes. This value is the join
key between local names and ledger records.
"""

import hashlib
from typing import Optional

from Crypto.Hash import RIPEMD160

from .exceptions import InternalError


IDENTIFIER_LENGTH = 40

MAX_NAME_LENGTH = 253


def canonical_name(name: object) -> Optional[str]:
    """
    Normalize a name to its identity key.

    Returns:
        The stripped, lowercased name, or None if it is empty, too long, or
        contains whitespace or control characters
    """
    if not isinstance(name, str):
        return None
    canonical = name.strip().lower()
    if not canonical or len(canonical) > MAX_NAME_LENGTH:
        return None
    if any(ch.isspace() or ord(ch) < 32 or ord(ch) == 127 for ch in canonical):
        return None
    return canonical


def derive_identifier(name: str) -> str:
    """
    Derive the ledger identifier for a domain name.

    Args:
        name: Domain name in any letter case

    Returns:
        Lowercase hex HASH160 of the lowercased name (40 characters)

    Raises:
        InternalError: If the name is not a string or cannot be UTF-8 encoded
    """
    if not isinstance(name, str):
        raise InternalError(
            code="invalid_name_type",
            message=f"Domain name must be str, got {type(name).__name__}",
        )

    try:
        encoded = name.lower().encode("utf-8")
    except UnicodeEncodeError as e:
        raise InternalError(
            code="encoding_error",
            message=f"Domain name is not encodable as UTF-8: {e}",
            details={"name": repr(name)},
        ) from e

    sha256_digest = hashlib.sha256(encoded).digest()
    return RIPEMD160.new(sha256_digest).hexdigest()
