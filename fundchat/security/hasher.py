# fundchat/security/hasher.py
from __future__ import annotations

"""
Password hashing for account registration and login.

Stored format (prefix-based, self-describing):

    argon2id$iters:mem:lanes:len$salt_b64$hash_b64

Parameters travel with each hash, so raising the cost later does not lock
out existing accounts.
"""

import base64
import hmac
import os
from dataclasses import dataclass
from typing import Tuple

from cryptography.hazmat.primitives.kdf.argon2 import Argon2id


@dataclass
class Argon2Params:
    iterations: int = 2
    memory_cost_kib: int = 64 * 1024  # ~64 MiB
    parallelism: int = 2
    hash_len: int = 32


DEFAULT_ARGON2_PARAMS = Argon2Params()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")


def _b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"), validate=True)


def _split_prefix(stored: str) -> Tuple[str, str]:
    if "$" not in stored:
        return "", stored
    prefix, rest = stored.split("$", 1)
    return prefix, rest


def _derive(password: str, salt: bytes, params: Argon2Params) -> bytes:
    kdf = Argon2id(
        salt=salt,
        length=params.hash_len,
        iterations=params.iterations,
        lanes=params.parallelism,
        memory_cost=params.memory_cost_kib,
        ad=None,
        secret=None,
    )
    return kdf.derive(password.encode("utf-8"))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def hash_password(password: str, params: Argon2Params = DEFAULT_ARGON2_PARAMS) -> str:
    if not isinstance(password, str):
        raise TypeError("password must be a string")

    salt = os.urandom(16)
    digest = _derive(password, salt, params)
    meta = f"{params.iterations}:{params.memory_cost_kib}:{params.parallelism}:{params.hash_len}"
    return f"argon2id${meta}${_b64e(salt)}${_b64e(digest)}"


def verify_password(password: str, stored: str) -> bool:
    """
    Verify a password against a stored hash.

    Unknown prefixes and malformed hashes verify as False.
    """
    if not isinstance(password, str):
        raise TypeError("password must be a string")
    if not stored:
        return False

    prefix, rest = _split_prefix(stored)
    if prefix != "argon2id":
        return False

    try:
        meta, salt_b64, digest_b64 = rest.split("$", 2)
        iters_str, mem_str, lanes_str, len_str = meta.split(":")
        params = Argon2Params(
            iterations=int(iters_str),
            memory_cost_kib=int(mem_str),
            parallelism=int(lanes_str),
            hash_len=int(len_str),
        )
        salt = _b64d(salt_b64)
        expected = _b64d(digest_b64)
    except ValueError:
        return False

    candidate = _derive(password, salt, params)
    return hmac.compare_digest(candidate, expected)
