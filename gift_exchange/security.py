from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app
from passlib.context import CryptContext


pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
)


def hash_group_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_group_password(password: str | None, stored_hash: str) -> bool:
    if not password:
        return False
    return pwd_context.verify(password, stored_hash)


# ---------------------------------------------------------------------------
# Assignment encryption-at-rest
#
# Who-gives-to-whom should not be readable from the database. Each receiver
# id is sealed together with its group id, so a token copied onto another
# group's row fails to decrypt there.
# ---------------------------------------------------------------------------


def _assignment_fernet() -> Fernet:
    """Fernet keyed by ASSIGNMENT_ENC_KEY, or derived from SECRET_KEY when unset."""
    explicit = (current_app.config.get("ASSIGNMENT_ENC_KEY") or "").strip()
    if explicit:
        return Fernet(explicit.encode("utf-8"))

    secret = (current_app.config.get("SECRET_KEY") or "").encode("utf-8")
    digest = hashlib.sha256(b"gift-exchange-assignments|" + secret).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_assignment_recipient(group_id: str, receiver_id: int) -> str:
    token = _assignment_fernet().encrypt(f"{group_id}:{int(receiver_id)}".encode("utf-8"))
    return token.decode("utf-8")


def decrypt_assignment_recipient(group_id: str, token: str) -> int:
    """Raises ValueError if the token is corrupt or sealed for another group."""
    try:
        raw = _assignment_fernet().decrypt(token.encode("utf-8")).decode("utf-8")
        sealed_group, _, receiver = raw.partition(":")
        if sealed_group != group_id:
            raise ValueError("assignment token belongs to another group")
        return int(receiver)
    except (InvalidToken, ValueError, TypeError) as e:
        raise ValueError("Invalid assignment token") from e
