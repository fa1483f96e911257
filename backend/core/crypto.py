"""
Fernet wrapper for the meeting-platform bearer tokens we keep per user.

The key is derived from SECRET_KEY, so rotating the secret invalidates every
stored token and users simply sign in again.
"""
import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from core.config import settings


def _fernet(secret: str) -> Fernet:
    return Fernet(base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest()))


fernet = _fernet(settings.SECRET_KEY)


def encrypt_token(access_token: str) -> str:
    return fernet.encrypt(access_token.encode()).decode()


def decrypt_token(token_enc: str | None) -> str | None:
    """Return the plain bearer token, or None when missing / undecryptable."""
    if not token_enc:
        return None
    try:
        return fernet.decrypt(token_enc.encode()).decode()
    except InvalidToken:
        return None
