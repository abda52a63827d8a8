import base64
import hashlib
import hmac

from cryptography.fernet import Fernet

from config import settings


def _derive_key() -> bytes:
    # Derive a 32-byte key from the encryption key setting
    return hashlib.sha256(settings.TOKEN_ENCRYPTION_KEY.encode()).digest()


def _get_fernet() -> Fernet:
    return Fernet(base64.urlsafe_b64encode(_derive_key()))


def encrypt_token(token: str) -> str:
    f = _get_fernet()
    return f.encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    f = _get_fernet()
    return f.decrypt(encrypted.encode()).decode()


def sign_state_payload(payload: str) -> str:
    """HMAC-SHA256 of an OAuth state payload, URL-safe base64 without padding."""
    digest = hmac.new(_derive_key(), payload.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()


def verify_state_signature(payload: str, signature: str) -> bool:
    return hmac.compare_digest(sign_state_payload(payload), signature or "")
