# post_scheduler/security.py
from typing import Dict, Any, Optional

import structlog
from cryptography.fernet import Fernet, InvalidToken
from jose import jwt, JWTError

from .config import SECRET_KEY, ALGORITHM, OAUTH_TOKEN_KEY, ENVIRONMENT

logger = structlog.get_logger(__name__)

if not OAUTH_TOKEN_KEY:
    if ENVIRONMENT == "production":
        raise RuntimeError("OAUTH_TOKEN_KEY must be set in production")
    # dev fallback, tokens stored with it do not survive a restart
    OAUTH_TOKEN_KEY = Fernet.generate_key().decode()

fernet = Fernet(OAUTH_TOKEN_KEY.encode())


# --- JWT helpers ---
def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning("token_decode_failed", error=str(e))
        raise


# --- OAuth token encryption ---
def encrypt_token(plaintext: Optional[str]) -> Optional[str]:
    if plaintext is None:
        return None
    return fernet.encrypt(plaintext.encode()).decode()


def decrypt_token(ciphertext: Optional[str]) -> Optional[str]:
    if not ciphertext:
        return None
    try:
        return fernet.decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        logger.warning("token_decrypt_failed")
        return None
