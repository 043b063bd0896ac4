"""
Security utilities: password hashing, opaque tokens, signed invitation links,
HMAC signatures and input sanitization
"""

import hashlib
import hmac
import logging
import secrets
from typing import Any, Optional

import bleach
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from passlib.context import CryptContext

from .config import PASSWORD_MIN_LENGTH, SECRET_KEY

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Verified against when the email is unknown so both paths cost one bcrypt round
DUMMY_PASSWORD_HASH = pwd_context.hash("dummy-password-for-timing-equalization")


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify password against bcrypt hash, never raises"""
    if not hashed_password:
        pwd_context.verify(plain_password, DUMMY_PASSWORD_HASH)
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        logger.error(f"Password verification error: {e}")
        return False


def check_password_strength(password: str) -> dict[str, Any]:
    """
    Check password strength and return detailed feedback

    Returns:
        dict with 'score' (0-4), 'feedback' (list of suggestions) and 'is_valid'
    """
    score = 0
    feedback = []

    if len(password) < PASSWORD_MIN_LENGTH:
        feedback.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    else:
        score += 1
        if len(password) >= 16:
            score += 1

    if any(c.isupper() for c in password) and any(c.islower() for c in password):
        score += 1
    else:
        feedback.append("Mix upper and lower case letters")

    if any(c.isdigit() for c in password) or any(not c.isalnum() for c in password):
        score += 1
    else:
        feedback.append("Add numbers or symbols")

    return {
        "score": min(score, 4),
        "feedback": feedback,
        "is_valid": len(password) >= PASSWORD_MIN_LENGTH,
    }


# ============================================================================
# TOKENS
# ============================================================================


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token"""
    return secrets.token_urlsafe(length)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to store session tokens and API keys"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    return f"bfb_{generate_secure_token(32)}"


def generate_webhook_secret() -> str:
    return f"whsec_{secrets.token_hex(24)}"


def generate_timed_token(data: dict[str, Any], salt: str = "team-invitation") -> str:
    """Signed, timestamped token for links sent by email"""
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    return serializer.dumps(data, salt=salt)


def verify_timed_token(
    token: str, max_age: int, salt: str = "team-invitation"
) -> Optional[dict[str, Any]]:
    """Decode a timed token; None when tampered or older than ``max_age`` seconds"""
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    try:
        return serializer.loads(token, salt=salt, max_age=max_age)
    except SignatureExpired:
        logger.warning("Token expired")
        return None
    except BadSignature:
        logger.warning("Invalid token signature")
        return None


# ============================================================================
# SIGNATURES
# ============================================================================


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def sign_webhook_payload(secret: str, payload: bytes) -> str:
    """Value of the X-Webhook-Signature header"""
    return f"sha256={compute_hmac_sha256(secret, payload)}"


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode(), b.encode())


# ============================================================================
# INPUT SANITIZATION
# ============================================================================


def sanitize_text(value: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """Strip all markup from free text submitted through public forms"""
    if value is None:
        return None
    cleaned = bleach.clean(value, tags=[], attributes={}, strip=True).strip()
    if max_length is not None:
        cleaned = cleaned[:max_length]
    return cleaned


def mask_sensitive_data(data: str, visible_chars: int = 4) -> str:
    """Mask sensitive data for logging/display"""
    if len(data) <= visible_chars:
        return "*" * len(data)
    return "*" * (len(data) - visible_chars) + data[-visible_chars:]
