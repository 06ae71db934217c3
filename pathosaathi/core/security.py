"""
Security Module

Password hashing and JWT handling (passlib with bcrypt, python-jose).

SECURITY NOTES:
- Tokens are issued by the platform domain (iss) for a specific audience:
  the platform domain for root users, the partner's domain otherwise.
- Audience is not checked by jwt.decode; callers compare it against the
  hostname the request actually arrived on (validate_token_audience).
- Access and refresh tokens carry token_type so one cannot stand in for
  the other.
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
import re
import time

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from pathosaathi.config import get_settings
from pathosaathi.core.exceptions import AuthenticationError, AuthErrorCode

settings = get_settings()

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

DEFAULT_EXPIRATION_SECONDS = 7 * 24 * 60 * 60
_EXPIRATION_PATTERN = re.compile(r"^(\d+)([dhms])$")
_UNIT_SECONDS = {"d": 24 * 60 * 60, "h": 60 * 60, "m": 60, "s": 1}


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Constant-time check of a password against its bcrypt hash."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    NOTE: Intentionally slow. Don't call this in hot paths or tight loops.
    """
    return pwd_context.hash(password)


def parse_expiration(value: Optional[str]) -> int:
    """Convert "7d", "12h", "30m" or "45s" to seconds. Anything else means 7 days."""
    match = _EXPIRATION_PATTERN.match((value or "").strip())
    if not match:
        return DEFAULT_EXPIRATION_SECONDS
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]


def create_token(
    claims: Dict[str, Any],
    token_type: str,
    expires_delta: timedelta,
    audience: Optional[str] = None,
) -> str:
    now = datetime.utcnow()
    to_encode = dict(claims)
    to_encode.update({
        "token_type": token_type,
        "iss": settings.APP_DOMAIN,
        "iat": now,
        "exp": now + expires_delta,
    })
    if audience:
        to_encode["aud"] = audience

    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_token_pair(claims: Dict[str, Any], audience: Optional[str] = None) -> Dict[str, Any]:
    """Access + refresh token for the same claims and session."""
    access_seconds = parse_expiration(settings.JWT_EXPIRES_IN)
    refresh_seconds = parse_expiration(settings.JWT_REFRESH_EXPIRES_IN)
    return {
        "access_token": create_token(claims, ACCESS_TOKEN, timedelta(seconds=access_seconds), audience),
        "refresh_token": create_token(claims, REFRESH_TOKEN, timedelta(seconds=refresh_seconds), audience),
        "token_type": "bearer",
        "expires_in": access_seconds,
    }


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify signature, issuer and expiry.

    Raises AuthenticationError with TOKEN_EXPIRED or TOKEN_INVALID.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=settings.APP_DOMAIN,
            options={"verify_aud": False},
        )
    except ExpiredSignatureError:
        raise AuthenticationError("Token has expired", error_code=AuthErrorCode.TOKEN_EXPIRED)
    except JWTError:
        raise AuthenticationError("Invalid token", error_code=AuthErrorCode.TOKEN_INVALID)


def decode_token_unverified(token: str) -> Optional[Dict[str, Any]]:
    """Claims without any verification. For inspection only."""
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None


def get_token_audience(token: str) -> Optional[str]:
    claims = decode_token_unverified(token)
    if not claims:
        return None
    audience = claims.get("aud")
    if isinstance(audience, list):
        audience = audience[0] if audience else None
    return audience


def _normalize(domain: Optional[str]) -> str:
    return (domain or "").strip().lower()


def validate_token_audience(token: str, expected_domain: str) -> bool:
    """
    True when the token may be used on `expected_domain`.

    Accepted when the audience is `expected_domain`, when `expected_domain`
    is the platform domain, or when the token was minted for the platform
    domain. A token without an audience is never accepted.
    """
    audience = _normalize(get_token_audience(token))
    if not audience:
        return False
    platform = _normalize(settings.APP_DOMAIN)
    expected = _normalize(expected_domain)
    return audience == expected or expected == platform or audience == platform


def is_token_expired(token: str) -> bool:
    claims = decode_token_unverified(token)
    if not claims or "exp" not in claims:
        return True
    return time.time() >= claims["exp"]
