"""Journal credentials: bcrypt password checks, access tokens, the cron secret.

Access tokens are HS256 JWTs whose subject is the numeric user id. A token
without the access type claim, or with a non-numeric subject, is refused.
"""

import hmac
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from journal.config import settings

# bcrypt ignores everything past the first 72 bytes
BCRYPT_MAX_BYTES = 72
ACCESS_TOKEN_TYPE = "access"


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("ascii")


def check_password(password: str, stored_hash: str) -> bool:
    """False on a mismatch, and also when stored_hash is not a bcrypt hash at all."""
    try:
        return bcrypt.checkpw(_password_bytes(password), stored_hash.encode("ascii"))
    except ValueError:
        return False


def issue_access_token(user_id: int, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "typ": ACCESS_TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.jwt_expire_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def user_id_from_token(token: str) -> int | None:
    """User id of a valid, unexpired access token; None for anything else."""
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    subject = claims.get("sub")
    if claims.get("typ") != ACCESS_TOKEN_TYPE or not isinstance(subject, str) or not subject.isdigit():
        return None
    return int(subject)


def verify_cron_secret(presented: str) -> bool:
    """Constant-time check of the scheduled-sync bearer secret. Unset secret rejects all."""
    if not settings.cron_secret:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), settings.cron_secret.encode("utf-8"))
