"""JWT session tokens. The ``sub`` claim carries the journal owner id."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

ALGORITHM = "HS256"


def create_token(secret: str, expiry_hours: int, subject: str) -> str:
    """Create a signed JWT for ``subject`` with an expiration claim."""
    exp = datetime.now(timezone.utc) + timedelta(hours=expiry_hours)
    return jwt.encode({"sub": subject, "exp": exp}, secret, algorithm=ALGORITHM)


def decode_subject(token: str, secret: str) -> str | None:
    """Return the token's subject, or None if it is invalid, expired or has none."""
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    subject = claims.get("sub")
    return str(subject) if subject else None


def verify_token(token: str, secret: str) -> bool:
    """Return True if the token is valid and not expired."""
    return decode_subject(token, secret) is not None
