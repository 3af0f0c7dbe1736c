from datetime import UTC, datetime, timedelta

import bcrypt
from jose import JWTError, jwt

from app.config import settings

ALGORITHM = "HS256"
ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


def _encode(claims: dict, lifetime: timedelta) -> str:
    return jwt.encode(
        {**claims, "exp": datetime.now(UTC) + lifetime},
        settings.secret_key,
        algorithm=ALGORITHM,
    )


def issue_tokens(user_id: int, email: str, role: str) -> dict[str, str]:
    """Access and refresh token pair for a signed-in account."""
    return {
        "access_token": _encode(
            {"sub": str(user_id), "email": email, "role": role, "type": ACCESS},
            timedelta(minutes=settings.access_token_expire_minutes),
        ),
        "refresh_token": _encode(
            {"sub": str(user_id), "type": REFRESH},
            timedelta(days=settings.refresh_token_expire_days),
        ),
    }


def read_token(token: str, token_type: str) -> int:
    """Return the user id carried by a valid token of the given type.

    Raises JWTError for bad signatures, expiry, malformed claims and type
    mismatches alike.
    """
    payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    if payload.get("type") != token_type:
        raise JWTError(f"Expected a {token_type} token")
    try:
        return int(payload["sub"])
    except (KeyError, ValueError) as e:
        raise JWTError("Token subject is missing or malformed") from e
