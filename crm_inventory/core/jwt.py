from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from crm_inventory.core.config import settings

ACCESS_TOKEN_TYPE = "access"

# Every request is scoped to a tenant, so tokens without one are refused
REQUIRED_CLAIMS = ("sub", "org_id")


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    # Production tokens come from the identity provider; this signs
    # compatible tokens for tooling and tests.
    now = datetime.now(timezone.utc)

    claims = {
        **data,
        "iat": now,
        "exp": now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)),
        "type": ACCESS_TOKEN_TYPE,
    }
    if "sub" in claims:
        claims["sub"] = str(claims["sub"])

    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Verified claims of an access token, or None when it cannot be trusted."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
        )
    except JWTError:
        return None

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        return None

    if any(payload.get(claim) in (None, "") for claim in REQUIRED_CLAIMS):
        return None

    return payload
