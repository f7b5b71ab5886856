import jwt
from datetime import datetime, timedelta, timezone
from poscore.config import settings


def create_token(sub: str, perms: list[str] | None = None, roles: list[str] | None = None) -> str:
    """Issue a bearer token. Normally the auth service does this; kept for tooling and tests."""
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=settings.JWT_EXP_MIN)
    payload = {
        "sub": sub,
        "iss": settings.JWT_ISS,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "perms": list(perms or []),
        "roles": list(roles or []),
    }
    return jwt.encode(payload, settings.APP_SECRET, algorithm="HS256")


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.APP_SECRET, algorithms=["HS256"], issuer=settings.JWT_ISS,
                      options={"verify_aud": False})
