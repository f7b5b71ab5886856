from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from sqlalchemy.orm import Session

from poscore.db import get_db
from poscore.services.repository import SqlRepository
from poscore.util.security import decode_token

auth_scheme = HTTPBearer(auto_error=False)


def get_repo(db: Session = Depends(get_db)) -> SqlRepository:
    return SqlRepository(db)


def get_claims(creds: HTTPAuthorizationCredentials | None = Depends(auth_scheme)) -> dict:
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        return decode_token(creds.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def require_auth(claims: dict = Depends(get_claims)) -> str:
    return claims["sub"]


def has_perm(claims: dict, code: str) -> bool:
    # Admin shortcut: a token carrying the ADMIN role passes every check
    if "ADMIN" in (claims.get("roles") or []):
        return True
    return code in set(claims.get("perms") or [])


def require_perm(code: str):
    def _dep(claims: dict = Depends(get_claims)) -> str:
        if not has_perm(claims, code):
            raise HTTPException(status_code=403, detail=f"Missing permission: {code}")
        return claims["sub"]
    return _dep
