from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Who the caller says they are, as vouched for by the token."""
    voter_id: str
    is_admin: bool = False


# Create JWT access token (issued by the login service, or by tests)
def create_access_token(data: dict, secret_key: str, expires_delta: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_delta)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str, secret_key: str) -> Identity:
    try:
        claims = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")
    voter_id = claims.get("sub")
    if not voter_id or not isinstance(voter_id, str):
        raise HTTPException(status_code=401, detail="Token has no subject.")
    return Identity(voter_id=voter_id, is_admin=bool(claims.get("is_admin", False)))


def get_current_voter(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing bearer token.")
    return decode_access_token(credentials.credentials, request.app.state.settings.secret_key)


def require_admin(identity: Identity = Depends(get_current_voter)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return identity
