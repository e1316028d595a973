from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel
from app.core.config import settings

http_bearer = HTTPBearer(auto_error=False)

LOCAL_USER_ID = "local-dev"

class Principal(BaseModel):
    user_id: str
    roles: list[str] = []
    scopes: list[str] = []

def _decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG], audience=settings.REQUIRED_AUDIENCE)
        return payload
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}")

async def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(http_bearer)) -> Principal:
    # In local/test, allow missing token and act as a fixed local user
    if creds is None and settings.ENV in ("local", "test"):
        return Principal(user_id=LOCAL_USER_ID, roles=["admin"], scopes=["*"])
    if creds is None:
        raise HTTPException(status_code=401, detail="Missing token")

    data = _decode_token(creds.credentials)
    user_id = data.get("sub") or data.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")
    roles = data.get("roles", [])
    scopes = data.get("scopes", [])
    return Principal(user_id=str(user_id), roles=roles, scopes=scopes)

def require_scopes(*needed: str):
    def dep(principal: Principal = Depends(get_principal)) -> Principal:
        if "*" in principal.scopes:
            return principal
        if not set(needed).issubset(set(principal.scopes)):
            raise HTTPException(status_code=403, detail="Insufficient scopes")
        return principal
    return dep
