import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.auth import jwt_handler
from backend.core import config

security = HTTPBearer(auto_error=False)


def get_current_person_id(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    token = credentials.credentials if credentials else request.cookies.get(config.AUTH_COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not logged in")

    try:
        person_id = jwt_handler.person_id_from_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    if not person_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")
    return person_id
