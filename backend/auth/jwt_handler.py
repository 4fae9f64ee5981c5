import jwt

from backend.core import config

# Tokens are issued by the identity service sharing JWT_SECRET_KEY; this side only verifies them.


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])


def person_id_from_token(token: str) -> str | None:
    payload = decode_access_token(token)
    subject = payload.get("sub") or payload.get("id")
    return str(subject) if subject else None
