from dataclasses import dataclass
from typing import Optional

from fastapi import Header, Request
from jose import jwt, JWTError

from finsight_billing.errors import Unauthorized


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None


def verify_token(authorization: Optional[str], secret: Optional[str]) -> Identity:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("Missing or invalid authorization header")
    token = authorization[len("Bearer "):].strip()
    if not token or not secret:
        raise Unauthorized("Invalid authentication token")

    try:
        claims = jwt.decode(token, secret, algorithms=["HS256"], options={"verify_aud": False})
    except JWTError:
        raise Unauthorized("Invalid authentication token")

    user_id = claims.get("sub")
    if not user_id:
        raise Unauthorized("Invalid authentication token")
    return Identity(user_id=str(user_id), email=claims.get("email"))


def current_user(request: Request, authorization: Optional[str] = Header(None)) -> Identity:
    return verify_token(authorization, request.app.state.settings.jwt_secret)
