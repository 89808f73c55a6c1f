import os
from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import Depends, Header, Request, Response

from database import db, oid, utcnow
from errors import AuthError, ForbiddenError, ValidationError


TOKEN_COOKIE = "token"
JWT_ALGORITHM = "HS256"


def _secret() -> str:
    return os.getenv("JWT_SECRET", "change-me-in-production")


def _expires_days() -> int:
    return int(os.getenv("JWT_EXPIRES_DAYS", "7"))


def hash_password(password: str) -> str:
    rounds = int(os.getenv("BCRYPT_ROUNDS", "12"))
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_token(user: Dict[str, Any]) -> str:
    payload = {
        "id": str(user["_id"]),
        "role": user.get("role", "user"),
        "exp": utcnow() + timedelta(days=_expires_days()),
    }
    return jwt.encode(payload, _secret(), algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, _secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")


def set_token_cookie(response: Response, token: str):
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        secure=os.getenv("COOKIE_SECURE", "false").lower() == "true",
        samesite="lax",
        max_age=_expires_days() * 24 * 60 * 60,
    )


def read_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    token = request.cookies.get(TOKEN_COOKIE)
    if token:
        return token
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


def user_from_token(token: Optional[str]) -> Dict[str, Any]:
    if not token:
        raise AuthError("Unauthorized")
    claims = decode_token(token)
    try:
        user_id = oid(claims.get("id"))
    except ValidationError:
        raise AuthError("Invalid token")
    user = db["user"].find_one({"_id": user_id})
    if not user or not user.get("is_active", True):
        raise AuthError("User inactive or not found")
    return user


def get_current_user(request: Request, authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    return user_from_token(read_token(request, authorization))


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise ForbiddenError("Admin access required")
    return user


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k != "password_hash"}


def get_optional_user(request: Request, authorization: Optional[str] = Header(default=None)) -> Optional[Dict[str, Any]]:
    """Like get_current_user, but anonymous or bad tokens yield None."""
    token = read_token(request, authorization)
    if not token:
        return None
    try:
        return user_from_token(token)
    except AuthError:
        return None


def is_admin(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and user.get("role") == "admin"
