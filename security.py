from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

import settings
from database import collection, to_object_id
from errors import Forbidden, InvalidToken, NotFound, Unauthorized

# Password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.PASSWORD_HASH_ROUNDS,
)

bearer = HTTPBearer(auto_error=False)

# principal kind -> (collection, role)
PRINCIPALS = {
    "user": ("user", "customer"),
    "admin": ("admin", "admin"),
}


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    return pwd_context.verify(password, hashed)


def issue_token(identity_id: str, principal: str) -> str:
    if principal not in PRINCIPALS:
        raise ValueError(f"Unknown principal kind: {principal}")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(identity_id),
        "role": PRINCIPALS[principal][1],
        "principal": principal,
        "iat": now,
        "exp": now + timedelta(days=settings.TOKEN_TTL_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise InvalidToken("Token expired")
    except jwt.InvalidTokenError:
        raise InvalidToken("Invalid token")
    principal = claims.get("principal")
    if principal not in PRINCIPALS or claims.get("role") != PRINCIPALS[principal][1] or not claims.get("sub"):
        raise InvalidToken("Invalid token payload")
    return claims


def _load_principal(credentials: Optional[HTTPAuthorizationCredentials], principal: str) -> dict:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Access denied. No token provided.")
    claims = decode_token(credentials.credentials)
    if claims["principal"] != principal:
        raise Forbidden(f"{PRINCIPALS[principal][1].capitalize()} access required.")
    try:
        account_id = to_object_id(claims["sub"])
    except NotFound:
        raise InvalidToken("Invalid token payload")
    account = collection(PRINCIPALS[principal][0]).find_one({"_id": account_id})
    return account


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> dict:
    user = _load_principal(credentials, "user")
    if not user or not user.get("is_active") or not user.get("email_verified"):
        raise Unauthorized("Invalid token or user inactive.")
    return user


async def get_current_admin(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> dict:
    admin = _load_principal(credentials, "admin")
    if not admin or not admin.get("is_active"):
        raise Unauthorized("Invalid admin token.")
    return admin
