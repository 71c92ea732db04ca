import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fastapi import Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

from config import settings
from database import USERS, clean, create_document, db, get_document
from errors import ValidationError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ROLES = ("admin", "doctor", "receptionist")


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not plain or not hashed:
        return False
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        # malformed hash in the store
        return False


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.utcnow()
    payload = {
        "sub": subject,
        "iat": now,
        "exp": now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_access_token(token: str) -> Optional[str]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        return None
    return payload.get("sub")


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = clean(doc)
    out.pop("password", None)
    return out


def register_user(name: str, email: str, password: str, role: str = "doctor",
                  phone: Optional[str] = None) -> Dict[str, Any]:
    if role not in ROLES:
        raise ValidationError.field("role", "Invalid role")
    doc = {
        "name": name,
        "email": email.strip().lower(),
        "password": hash_password(password),
        "role": role,
        "phone": phone,
        "isActive": True,
    }
    try:
        saved = create_document(USERS, doc)
    except DuplicateKeyError:
        raise ValidationError.field("email", "User already exists with this email")
    logger.info("User %s registered as %s", saved["email"], role)
    return public_user(saved)


def authenticate(email: str, password: str) -> Optional[Dict[str, Any]]:
    user = db()[USERS].find_one({"email": (email or "").strip().lower()})
    if user is None or not user.get("isActive", True):
        return None
    if not verify_password(password, user.get("password")):
        return None
    db()[USERS].update_one({"_id": user["_id"]}, {"$set": {"lastLogin": datetime.utcnow()}})
    return user


def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def current_user(authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    token = _extract_bearer(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Not authorized")
    subject = decode_access_token(token)
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = get_document(USERS, subject, "user")
    if user is None or not user.get("isActive", True):
        raise HTTPException(status_code=401, detail="Not authorized")
    return user


def require_user(authorization: Optional[str] = Header(default=None)) -> Optional[Dict[str, Any]]:
    """Route guard; a no-op when AUTH_REQUIRED is off."""
    if not settings.AUTH_REQUIRED:
        return None
    return current_user(authorization)


def require_admin(authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    user = current_user(authorization)
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
