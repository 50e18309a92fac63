"""
Accounts and bearer-token authentication

Passwords are bcrypt hashes; tokens are HS256 JWTs carrying the user id.
The dependencies below are what the other route modules use to gate access.
"""

from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
import jwt
import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import config
from database import create_document, db, touch, utcnow
from helpers import is_object_id, oid, ok, serialize_doc
from schemas import (
    PROFILE_FIELDS,
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    User,
    WishlistUpdate,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

ADMIN_ROLES = ("admin", "super_admin")
STAFF_ROLES = ("admin", "super_admin", "warehouse_user")

bearer = HTTPBearer(auto_error=False)


# ---------------- Passwords & tokens ----------------

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(config.BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_token(user_id: str) -> str:
    now = utcnow()
    payload = {"sub": user_id, "iat": now, "exp": now + timedelta(hours=config.JWT_EXPIRES_HOURS)}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[str]:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    return payload.get("sub")


def is_admin(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user and user.get("role") in ADMIN_ROLES)


def is_locked(user: Dict[str, Any]) -> bool:
    lock_until = user.get("lock_until")
    return bool(lock_until and lock_until > utcnow())


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    doc = serialize_doc(user)
    for private in ("password_hash", "login_attempts", "lock_until"):
        doc.pop(private, None)
    return doc


def sanitize_profile(profile: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(profile, dict):
        return {}
    cleaned = {}
    for field in PROFILE_FIELDS:
        if field in profile and profile[field] is not None:
            value = profile[field]
            cleaned[field] = value.strip() if isinstance(value, str) else value
    return cleaned


# ---------------- Dependencies ----------------

def _user_from_credentials(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[Dict[str, Any]]:
    if credentials is None or not credentials.credentials:
        return None
    user_id = decode_token(credentials.credentials)
    if not user_id or not is_object_id(user_id):
        return None
    user = db["user"].find_one({"_id": oid(user_id)})
    if not user or user.get("is_active") is False:
        return None
    return user


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Dict[str, Any]:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")
    user = _user_from_credentials(credentials)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


def optional_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Optional[Dict[str, Any]]:
    return _user_from_credentials(credentials)


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def require_staff(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Staff access required")
    return user


# ---------------- Login flow ----------------

def register_failed_login(user: Dict[str, Any]):
    if user.get("lock_until"):
        # an expired lock starts a fresh count
        attempts = 1
        updates: Dict[str, Any] = {"login_attempts": attempts, "lock_until": None}
    else:
        attempts = int(user.get("login_attempts") or 0) + 1
        updates = {"login_attempts": attempts}
    if attempts >= config.MAX_LOGIN_ATTEMPTS:
        updates["lock_until"] = utcnow() + timedelta(hours=config.LOCK_HOURS)
    db["user"].update_one({"_id": user["_id"]}, {"$set": touch(updates)})


def authenticate(email: str, password: str) -> Dict[str, Any]:
    user = db["user"].find_one({"email": email.lower()})
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if user.get("is_active") is False:
        raise HTTPException(status_code=403, detail="Account is deactivated")
    if is_locked(user):
        raise HTTPException(status_code=423, detail="Account is temporarily locked due to too many failed login attempts")

    if not verify_password(password, user.get("password_hash")):
        register_failed_login(user)
        logger.info("login_failed", user_id=str(user["_id"]))
        raise HTTPException(status_code=401, detail="Invalid credentials")

    now = utcnow()
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": touch({"login_attempts": 0, "lock_until": None, "last_login": now})},
    )
    user.update({"login_attempts": 0, "lock_until": None, "last_login": now})
    return user


def _session(user: Dict[str, Any]) -> Dict[str, Any]:
    return {"token": create_token(str(user["_id"])), "user": public_user(user)}


# ---------------- Routes ----------------

@router.post("/register", status_code=201)
def register(req: RegisterRequest):
    email = req.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User with this email already exists")

    user = User(name=req.name.strip(), email=email, password_hash=hash_password(req.password))
    user_id = create_document("user", user)
    saved = db["user"].find_one({"_id": oid(user_id)})
    logger.info("user_registered", user_id=user_id)
    return ok(_session(saved), "User registered successfully")


@router.post("/login")
def login(req: LoginRequest):
    user = authenticate(req.email, req.password)
    return ok(_session(user), "Login successful")


@router.post("/admin/login")
def admin_login(req: LoginRequest):
    user = authenticate(req.email, req.password)
    if user.get("role") not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Admin access required")
    return ok(_session(user), "Login successful")


@router.get("/me")
def me(user: Dict[str, Any] = Depends(get_current_user)):
    return ok({"user": public_user(user)})


@router.put("/profile")
def update_profile(payload: ProfileUpdate, user: Dict[str, Any] = Depends(get_current_user)):
    updates: Dict[str, Any] = {}
    if payload.name:
        updates["name"] = payload.name.strip()
    if payload.profile is not None:
        updates["profile"] = {**(user.get("profile") or {}), **sanitize_profile(payload.profile)}
    if updates:
        db["user"].update_one({"_id": user["_id"]}, {"$set": touch(updates)})
    saved = db["user"].find_one({"_id": user["_id"]})
    return ok({"user": public_user(saved)}, "Profile updated successfully")


@router.post("/change-password")
def change_password(payload: ChangePasswordRequest, user: Dict[str, Any] = Depends(get_current_user)):
    if not verify_password(payload.current_password, user.get("password_hash")):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": touch({"password_hash": hash_password(payload.new_password)})},
    )
    return ok(message="Password changed successfully")


@router.get("/wishlist")
def get_wishlist(user: Dict[str, Any] = Depends(get_current_user)):
    return ok({"wishlist": user.get("wishlist") or []})


@router.put("/wishlist")
def set_wishlist(payload: WishlistUpdate, user: Dict[str, Any] = Depends(get_current_user)):
    # keep first occurrence, drop malformed ids
    wishlist = list(dict.fromkeys(pid for pid in payload.product_ids if is_object_id(pid)))
    db["user"].update_one({"_id": user["_id"]}, {"$set": touch({"wishlist": wishlist})})
    return ok({"wishlist": wishlist})
