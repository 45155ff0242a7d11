# cashbox/services/auth.py
import base64
import binascii
import hmac
import os
from hashlib import pbkdf2_hmac
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from cashbox.logging_config import get_logger
from cashbox.models.user import (
    User,
    ROLE_ADMIN,
    ROLE_CASHIER,
    ROLE_OWNER,
)

logger = get_logger("services.auth")

# Session keys
SESSION_USER_ID = "user_id"
SESSION_ROLE = "role"

# ---------- Password hashing (PBKDF2) ----------
def _b64(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def _unb64(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"))

def hash_password(plain: str, *, iterations: int = 310_000, salt: bytes | None = None) -> str:
    salt = salt or os.urandom(16)
    dk = pbkdf2_hmac("sha256", plain.encode("utf-8"), salt, iterations)
    return f"pbkdf2${iterations}${_b64(salt)}${_b64(dk)}"

def verify_password(plain: str, stored: str) -> bool:
    try:
        scheme, s_iter, s_salt, s_hash = stored.split("$", 3)
        iterations = int(s_iter)
        salt = _unb64(s_salt)
        expected = _unb64(s_hash)
    except (ValueError, binascii.Error):
        return False
    if scheme != "pbkdf2":
        return False
    test = pbkdf2_hmac("sha256", plain.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(test, expected)

# ---------- Auth helpers ----------
def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.username == username, User.is_active == True).first()  # noqa: E712
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        logger.info("login_failed", extra={"username": username})
        return None
    return user

def login_user(request: Request, user: User) -> None:
    request.session[SESSION_USER_ID] = user.id
    request.session[SESSION_ROLE] = user.role

def logout_user(request: Request) -> None:
    request.session.pop(SESSION_USER_ID, None)
    request.session.pop(SESSION_ROLE, None)

def get_current_user(request: Request, db: Session) -> Optional[User]:
    uid = request.session.get(SESSION_USER_ID)
    if not uid:
        return None
    return db.query(User).filter(User.id == uid, User.is_active == True).first()  # noqa: E712

def is_admin_or_owner(user: User) -> bool:
    return user.has_role(ROLE_ADMIN, ROLE_OWNER)

# ---------- Seeds ----------
def seed_users_if_empty(db: Session) -> None:
    """Creates demo users when the table is empty."""
    if db.query(User).count() > 0:
        return
    seeds = [
        ("owner", "Owner Demo", "owner1234", ROLE_OWNER),
        ("admin", "Admin Demo", "admin1234", ROLE_ADMIN),
        ("cashier", "Cashier Demo", "cashier1234", ROLE_CASHIER),
    ]
    for username, name, pw, role in seeds:
        db.add(User(username=username, full_name=name, password_hash=hash_password(pw), role=role, is_active=True))
    db.commit()
    logger.info("demo_users_seeded", extra={"count": len(seeds)})
