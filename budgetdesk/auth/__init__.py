"""
BudgetDesk — Authentication & RBAC
JWT tokens, password hashing, role-based access control.
"""
from datetime import datetime, timedelta

from fastapi import Request

from budgetdesk.config import (
    JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRY_HOURS, BCRYPT_ROUNDS,
    ROLE_MATRIX, DEFAULT_ROLE
)
from budgetdesk.errors import UnauthorizedError, ForbiddenError

# ============================================================
# PASSWORD HASHING
# ============================================================
import bcrypt

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(BCRYPT_ROUNDS)).decode()

def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return bcrypt.checkpw(password.encode(), hashed.encode())

# ============================================================
# JWT
# ============================================================
import jwt as pyjwt

def create_jwt(user: dict) -> str:
    payload = {
        "sub": user["id"], "email": user["email"], "name": user["name"],
        "role": user["role"], "organizationId": user.get("organizationId"),
        "exp": datetime.utcnow() + timedelta(hours=JWT_EXPIRY_HOURS),
        "iat": datetime.utcnow()
    }
    return pyjwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)

def decode_jwt(token: str) -> dict:
    try:
        return pyjwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except pyjwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except pyjwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")

# ============================================================
# USERS
# ============================================================
def public_user(user: dict) -> dict:
    """User record without the password hash."""
    return {k: v for k, v in user.items() if k != "password"}

def find_user_by_email(db: dict, email: str):
    email = (email or "").strip().lower()
    for u in db.get("users", []):
        if u.get("email", "").lower() == email:
            return u
    return None

def authenticate(db: dict, email: str, password: str) -> dict:
    user = find_user_by_email(db, email)
    if not user or not verify_password(password, user.get("password")):
        raise UnauthorizedError("Invalid credentials")
    if not user.get("isActive", True):
        raise UnauthorizedError("Account disabled")
    return user

# ============================================================
# REQUEST HELPERS
# ============================================================
def _user_from_request(request: Request) -> dict:
    """Resolve the user behind the Bearer token. Returns empty dict if no auth header."""
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return {}
    payload = decode_jwt(auth[7:])
    from budgetdesk.db import get_db, find_by_id
    user = find_by_id(get_db(), "users", payload.get("sub"))
    if not user or not user.get("isActive", True):
        raise UnauthorizedError("Invalid or expired token")
    return public_user(user)

async def get_current_user(request: Request) -> dict:
    """Dependency: require authenticated user."""
    user = _user_from_request(request)
    if not user:
        raise UnauthorizedError()
    return user

async def require_org_user(request: Request) -> dict:
    """Dependency: authenticated user attached to an organization."""
    user = await get_current_user(request)
    if not user.get("organizationId"):
        raise ForbiddenError()
    return user

def role_level(role: str) -> int:
    return ROLE_MATRIX.get(role, ROLE_MATRIX[DEFAULT_ROLE])["level"]

def is_super_admin(user: dict) -> bool:
    return user.get("role") == "admin" and not user.get("organizationId")

# ============================================================
# RBAC DECORATOR
# ============================================================
def require_role(min_level: int, org_required: bool = True):
    """Dependency: require minimum role level (and, by default, an organization)."""
    async def checker(request: Request):
        user = await (require_org_user(request) if org_required else get_current_user(request))
        if role_level(user["role"]) < min_level:
            raise ForbiddenError(f"Requires role level {min_level}+. Your role: {user['role']}")
        return user
    return checker
