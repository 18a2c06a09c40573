"""
Authentication Utility - JWT verification.

Tokens are issued by the portal's login service; here we only verify a
bearer token, load the caller from `users`, and gate routes by role.

Provides:
- create_access_token (scripts and tests)
- get_current_user / get_current_student / get_current_staff dependencies
- as_actor: the identity handed to services
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select

from app.core.config import get_settings
from app.db.postgres import get_db_session
from app.db.tables import users, students
from app.models.models import Actor, UserRole, STAFF_ROLES

settings = get_settings()

# Bearer token extractor
bearer_scheme = HTTPBearer()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token. `sub` must carry the user id."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> dict:
    """
    FastAPI dependency - Resolve the bearer token to {user_id, email, role}.

    Usage:
        @router.get("/protected")
        async def route(user: dict = Depends(get_current_user)):
            return user
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    subject = payload.get("sub") if payload else None
    if not subject or not str(subject).isdigit():
        raise credentials_exception

    with get_db_session() as db:
        account = db.execute(
            select(users.c.user_id, users.c.email, users.c.role, users.c.is_active)
            .where(users.c.user_id == int(subject))
        ).first()

    if account is None:
        raise credentials_exception
    if not account.is_active:
        raise HTTPException(status_code=403, detail="Account deactivated")

    return {"user_id": account.user_id, "email": account.email, "role": account.role}


def as_actor(user: dict) -> Actor:
    return Actor(user_id=user["user_id"], role=user["role"])


async def get_current_student(user: dict = Depends(get_current_user)) -> dict:
    """Dependency - Require student role and an academic profile."""
    if user["role"] != UserRole.student.value:
        raise HTTPException(status_code=403, detail="Students only")

    with get_db_session() as db:
        profile = db.execute(select(students.c.user_id).where(students.c.user_id == user["user_id"])).first()
    if profile is None:
        raise HTTPException(status_code=404, detail="Student profile not found. Create profile first.")
    return user


async def get_current_staff(user: dict = Depends(get_current_user)) -> dict:
    """Dependency - Require company, TPO or admin role."""
    if user["role"] not in STAFF_ROLES:
        raise HTTPException(status_code=403, detail="Companies, TPOs and admins only")
    return user
