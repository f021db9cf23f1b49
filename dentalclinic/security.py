import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .config import get_settings
from .database import get_db
from .exceptions import UnauthorizedError, ForbiddenError
from . import models

security_logger = logging.getLogger("security")

pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
)

# auto_error=False so a missing token flows through the same 401 path as a bad one
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/token", auto_error=False)

STAFF_ROLES = ("dentist", "receptionist", "admin")


@dataclass(frozen=True)
class AuthContext:
    """Identity of the caller, resolved once per request and passed into services."""
    user_id: int
    role: models.UserRole
    profile: models.UserProfile

    @property
    def is_staff(self) -> bool:
        return self.role.is_staff

    @property
    def is_admin(self) -> bool:
        return self.role == models.UserRole.admin

    def has_role(self, *roles: str) -> bool:
        return self.role.value in roles


# Password utilities
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception:
        # Unknown/legacy hash formats should not crash login; treat as non-match
        return False

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

# JWT utilities
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    settings = get_settings()
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({
        "exp": expire,
        "type": "access",
        "iat": datetime.now(timezone.utc),
        "jti": secrets.token_urlsafe(16),
    })

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
    """Verify and decode JWT token"""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])

        if payload.get("type") != token_type:
            return None

        return payload
    except JWTError:
        return None

def authenticate(db: Session, email: str, password: str) -> Optional[models.UserProfile]:
    profile = db.query(models.UserProfile).filter(models.UserProfile.email == email.lower().strip()).first()
    if not profile or not profile.is_active:
        return None
    if not verify_password(password, profile.password_hash):
        return None
    return profile

# Dependencies for FastAPI
async def get_auth_context(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> AuthContext:
    """Resolve the bearer token into an AuthContext."""
    if not token:
        raise UnauthorizedError("Not authenticated")

    payload = verify_token(token, "access")
    if not payload:
        security_logger.info(f"Rejected invalid token on {request.url.path}")
        raise UnauthorizedError("Could not validate credentials")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise UnauthorizedError("Could not validate credentials")

    profile = db.query(models.UserProfile).filter(models.UserProfile.id == user_id).first()
    if not profile or not profile.is_active:
        raise UnauthorizedError("Could not validate credentials")

    return AuthContext(user_id=profile.id, role=profile.role, profile=profile)

def require_role(*allowed_roles: str):
    """Dependency factory for role-based access control"""
    def role_dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not auth.has_role(*allowed_roles):
            security_logger.warning(f"Access denied for profile {auth.user_id} with role {auth.role.value}")
            raise ForbiddenError(f"Access denied. Required roles: {', '.join(allowed_roles)}")
        return auth

    return role_dependency

# Specific role dependencies
require_admin = require_role("admin")
require_staff = require_role(*STAFF_ROLES)
require_front_desk = require_role("receptionist", "admin")
require_clinician = require_role("dentist", "admin")

def verify_cron_secret(request: Request) -> None:
    """Shared-secret check for batch endpoints called by an external timer."""
    expected = get_settings().cron_secret
    header = request.headers.get("authorization") or ""
    if not expected or not hmac.compare_digest(header.encode(), f"Bearer {expected}".encode()):
        security_logger.warning(f"Rejected batch call on {request.url.path}")
        raise UnauthorizedError("Not authorized")
