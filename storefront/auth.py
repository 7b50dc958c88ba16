"""
Authentication and authorization utilities.

Provides password hashing, JWT token creation/validation, FastAPI dependencies
for protecting endpoints, and the role/capability policy used by the
back-office endpoints.
"""
from datetime import datetime, timedelta
from typing import Optional
import logging
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from . import models
from .database import get_db
from .config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Missing credentials are reported as 401 by get_current_user, not by the scheme
security = HTTPBearer(auto_error=False)

# Capability -> roles allowed to exercise it
CAPABILITIES = {
    "orders:manage": {"STAFF", "MANAGER", "ADMIN", "SUPER_ADMIN"},
    "appointments:manage": {"STAFF", "MANAGER", "ADMIN", "SUPER_ADMIN"},
    "reviews:moderate": {"STAFF", "MANAGER", "ADMIN", "SUPER_ADMIN"},
    "catalog:manage": {"MANAGER", "ADMIN", "SUPER_ADMIN"},
    "coupons:manage": {"MANAGER", "ADMIN", "SUPER_ADMIN"},
    "rewards:manage": {"MANAGER", "ADMIN", "SUPER_ADMIN"},
    "reports:view": {"MANAGER", "ADMIN", "SUPER_ADMIN"},
    "customers:view": {"ADMIN", "SUPER_ADMIN"},
    "content:manage": {"ADMIN", "SUPER_ADMIN"},
}


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a hashed password.

    Args:
        plain_password: The plain text password to verify
        hashed_password: The hashed password to compare against

    Returns:
        True if the password matches, False otherwise
    """
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password for secure storage."""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Dictionary containing the claims to encode in the token
        expires_delta: Optional custom expiration time delta

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def token_for_user(user: models.User) -> str:
    return create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role}
    )


def authenticate_user(db: Session, email: str, password: str) -> Optional[models.User]:
    """
    Authenticate a user by email and password.

    Returns:
        User object if authentication succeeds, None otherwise
    """
    user = db.query(models.User).filter(models.User.email == email.lower()).first()
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def authorize(role: Optional[str], capability: str) -> bool:
    """
    Decide whether a role may exercise a capability.

    Args:
        role: Role of the acting identity (None for anonymous)
        capability: Capability name, e.g. "orders:manage"

    Returns:
        True if allowed, False otherwise. Unknown capabilities are denied.
    """
    if role is None:
        return False
    return role in CAPABILITIES.get(capability, set())


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> models.User:
    """
    FastAPI dependency to get the current authenticated user from JWT token.

    Args:
        credentials: HTTP Authorization credentials (injected)
        db: Database session (injected)

    Returns:
        Current authenticated user

    Raises:
        HTTPException: 401 if token is missing, invalid or the user is unknown
        HTTPException: 403 if the account is inactive
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(credentials.credentials, SECRET_KEY, algorithms=[ALGORITHM])
        user_id_str: str = payload.get("sub")
        if user_id_str is None:
            logger.error("No 'sub' claim in token")
            raise credentials_exception
        user_id = int(user_id_str)
    except (JWTError, ValueError) as e:
        logger.error(f"JWT validation error: {e}")
        raise credentials_exception

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )
    return user


def require_capability(capability: str):
    """
    Build a FastAPI dependency that requires the current user to hold a capability.

    Example:
        @router.get("/orders")
        def list_all(user = Depends(require_capability("orders:manage"))): ...
    """
    def dependency(current_user: models.User = Depends(get_current_user)) -> models.User:
        if not authorize(current_user.role, capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient privileges"
            )
        return current_user
    return dependency
