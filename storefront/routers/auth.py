"""
Authentication endpoints: registration, login and the current user's profile.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import auth, crud, models, schemas
from ..database import get_db
from ..pricing import classify_tier

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", response_model=schemas.Token, status_code=status.HTTP_201_CREATED)
def register(user: schemas.UserRegister, db: Session = Depends(get_db)):
    """
    Register a new customer account.

    Args:
        user: Registration data (names, email, phone, password)
        db: Database session (injected)

    Returns:
        JWT access token

    Raises:
        HTTPException: 400 if email already exists
    """
    if crud.get_user_by_email(db, email=user.email):
        raise HTTPException(status_code=400, detail="Email already registered")

    password_hash = auth.get_password_hash(user.password)
    db_user = crud.create_user(db, user, password_hash)
    logger.info(f"Registered user {db_user.id}")
    return schemas.Token(access_token=auth.token_for_user(db_user))


@router.post("/login", response_model=schemas.Token)
def login(credentials: schemas.UserLogin, db: Session = Depends(get_db)):
    """
    Authenticate and login a user.

    Raises:
        HTTPException: 401 if credentials are invalid
    """
    user = auth.authenticate_user(db, credentials.email, credentials.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return schemas.Token(access_token=auth.token_for_user(user))


@router.get("/me", response_model=schemas.UserProfile)
def get_current_user_info(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """Current user with reward balance and tier name."""
    balance = crud.get_reward_balance(db, current_user.id)
    tier, _ = classify_tier(crud.get_active_tiers(db), balance)
    profile = schemas.UserProfile.model_validate(current_user)
    profile.reward_points = balance
    profile.tier = tier.name if tier else None
    return profile
