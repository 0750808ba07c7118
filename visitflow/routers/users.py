from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
import logging

from visitflow.core.database import get_db
from visitflow.core.auth import AuthUtils, get_current_user, get_current_admin
from visitflow.models.user import User
from visitflow.schemas.user import UserCreate, UserResponse, UserLogin, UserLoginResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.post("/login", response_model=UserLoginResponse, status_code=status.HTTP_200_OK)
def login(
    login_data: UserLogin,
    db: Session = Depends(get_db)
):
    """
    Authenticate a user with username (or email) and plain text password.

    Returns:
        JWT access token and user information

    Raises:
        HTTPException: If credentials are invalid or account is inactive
    """
    user = db.query(User).filter(
        or_(User.username == login_data.username, User.email == login_data.username)
    ).first()

    if not user or not AuthUtils.verify_password(login_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive. Please contact administrator."
        )

    return UserLoginResponse(
        access_token=AuthUtils.token_for(user),
        token_type="bearer",
        user=UserResponse.model_validate(user)
    )


@router.get("/me", response_model=UserResponse)
def read_current_user(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin)
):
    """
    Create a new staff user. Only administrators can create users.
    """
    user = User(
        username=user_data.username,
        email=user_data.email,
        name=user_data.name,
        ph_no=user_data.ph_no,
        role=user_data.role,
        hashed_password=AuthUtils.hash_password(user_data.password),
        is_active=True
    )

    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username or email already exists"
        )

    logger.info(f"User {user.username} ({user.role.value}) created by {current_user.username}")
    return user


@router.get("/", response_model=List[UserResponse])
def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return db.query(User).filter(User.is_active.is_(True)).order_by(User.name).all()
