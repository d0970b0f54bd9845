from datetime import datetime, timezone
from typing import Annotated
from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from blog_console.core.exceptions import AuthError, ValidationError
from blog_console.core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    get_current_user,
)
from blog_console.db.database import get_session
from blog_console.models.user import User
from blog_console.schemas.user import PasswordChange, UserCreate, UserLogin, UserResponse, Token

router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_in: UserCreate,
    session: Annotated[Session, Depends(get_session)]
) -> User:
    """Create a console account"""
    existing = session.execute(
        select(User).where(or_(User.username == user_in.username, User.email == user_in.email))
    ).scalars().first()
    if existing:
        field = "Username" if existing.username == user_in.username else "Email"
        raise ValidationError(f"{field} already registered")

    user = User(
        username=user_in.username,
        email=user_in.email,
        password_hash=get_password_hash(user_in.password),
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@router.post("/login", response_model=Token)
def login(
    user_in: UserLogin,
    session: Annotated[Session, Depends(get_session)]
) -> dict:
    """Exchange username and password for a bearer token"""
    user = session.execute(
        select(User).where(User.username == user_in.username)
    ).scalar_one_or_none()

    if not user or not user.is_active or not verify_password(user_in.password, user.password_hash):
        raise AuthError("Incorrect username or password")

    user.last_login = datetime.now(timezone.utc)
    session.commit()

    access_token = create_access_token(data={"sub": user.username})
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/me", response_model=UserResponse)
def read_me(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    """Get the current account"""
    return current_user


@router.put("/password", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    change: PasswordChange,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[Session, Depends(get_session)]
) -> None:
    """Change the current account's password"""
    if not verify_password(change.current_password, current_user.password_hash):
        raise ValidationError("Current password is incorrect")
    current_user.password_hash = get_password_hash(change.new_password)
    session.commit()
    return None
