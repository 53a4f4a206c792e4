from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from app.api.v1.dependencies_auth import get_current_user
from app.api.v1.dependencies import get_db

from app.core.security import hash_password, verify_password, create_access_token
from app.db.models import User, UserRole
from app.schemas.user import UserCreate, UserRead
from app.schemas.auth import Token

import logging
logger = logging.getLogger("api.auth")

router = APIRouter(
    prefix="/api/v1/auth",
    tags=["auth"],
)


def _issue_token(user: User) -> Token:
    access_token = create_access_token(user_id=user.id, role=user.role.value)
    return Token(access_token=access_token, user=UserRead.model_validate(user))


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
):
    existing = (
        db.query(User)
        .filter((User.username == payload.username) | (User.email == payload.email))
        .first()
    )
    if existing:
        detail = (
            "Username already exists"
            if existing.username == payload.username
            else "Email already registered"
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    user = User(
        username=payload.username,
        email=payload.email,
        hashed_password=hash_password(payload.password),
        role=UserRole.USER,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(
        "register_success",
        extra={
            "operation": "auth_register",
            "resource": "user",
            "user_id": user.id,
            "status_code": 201,
        },
    )
    return _issue_token(user)


@router.post("/login", response_model=Token)
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    # username puede ser el nombre de usuario o el email
    login_name = form_data.username
    user = (
        db.query(User)
        .filter((User.username == login_name) | (User.email == login_name))
        .first()
    )

    client_ip = request.client.host if request.client else None

    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.warning(
            "login_failed",
            extra={
                "operation": "auth_login",
                "resource": "user",
                "login": login_name,
                "status_code": 401,
                "ip": client_ip,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    logger.info(
        "login_success",
        extra={
            "operation": "auth_login",
            "resource": "user",
            "login": login_name,
            "user_id": user.id,
            "status_code": 200,
            "ip": client_ip,
        },
    )

    return _issue_token(user)


@router.get("/me", response_model=UserRead)
def read_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    request: Request,
    current_user: User = Depends(get_current_user),
):
    """
    Logout: revoca el token actual del usuario.
    """
    auth_header = request.headers.get("Authorization", "")
    parts = auth_header.split()
    token = parts[1] if len(parts) == 2 and parts[0].lower() == "bearer" else None

    if token:
        if not hasattr(request.app.state, "revoked_tokens"):
            request.app.state.revoked_tokens = set()

        request.app.state.revoked_tokens.add(token)

    logger.info(
        "Logout succeeded",
        extra={
            "operation": "auth_logout",
            "resource": "user",
            "user_id": current_user.id,
            "status_code": 204,
            "ip": request.client.host if request.client else None,
        },
    )
