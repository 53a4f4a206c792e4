from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_db
from app.core.security import decode_access_token
from app.db.models import User, UserRole
from app.core.logging import user_id_ctx


# Esta URL debe coincidir con el endpoint de login
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Obtiene el usuario actual a partir del token JWT.
    Lanza 401 si no se puede validar.
    """
    revoked_tokens = getattr(request.app.state, "revoked_tokens", set())
    if token in revoked_tokens:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token revoked",
        )

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exception

    user: User | None = db.query(User).filter(User.id == payload["user_id"]).first()
    if user is None:
        raise credentials_exception

    # Guardar user_id para LOGGING estructurado
    user_id_ctx.set(user.id)

    return user


def require_role(required_role: UserRole):
    """
    Dependencia para exigir un rol.
    Admin siempre tiene acceso.
    """
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != required_role and current_user.role != UserRole.ADMIN:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Admin privileges required",
            )
        return current_user

    return dependency
