from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import get_logger
from app.core.security import hash_password
from app.db.models import User, UserRole

logger = get_logger("lending.init_admin")


def ensure_builtin_admin(db: Session) -> User:
    admin = (
        db.query(User)
        .filter(
            (User.email == settings.BUILTIN_ADMIN_EMAIL)
            | (User.username == settings.BUILTIN_ADMIN_USERNAME)
        )
        .first()
    )
    if admin:
        return admin

    admin = User(
        username=settings.BUILTIN_ADMIN_USERNAME,
        email=settings.BUILTIN_ADMIN_EMAIL,
        hashed_password=hash_password(settings.BUILTIN_ADMIN_PASSWORD),
        role=UserRole.ADMIN,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)

    logger.info(
        "Built-in admin created",
        extra={"operation": "admin_bootstrap", "resource": "user", "user_id": admin.id},
    )
    return admin
