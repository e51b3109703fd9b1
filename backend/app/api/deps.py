from collections.abc import Generator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.models.tenant import Role, Tenant, UserRole
from app.models.user import User


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _attach_tenant_roles(db: Session, user: User, tenant_id: int) -> User:
    role_rows = list(
        db.scalars(
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user.id, UserRole.tenant_id == tenant_id)
        ).all()
    )
    # tenant-scoped roles for downstream RBAC checks
    setattr(user, "tenant_role_names", [str(role) for role in role_rows])
    setattr(user, "tenant_id_ctx", tenant_id)
    return user


def get_tenant_id(
    db: Session = Depends(get_db),
    x_tenant_id: int = Header(default=1),
) -> int:
    tenant = db.get(Tenant, x_tenant_id)
    if tenant is None or not tenant.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found.")
    return tenant.id


def get_current_user(
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    x_user_id: int | None = Header(default=None),
) -> User:
    if x_user_id is None:
        # Safe default for local development.
        user = db.scalar(select(User).where(User.email == "admin@gmah.local"))
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required.",
            )
        return _attach_tenant_roles(db, user, tenant_id)

    user = db.get(User, x_user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user.",
        )
    return _attach_tenant_roles(db, user, tenant_id)
