from collections.abc import Iterable

from fastapi import HTTPException, status

from app.models.enums import RoleName
from app.models.user import User


ADMIN_ROLES = {RoleName.admin.value, RoleName.super_admin.value}

TREASURY_MANAGERS = (RoleName.admin, RoleName.super_admin, RoleName.treasurer)
TREASURY_VIEWERS = (*TREASURY_MANAGERS, RoleName.secretary, RoleName.committee_member)


def require_roles(user: User, allowed_roles: Iterable[RoleName]) -> None:
    allowed = {role.value for role in set(allowed_roles)}
    tenant_roles = set(str(role) for role in getattr(user, "tenant_role_names", []) if role is not None)
    user_roles = {user.role.value} | tenant_roles

    if user_roles.intersection(ADMIN_ROLES):
        return
    if user_roles.intersection(allowed):
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Insufficient role privileges.",
    )
