"""FastAPI dependencies for authentication and family access."""

from collections.abc import Callable
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Path
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.api.auth.models import Family, FamilyMembership, FamilyRole, User
from apps.api.auth.security import decode_access_token
from apps.api.db import get_db
from packages.shared.exceptions import AuthError, ForbiddenError, NotFoundError

# Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# User Authentication
# =============================================================================


def get_user_by_id(db: Session, user_id: UUID) -> User | None:
    """Get user by ID."""
    stmt = select(User).where(User.id == user_id)
    return db.execute(stmt).scalar_one_or_none()


def user_from_token(db: Session, token: str) -> User:
    """Resolve an access token to an active user."""
    payload = decode_access_token(token)
    if not payload:
        raise AuthError("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid token payload")

    try:
        user = get_user_by_id(db, UUID(user_id))
    except ValueError:
        raise AuthError("Invalid token payload")

    if not user:
        raise AuthError("User not found")

    if not user.is_active:
        raise ForbiddenError("User account is inactive")

    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user from JWT token."""
    if not credentials:
        raise AuthError("Not authenticated")
    return user_from_token(db, credentials.credentials)


# =============================================================================
# Family Access
# =============================================================================


def get_membership(db: Session, user_id: UUID, family_id: UUID) -> FamilyMembership | None:
    """Get user's membership in a family."""
    stmt = select(FamilyMembership).where(
        FamilyMembership.user_id == user_id,
        FamilyMembership.family_id == family_id,
    )
    return db.execute(stmt).scalar_one_or_none()


def get_family(db: Session, family_id: UUID) -> Family | None:
    """Get family by ID."""
    stmt = select(Family).where(Family.id == family_id)
    return db.execute(stmt).scalar_one_or_none()


class FamilyContext:
    """Context object containing family access information."""

    def __init__(
        self,
        user: User,
        family: Family,
        membership: FamilyMembership,
    ):
        self.user = user
        self.family = family
        self.membership = membership
        self.role = membership.role

    @property
    def family_id(self) -> UUID:
        return self.family.id  # type: ignore[return-value]

    @property
    def is_admin(self) -> bool:
        return self.role == FamilyRole.ADMIN


def load_family_context(db: Session, user: User, family_id: UUID) -> FamilyContext:
    """Check the family exists and the user belongs to it.

    Raises:
        NotFoundError: unknown family
        ForbiddenError: user is not a member
    """
    family = get_family(db, family_id)
    if not family:
        raise NotFoundError("Family")

    membership = get_membership(db, user.id, family_id)  # type: ignore[arg-type]
    if not membership:
        raise ForbiddenError("Not a member of this family")

    return FamilyContext(user=user, family=family, membership=membership)


def require_family_access(
    family_id: Annotated[UUID, Path(description="Family ID")],
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FamilyContext:
    """Require user is a member of the family in the path.

    Usage:
        @router.get("/{family_id}")
        def list_memories(ctx: FamilyContext = Depends(require_family_access)):
            ...
    """
    return load_family_context(db, user, family_id)


def require_family_role(
    allowed_roles: list[FamilyRole],
) -> Callable[[FamilyContext], FamilyContext]:
    """Dependency factory that requires specific roles within a family."""

    def role_checker(ctx: FamilyContext = Depends(require_family_access)) -> FamilyContext:
        if ctx.role not in allowed_roles:
            raise ForbiddenError(
                f"Role '{ctx.role.value}' cannot perform this action. "
                f"Required: {[r.value for r in allowed_roles]}"
            )
        return ctx

    return role_checker


require_family_admin = require_family_role([FamilyRole.ADMIN])
