"""SQLAlchemy models for users, sessions and family membership."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from db.base import Base

# =============================================================================
# Enums
# =============================================================================


class UserRole(str, enum.Enum):
    """Platform-wide user role."""

    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class FamilyRole(str, enum.Enum):
    """Role of a user within one family."""

    ADMIN = "Admin"
    MEMBER = "Member"
    GUEST = "Guest"


# =============================================================================
# User Model
# =============================================================================


class User(Base):
    """User account model."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    # Storage: Google Drive OAuth bundle (access_token, refresh_token,
    # scope, token_type, expiry_date in epoch ms)
    google_drive_tokens = Column(JSON, nullable=True)
    google_drive_root_folder_id = Column(String(255), nullable=True)

    # Storage: user's own S3 bucket
    s3_access_key_id = Column(String(255), nullable=True)
    s3_secret_access_key = Column(String(255), nullable=True)
    s3_bucket = Column(String(255), nullable=True)
    s3_region = Column(String(50), default="us-east-1", nullable=True)
    s3_enabled = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan"
    )
    memberships = relationship(
        "FamilyMembership", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User {self.email}>"


# =============================================================================
# Family Models
# =============================================================================


class Family(Base):
    """Family (tenant) model."""

    __tablename__ = "families"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    cover_image = Column(String(1024), nullable=True)
    passcode = Column(String(6), nullable=False)
    created_by_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_private = Column(Boolean, default=True, nullable=False)
    allow_member_invites = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    created_by = relationship("User")
    memberships = relationship(
        "FamilyMembership", back_populates="family", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Family {self.name}>"


class FamilyMembership(Base):
    """User membership in a family with role."""

    __tablename__ = "family_memberships"

    id = Column(Uuid, primary_key=True, default=uuid4)
    family_id = Column(
        Uuid,
        ForeignKey("families.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    role = Column(Enum(FamilyRole), nullable=False, default=FamilyRole.MEMBER)
    relationship_label = Column(String(100), nullable=True)
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # A user can only be a member of a family once
    __table_args__ = (
        UniqueConstraint("family_id", "user_id", name="uq_family_membership"),
    )

    # Relationships
    user = relationship("User", back_populates="memberships")
    family = relationship("Family", back_populates="memberships")

    def __repr__(self) -> str:
        return f"<FamilyMembership user={self.user_id} family={self.family_id} role={self.role}>"


# =============================================================================
# Refresh Token Model
# =============================================================================


class RefreshToken(Base):
    """Refresh token for JWT authentication."""

    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash = Column(String(255), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Session metadata
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)  # IPv6 max length

    # Relationships
    user = relationship("User", back_populates="refresh_tokens")

    @property
    def is_valid(self) -> bool:
        """Check if token is valid (not expired, not revoked)."""
        now = datetime.utcnow()
        return self.revoked_at is None and self.expires_at > now

    def __repr__(self) -> str:
        return f"<RefreshToken {self.id}>"
