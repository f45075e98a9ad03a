"""
SQLAlchemy models for the social side of a family.

Tables:
- TreeMember: a person in the family tree, with or without an account
- Message: family chat messages (soft-deleted)
- Invitation: email invitations to join a family
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from apps.api.auth.models import FamilyRole
from db.base import Base
from db.models.base_model import BaseModel


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class Kinship(str, Enum):
    """How a tree member relates to the family."""

    FATHER = "Father"
    MOTHER = "Mother"
    SON = "Son"
    DAUGHTER = "Daughter"
    GRANDFATHER = "Grandfather"
    GRANDMOTHER = "Grandmother"
    GRANDSON = "Grandson"
    GRANDDAUGHTER = "Granddaughter"
    BROTHER = "Brother"
    SISTER = "Sister"
    UNCLE = "Uncle"
    AUNT = "Aunt"
    NEPHEW = "Nephew"
    NIECE = "Niece"
    COUSIN = "Cousin"
    SPOUSE = "Spouse"
    OTHER = "Other"


class InvitationStatus(str, Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    DECLINED = "Declined"
    EXPIRED = "Expired"


# =============================================================================
# Family tree
# =============================================================================


class TreeMember(BaseModel):
    """
    One person in a family tree.

    `photo` holds the stored media descriptor of the member's picture
    (same shape as a memory's media), so it can be re-signed on read and
    its local file removed with the member.
    """

    __tablename__ = "tree_members"

    family_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("families.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    photo: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    gender: Mapped[Gender | None] = mapped_column(SAEnum(Gender), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    kinship: Mapped[Kinship] = mapped_column(
        SAEnum(Kinship), default=Kinship.OTHER, nullable=False
    )
    role: Mapped[FamilyRole] = mapped_column(
        SAEnum(FamilyRole), default=FamilyRole.MEMBER, nullable=False
    )

    # Tree edges; removing a relative leaves the edge empty
    father_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("tree_members.id", ondelete="SET NULL"), nullable=True
    )
    mother_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("tree_members.id", ondelete="SET NULL"), nullable=True
    )
    spouse_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("tree_members.id", ondelete="SET NULL"), nullable=True
    )

    # 0 = oldest generation, 1 = their children, ...
    generation: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_alive: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    family = relationship("Family")
    father: Mapped["TreeMember | None"] = relationship(
        remote_side="TreeMember.id", foreign_keys=[father_id]
    )
    mother: Mapped["TreeMember | None"] = relationship(
        remote_side="TreeMember.id", foreign_keys=[mother_id]
    )
    spouse: Mapped["TreeMember | None"] = relationship(
        remote_side="TreeMember.id", foreign_keys=[spouse_id]
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()

    def __repr__(self) -> str:
        return f"<TreeMember {self.full_name}>"


# =============================================================================
# Messages
# =============================================================================


class Message(BaseModel):
    """Family chat message; deleting only stamps `deleted_at`."""

    __tablename__ = "messages"

    family_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("families.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    user = relationship("User")


# =============================================================================
# Invitations
# =============================================================================


class Invitation(Base):
    """Email invitation to join a family, accepted through its token."""

    __tablename__ = "invitations"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    family_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("families.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    invited_by_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    role: Mapped[FamilyRole] = mapped_column(
        SAEnum(FamilyRole), default=FamilyRole.MEMBER, nullable=False
    )
    relationship_label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[InvitationStatus] = mapped_column(
        SAEnum(InvitationStatus), default=InvitationStatus.PENDING, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    family = relationship("Family")
    invited_by = relationship("User")

    def __repr__(self) -> str:
        return f"<Invitation {self.email} -> {self.family_id}>"
