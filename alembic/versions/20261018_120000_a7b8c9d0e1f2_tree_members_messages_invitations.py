"""Tree members, messages, invitations; media bucket and album cover photo

- tree_members: people of a family tree with their photo descriptor
- messages: family chat (soft delete)
- invitations: email invitations with a one-time token
- media_items / album_photos: `bucket` of S3 objects
- albums: `cover_photo_id` pointing at one of the album's photos

Revision ID: a7b8c9d0e1f2
Revises: f1a2b3c4d5e6
Create Date: 2026-10-18 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a7b8c9d0e1f2"
down_revision: str | None = "f1a2b3c4d5e6"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

KINSHIPS = (
    "FATHER", "MOTHER", "SON", "DAUGHTER", "GRANDFATHER", "GRANDMOTHER",
    "GRANDSON", "GRANDDAUGHTER", "BROTHER", "SISTER", "UNCLE", "AUNT",
    "NEPHEW", "NIECE", "COUSIN", "SPOUSE", "OTHER",
)


def _family_role() -> sa.Enum:
    # Created by the initial revision
    return postgresql.ENUM("ADMIN", "MEMBER", "GUEST", name="familyrole", create_type=False)


def upgrade() -> None:
    """Upgrade database schema."""
    # ==========================================================================
    # MEDIA COLUMNS
    # ==========================================================================
    op.add_column("media_items", sa.Column("bucket", sa.String(length=255), nullable=True))
    op.add_column("album_photos", sa.Column("bucket", sa.String(length=255), nullable=True))
    op.add_column("albums", sa.Column("cover_photo_id", sa.Uuid(), nullable=True))

    # ==========================================================================
    # FAMILY TREE
    # ==========================================================================
    op.create_table(
        "tree_members",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("family_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("photo", sa.JSON(), nullable=True),
        sa.Column("gender", sa.Enum("MALE", "FEMALE", "OTHER", name="gender"), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("kinship", sa.Enum(*KINSHIPS, name="kinship"), nullable=False),
        sa.Column("role", _family_role(), nullable=False),
        sa.Column("father_id", sa.Uuid(), nullable=True),
        sa.Column("mother_id", sa.Uuid(), nullable=True),
        sa.Column("spouse_id", sa.Uuid(), nullable=True),
        sa.Column("generation", sa.Integer(), nullable=False),
        sa.Column("is_alive", sa.Boolean(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["family_id"], ["families.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["father_id"], ["tree_members.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["mother_id"], ["tree_members.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["spouse_id"], ["tree_members.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tree_members_family_id", "tree_members", ["family_id"])

    # ==========================================================================
    # MESSAGES AND INVITATIONS
    # ==========================================================================
    op.create_table(
        "messages",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("family_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["family_id"], ["families.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_family_id", "messages", ["family_id"])

    op.create_table(
        "invitations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("family_id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("invited_by_id", sa.Uuid(), nullable=True),
        sa.Column("role", _family_role(), nullable=False),
        sa.Column("relationship_label", sa.String(length=100), nullable=True),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column(
            "status",
            sa.Enum("PENDING", "ACCEPTED", "DECLINED", "EXPIRED", name="invitationstatus"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["family_id"], ["families.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["invited_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token"),
    )
    op.create_index("ix_invitations_family_id", "invitations", ["family_id"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("ix_invitations_family_id", table_name="invitations")
    op.drop_table("invitations")
    op.drop_index("ix_messages_family_id", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_tree_members_family_id", table_name="tree_members")
    op.drop_table("tree_members")

    op.drop_column("albums", "cover_photo_id")
    op.drop_column("album_photos", "bucket")
    op.drop_column("media_items", "bucket")

    sa.Enum(name="invitationstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="kinship").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="gender").drop(op.get_bind(), checkfirst=True)
