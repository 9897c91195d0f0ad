"""create users, tutor_profiles and tuition_posts

Revision ID: b7c1e9a2d4f0
Revises:
Create Date: 2026-10-18 09:00:00.000000

This migration:
1. Creates the user_role, post_status, post_priority and teaching_mode enum types
2. Creates the users table
3. Creates tutor_profiles (one per tutor user, embedded reviews)
4. Creates tuition_posts (embedded applications, denormalized search columns)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "b7c1e9a2d4f0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


user_role_enum = postgresql.ENUM(
    "student", "tutor", "guardian", "admin", name="user_role", create_type=False
)
post_status_enum = postgresql.ENUM(
    "active", "filled", "expired", "cancelled", name="post_status", create_type=False
)
post_priority_enum = postgresql.ENUM(
    "low", "medium", "high", "urgent", name="post_priority", create_type=False
)
teaching_mode_enum = postgresql.ENUM(
    "online", "offline", "both", name="teaching_mode", create_type=False
)

ENUMS = (user_role_enum, post_status_enum, post_priority_enum, teaching_mode_enum)


def _base_columns() -> list[sa.Column]:
    """Primary key and timestamps (from BaseModel)."""
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create the TuitionHub tables."""
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    # Users
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("bio", sa.Text(), nullable=False, server_default=""),
        sa.Column("location", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=30), nullable=False, server_default=""),
        sa.Column("avatar", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("children", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("permissions", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    # Tutor profiles
    op.create_table(
        "tutor_profiles",
        *_base_columns(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("subjects", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("experience", sa.Float(), nullable=False),
        sa.Column("education", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("availability", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("teaching_modes", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("reviews", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("rating", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("subject_names", postgresql.ARRAY(sa.String()), nullable=False),
        sa.Column("min_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("max_price", sa.Numeric(12, 2), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_tutor_profiles_user_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("user_id", name="uq_tutor_profiles_user_id"),
    )
    op.create_index(
        op.f("ix_tutor_profiles_is_active"), "tutor_profiles", ["is_active"], unique=False
    )
    op.create_index("ix_tutor_profiles_rating", "tutor_profiles", ["rating"], unique=False)

    # Tuition posts
    op.create_table(
        "tuition_posts",
        *_base_columns(),
        sa.Column("guardian_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("subjects", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("student_info", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("requirements", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("schedule", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("budget", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("location", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("tags", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", post_status_enum, nullable=False, server_default="active"),
        sa.Column("priority", post_priority_enum, nullable=False, server_default="medium"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("applications", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("selected_tutor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("budget_min", sa.Numeric(12, 2), nullable=True),
        sa.Column("budget_max", sa.Numeric(12, 2), nullable=True),
        sa.Column("teaching_mode", teaching_mode_enum, nullable=False, server_default="both"),
        sa.Column("subject_names", postgresql.ARRAY(sa.String()), nullable=False),
        sa.Column("levels", postgresql.ARRAY(sa.String()), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["guardian_id"],
            ["users.id"],
            name="fk_tuition_posts_guardian_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["selected_tutor_id"],
            ["users.id"],
            name="fk_tuition_posts_selected_tutor_id",
            ondelete="SET NULL",
        ),
    )
    op.create_index(
        op.f("ix_tuition_posts_guardian_id"), "tuition_posts", ["guardian_id"], unique=False
    )
    op.create_index(op.f("ix_tuition_posts_status"), "tuition_posts", ["status"], unique=False)
    op.create_index(
        "ix_tuition_posts_status_expires_at",
        "tuition_posts",
        ["status", "expires_at"],
        unique=False,
    )
    op.create_index(
        "ix_tuition_posts_created_at", "tuition_posts", ["created_at"], unique=False
    )
    op.create_index(
        "ix_tuition_posts_applications",
        "tuition_posts",
        ["applications"],
        unique=False,
        postgresql_using="gin",
    )


def downgrade() -> None:
    """Drop the TuitionHub tables and enum types."""
    op.drop_index("ix_tuition_posts_applications", table_name="tuition_posts")
    op.drop_index("ix_tuition_posts_created_at", table_name="tuition_posts")
    op.drop_index("ix_tuition_posts_status_expires_at", table_name="tuition_posts")
    op.drop_index(op.f("ix_tuition_posts_status"), table_name="tuition_posts")
    op.drop_index(op.f("ix_tuition_posts_guardian_id"), table_name="tuition_posts")
    op.drop_table("tuition_posts")

    op.drop_index("ix_tutor_profiles_rating", table_name="tutor_profiles")
    op.drop_index(op.f("ix_tutor_profiles_is_active"), table_name="tutor_profiles")
    op.drop_table("tutor_profiles")

    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
