"""Initial schema: logs, roles and the user tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from __future__ import annotations

import uuid
from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def _id() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _user_fk(unique: bool = False) -> sa.Column:
    return sa.Column(
        "user_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False,
        unique=unique,
        index=not unique,
    )


def upgrade() -> None:
    # ── Standalone tables (no FKs) ─────────────────────────────────────

    op.create_table(
        "logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("level", sa.String(20), nullable=False, index=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("stack", sa.Text()),
        sa.Column("context", postgresql.JSONB(astext_type=sa.Text()), comment="query, body, params, headers"),
        sa.Column("route", sa.String(255)),
        sa.Column("method", sa.String(10)),
        sa.Column("status_code", sa.Integer()),
        sa.Column("user_id", sa.String(36)),
        sa.Column("ip_address", sa.String(100)),
        sa.Column("user_agent", sa.String(255)),
        sa.Column("file", sa.String(255)),
        sa.Column("line", sa.Integer()),
        sa.Column("environment", sa.String(255)),
        sa.Column("occurrences", sa.Integer(), server_default="1", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_logs_created_at", "logs", ["created_at"])
    op.create_index("ix_logs_dedup_key", "logs", ["ip_address", "route", "created_at"])

    roles = op.create_table(
        "roles",
        sa.Column("role_name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(255)),
        sa.Column("level", sa.Integer(), server_default="1", nullable=False),
        sa.Column("status", sa.String(20), server_default="active", nullable=False),
        sa.Column("is_system_role", sa.Boolean(), server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        _id(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("role_name"),
    )

    # ── User profile ───────────────────────────────────────────────────

    op.create_table(
        "user_profiles",
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("avatar_url", sa.Text()),
        sa.Column("date_of_birth", sa.Date()),
        sa.Column("role_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("roles.id"), index=True),
        sa.Column("created_by", sa.String(36)),
        sa.Column("last_modified_by", sa.String(36)),
        sa.Column("deleted_at", sa.DateTime(timezone=True), index=True),
        _id(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username", name="uq_user_profiles_username"),
        sa.UniqueConstraint("email", name="uq_user_profiles_email"),
        sa.UniqueConstraint("phone", name="uq_user_profiles_phone"),
    )

    # ── Tables with FK → user_profiles ─────────────────────────────────

    op.create_table(
        "user_security_attributes",
        _user_fk(unique=True),
        sa.Column("password", sa.Text(), nullable=False, comment="Argon2id, base64 raw"),
        sa.Column("auth_type", sa.String(20), server_default="password"),
        sa.Column("failed_login_attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("lock_until", sa.DateTime(timezone=True)),
        sa.Column("email_verified", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("email_verified_at", sa.DateTime(timezone=True)),
        sa.Column("email_verification_token", sa.Text()),
        sa.Column("email_token_expiry", sa.DateTime(timezone=True)),
        sa.Column("pending_email", sa.String(255), index=True),
        sa.Column("password_reset_token", sa.Text(), index=True),
        sa.Column("password_reset_token_expiry", sa.DateTime(timezone=True)),
        sa.Column("two_factor_enabled", sa.Boolean(), server_default=sa.false()),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        _id(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "user_sessions",
        _user_fk(),
        sa.Column("session_token", sa.String(64), nullable=False),
        sa.Column("refresh_token", sa.String(64)),
        sa.Column("ip_address", sa.String(45), index=True),
        sa.Column("user_agent", sa.Text()),
        sa.Column("device_type", sa.String(20), server_default="unknown"),
        sa.Column("device_name", sa.String(100)),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False, index=True),
        sa.Column("logged_out_at", sa.DateTime(timezone=True)),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("refresh_expiry", sa.DateTime(timezone=True), nullable=False),
        _id(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_token"),
    )

    op.create_table(
        "user_preferences",
        _user_fk(unique=True),
        sa.Column("show_email", sa.Boolean(), server_default=sa.false()),
        sa.Column("show_phone", sa.Boolean(), server_default=sa.false()),
        sa.Column("show_location", sa.Boolean(), server_default=sa.false()),
        sa.Column("show_gender", sa.Boolean(), server_default=sa.false()),
        sa.Column("show_role", sa.Boolean(), server_default=sa.false()),
        sa.Column("show_profile", sa.Boolean(), server_default=sa.true(), index=True),
        sa.Column("allow_following", sa.Boolean(), server_default=sa.true(), index=True),
        sa.Column("language", sa.String(10), server_default="en", index=True),
        sa.Column("theme", sa.String(20), server_default="light"),
        sa.Column("timezone", sa.String(50), server_default="UTC"),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        _id(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "user_locations",
        _user_fk(),
        sa.Column("country", sa.String(100), index=True),
        sa.Column("state", sa.String(100)),
        sa.Column("state_name", sa.String(100)),
        sa.Column("continent", sa.String(50)),
        sa.Column("city", sa.String(100), index=True),
        sa.Column("zip", sa.String(20)),
        sa.Column("timezone", sa.String(50), server_default="UTC"),
        sa.Column("last_active", sa.DateTime(timezone=True)),
        _id(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    # ── Seed data ──────────────────────────────────────────────────────

    op.bulk_insert(roles, [
        {
            "id": uuid.uuid4(),
            "role_name": "guest",
            "description": "Default role for newly registered users",
            "level": 1,
            "status": "active",
            "is_system_role": True,
        },
    ])


def downgrade() -> None:
    op.drop_table("user_locations")
    op.drop_table("user_preferences")
    op.drop_table("user_sessions")
    op.drop_table("user_security_attributes")
    op.drop_table("user_profiles")
    op.drop_table("roles")
    op.drop_index("ix_logs_dedup_key", table_name="logs")
    op.drop_index("ix_logs_created_at", table_name="logs")
    op.drop_table("logs")
