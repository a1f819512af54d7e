"""Initial schema: tenants, users, capabilities, tenant access, member grants

Revision ID: 0001
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all core tables."""

    # --- tenants (no FK deps) ---
    op.create_table(
        "tenants",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.PrimaryKeyConstraint("id", name="pk_tenants"),
        sa.UniqueConstraint("slug", name="uq_tenants_slug"),
    )

    # --- users (FK -> tenants) ---
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255)),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.ForeignKeyConstraint(
            ["tenant_id"],
            ["tenants.id"],
            name="fk_users_tenant_id_tenants",
        ),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])

    # --- capabilities (no FK deps) ---
    op.create_table(
        "capabilities",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("identifier", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("version", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("actions", sa.JSON(), nullable=False),
        sa.Column("default_actions", sa.JSON(), nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="config"),
        sa.Column("config_path", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(100), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("depends_on", sa.JSON(), nullable=True),
        sa.Column("config", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.PrimaryKeyConstraint("id", name="pk_capabilities"),
    )
    op.create_index("ix_capabilities_identifier", "capabilities", ["identifier"], unique=True)

    # --- tenant_capability_access (FK -> tenants, capabilities) ---
    op.create_table(
        "tenant_capability_access",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("capability_id", sa.Uuid(), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.PrimaryKeyConstraint("id", name="pk_tenant_capability_access"),
        sa.UniqueConstraint("tenant_id", "capability_id", name="uq_tenant_capability_access"),
        sa.ForeignKeyConstraint(
            ["tenant_id"],
            ["tenants.id"],
            name="fk_tenant_capability_access_tenant_id_tenants",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["capability_id"],
            ["capabilities.id"],
            name="fk_tenant_capability_access_capability_id_capabilities",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_tenant_capability_access_tenant_id", "tenant_capability_access", ["tenant_id"])
    op.create_index("ix_tenant_capability_access_capability_id", "tenant_capability_access", ["capability_id"])

    # --- member_capability_grants (FK -> users, capabilities) ---
    op.create_table(
        "member_capability_grants",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("capability_id", sa.Uuid(), nullable=False),
        sa.Column("actions", sa.JSON(), nullable=False),
        sa.Column("granted_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.PrimaryKeyConstraint("id", name="pk_member_capability_grants"),
        sa.UniqueConstraint("user_id", "capability_id", name="uq_member_capability_grant"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_member_capability_grants_user_id_users",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["capability_id"],
            ["capabilities.id"],
            name="fk_member_capability_grants_capability_id_capabilities",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["granted_by"],
            ["users.id"],
            name="fk_member_capability_grants_granted_by_users",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_member_capability_grants_user_id", "member_capability_grants", ["user_id"])
    op.create_index("ix_member_capability_grants_capability_id", "member_capability_grants", ["capability_id"])


def downgrade() -> None:
    """Drop all core tables in reverse dependency order."""
    op.drop_table("member_capability_grants")
    op.drop_table("tenant_capability_access")
    op.drop_table("capabilities")
    op.drop_table("users")
    op.drop_table("tenants")
