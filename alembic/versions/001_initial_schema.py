"""Initial schema — builds, accounts, clash resolutions, API keys.

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates:
- build_status      : PostgreSQL enum matching BuildStatus
- user_role         : PostgreSQL enum matching UserRole
- builds            : planning cycles scoped to a sales region
- accounts          : per-build account rows (current and proposed owner)
- clash_resolutions : append-only resolution audit log
- api_keys          : hashed API keys mapped to a caller identity

Indexes:
- ix_builds_region                     : region-scoped build listing
- ix_accounts_build_parent             : parent-account fetch per build
- ix_accounts_build_sfdc               : owner write-back by (build, account)
- ix_clash_resolutions_clash_key       : latest-resolution lookup per clash
- ix_clash_resolutions_sfdc_account_id : audit history per account
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers used by Alembic
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    build_status_enum = postgresql.ENUM(
        "DRAFT", "IN_REVIEW", "FINALIZED", name="build_status", create_type=False
    )
    user_role_enum = postgresql.ENUM(
        "FLM", "SLM", "REVOPS", name="user_role", create_type=False
    )
    build_status_enum.create(op.get_bind(), checkfirst=True)
    user_role_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "builds",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("status", build_status_enum, nullable=False, server_default="DRAFT"),
        sa.Column("region", sa.String(64), nullable=False),
        sa.Column("owner_id", sa.String(255), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("target_date", sa.Date, nullable=True),
    )
    op.create_index("ix_builds_region", "builds", ["region"])

    op.create_table(
        "accounts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "build_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("builds.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sfdc_account_id", sa.String(64), nullable=False),
        sa.Column("account_name", sa.String(255), nullable=False),
        sa.Column("is_parent", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("parent_id", sa.String(64), nullable=True),
        sa.Column("owner_id", sa.String(255), nullable=True),
        sa.Column("owner_name", sa.String(255), nullable=True),
        sa.Column("new_owner_id", sa.String(255), nullable=True),
        sa.Column("new_owner_name", sa.String(255), nullable=True),
        sa.Column("arr", sa.Float, nullable=True),
        sa.Column("calculated_arr", sa.Float, nullable=True),
        sa.Column("hierarchy_bookings_arr_converted", sa.Float, nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_accounts_build_parent", "accounts", ["build_id", "is_parent"])
    op.create_index("ix_accounts_build_sfdc", "accounts", ["build_id", "sfdc_account_id"])

    op.create_table(
        "clash_resolutions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("clash_key", sa.String(1024), nullable=False),
        sa.Column("sfdc_account_id", sa.String(64), nullable=False),
        sa.Column("account_name", sa.String(255), nullable=True),
        sa.Column("build_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("build_ids", sa.JSON, nullable=False),
        sa.Column("resolution_type", sa.String(32), nullable=False),
        sa.Column("proposed_resolution", sa.Text, nullable=False),
        sa.Column("resolution_rationale", sa.Text, nullable=False),
        sa.Column("resolved_owner_id", sa.String(255), nullable=True),
        sa.Column("resolved_owner_name", sa.String(255), nullable=True),
        sa.Column("previous_assignments", sa.JSON, nullable=False),
        sa.Column("resolved_by", sa.String(255), nullable=False),
        sa.Column(
            "resolved_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_clash_resolutions_clash_key", "clash_resolutions", ["clash_key"]
    )
    op.create_index(
        "ix_clash_resolutions_sfdc_account_id", "clash_resolutions", ["sfdc_account_id"]
    )

    op.create_table(
        "api_keys",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("key_prefix", sa.String(8), nullable=False),
        sa.Column("key_hash", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("region", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("request_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_api_keys_key_hash", "api_keys", ["key_hash"], unique=True)
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"])


def downgrade() -> None:
    op.drop_table("api_keys")
    op.drop_table("clash_resolutions")
    op.drop_table("accounts")
    op.drop_table("builds")
    op.execute("DROP TYPE IF EXISTS user_role")
    op.execute("DROP TYPE IF EXISTS build_status")
