"""SQLAlchemy ORM models for BookOps.

Tables:
- builds            : planning cycles, each scoped to a sales region
- accounts          : per-build account rows with current and proposed owners
- clash_resolutions : append-only audit log of clash resolutions
- api_keys          : hashed API keys mapped to a caller identity

Column types are dialect-neutral (``sa.Uuid``, ``sa.JSON``) so the same
metadata runs on PostgreSQL in production and SQLite in the test suite.
"""

from __future__ import annotations

import datetime
import enum
import uuid

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    pass


class BuildStatus(str, enum.Enum):
    """Lifecycle status of a build."""

    DRAFT = "DRAFT"
    IN_REVIEW = "IN_REVIEW"
    FINALIZED = "FINALIZED"


class UserRole(str, enum.Enum):
    """Management roles in the approval chain (FLM → SLM → RevOps)."""

    FLM = "FLM"
    SLM = "SLM"
    REVOPS = "REVOPS"


class Build(Base):
    __tablename__ = "builds"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    status: Mapped[BuildStatus] = mapped_column(
        sa.Enum(BuildStatus, name="build_status"),
        nullable=False,
        default=BuildStatus.DRAFT,
    )
    region: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    owner_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    created_by: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow
    )
    target_date: Mapped[datetime.date | None] = mapped_column(sa.Date, nullable=True)

    accounts: Mapped[list["Account"]] = relationship(
        back_populates="build", cascade="all, delete-orphan"
    )


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        sa.Index("ix_accounts_build_parent", "build_id", "is_parent"),
        sa.Index("ix_accounts_build_sfdc", "build_id", "sfdc_account_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    build_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("builds.id", ondelete="CASCADE"), nullable=False
    )
    sfdc_account_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    account_name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    is_parent: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    parent_id: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)

    owner_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    owner_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    new_owner_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    new_owner_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)

    arr: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    calculated_arr: Mapped[float | None] = mapped_column(sa.Float, nullable=True)
    hierarchy_bookings_arr_converted: Mapped[float | None] = mapped_column(
        sa.Float, nullable=True
    )

    updated_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    build: Mapped[Build] = relationship(back_populates="accounts")


class ClashResolution(Base):
    """Append-only audit row written when a clash is resolved.

    ``clash_key`` identifies the logical clash (account id plus the sorted
    member build ids) so a later detection pass can tell whether the same
    clash was resolved before without re-deriving it from the accounts.
    """

    __tablename__ = "clash_resolutions"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    clash_key: Mapped[str] = mapped_column(sa.String(1024), nullable=False, index=True)
    sfdc_account_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    account_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    # Set only for same-build resolutions
    build_id: Mapped[uuid.UUID | None] = mapped_column(sa.Uuid, nullable=True)
    build_ids: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)
    resolution_type: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    proposed_resolution: Mapped[str] = mapped_column(sa.Text, nullable=False)
    resolution_rationale: Mapped[str] = mapped_column(sa.Text, nullable=False)
    resolved_owner_id: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    resolved_owner_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    previous_assignments: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)
    resolved_by: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    resolved_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow
    )


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    key_prefix: Mapped[str] = mapped_column(sa.String(8), nullable=False)
    key_hash: Mapped[str] = mapped_column(sa.String(64), nullable=False, unique=True, index=True)
    user_id: Mapped[str] = mapped_column(sa.String(255), nullable=False, index=True)
    role: Mapped[UserRole] = mapped_column(sa.Enum(UserRole, name="user_role"), nullable=False)
    region: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    request_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow
    )
    last_used_at: Mapped[datetime.datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
