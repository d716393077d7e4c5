from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field, Column


class User(SQLModel, table=True):
    """Host user record keyed by the matrix key the user logged in as."""

    __tablename__ = "users"

    id: str = Field(primary_key=True)
    full_name: Optional[str] = None
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    last_login_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )


class AuthorizationSettings(SQLModel, table=True):
    """Single-row record describing the shape of the persisted matrix."""

    __tablename__ = "authorization_settings"

    id: int = Field(default=1, primary_key=True)
    project_scoped: bool = Field(default=False)
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class MatrixGrant(SQLModel, table=True):
    """One permission granted to one identity in the persisted matrix."""

    __tablename__ = "matrix_grants"
    __table_args__ = (UniqueConstraint("identity", "permission", name="uq_matrix_grants_identity_permission"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    identity: str = Field(index=True)
    permission: str
