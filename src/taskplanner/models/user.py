"""User records referenced by task assignments."""

from __future__ import annotations

from enum import Enum

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .common import TimestampMixin


class UserRole(str, Enum):
    """Roles carried in access tokens."""

    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


class UserBase(SQLModel, table=False):
    """Shared attributes for user models."""

    email: str = Field(
        max_length=320,
        sa_column=sa.Column(
            sa.String(length=320),
            nullable=False,
            unique=True,
        ),
    )
    full_name: str | None = Field(
        default=None,
        max_length=255,
        sa_column=sa.Column(sa.String(length=255), nullable=True),
    )
    is_active: bool = Field(
        default=True,
        sa_column=sa.Column(
            sa.Boolean(),
            nullable=False,
            server_default=sa.true(),
        ),
    )
    role: UserRole = Field(
        default=UserRole.USER,
        sa_column=sa.Column(
            sa.Enum(
                UserRole,
                name="user_role",
                native_enum=False,
                values_callable=lambda enum: [member.value for member in enum],
            ),
            nullable=False,
            server_default=UserRole.USER.value,
        ),
    )


class User(UserBase, TimestampMixin, table=True):
    """Persistent user model.

    Accounts are managed by the identity service; this table only mirrors the
    fields the scheduler needs for assignment and display.
    """

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


__all__ = ["User", "UserBase", "UserRole"]
