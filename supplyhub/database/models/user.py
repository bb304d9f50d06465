"""
User model with role management.

Users are provisioned by the identity provider; this table only keeps what
the ordering workflow needs to route work and notifications.
"""

import enum
from typing import Optional

from sqlalchemy import Boolean, Enum as SQLEnum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from supplyhub.database.base import BaseModel


class UserRole(str, enum.Enum):
    """User role enumeration for role-based access control."""

    CLIENT = "CLIENT"
    MANAGER = "MANAGER"
    DELIVERY_AGENT = "DELIVERY_AGENT"
    ADMIN = "ADMIN"

    @classmethod
    def from_string(cls, value: str) -> "UserRole":
        """
        Convert string to UserRole enum.

        Raises:
            ValueError: If value is not a valid role
        """
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Invalid role: {value}")

    @property
    def is_staff(self) -> bool:
        """Managers and admins see every quote and delivery."""
        return self in (UserRole.MANAGER, UserRole.ADMIN)


class User(BaseModel):
    """Account of a hotel client, pricing manager, delivery agent or admin."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="Login email address",
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Display name (hotel or person)",
    )

    phone: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )

    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name="user_role", native_enum=False, length=20),
        nullable=False,
        default=UserRole.CLIENT,
        comment="Access role",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    __table_args__ = (
        Index("ix_users_role_active", "role", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
