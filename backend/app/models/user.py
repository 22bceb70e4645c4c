"""User model for applicants and committee staff."""

import enum
from datetime import datetime

from sqlalchemy import String, Boolean, Enum, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class UserRole(str, enum.Enum):
    APPLICANT = "applicant"
    MANAGER = "manager"
    REVIEWER = "reviewer"


STAFF_ROLES = (UserRole.REVIEWER, UserRole.MANAGER)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    first_surname: Mapped[str] = mapped_column(String(100), nullable=False)
    second_surname: Mapped[str | None] = mapped_column(String(100), nullable=True)

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole), default=UserRole.APPLICANT, nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(),
    )

    applications = relationship(
        "Application", back_populates="owner",
        foreign_keys="[Application.owner_id]",
    )

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.first_surname, self.second_surname]
        return " ".join(p for p in parts if p)
