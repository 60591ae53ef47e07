"""Staff directory ORM model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from hrms.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StaffMember(Base):
    """A person who can own leave requests, optionally linked to a login."""

    __tablename__ = "staff_members"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(sa.Integer, unique=True)
    full_name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(sa.String(255))
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True, server_default=sa.true(),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_utcnow,
        server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=_utcnow,
        server_default=sa.func.now(),
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<StaffMember {self.id} {self.full_name!r}>"
