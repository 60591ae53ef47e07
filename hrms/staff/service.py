"""Staff directory lookups used by the leave engine."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.common.exceptions import NotFoundException
from hrms.staff.models import StaffMember


class StaffDirectory:
    """Read-only access to staff members."""

    @staticmethod
    async def find_by_user(db: AsyncSession, user_id: int) -> Optional[StaffMember]:
        """Return the active staff record linked to a login, if any."""
        result = await db.execute(
            select(StaffMember).where(
                StaffMember.user_id == user_id,
                StaffMember.is_active.is_(True),
            )
        )
        return result.scalars().first()

    @staticmethod
    async def get(
        db: AsyncSession,
        staff_member_id: int,
        *,
        active_only: bool = True,
        for_update: bool = False,
    ) -> StaffMember:
        """
        Return a staff member or raise NotFoundException.

        With ``for_update`` the row stays locked for the rest of the
        transaction, so every write that checks a staff member's leave for
        overlaps runs one after the other. Dialects without row locks
        (SQLite) ignore the clause.
        """
        query = select(StaffMember).where(StaffMember.id == staff_member_id)
        if active_only:
            query = query.where(StaffMember.is_active.is_(True))
        if for_update:
            query = query.with_for_update()

        staff = (await db.execute(query)).scalars().first()
        if staff is None:
            raise NotFoundException("StaffMember", staff_member_id)
        return staff

    @staticmethod
    async def lock(
        db: AsyncSession,
        staff_member_id: int,
        *,
        active_only: bool = True,
    ) -> StaffMember:
        return await StaffDirectory.get(
            db, staff_member_id, active_only=active_only, for_update=True,
        )
