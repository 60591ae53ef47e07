"""Leave authorization policy.

Every leave and category entry point asks this module, and only this
module, whether the caller may act. Roles listed in ``ADMIN_ROLES`` are
admin-equivalent; everyone else is self-service and confined to their
own staff record.
"""

from __future__ import annotations

from typing import Optional

from hrms.auth.identity import Identity
from hrms.common.exceptions import ForbiddenException, NotFoundException
from hrms.config import settings


def is_admin(identity: Identity) -> bool:
    """True when the caller holds any admin-equivalent role."""
    return not identity.roles.isdisjoint(settings.admin_roles)


def require_admin(identity: Identity) -> None:
    if not is_admin(identity):
        raise ForbiddenException()


def require_owner_or_admin(identity: Identity, staff_member_id: int) -> None:
    """Allow admins, or the caller acting on their own staff record."""
    if is_admin(identity):
        return
    if identity.staff_member_id is None or identity.staff_member_id != staff_member_id:
        raise ForbiddenException()


def scoped_staff_member_id(
    identity: Identity,
    requested: Optional[int],
) -> Optional[int]:
    """
    Staff filter to apply to a listing or aggregate.

    Admins get what they asked for (``None`` means everyone). Self-service
    callers always get their own id, whatever they asked for; ``None`` here
    means they have no staff record and must see nothing.
    """
    if is_admin(identity):
        return requested
    return identity.staff_member_id


def resolve_target_staff(identity: Identity, requested: Optional[int]) -> int:
    """
    Staff member a write (or single-staff read) is about.

    Omitted → the caller's own record. Naming someone else requires an
    admin-equivalent role.
    """
    if requested is None:
        if identity.staff_member_id is None:
            raise NotFoundException("StaffMember", f"user:{identity.user_id}")
        return identity.staff_member_id
    require_owner_or_admin(identity, requested)
    return requested
