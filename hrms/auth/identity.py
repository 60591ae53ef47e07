"""Bearer-token identity resolution.

Tokens are issued by the surrounding platform; the engine only verifies
them and maps the subject to a staff record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from hrms.config import settings
from hrms.database import get_db
from hrms.staff.service import StaffDirectory


@dataclass(frozen=True)
class Identity:
    """The authenticated caller as seen by the leave engine."""

    user_id: int
    staff_member_id: Optional[int] = None
    roles: frozenset[str] = field(default_factory=frozenset)


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


def decode_access_token(token: str) -> dict:
    """Verify signature, expiry and token type; return the claims."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")
    return payload


async def get_current_identity(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """Validate the JWT and resolve the caller's staff record."""
    payload = decode_access_token(_extract_bearer(request))

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    raw_roles = payload.get("roles") or []
    if isinstance(raw_roles, str):
        raw_roles = [raw_roles]
    roles = frozenset(str(r).strip().lower() for r in raw_roles)

    staff = await StaffDirectory.find_by_user(db, user_id)
    identity = Identity(
        user_id=user_id,
        staff_member_id=staff.id if staff else None,
        roles=roles,
    )
    request.state.identity = identity
    return identity
