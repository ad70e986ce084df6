"""Shared router dependencies."""
from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.session import get_session
from ..models.user import UserRole
from ..repositories import users as users_repo
from ..services.scope import Caller, deny


async def get_caller(
    x_user_id: str = Header(...),
    x_user_role: UserRole = Header(...),
    session: AsyncSession = Depends(get_session),
) -> Caller:
    """Resolve the identity forwarded by the authentication layer.

    The role header must match the stored role; the session is left without an
    open transaction for the service call that follows.
    """

    async with session.begin():
        user = await users_repo.get_by_id(session, x_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")

    caller = Caller(user_id=user.id, role=x_user_role)
    if user.role != x_user_role:
        raise deny(caller, "role_mismatch")
    return caller
