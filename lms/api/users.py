from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from lms.api.access import check_owner, check_owner_or_admin
from lms.api.dependencies import AdminUser, Ctx, CurrentUser, Pagination
from lms.api.schemas import (
    MessageOut,
    Page,
    PasswordChangeIn,
    UserOut,
    UserUpdateIn,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=Page[UserOut])
async def list_users(
    _admin: AdminUser,
    ctx: Ctx,
    paging: Pagination,
    role: str | None = None,
    is_active: Annotated[bool | None, Query(alias="isActive")] = None,
) -> Page[UserOut]:
    page, limit = paging
    users, total = await ctx.user_service.list_users(
        role=role, is_active=is_active, offset=(page - 1) * limit, limit=limit
    )
    return Page[UserOut].build([UserOut.from_domain(u) for u in users], total, page, limit)


@router.get("/{user_id}", response_model=UserOut)
async def get_user(user_id: UUID, principal: CurrentUser, ctx: Ctx) -> UserOut:
    check_owner_or_admin(principal, user_id)
    return UserOut.from_domain(await ctx.user_service.get(user_id))


@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: UUID, payload: UserUpdateIn, principal: CurrentUser, ctx: Ctx
) -> UserOut:
    check_owner_or_admin(principal, user_id)
    user = await ctx.user_service.update_profile(
        user_id, **payload.model_dump(exclude_unset=True)
    )
    return UserOut.from_domain(user)


@router.put("/{user_id}/password", response_model=MessageOut)
async def change_password(
    user_id: UUID, payload: PasswordChangeIn, principal: CurrentUser, ctx: Ctx
) -> MessageOut:
    check_owner(principal, user_id)
    await ctx.user_service.change_password(
        user_id,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    return MessageOut(message="Password updated successfully")


@router.delete("/{user_id}", response_model=MessageOut, status_code=status.HTTP_200_OK)
async def delete_user(user_id: UUID, principal: CurrentUser, ctx: Ctx) -> MessageOut:
    """Soft delete: deactivates the account."""
    check_owner_or_admin(principal, user_id)
    admin_actor_id = principal.uid if principal.is_admin() else None
    await ctx.user_service.deactivate(user_id, admin_actor_id=admin_actor_id)
    return MessageOut(message="User deactivated successfully")
