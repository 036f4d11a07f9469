"""
api/routes/v1/users.py -- Account administration endpoints (admin only).

Routes:
  GET   /api/auth/users        -- list all accounts
  PATCH /api/auth/users/{id}   -- change role and/or is_active

Guards:
  - An admin cannot deactivate their own account.
  - The last active admin cannot be deactivated or demoted.

Role changes do not invalidate tokens already issued to the target account;
the new role appears on its next login or refresh. Accounts are never
deleted -- is_active=false is the only way to take one out of service.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import SuccessResponse, UserData, UserOut, UserPatch, UsersData
from auth.audit import entry_for_request
from auth.dependencies import require_admin
from auth.models import Role, TokenClaims
from auth.store import UserStore

logger = logging.getLogger("speciesguard.api.users")

router = APIRouter()


@router.get("/auth/users", response_model=SuccessResponse[UsersData])
def list_users(request: Request, admin: TokenClaims = Depends(require_admin)) -> JSONResponse:
    """List all user accounts ordered by email."""
    store: UserStore = request.app.state.user_store
    users = [UserOut.from_user(u) for u in store.list_users()]
    return JSONResponse(content=SuccessResponse(data=UsersData(users=users)).model_dump(by_alias=True))


@router.patch("/auth/users/{user_id}", response_model=SuccessResponse[UserData])
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    admin: TokenClaims = Depends(require_admin),
) -> JSONResponse:
    """Update a user's role or active status."""
    store: UserStore = request.app.state.user_store

    target = store.get_by_id(user_id)
    if target is None:
        raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "User not found"})

    updates: dict = {}
    removes_admin = target.role == Role.admin.value and target.is_active and (
        (body.role is not None and body.role != Role.admin) or body.is_active is False
    )
    if body.is_active is False and target.id == admin.user_id:
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_ERROR", "message": "You cannot deactivate your own account"},
        )
    if removes_admin and store.count_active_admins() <= 1:
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_ERROR", "message": "Cannot remove the last active admin"},
        )
    if body.role is not None:
        updates["role"] = body.role.value
    if body.is_active is not None:
        updates["is_active"] = body.is_active
    if not updates:
        raise HTTPException(status_code=400, detail={"code": "VALIDATION_ERROR", "message": "No fields to update"})

    store.update_user(user_id, **updates)
    request.app.state.audit_log.record(entry_for_request(request, "user.update", admin.user_id, entity_id=user_id))
    logger.info("Admin user_id=%s updated user_id=%s: %s", admin.user_id, user_id, sorted(updates))

    updated = store.get_by_id(user_id)
    if updated is None:
        raise RuntimeError(f"user {user_id} missing after update")
    return JSONResponse(content=SuccessResponse(data=UserData(user=UserOut.from_user(updated))).model_dump(by_alias=True))
