from __future__ import annotations

from typing import Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, Header, Path, Query, Request
from pydantic import BaseModel

from medicalink.api import policies
from medicalink.api.schemas import (
    AdminResetPasswordRequest,
    CreateStaffAccountRequest,
    Envelope,
    LoginRequest,
    LoginResponse,
    LogoutAllResponse,
    MessageResponse,
    PasswordChangeRequest,
    PasswordResetRequest,
    ProfileResponse,
    StaffAccountListResponse,
    StaffAccountResponse,
    StaffStatisticsResponse,
    TokenPairResponse,
    TokenRefreshRequest,
)
from medicalink.logging import get_correlation_id, get_logger
from medicalink.service.errors import ForbiddenError
from medicalink.service.guards import AuthContext, RoutePolicy
from medicalink.service.runtime import Runtime
from medicalink.storage.models import StaffRole

logger = get_logger(__name__)

router = APIRouter()


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def guarded(policy: RoutePolicy) -> Callable[..., Awaitable[Optional[AuthContext]]]:
    """Build the dependency that runs ``policy`` before the route handler."""

    async def dependency(
        request: Request,
        authorization: Optional[str] = Header(None),
    ) -> Optional[AuthContext]:
        runtime = get_runtime(request)
        ctx = await runtime.guard.run(
            policy,
            client_ip=_client_ip(request),
            authorization=authorization,
        )
        request.state.auth = ctx
        return ctx

    return dependency


def _ok(data: BaseModel) -> Envelope:
    envelope = Envelope(status="ok", data=data.model_dump(mode="json", by_alias=True))
    request_id = get_correlation_id()
    if request_id:
        envelope.request_id = request_id
    return envelope


@router.post("/auth/login", response_model=Envelope, tags=["auth"])
async def login(
    body: LoginRequest,
    request: Request,
    _: None = Depends(guarded(policies.LOGIN)),
):
    """Authenticate staff with email and password.

    Raises:
        401: If credentials are invalid
        429: If rate limit exceeded for this client
    """
    result = await get_runtime(request).auth.login(body.email, body.password)
    return _ok(
        LoginResponse(
            token=result.token,
            refresh_token=result.refresh_token,
            token_expires=result.token_expires,
            user=StaffAccountResponse.from_profile(result.user),
        )
    )


@router.post("/auth/refresh", response_model=Envelope, tags=["auth"])
async def refresh_tokens(
    body: TokenRefreshRequest,
    request: Request,
    _: None = Depends(guarded(policies.REFRESH)),
):
    pair = await get_runtime(request).auth.refresh(body.refresh_token)
    return _ok(
        TokenPairResponse(
            token=pair.token,
            refresh_token=pair.refresh_token,
            token_expires=pair.token_expires,
        )
    )


@router.post("/auth/logout", response_model=Envelope, tags=["auth"])
async def logout(
    request: Request,
    principal: AuthContext = Depends(guarded(policies.LOGOUT)),
):
    await get_runtime(request).auth.logout(principal.session_id, principal.token)
    return _ok(MessageResponse(message="Logged out successfully"))


@router.post("/auth/logout-all", response_model=Envelope, tags=["auth"])
async def logout_all(
    request: Request,
    principal: AuthContext = Depends(guarded(policies.LOGOUT_ALL)),
):
    """End every session of the caller; issued access tokens are not blacklisted."""
    revoked = await get_runtime(request).auth.logout_all(principal.user_id)
    return _ok(LogoutAllResponse(message="Logged out from all devices", revoked=revoked))


@router.get("/auth/profile", response_model=Envelope, tags=["auth"])
async def profile(
    request: Request,
    principal: AuthContext = Depends(guarded(policies.PROFILE)),
):
    account = get_runtime(request).accounts.get(principal.user_id)
    return _ok(
        ProfileResponse(
            **StaffAccountResponse.from_profile(account).model_dump(),
            session_id=principal.session_id,
        )
    )


@router.post("/auth/change-password", response_model=Envelope, tags=["auth"])
async def change_password(
    body: PasswordChangeRequest,
    request: Request,
    principal: AuthContext = Depends(guarded(policies.CHANGE_PASSWORD)),
):
    get_runtime(request).accounts.change_password(
        principal.user_id,
        body.old_password,
        body.new_password,
        body.confirm_password,
    )
    return _ok(MessageResponse(message="Password changed successfully"))


@router.post("/auth/reset-password", response_model=Envelope, tags=["auth"])
async def reset_password(
    body: PasswordResetRequest,
    request: Request,
    _: None = Depends(guarded(policies.RESET_PASSWORD)),
):
    message = get_runtime(request).accounts.request_password_reset(body.email)
    return _ok(MessageResponse(message=message))


@router.post("/staff-accounts", response_model=Envelope, status_code=201, tags=["staff"])
async def create_staff_account(
    body: CreateStaffAccountRequest,
    request: Request,
    principal: AuthContext = Depends(guarded(policies.STAFF_CREATE)),
):
    account = get_runtime(request).accounts.create(
        body.email, body.full_name, body.password, body.role.value
    )
    logger.info("staff_account_created_by", actor_id=principal.user_id, user_id=account.id)
    return _ok(StaffAccountResponse.from_profile(account))


@router.get("/staff-accounts", response_model=Envelope, tags=["staff"])
async def list_staff_accounts(
    request: Request,
    deleted: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
    principal: AuthContext = Depends(guarded(policies.STAFF_READ)),
):
    if deleted and principal.role != StaffRole.SUPER_ADMIN.value:
        raise ForbiddenError("Insufficient role")
    accounts = get_runtime(request).accounts.list_accounts(deleted=deleted, limit=limit)
    return _ok(
        StaffAccountListResponse(
            items=[StaffAccountResponse.from_profile(acct) for acct in accounts],
            total=len(accounts),
        )
    )


@router.get("/staff-accounts/statistics", response_model=Envelope, tags=["staff"])
async def staff_statistics(
    request: Request,
    _: AuthContext = Depends(guarded(policies.STAFF_STATISTICS)),
):
    return _ok(StaffStatisticsResponse(**get_runtime(request).accounts.statistics()))


@router.get("/staff-accounts/{account_id}", response_model=Envelope, tags=["staff"])
async def get_staff_account(
    request: Request,
    account_id: str = Path(..., max_length=64),
    _: AuthContext = Depends(guarded(policies.STAFF_READ)),
):
    return _ok(StaffAccountResponse.from_profile(get_runtime(request).accounts.get(account_id)))


@router.post("/staff-accounts/{account_id}/reset-password", response_model=Envelope, tags=["staff"])
async def admin_reset_password(
    body: AdminResetPasswordRequest,
    request: Request,
    account_id: str = Path(..., max_length=64),
    _: AuthContext = Depends(guarded(policies.STAFF_RESET_PASSWORD)),
):
    get_runtime(request).accounts.admin_reset_password(
        account_id, body.new_password, body.confirm_password
    )
    return _ok(MessageResponse(message="Password reset successfully"))


@router.delete("/staff-accounts/{account_id}", response_model=Envelope, tags=["staff"])
async def delete_staff_account(
    request: Request,
    account_id: str = Path(..., max_length=64),
    principal: AuthContext = Depends(guarded(policies.STAFF_DELETE)),
):
    """Soft-delete an account and end its sessions."""
    runtime = get_runtime(request)
    runtime.accounts.admin_delete(account_id, principal.user_id)
    await runtime.auth.logout_all(account_id)
    return _ok(MessageResponse(message="Staff account deleted successfully"))


@router.post("/staff-accounts/{account_id}/restore", response_model=Envelope, tags=["staff"])
async def restore_staff_account(
    request: Request,
    account_id: str = Path(..., max_length=64),
    _: AuthContext = Depends(guarded(policies.STAFF_RESTORE)),
):
    get_runtime(request).accounts.restore(account_id)
    return _ok(MessageResponse(message="Staff account restored successfully"))
