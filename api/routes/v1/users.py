"""
api/routes/v1/users.py -- Account lifecycle endpoints.

Routes:
  POST   /api/v1/users                      -- register a local-password account (201)
  POST   /api/v1/users/email-verify?token=  -- verify email; logs the account in
  PATCH  /api/v1/users                      -- update name/nickname (requires auth)
  DELETE /api/v1/users                      -- soft-delete the account (requires auth, 204)

Registration returns the account but issues no tokens. The verification
token goes out through AccountService's sender; following it is what first
logs the account in.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from api.cookies import clear_session_cookies, client_fingerprint
from api.models import AccountResponse, ProfileUpdateRequest, RegisterRequest, TokenResponse
from api.routes.v1.auth import login_response
from auth.accounts import AccountService
from auth.dependencies import get_current_account_id
from auth.models import LOCAL_SOURCE, RawProfile

logger = logging.getLogger("budgetkeeper.api.users")

router = APIRouter()


@router.post("/users", status_code=201, response_model=AccountResponse)
def register(request: Request, body: RegisterRequest) -> AccountResponse:
    """Create a local account, or restore a soft-deleted one with the same email.

    409 if a live account already uses the email.
    """
    accounts: AccountService = request.app.state.accounts
    account = accounts.register(RawProfile(source=LOCAL_SOURCE, claims=body.model_dump()))
    return AccountResponse.from_account(account)


@router.post("/users/email-verify", response_model=TokenResponse)
def verify_email(request: Request, token: str = Query(min_length=1)) -> JSONResponse:
    accounts: AccountService = request.app.state.accounts
    ip, device = client_fingerprint(request)
    return login_response(accounts.verify_email(token, ip, device))


@router.patch("/users", response_model=AccountResponse)
def update_profile(
    request: Request,
    body: ProfileUpdateRequest,
    account_id: str = Depends(get_current_account_id),
) -> AccountResponse:
    """Change display name and/or nickname. Omitted fields are left as they are."""
    accounts: AccountService = request.app.state.accounts
    account = accounts.update_profile(account_id, display_name=body.name, nickname=body.nickname)
    return AccountResponse.from_account(account)


@router.delete("/users", status_code=204)
def delete_account(request: Request, account_id: str = Depends(get_current_account_id)) -> Response:
    """Soft-delete the account, end its refresh session and clear cookies."""
    accounts: AccountService = request.app.state.accounts
    accounts.delete_account(account_id)
    resp = Response(status_code=204)
    clear_session_cookies(resp)
    return resp
