"""
Xero OAuth routes.

GET /auth/xero   - redirect the signed-in caller to Xero
GET /callback    - finish the grant, store the connection, redirect back

SECURITY: the callback only accepts a state matching the signed-in caller.
A rejected grant or a grant without organizations sends the browser back
to the app flagged as not connected; a bad state is rejected outright.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse

from prodit.api.dependencies.providers import get_connection_service
from prodit.credentials.errors import NoTenantFoundError, ReauthorizationRequired
from prodit.platform.caller_context import CallerIdentity, get_caller
from prodit.services.xero_connection_service import (
    XeroConnectionService,
    connected_redirect,
    failed_redirect,
)

router = APIRouter(tags=["xero-auth"])


@router.get("/auth/xero")
async def start_xero_authorization(
    request: Request,
    caller: CallerIdentity = Depends(get_caller),
    service: XeroConnectionService = Depends(get_connection_service),
):
    url = service.authorization_url(caller, request.app.state.settings.redirect_uri)
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/callback")
async def xero_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    caller: CallerIdentity = Depends(get_caller),
    service: XeroConnectionService = Depends(get_connection_service),
):
    """
    Xero redirects here after the user approves access.

    A bad state renders through the standard error handler.
    """
    try:
        await service.complete_authorization(
            caller,
            code=code,
            state=state,
            redirect_uri=request.app.state.settings.redirect_uri,
        )
    except (ReauthorizationRequired, NoTenantFoundError) as exc:
        return RedirectResponse(failed_redirect(caller, exc.code), status_code=status.HTTP_302_FOUND)
    return RedirectResponse(connected_redirect(caller), status_code=status.HTTP_302_FOUND)
