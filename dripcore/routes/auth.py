"""
Authentication routes for Google OAuth.

GET /api/auth/google           -> 302 to Google's consent screen
GET /api/auth/google/callback  -> 302 to the storefront with a credential,
                                  or to its login page on any failure
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from dripcore.config import Settings, get_settings
from dripcore.dependencies.auth import get_current_user, get_login_flow, get_user_service
from dripcore.logging_config import get_logger
from dripcore.services.jwt_service import TokenPayload
from dripcore.services.login_flow import GoogleLoginFlow
from dripcore.services.user_service import UserService

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

log = get_logger(component="auth_routes")


@router.get("/google")
async def login_google(
    settings: Settings = Depends(get_settings),
    flow: GoogleLoginFlow = Depends(get_login_flow),
):
    """
    Redirect the browser to Google with scope "profile email".

    Also sets the signed state cookie the callback checks.
    """
    if not flow.provider.configured:
        log.error("google_login_not_configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google login is not configured"
        )

    result = flow.initiate()

    response = RedirectResponse(url=result.redirect_url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        key=settings.STATE_COOKIE_NAME,
        value=result.state_cookie,
        max_age=settings.STATE_MAX_AGE_SECONDS,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/api/auth",
    )
    return response


@router.get("/google/callback", name="google_callback")
async def google_callback(
    request: Request,
    code: str | None = None,
    error: str | None = None,
    state: str | None = None,
    settings: Settings = Depends(get_settings),
    flow: GoogleLoginFlow = Depends(get_login_flow),
):
    """
    Handle Google's redirect back: exchange, reconcile, issue, redirect.

    The state cookie is cleared whatever the outcome.
    """
    result = await flow.handle_callback(
        code=code,
        error=error,
        state=state,
        state_cookie=request.cookies.get(settings.STATE_COOKIE_NAME),
    )

    response = RedirectResponse(url=result.redirect_url, status_code=status.HTTP_302_FOUND)
    response.delete_cookie(
        key=settings.STATE_COOKIE_NAME,
        path="/api/auth",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )
    return response


@router.get("/me")
async def get_me(
    claims: TokenPayload = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    """Return the public record of the account the credential was issued to."""
    user = await users.find_user_by_id(claims.user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user.to_public_dict()
