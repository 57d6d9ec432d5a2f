"""
Authentication dependencies for FastAPI.

Wires the login flow from per-process configuration and per-request
database sessions, and guards routes that require an issued credential.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from dripcore.config import Settings, get_settings
from dripcore.database import get_db
from dripcore.errors import CredentialError
from dripcore.routes.metrics import track_credential_verification
from dripcore.services.google_provider import GoogleProvider
from dripcore.services.identity_reconciler import IdentityReconciler
from dripcore.services.jwt_service import JWTService, TokenPayload
from dripcore.services.login_flow import GoogleLoginFlow
from dripcore.services.state_service import StateSigner
from dripcore.services.user_service import UserService

# auto_error=False so a missing header gets the same 401 as a bad token
security = HTTPBearer(auto_error=False)


def get_google_provider(settings: Settings = Depends(get_settings)) -> GoogleProvider:
    return GoogleProvider(settings)


def get_jwt_service(settings: Settings = Depends(get_settings)) -> JWTService:
    return JWTService(settings)


def get_user_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> UserService:
    return UserService(
        db,
        timeout=settings.STORE_TIMEOUT_SECONDS,
        retry_backoff=settings.STORE_RETRY_BACKOFF_SECONDS,
    )


def get_login_flow(
    settings: Settings = Depends(get_settings),
    provider: GoogleProvider = Depends(get_google_provider),
    users: UserService = Depends(get_user_service),
    issuer: JWTService = Depends(get_jwt_service),
) -> GoogleLoginFlow:
    return GoogleLoginFlow(
        settings=settings,
        provider=provider,
        reconciler=IdentityReconciler(users),
        issuer=issuer,
        state_signer=StateSigner(settings),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    issuer: JWTService = Depends(get_jwt_service),
) -> TokenPayload:
    """
    Dependency that requires a valid issued credential.

    Malformed, expired and forged tokens all get the same 401 response.

    Usage:
        @router.get("/protected")
        async def protected_route(claims: TokenPayload = Depends(get_current_user)):
            ...
    """
    if credentials is None:
        track_credential_verification("missing")
        raise _unauthorized()

    try:
        claims = issuer.verify(credentials.credentials)
    except CredentialError as e:
        track_credential_verification(e.code)
        raise _unauthorized() from e

    track_credential_verification("valid")
    return claims


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
