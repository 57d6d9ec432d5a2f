"""
Google OAuth 2.0 authorization-code exchange.

Builds the consent URL and turns an authorization code into a normalized
ExternalProfile. Google's own response shapes never leave this module.
"""
from dataclasses import dataclass
from typing import Any, Iterable

import httpx
from authlib.common.security import generate_token
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri
from authlib.oauth2.rfc7636 import create_s256_code_challenge

from dripcore.config import Settings
from dripcore.errors import ProfileIncomplete, ProviderRejected
from dripcore.logging_config import get_logger

log = get_logger(component="google_provider")


@dataclass(frozen=True)
class ExternalProfile:
    """Identity asserted by Google for one callback."""
    subject_id: str
    display_name: str
    primary_email: str
    avatar_url: str | None = None


@dataclass(frozen=True)
class AuthorizationRequest:
    """Where to send the browser, plus what the callback must present back."""
    url: str
    state: str
    code_verifier: str


class GoogleProvider:
    """Authorization-code flow against Google with PKCE (S256)."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        # Injected in tests to stand in for Google's endpoints
        self.transport = transport

    @property
    def configured(self) -> bool:
        return self.settings.google_configured

    def begin_authorization(self, requested_scopes: Iterable[str] | None = None) -> AuthorizationRequest:
        """
        Build the Google consent URL.

        Args:
            requested_scopes: scopes to request; "profile" and "email" are always included

        Returns:
            AuthorizationRequest with a fresh state and PKCE verifier
        """
        scopes = list(self.settings.GOOGLE_SCOPES)
        for scope in requested_scopes or ():
            if scope not in scopes:
                scopes.append(scope)

        state = generate_token(32)
        code_verifier = generate_token(64)
        url = prepare_grant_uri(
            self.settings.GOOGLE_AUTHORIZE_URL,
            client_id=self.settings.GOOGLE_CLIENT_ID,
            response_type="code",
            redirect_uri=self.settings.GOOGLE_CALLBACK_URL,
            scope=" ".join(scopes),
            state=state,
            code_challenge=create_s256_code_challenge(code_verifier),
            code_challenge_method="S256",
        )
        return AuthorizationRequest(url=url, state=state, code_verifier=code_verifier)

    async def complete_authorization(self, code: str, code_verifier: str | None = None) -> ExternalProfile:
        """
        Exchange an authorization code and fetch the user's profile.

        Raises:
            ProviderRejected: Google refused the code, timed out or errored
            ProfileIncomplete: the profile has no usable subject or email
        """
        async with self._client() as client:
            try:
                await client.fetch_token(
                    self.settings.GOOGLE_TOKEN_URL,
                    code=code,
                    code_verifier=code_verifier,
                )
                response = await client.get(self.settings.GOOGLE_USERINFO_URL)
            except OAuthError as e:
                log.info("code_exchange_rejected", error=e.error)
                raise ProviderRejected(f"code exchange rejected: {e.error}") from e
            except httpx.TimeoutException as e:
                log.warning("provider_timeout")
                raise ProviderRejected("provider did not answer in time") from e
            except httpx.HTTPError as e:
                log.warning("provider_http_error", error=type(e).__name__)
                raise ProviderRejected("provider request failed") from e
            except ValueError as e:
                log.warning("provider_malformed_response")
                raise ProviderRejected("provider sent a malformed response") from e

        if response.status_code != 200:
            log.info("userinfo_rejected", status_code=response.status_code)
            raise ProviderRejected(f"userinfo returned {response.status_code}")

        try:
            user_info = response.json()
        except ValueError as e:
            raise ProviderRejected("userinfo is not JSON") from e
        return normalize_profile(user_info)

    def _client(self) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self.settings.GOOGLE_CLIENT_ID,
            client_secret=self.settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=self.settings.GOOGLE_CALLBACK_URL,
            code_challenge_method="S256",
            timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            transport=self.transport,
        )


def normalize_profile(user_info: dict[str, Any]) -> ExternalProfile:
    """
    Map a Google userinfo document onto ExternalProfile.

    Accepts both the OpenID Connect shape ("sub", "picture") and the
    legacy v2 shape ("id").
    """
    subject_id = user_info.get("sub") or user_info.get("id")
    if not subject_id:
        raise ProfileIncomplete("profile has no subject identifier")

    email = user_info.get("email")
    if not email:
        raise ProfileIncomplete("profile has no email")
    if user_info.get("email_verified") is False:
        raise ProfileIncomplete("profile email is not verified")

    display_name = user_info.get("name") or email.split("@")[0]

    return ExternalProfile(
        subject_id=str(subject_id),
        display_name=display_name,
        primary_email=email,
        avatar_url=user_info.get("picture"),
    )
