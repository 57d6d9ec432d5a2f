"""
Orchestrates the two HTTP legs of "Sign in with Google".

initiate:  Idle -> AwaitingProviderRedirect
callback:  AwaitingCallback -> Reconciling -> Issuing -> Redirecting(success)
           any failure                              -> Redirecting(failure)

Nothing is kept server-side between the legs; the signed state cookie is
the only correlation.
"""
import enum
import json
import uuid
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import quote, urlencode

from dripcore.config import Settings
from dripcore.errors import AuthFlowError, ProviderRejected, StoreError
from dripcore.logging_config import get_logger
from dripcore.models.user import User
from dripcore.routes.metrics import track_login
from dripcore.sentry_config import capture_exception
from dripcore.services.google_provider import GoogleProvider
from dripcore.services.identity_reconciler import IdentityReconciler
from dripcore.services.jwt_service import Credential, JWTService
from dripcore.services.state_service import PendingAuthorization, StateSigner

log = get_logger(component="login_flow")


class FlowState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_PROVIDER_REDIRECT = "awaiting_provider_redirect"
    AWAITING_CALLBACK = "awaiting_callback"
    RECONCILING = "reconciling"
    ISSUING = "issuing"
    REDIRECTING_SUCCESS = "redirecting_success"
    REDIRECTING_FAILURE = "redirecting_failure"


@dataclass(frozen=True)
class InitiateResult:
    redirect_url: str
    state_cookie: str
    state: FlowState = FlowState.AWAITING_PROVIDER_REDIRECT


@dataclass(frozen=True)
class CallbackResult:
    state: FlowState
    redirect_url: str
    user: User | None = None
    credential: Credential | None = None
    error_code: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is FlowState.REDIRECTING_SUCCESS


class GoogleLoginFlow:

    def __init__(
        self,
        settings: Settings,
        provider: GoogleProvider,
        reconciler: IdentityReconciler,
        issuer: JWTService,
        state_signer: StateSigner,
    ):
        self.frontend_url = settings.FRONTEND_URL.rstrip("/")
        self.provider = provider
        self.reconciler = reconciler
        self.issuer = issuer
        self.state_signer = state_signer

    @property
    def failure_url(self) -> str:
        return f"{self.frontend_url}/login"

    def success_url(self, credential: Credential, user: User) -> str:
        query = urlencode(
            {
                "token": credential.token,
                "user": json.dumps(user.to_public_dict(), separators=(",", ":")),
            },
            quote_via=quote,
        )
        return f"{self.frontend_url}/auth/callback?{query}"

    def initiate(self, requested_scopes: Iterable[str] | None = None) -> InitiateResult:
        """Start a login: consent URL plus the signed cookie binding it to this browser."""
        request = self.provider.begin_authorization(requested_scopes)
        cookie = self.state_signer.dumps(
            PendingAuthorization(state=request.state, code_verifier=request.code_verifier)
        )
        log.info("flow_transition", from_state=FlowState.IDLE.value,
                 to_state=FlowState.AWAITING_PROVIDER_REDIRECT.value)
        return InitiateResult(redirect_url=request.url, state_cookie=cookie)

    async def handle_callback(
        self,
        code: str | None,
        error: str | None,
        state: str | None,
        state_cookie: str | None,
    ) -> CallbackResult:
        """
        Finish a login from Google's redirect back.

        Never raises for expected failures: every AuthFlowError becomes a
        redirect to the login page without a credential.
        """
        flow_log = log.bind(flow_id=uuid.uuid4().hex[:12])
        current = FlowState.AWAITING_CALLBACK

        try:
            if error:
                raise ProviderRejected(f"provider returned error={error}")
            pending = self.state_signer.check(state_cookie, state)
            if not code:
                raise ProviderRejected("callback carried no authorization code")

            current = self._transition(flow_log, current, FlowState.RECONCILING)
            profile = await self.provider.complete_authorization(code, pending.code_verifier or None)
            user = await self.reconciler.reconcile(profile)
        except StoreError as e:
            flow_log.error("identity_store_failed", state=current.value, error_code=e.code, error=e.message)
            capture_exception(e)
            return self._fail(flow_log, current, e)
        except AuthFlowError as e:
            return self._fail(flow_log, current, e)

        current = self._transition(flow_log, current, FlowState.ISSUING)
        credential = self.issuer.issue(user)

        self._transition(flow_log, current, FlowState.REDIRECTING_SUCCESS, user_id=user.id)
        track_login("success")
        return CallbackResult(
            state=FlowState.REDIRECTING_SUCCESS,
            redirect_url=self.success_url(credential, user),
            user=user,
            credential=credential,
        )

    def _fail(self, flow_log, current: FlowState, error: AuthFlowError) -> CallbackResult:
        self._transition(flow_log, current, FlowState.REDIRECTING_FAILURE,
                         error_code=error.code, reason=error.message)
        track_login(error.code)
        return CallbackResult(
            state=FlowState.REDIRECTING_FAILURE,
            redirect_url=self.failure_url,
            error_code=error.code,
        )

    @staticmethod
    def _transition(flow_log, current: FlowState, target: FlowState, **context) -> FlowState:
        flow_log.info("flow_transition", from_state=current.value, to_state=target.value, **context)
        return target
