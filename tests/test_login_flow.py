"""Flow controller tests against the real collaborators and a fake Google."""
import json
from urllib.parse import parse_qs, urlsplit

import pytest
from sqlalchemy import func, select

from dripcore.models.user import User
from dripcore.services.identity_reconciler import IdentityReconciler
from dripcore.services.jwt_service import JWTService
from dripcore.services.login_flow import FlowState, GoogleLoginFlow
from dripcore.services.state_service import StateSigner
from dripcore.services.user_service import UserService


def make_flow(settings, provider, session, store_timeout=2.0):
    return GoogleLoginFlow(
        settings=settings,
        provider=provider,
        reconciler=IdentityReconciler(UserService(session, timeout=store_timeout, retry_backoff=0)),
        issuer=JWTService(settings),
        state_signer=StateSigner(settings),
    )


@pytest.fixture
def flow(settings, provider, db):
    return make_flow(settings, provider, db)


def returned_state(initiated):
    return parse_qs(urlsplit(initiated.redirect_url).query)["state"][0]


async def test_initiate_points_at_google(flow, settings):
    initiated = flow.initiate()

    assert initiated.state is FlowState.AWAITING_PROVIDER_REDIRECT
    assert initiated.redirect_url.startswith(settings.GOOGLE_AUTHORIZE_URL)
    assert initiated.state_cookie


async def test_successful_callback_issues_credential(flow, settings):
    initiated = flow.initiate()

    result = await flow.handle_callback(
        code="auth-code-1",
        error=None,
        state=returned_state(initiated),
        state_cookie=initiated.state_cookie,
    )

    assert result.succeeded
    assert result.user.google_id == "g-100"
    claims = JWTService(settings).verify(result.credential.token)
    assert claims.user_id == result.user.id

    url = urlsplit(result.redirect_url)
    assert f"{url.scheme}://{url.netloc}{url.path}" == "http://localhost:3000/auth/callback"
    query = parse_qs(url.query)
    assert query["token"] == [result.credential.token]
    user_payload = json.loads(query["user"][0])
    assert user_payload == {
        "id": result.user.id,
        "username": "Ada Lovelace",
        "email": "a@x.com",
        "avatar_url": "https://lh3.googleusercontent.com/a/ada",
    }


async def test_pkce_verifier_reaches_token_endpoint(flow, fake_google):
    initiated = flow.initiate()
    await flow.handle_callback("auth-code-1", None, returned_state(initiated), initiated.state_cookie)

    assert fake_google.token_requests[0]["code_verifier"]


async def test_denied_consent_fails_without_contacting_google(flow, fake_google):
    initiated = flow.initiate()

    result = await flow.handle_callback(
        code=None,
        error="access_denied",
        state=returned_state(initiated),
        state_cookie=initiated.state_cookie,
    )

    assert result.state is FlowState.REDIRECTING_FAILURE
    assert result.redirect_url == "http://localhost:3000/login"
    assert result.credential is None
    assert result.error_code == "provider_rejected"
    assert fake_google.token_requests == []


async def test_forged_state_is_rejected(flow, fake_google):
    initiated = flow.initiate()

    result = await flow.handle_callback("auth-code-1", None, "attacker-state", initiated.state_cookie)

    assert result.error_code == "provider_rejected"
    assert fake_google.token_requests == []


async def test_missing_code_is_rejected(flow):
    initiated = flow.initiate()

    result = await flow.handle_callback(None, None, returned_state(initiated), initiated.state_cookie)

    assert result.state is FlowState.REDIRECTING_FAILURE


async def test_incomplete_profile_fails(flow, fake_google, db):
    fake_google.profile.pop("email")
    initiated = flow.initiate()

    result = await flow.handle_callback("auth-code-1", None, returned_state(initiated), initiated.state_cookie)

    assert result.error_code == "profile_incomplete"
    assert await db.scalar(select(func.count()).select_from(User)) == 0


async def test_store_timeouts_fail_without_creating_a_user(settings, provider, hanging_session):
    flow = make_flow(settings, provider, hanging_session, store_timeout=0.01)
    initiated = flow.initiate()

    result = await flow.handle_callback("auth-code-1", None, returned_state(initiated), initiated.state_cookie)

    assert result.state is FlowState.REDIRECTING_FAILURE
    assert result.error_code == "store_unavailable"
    assert result.redirect_url == "http://localhost:3000/login"
    assert hanging_session.execute_calls == 2
    assert hanging_session.added == []


async def test_rejected_store_statement_fails_the_flow(settings, provider, broken_session):
    flow = make_flow(settings, provider, broken_session)
    initiated = flow.initiate()

    result = await flow.handle_callback("auth-code-1", None, returned_state(initiated), initiated.state_cookie)

    assert result.state is FlowState.REDIRECTING_FAILURE
    assert result.error_code == "store_failed"
    assert result.redirect_url == "http://localhost:3000/login"
    assert result.credential is None
    assert broken_session.execute_calls == 1
