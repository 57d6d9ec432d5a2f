"""
Anti-forgery correlation between the two legs of the Google login.

The initiate leg stores the OAuth state and PKCE verifier in a signed,
short-lived cookie. The callback leg must present the same state in the
query string; the cookie is cleared on every callback so it is single use.
"""
import secrets
from dataclasses import dataclass

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from dripcore.config import Settings
from dripcore.errors import ProviderRejected


@dataclass(frozen=True)
class PendingAuthorization:
    state: str
    code_verifier: str


class StateSigner:

    def __init__(self, settings: Settings):
        self.serializer = URLSafeTimedSerializer(settings.SESSION_SECRET_KEY, salt="google-oauth-state")
        self.max_age = settings.STATE_MAX_AGE_SECONDS

    def dumps(self, pending: PendingAuthorization) -> str:
        return self.serializer.dumps({"state": pending.state, "cv": pending.code_verifier})

    def check(self, cookie_value: str | None, returned_state: str | None) -> PendingAuthorization:
        """
        Validate the callback's state against the signed cookie.

        Raises:
            ProviderRejected: cookie missing, tampered, expired, or state mismatch
        """
        if not cookie_value:
            raise ProviderRejected("missing state cookie")
        if not returned_state:
            raise ProviderRejected("missing state parameter")

        try:
            data = self.serializer.loads(cookie_value, max_age=self.max_age)
        except SignatureExpired as e:
            raise ProviderRejected("state cookie expired") from e
        except BadSignature as e:
            raise ProviderRejected("state cookie tampered") from e

        expected = data.get("state") if isinstance(data, dict) else None
        if not isinstance(expected, str) or not secrets.compare_digest(
            expected.encode(), returned_state.encode()
        ):
            raise ProviderRejected("state mismatch")

        return PendingAuthorization(state=expected, code_verifier=data.get("cv") or "")
