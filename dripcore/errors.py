"""
Error taxonomy for the Google login flow and issued credentials.

Every failure the flow controller knows how to turn into a failure
redirect derives from AuthFlowError.
"""


class AuthFlowError(Exception):
    """Base class for expected failures in the login flow."""

    code = "auth_failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code


class ProviderRejected(AuthFlowError):
    """User declined consent, the provider refused the code, or state did not match."""

    code = "provider_rejected"


class ProfileIncomplete(AuthFlowError):
    """The provider profile lacks a claim the flow requires (email, subject)."""

    code = "profile_incomplete"


class StoreError(AuthFlowError):
    code = "store_error"


class StoreUnavailable(StoreError):
    """Connectivity failure or timeout talking to the identity store."""

    code = "store_unavailable"


class StoreFailed(StoreError):
    """The store answered with an error that retrying will not fix."""

    code = "store_failed"


class ConstraintViolation(StoreError):
    """A write was refused by a uniqueness constraint."""

    code = "constraint_violation"


class CredentialError(AuthFlowError):
    code = "credential_error"


class CredentialInvalid(CredentialError):
    """Signature mismatch, malformed token or missing claims."""

    code = "credential_invalid"


class CredentialExpired(CredentialError):
    code = "credential_expired"
