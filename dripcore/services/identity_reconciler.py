"""
Maps a Google profile onto a local account, creating one on first login.

Accounts are matched by Google subject only. An existing local account
with the same email is never linked automatically.
"""
from typing import Protocol

from dripcore.errors import ConstraintViolation
from dripcore.logging_config import get_logger
from dripcore.models.user import User
from dripcore.routes.metrics import track_account_provisioned
from dripcore.services.google_provider import ExternalProfile

log = get_logger(component="reconciler")


class UserStore(Protocol):
    async def find_user_by_provider_id(self, provider_id: str) -> User | None: ...

    async def create_user(
        self,
        display_name: str | None,
        email: str,
        provider_id: str | None = None,
        avatar_url: str | None = None,
    ) -> User: ...


class IdentityReconciler:

    def __init__(self, store: UserStore):
        self.store = store

    async def reconcile(self, profile: ExternalProfile) -> User:
        """
        Return the account linked to profile.subject_id, creating it if absent.

        Repeat logins return the stored row untouched. A concurrent login for
        the same subject that wins the insert makes ours fail the unique
        constraint; we then return the row it created.
        """
        existing = await self.store.find_user_by_provider_id(profile.subject_id)
        if existing is not None:
            log.info("account_matched", user_id=existing.id)
            return existing

        try:
            user = await self.store.create_user(
                display_name=profile.display_name,
                email=profile.primary_email,
                provider_id=profile.subject_id,
                avatar_url=profile.avatar_url,
            )
        except ConstraintViolation:
            winner = await self.store.find_user_by_provider_id(profile.subject_id)
            if winner is None:
                # Some other constraint refused the insert
                raise
            log.info("account_created_concurrently", user_id=winner.id)
            return winner

        track_account_provisioned()
        log.info("account_provisioned", user_id=user.id)
        return user
