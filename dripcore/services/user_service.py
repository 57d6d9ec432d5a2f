"""
Identity store adapter over the users table.

Every call is bounded by a timeout. Connectivity failures and timeouts are
retried once after a short backoff and then raised as StoreUnavailable.
Any other database error is raised at once as StoreFailed;
uniqueness violations are raised immediately as ConstraintViolation.
"""
import asyncio
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dripcore.errors import ConstraintViolation, StoreFailed, StoreUnavailable
from dripcore.logging_config import get_logger
from dripcore.models.user import User

T = TypeVar("T")

log = get_logger(component="user_store")

# asyncio.TimeoutError is an alias of TimeoutError (an OSError) on 3.11+
_TRANSIENT_ERRORS = (asyncio.TimeoutError, OperationalError, InterfaceError, OSError)

MAX_ATTEMPTS = 2


class UserService:
    """Lookup and creation of users, safe to use from concurrent requests."""

    def __init__(self, db: AsyncSession, timeout: float = 5.0, retry_backoff: float = 0.2):
        self.db = db
        self.timeout = timeout
        self.retry_backoff = retry_backoff

    async def find_user_by_provider_id(self, provider_id: str) -> User | None:
        """
        Get the user linked to a Google subject identifier.

        Args:
            provider_id: Google's stable "sub" claim

        Returns:
            User or None if no account is linked to it
        """
        async def query():
            result = await self.db.execute(select(User).where(User.google_id == provider_id))
            return result.scalar_one_or_none()

        return await self._run("find_user_by_provider_id", query)

    async def find_user_by_id(self, user_id: str) -> User | None:
        async def query():
            result = await self.db.execute(select(User).where(User.id == user_id))
            return result.scalar_one_or_none()

        return await self._run("find_user_by_id", query)

    async def create_user(
        self,
        display_name: str | None,
        email: str,
        provider_id: str | None = None,
        avatar_url: str | None = None,
    ) -> User:
        """
        Insert a new account. password_hash stays empty.

        Raises:
            ConstraintViolation: another row already holds provider_id
            StoreUnavailable: the store could not be reached twice in a row
            StoreFailed: the store rejected the statement
        """
        async def insert():
            user = User(
                username=display_name,
                email=email,
                google_id=provider_id,
                avatar_url=avatar_url,
            )
            self.db.add(user)
            await self.db.commit()
            await self.db.refresh(user)
            return user

        return await self._run("create_user", insert)

    async def _run(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        last_error: BaseException | None = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                return await asyncio.wait_for(call(), timeout=self.timeout)
            except IntegrityError as e:
                await self._rollback()
                raise ConstraintViolation(f"{operation} rejected: {e.orig}") from e
            except _TRANSIENT_ERRORS as e:
                last_error = e
                await self._rollback()
                log.warning(
                    "store_call_failed",
                    operation=operation,
                    attempt=attempt,
                    error=type(e).__name__,
                )
                if attempt < MAX_ATTEMPTS:
                    await asyncio.sleep(self.retry_backoff)
            except SQLAlchemyError as e:
                await self._rollback()
                log.error("store_call_rejected", operation=operation, error=type(e).__name__)
                raise StoreFailed(f"{operation} failed: {type(e).__name__}") from e

        raise StoreUnavailable(f"{operation} failed after {MAX_ATTEMPTS} attempts") from last_error

    async def _rollback(self):
        try:
            await asyncio.wait_for(self.db.rollback(), timeout=self.timeout)
        except (SQLAlchemyError, OSError) as e:
            log.warning("store_rollback_failed", error=type(e).__name__)
