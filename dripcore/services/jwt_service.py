"""
Issues and verifies the first-party access credential.

Credentials are stateless HS256 JWTs: validity is decided by signature and
expiry alone, and issuing one never touches the identity store.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from jose import ExpiredSignatureError, JWTError, jwt
from jose.utils import base64url_decode, base64url_encode
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dripcore.config import Settings
from dripcore.errors import CredentialExpired, CredentialInvalid
from dripcore.models.user import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _has_canonical_signature(token: str) -> bool:
    """
    Reject signatures whose base64url text is not the one encoding of its bytes.

    The decoder ignores the unused low bits of the last character, so
    several spellings of one signature would otherwise all verify.
    """
    parts = token.split(".")
    if len(parts) != 3:
        return False
    try:
        segment = parts[2].encode("ascii")
        return base64url_encode(base64url_decode(segment)) == segment
    except ValueError:
        return False


@dataclass(frozen=True)
class Credential:
    token: str
    issued_at: datetime
    expires_at: datetime


class TokenPayload(BaseModel):
    """Claims carried by an issued credential."""
    model_config = ConfigDict(populate_by_name=True)

    sub: str
    user_id: str = Field(alias="userId")
    email: str
    iat: int
    exp: int


class JWTService:
    """Service for creating and verifying access credentials."""

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = _utcnow):
        self.secret_key = settings.JWT_SECRET_KEY
        self.algorithm = settings.JWT_ALGORITHM
        self.lifetime = timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
        self.clock = clock

    def issue(self, user: User) -> Credential:
        """
        Create a credential for a reconciled user.

        Args:
            user: the local account

        Returns:
            Credential holding the encoded token and its validity window
        """
        issued_at = self.clock().replace(microsecond=0)
        expires_at = issued_at + self.lifetime

        payload = {
            "sub": user.id,
            "userId": user.id,
            "email": user.email,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return Credential(token=token, issued_at=issued_at, expires_at=expires_at)

    def verify(self, token: str) -> TokenPayload:
        """
        Verify and decode a credential.

        Raises:
            CredentialExpired: the signature is valid but exp has passed
            CredentialInvalid: bad signature, malformed token or missing claims
        """
        if not _has_canonical_signature(token):
            raise CredentialInvalid("credential rejected")

        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise CredentialExpired("credential expired") from e
        except JWTError as e:
            raise CredentialInvalid("credential rejected") from e

        try:
            return TokenPayload.model_validate(payload)
        except ValidationError as e:
            raise CredentialInvalid("credential claims incomplete") from e
