"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and
services do the work; these classes only own the domain shape.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum

LOCAL_SOURCE = "local"
PROVIDER_SOURCES = ("google", "kakao")


@dataclass
class Account:
    """Canonical user identity record.

    secret_hash is always a bcrypt hash. For accounts created through a
    provider it is the hash of the provider's subject id -- a surrogate, not a
    password. identity_source records where the secret came from, and only
    "local" accounts may log in with a password (see has_local_password).

    deleted_at is the soft-delete marker. A deleted account keeps its row and
    id so a later registration with the same email can resurrect it.
    """

    id: str
    email: str
    display_name: str
    identity_source: str = LOCAL_SOURCE  # "local", "google", "kakao"
    secret_hash: str | None = None
    nickname: str | None = None
    birthdate: str | None = None  # ISO date
    age: int | None = None
    gender: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    deleted_at: str | None = None

    @property
    def has_local_password(self) -> bool:
        return self.identity_source == LOCAL_SOURCE and self.secret_hash is not None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class DeviceFingerprint:
    """Client device derived from the User-Agent header at request time."""

    browser_family: str
    platform_family: str
    version_string: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DeviceFingerprint":
        return cls(
            browser_family=str(data["browser_family"]),
            platform_family=str(data["platform_family"]),
            version_string=str(data["version_string"]),
        )


@dataclass(frozen=True)
class RefreshSession:
    """Value stored in the cache under an account's session key."""

    refresh_token: str
    ip: str
    device: DeviceFingerprint

    def to_dict(self) -> dict:
        return {"refresh_token": self.refresh_token, "ip": self.ip, "device": self.device.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "RefreshSession":
        return cls(
            refresh_token=str(data["refresh_token"]),
            ip=str(data["ip"]),
            device=DeviceFingerprint.from_dict(data["device"]),
        )


@dataclass(frozen=True)
class LoginResult:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of a refresh. refresh_token is set only when rotation is enabled."""

    access_token: str
    refresh_token: str | None = None


@dataclass(frozen=True)
class RawProfile:
    """Tagged identity-source input for the identity normalizer.

    source selects the mapping function; claims is the source-specific payload
    (registration form fields, Google userinfo, or the Kakao /v2/user/me body).
    """

    source: str
    claims: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CanonicalIdentity:
    """Normalized (email, display_name, secret) triple plus profile attributes.

    secret is plaintext here: a user-chosen password for local identities, the
    provider subject id otherwise. It is hashed before it reaches the store.
    """

    email: str
    display_name: str
    secret: str
    source: str
    attributes: dict = field(default_factory=dict)


class SessionState(str, Enum):
    """States of the session orchestrator, logged on each transition."""

    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    REFRESHING = "refreshing"
    TERMINATED = "terminated"
