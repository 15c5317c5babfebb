"""
auth/identity.py -- Identity normalizer: raw profiles -> canonical accounts.

Every identity source arrives as a RawProfile tagged with its source. One
mapping function per source turns the source-specific claims into a
CanonicalIdentity; resolve_identity() then finds, restores or creates the
account ("find-or-restore").

  source   claims                                    secret
  local    registration form fields                  user password
  google   OIDC userinfo (sub, email, name)          sub (provider subject)
  kakao    /v2/user/me body (id, kakao_account...)   id  (provider subject)

Provider secrets: providers never hand us a password. The subject id is
hashed into secret_hash so the column is never empty, but the account is
stored with identity_source=<provider> and has_local_password is False --
password login and check_password refuse it. The surrogate hash is a
storage convention, not a credential.

A profile without an email (or a provider profile without a subject) means
the provider is misconfigured (wrong scopes). That is InternalError, not a
user error.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError, InternalError
from auth.models import LOCAL_SOURCE, Account, CanonicalIdentity, RawProfile
from auth.passwords import hash_password
from auth.store import AccountStore

logger = logging.getLogger("budgetkeeper.auth.identity")

_PROFILE_ATTRIBUTES = ("nickname", "birthdate", "age", "gender")

_NICKNAME_TAKEN = "That nickname is already taken."


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Per-source mapping functions
# ---------------------------------------------------------------------------


def _require(value, what: str, source: str) -> str:
    if value is None or str(value).strip() == "":
        raise InternalError(f"{source} profile is missing the {what} claim", detail=source)
    return str(value).strip()


def _map_local(claims: dict) -> CanonicalIdentity:
    email = normalize_email(_require(claims.get("email"), "email", LOCAL_SOURCE))
    secret = _require(claims.get("password"), "password", LOCAL_SOURCE)
    attributes = {k: claims[k] for k in _PROFILE_ATTRIBUTES if claims.get(k) is not None}
    if "birthdate" in attributes:
        attributes["birthdate"] = str(attributes["birthdate"])
    return CanonicalIdentity(
        email=email,
        display_name=(claims.get("name") or email.split("@")[0]).strip(),
        secret=secret,
        source=LOCAL_SOURCE,
        attributes=attributes,
    )


def _map_google(claims: dict) -> CanonicalIdentity:
    email = normalize_email(_require(claims.get("email"), "email", "google"))
    subject = _require(claims.get("sub"), "sub", "google")
    display_name = claims.get("name") or claims.get("given_name") or email.split("@")[0]
    return CanonicalIdentity(email=email, display_name=display_name, secret=subject, source="google")


def _map_kakao(claims: dict) -> CanonicalIdentity:
    account = claims.get("kakao_account") or {}
    email = normalize_email(_require(account.get("email"), "email", "kakao"))
    subject = _require(claims.get("id"), "id", "kakao")
    nickname = (account.get("profile") or {}).get("nickname") or (claims.get("properties") or {}).get("nickname")
    display_name = nickname or email.split("@")[0]
    attributes = {"nickname": nickname} if nickname else {}
    return CanonicalIdentity(
        email=email, display_name=display_name, secret=subject, source="kakao", attributes=attributes
    )


_MAPPERS: dict[str, Callable[[dict], CanonicalIdentity]] = {
    LOCAL_SOURCE: _map_local,
    "google": _map_google,
    "kakao": _map_kakao,
}


def canonicalize(profile: RawProfile) -> CanonicalIdentity:
    """Map a tagged raw profile to its canonical (email, display_name, secret) triple."""
    mapper = _MAPPERS.get(profile.source)
    if mapper is None:
        raise InternalError(f"Unknown identity source: {profile.source!r}")
    return mapper(profile.claims)


# ---------------------------------------------------------------------------
# Find-or-restore
# ---------------------------------------------------------------------------


def resolve_identity(store: AccountStore, profile: RawProfile) -> Account:
    """Find, restore or create the account for a raw profile.

    Lookup includes soft-deleted accounts:
      - live account, local source      -> ConflictError (duplicate registration)
      - live account, provider source   -> existing account, unchanged
      - soft-deleted account            -> restored in place (same id), mutable
                                           fields overwritten
      - no account                      -> created

    At most one write per call. Repeated provider logins for the same
    identity are idempotent. Losing a race (another flow created or restored
    the account after our read) ends like a live match.

    Nicknames are unique. A local registration with a taken nickname is a
    ConflictError; a provider nickname that is taken is dropped.
    """
    identity = canonicalize(profile)
    existing = store.find_by_email(identity.email, include_deleted=True)

    if existing is not None and not existing.is_deleted:
        return _handle_live_match(existing, identity)

    fields = _account_fields(identity)
    _claim_nickname(store, fields, identity, exclude_id=existing.id if existing is not None else None)

    if existing is not None:
        try:
            restored = store.restore(existing.id, fields)
        except IntegrityError as exc:
            # Same row, same email: only the nickname can collide here.
            raise ConflictError(_NICKNAME_TAKEN) from exc
        if restored is None:
            # Restored by a concurrent flow after our read.
            return _handle_live_match(_live_winner(store, identity), identity)
        logger.info("Restored soft-deleted account %s via %s", existing.id, identity.source)
        return restored

    try:
        created = store.create(fields)
    except IntegrityError as exc:
        winner = store.find_by_email(identity.email)
        if winner is None:
            # The email is free, so the nickname lost the race.
            raise ConflictError(_NICKNAME_TAKEN) from exc
        return _handle_live_match(winner, identity)
    logger.info("Created account %s via %s", created.id, identity.source)
    return created


def _live_winner(store: AccountStore, identity: CanonicalIdentity) -> Account:
    winner = store.find_by_email(identity.email)
    if winner is None:
        raise InternalError("Account write failed", detail=identity.source)
    return winner


def _claim_nickname(store: AccountStore, fields: dict, identity: CanonicalIdentity, exclude_id: str | None) -> None:
    nickname = fields.get("nickname")
    if nickname is None or not store.nickname_taken(nickname, exclude_id=exclude_id):
        return
    if identity.source == LOCAL_SOURCE:
        raise ConflictError(_NICKNAME_TAKEN)
    fields["nickname"] = None


def _handle_live_match(account: Account, identity: CanonicalIdentity) -> Account:
    if identity.source == LOCAL_SOURCE:
        raise ConflictError("An account with that email already exists.")
    return account


def _account_fields(identity: CanonicalIdentity) -> dict:
    fields = {
        "email": identity.email,
        "display_name": identity.display_name,
        "secret_hash": hash_password(identity.secret),
        "identity_source": identity.source,
        # Resurrection overwrites every profile attribute, clearing stale ones.
        **{k: None for k in _PROFILE_ATTRIBUTES},
    }
    fields.update(identity.attributes)
    return fields
