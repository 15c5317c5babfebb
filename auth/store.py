"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account is the mapper.
Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Soft delete:
  soft_delete() stamps deleted_at; rows are never removed. Lookups exclude
  deleted rows unless include_deleted=True is passed, which only the identity
  normalizer does (to resurrect an account in place).

  email is UNIQUE across the whole table, deleted rows included. Resurrection
  reuses the existing row, so the constraint never blocks a re-registration
  and a live duplicate is impossible. restore() only touches a row that is
  still deleted, so two concurrent resurrections cannot both win.

  nickname is UNIQUE as well (NULLs allowed, any number of them).

Errors:
  A database that cannot be reached surfaces as InternalError. IntegrityError
  passes through unchanged: callers turn unique-constraint violations into
  ConflictError or a re-read.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import InternalError
from auth.models import LOCAL_SOURCE, Account
from core.dates import now_iso

logger = logging.getLogger("budgetkeeper.auth.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'budgetkeeper_accounts.db'}"

# Columns a caller may set through create()/update(). id and the timestamps
# are owned by the store.
_MUTABLE_FIELDS = frozenset(
    {
        "email",
        "secret_hash",
        "identity_source",
        "display_name",
        "nickname",
        "birthdate",
        "age",
        "gender",
        "deleted_at",
    }
)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("secret_hash", Text),
    Column("identity_source", String(20), nullable=False, server_default=LOCAL_SOURCE),
    Column("display_name", String(255), nullable=False),
    Column("nickname", String(255), unique=True),
    Column("birthdate", String(10)),
    Column("age", Integer),
    Column("gender", String(20)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32)),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore()
        account = store.create({"email": "a@x.com", "display_name": "A", "secret_hash": h})
        same = store.find_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.error("Account store unavailable: %s", type(exc).__name__)
            raise InternalError("Account store unavailable") from exc

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str, include_deleted: bool = False) -> Account | None:
        """Look up an account by exact (already normalized) email."""
        query = _accounts.select().where(_accounts.c.email == email)
        if not include_deleted:
            query = query.where(_accounts.c.deleted_at.is_(None))
        with self._connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: str) -> Account | None:
        """Look up a live account by id. Soft-deleted accounts are not returned."""
        with self._connect() as conn:
            row = conn.execute(
                _accounts.select().where((_accounts.c.id == account_id) & _accounts.c.deleted_at.is_(None))
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_secret_hash_by_id(self, account_id: str) -> str | None:
        """Return the password hash of a live local-password account.

        Provider-created accounts hold a surrogate hash that is not a
        password; for them (and for unknown or deleted ids) this returns None.
        """
        with self._connect() as conn:
            value = conn.execute(
                select(_accounts.c.secret_hash).where(
                    (_accounts.c.id == account_id)
                    & _accounts.c.deleted_at.is_(None)
                    & (_accounts.c.identity_source == LOCAL_SOURCE)
                )
            ).scalar()
        return value

    def nickname_taken(self, nickname: str, exclude_id: str | None = None) -> bool:
        """True if another row (deleted rows included) already holds this nickname."""
        query = select(_accounts.c.id).where(_accounts.c.nickname == nickname)
        if exclude_id is not None:
            query = query.where(_accounts.c.id != exclude_id)
        with self._connect() as conn:
            return conn.execute(query.limit(1)).first() is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, fields: dict) -> Account:
        """Insert a new account with a fresh UUID and return it.

        Raises sqlalchemy.exc.IntegrityError if the email (or nickname)
        already exists. The identity normalizer catches that as a lost race
        with a concurrent registration.
        """
        values = _checked_fields(fields)
        now = now_iso()
        account_id = str(uuid.uuid4())
        with self._connect() as conn:
            conn.execute(_accounts.insert().values(id=account_id, created_at=now, updated_at=now, **values))
            conn.commit()
        return self._get_any(account_id)

    def update(self, account_id: str, fields: dict) -> Account | None:
        """Update mutable fields (deleted rows included) and return the fresh record.

        Returns None if account_id does not exist.
        """
        values = _checked_fields(fields)
        with self._connect() as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(updated_at=now_iso(), **values)
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self._get_any(account_id)

    def restore(self, account_id: str, fields: dict) -> Account | None:
        """Clear deleted_at and overwrite fields, only if the row is still deleted.

        Returns None when no deleted row matched (someone restored it first).
        """
        values = _checked_fields(fields)
        with self._connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & _accounts.c.deleted_at.is_not(None))
                .values(updated_at=now_iso(), **{**values, "deleted_at": None})
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self._get_any(account_id)

    def soft_delete(self, account_id: str) -> bool:
        """Stamp deleted_at on a live account. Returns False if none matched."""
        now = now_iso()
        with self._connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where((_accounts.c.id == account_id) & _accounts.c.deleted_at.is_(None))
                .values(deleted_at=now, updated_at=now)
            )
            conn.commit()
        return result.rowcount > 0

    def _get_any(self, account_id: str) -> Account | None:
        with self._connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def ping(self) -> bool:
        """Cheap connectivity check for the health endpoint."""
        with self._connect() as conn:
            conn.execute(_accounts.select().limit(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _checked_fields(fields: dict) -> dict:
    unknown = set(fields) - _MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown account fields: {sorted(unknown)!r}")
    return dict(fields)


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        secret_hash=row.secret_hash,
        identity_source=row.identity_source,
        display_name=row.display_name,
        nickname=row.nickname,
        birthdate=row.birthdate,
        age=row.age,
        gender=row.gender,
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )
