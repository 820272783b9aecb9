"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. UserStore is the repository;
_row_to_user / _row_to_session / _row_to_reset_token are the mappers.
Service and manager code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  update_user() accepts a mapping of field -> value but only for columns in
  _UPDATABLE_USER_FIELDS. Column names never come from request data.

  sessions and password_reset_tokens are keyed by token_hash. Raw tokens are
  never written to the database.

Deadlines:
  Every call is bounded by timeout seconds (default 5): the SQLite busy
  timeout, the pool checkout timeout, and on PostgreSQL connect_timeout plus
  a server-side statement_timeout. Any SQLAlchemy failure is re-raised as
  StoreError so callers deal with exactly one exception family; a deadline
  that ran out is the StoreTimeout subclass. Nothing is retried here.

DB path: auth/mizon_auth.db unless DATABASE_URL says otherwise.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Index, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.models import ResetToken, Session, User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'mizon_auth.db'}"
_DEFAULT_TIMEOUT = 5.0

# Driver messages that mean the deadline ran out: SQLite busy timeout,
# PostgreSQL statement_timeout cancel, psycopg connect_timeout.
_TIMEOUT_MARKERS = ("database is locked", "statement timeout", "timeout expired")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(254), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("first_name", String(255), nullable=False, server_default=""),
    Column("last_name", String(255), nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("token_hash", String(64), primary_key=True),  # HMAC-SHA256 hex
    Column("user_id", String(36), nullable=False),
    Column("expires_at", String(32), nullable=False),  # ISO 8601 UTC
    Column("created_at", String(32), nullable=False),
    Index("ix_sessions_user_id", "user_id"),
)

_reset_tokens = Table(
    "password_reset_tokens",
    _metadata,
    Column("token_hash", String(64), primary_key=True),
    Column("user_id", String(36), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)

# Columns a profile update or password reset may touch. Anything else in an
# update mapping is a programming error, not user input to be filtered.
_UPDATABLE_USER_FIELDS = frozenset({"email", "first_name", "last_name", "password_hash"})


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Any persistence failure: connection, timeout, constraint, driver."""


class StoreConflict(StoreError):
    """A unique constraint (username, email, token) rejected a write."""


class StoreTimeout(StoreError):
    """The call did not complete within the configured deadline.

    Raised for a pool checkout timeout, a SQLite busy timeout ("database is
    locked"), and a PostgreSQL statement_timeout or connect_timeout.
    """


# ---------------------------------------------------------------------------
# Connection setup
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _connect_args(db_url: str, timeout: float) -> dict:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = timeout
    elif db_url.startswith("postgresql"):
        connect_args["connect_timeout"] = max(1, int(timeout))
        connect_args["options"] = f"-c statement_timeout={int(timeout * 1000)}"
    return connect_args


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_timeout(exc: OperationalError) -> bool:
    message = str(exc.orig).lower()
    return any(marker in message for marker in _TIMEOUT_MARKERS)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User, Session and ResetToken entities.

    Usage:
        store = UserStore()
        user_id = store.insert_user(User(username="alice", email="a@b.co", password_hash=h))
        user = store.find_user_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, timeout: float = _DEFAULT_TIMEOUT) -> None:
        db_url = db_url or _DEFAULT_DB_URL
        self.timeout = timeout
        engine_args: dict = {"connect_args": _connect_args(db_url, timeout)}
        if not db_url.startswith("sqlite"):
            # In-memory SQLite uses SingletonThreadPool, which has no checkout
            # timeout and rejects pool_timeout.
            engine_args["pool_timeout"] = timeout
            engine_args["pool_pre_ping"] = True
        self.engine: Engine = create_engine(db_url, **engine_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    @contextmanager
    def _begin(self) -> Iterator[Connection]:
        """Open a transaction and translate driver failures into StoreError.

        Commits on clean exit, rolls back on any exception.
        """
        try:
            with self.engine.begin() as conn:
                yield conn
        except IntegrityError as exc:
            raise StoreConflict(str(exc.orig)) from exc
        except PoolTimeoutError as exc:
            raise StoreTimeout(f"no connection within {self.timeout}s") from exc
        except OperationalError as exc:
            if _is_timeout(exc):
                raise StoreTimeout(f"gave up after {self.timeout}s: {exc.orig}") from exc
            raise StoreError(str(exc)) from exc
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self._begin() as conn:
                conn.execute(text("SELECT 1"))
        except StoreError:
            return False
        return True

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def insert_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises StoreConflict if the username or email already exists. The
        service checks both up front; this catches the concurrent-signup race.
        """
        user_id = str(uuid.uuid4())
        with self._begin() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    username=user.username,
                    email=user.email,
                    password_hash=user.password_hash,
                    first_name=user.first_name or "",
                    last_name=user.last_name or "",
                    created_at=_now_iso(),
                )
            )
        return user_id

    def get_user(self, user_id: str) -> User | None:
        with self._begin() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_user_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive)."""
        with self._begin() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_user_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive)."""
        with self._begin() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: str, fields: Mapping[str, str]) -> bool:
        """Apply a partial update. Returns False if user_id does not exist.

        Only keys in _UPDATABLE_USER_FIELDS are accepted; unknown keys raise
        ValueError before any SQL runs. Raises StoreConflict if a new email
        collides with another account.
        """
        unknown = set(fields) - _UPDATABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if not fields:
            return self.get_user(user_id) is not None
        with self._begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**dict(fields)))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def insert_session(self, token_hash: str, user_id: str, expires_at: datetime) -> None:
        with self._begin() as conn:
            conn.execute(
                _sessions.insert().values(
                    token_hash=token_hash,
                    user_id=user_id,
                    expires_at=_to_iso(expires_at),
                    created_at=_now_iso(),
                )
            )

    def find_session(self, token_hash: str) -> Session | None:
        """Return the session row whether or not it has expired. Callers check expiry."""
        with self._begin() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token_hash == token_hash)).fetchone()
        return _row_to_session(row) if row is not None else None

    def delete_session(self, token_hash: str) -> bool:
        with self._begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.token_hash == token_hash))
        return result.rowcount > 0

    def delete_sessions_by_user(self, user_id: str) -> int:
        with self._begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
        return result.rowcount

    def count_sessions(self, user_id: str) -> int:
        """Test helper: number of session rows for user_id, expired ones included."""
        with self._begin() as conn:
            rows = conn.execute(select(_sessions.c.token_hash).where(_sessions.c.user_id == user_id)).fetchall()
        return len(rows)

    # ------------------------------------------------------------------
    # Password reset tokens
    # ------------------------------------------------------------------

    def insert_reset_token(self, token_hash: str, user_id: str, expires_at: datetime) -> None:
        with self._begin() as conn:
            conn.execute(
                _reset_tokens.insert().values(
                    token_hash=token_hash,
                    user_id=user_id,
                    expires_at=_to_iso(expires_at),
                    created_at=_now_iso(),
                )
            )

    def find_and_delete_reset_token(self, token_hash: str) -> ResetToken | None:
        """Atomically claim a reset token. Returns None if absent or already claimed.

        The SELECT and DELETE share one transaction, and the row only counts
        as claimed if this transaction's DELETE removed it. Two concurrent
        callers with the same token cannot both get a row back.
        """
        with self._begin() as conn:
            row = conn.execute(_reset_tokens.select().where(_reset_tokens.c.token_hash == token_hash)).fetchone()
            if row is None:
                return None
            result = conn.execute(_reset_tokens.delete().where(_reset_tokens.c.token_hash == token_hash))
            if result.rowcount == 0:
                return None
        return _row_to_reset_token(row)

    def has_reset_tokens(self, user_id: str) -> bool:
        """Test helper: whether any reset token row exists for user_id."""
        with self._begin() as conn:
            row = conn.execute(
                select(_reset_tokens.c.token_hash).where(_reset_tokens.c.user_id == user_id).limit(1)
            ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired(self, now: datetime | None = None) -> tuple[int, int]:
        """Delete sessions and reset tokens whose expiry has passed.

        Expiry is always enforced at read time; this only keeps the tables
        small. ISO 8601 UTC strings with a fixed offset sort lexically in
        time order, so the comparison runs in SQL. Returns
        (sessions_removed, reset_tokens_removed).
        """
        cutoff = _to_iso(now or datetime.now(timezone.utc))
        with self._begin() as conn:
            sessions = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= cutoff)).rowcount
            tokens = conn.execute(_reset_tokens.delete().where(_reset_tokens.c.expires_at <= cutoff)).rowcount
        return sessions, tokens

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        created_at=row.created_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        token_hash=row.token_hash,
        user_id=row.user_id,
        expires_at=_from_iso(row.expires_at),
        created_at=row.created_at,
    )


def _row_to_reset_token(row) -> ResetToken:
    return ResetToken(
        token_hash=row.token_hash,
        user_id=row.user_id,
        expires_at=_from_iso(row.expires_at),
        created_at=row.created_at,
    )
