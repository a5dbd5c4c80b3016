"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Flow and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  email and phone carry UNIQUE constraints. create_user() lets the
  IntegrityError escape so the caller can treat it as a duplicate even when
  two registrations race past the application-level pre-check.

  claim_reset_token() is the only place a reset token is accepted. The
  clearing UPDATE repeats the hash and expiry conditions in its WHERE clause,
  so when two requests find the same row only one UPDATE matches it.

DB URL: Settings.database_url (defaults to grievance_auth.db in the project root).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Float, Integer, MetaData, String, Table, Text, create_engine, event, or_
from sqlalchemy.engine import Engine

from auth.models import User

logger = logging.getLogger("grievance.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("email", String(255), nullable=False, unique=True),  # lower-cased
    Column("phone", String(20), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="citizen"),
    Column("is_verified", Boolean, nullable=False, server_default="0"),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("address", Text),
    Column("location", Text),
    Column("reset_token_hash", String(64), index=True),  # SHA-256 hex, NULL when no reset pending
    Column("reset_token_expires", Float),  # UNIX seconds
    Column("created_at", String(32), nullable=False),
)

# Columns update_user() may touch. Reset fields go through the dedicated
# methods below so they are always written or cleared as a pair.
_UPDATABLE = frozenset({"name", "phone", "hashed_password", "role", "is_verified", "is_active", "address", "location"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers proceed while a write is in flight.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(name="A", email="a@x.com", phone="9999999999", hashed_password=h))
        user = store.get_by_login("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_login(self, identifier: str) -> User | None:
        """Look up a user whose email or phone equals identifier (login form field)."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(or_(_users.c.email == identifier, _users.c.phone == identifier))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email_or_phone(self, email: str, phone: str) -> User | None:
        """Return any user already holding this email OR this phone.

        Registration pre-check. The UNIQUE constraints remain the final word.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(or_(_users.c.email == email, _users.c.phone == phone))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email or phone already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email,
                    phone=user.phone,
                    hashed_password=user.hashed_password,
                    role=user.role,
                    is_verified=user.is_verified,
                    is_active=user.is_active,
                    address=user.address,
                    location=user.location,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Unknown field names raise ValueError rather than being ignored.
        Raises IntegrityError if a new phone collides with another user.
        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if not fields:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def set_reset_token(self, user_id: int, token_hash: str, expires: float) -> None:
        """Record a pending reset (digest + expiry), replacing any earlier one."""
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(reset_token_hash=token_hash, reset_token_expires=expires)
            )
            conn.commit()

    def find_reset_candidate(self, token_hash: str, now: float) -> User | None:
        """Return the user holding an unexpired reset token with this digest."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.reset_token_hash == token_hash) & (_users.c.reset_token_expires > now))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def clear_reset_token(
        self, user_id: int, token_hash: str, now: float, new_hashed_password: str | None = None
    ) -> bool:
        """Clear the reset fields only if this exact unexpired token is still pending.

        When new_hashed_password is given it is written by the same UPDATE, so
        the token is spent if and only if the new password is stored.
        Returns True for the single caller whose UPDATE matched the row.
        """
        values: dict = {"reset_token_hash": None, "reset_token_expires": None}
        if new_hashed_password is not None:
            values["hashed_password"] = new_hashed_password
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(
                    (_users.c.id == user_id)
                    & (_users.c.reset_token_hash == token_hash)
                    & (_users.c.reset_token_expires > now)
                )
                .values(**values)
            )
            conn.commit()
        return result.rowcount == 1

    def claim_reset_token(
        self, token_hash: str, now: float, new_hashed_password: str | None = None
    ) -> User | None:
        """Find and clear a pending reset token in one guarded step.

        Returns the user (reset fields cleared, new hash applied) on success,
        or None when the digest matches nothing, has expired, or was claimed
        by a concurrent request between the lookup and the UPDATE.
        """
        user = self.find_reset_candidate(token_hash, now)
        if user is None:
            return None
        if not self.clear_reset_token(user.id, token_hash, now, new_hashed_password):
            logger.info("Reset token for user_id=%s was claimed concurrently", user.id)
            return None
        user.reset_token_hash = None
        user.reset_token_expires = None
        if new_hashed_password is not None:
            user.hashed_password = new_hashed_password
        return user

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        hashed_password=row.hashed_password,
        role=row.role,
        is_verified=bool(row.is_verified),
        is_active=bool(row.is_active),
        address=row.address,
        location=row.location,
        reset_token_hash=row.reset_token_hash,
        reset_token_expires=row.reset_token_expires,
        created_at=row.created_at,
    )
