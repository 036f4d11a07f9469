"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Route and dependency
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are lowercased here as well as at the API layer, so a lookup can
  never miss because of caller casing.

Concurrency:
  create_user() is a plain INSERT. Uniqueness of email is enforced by the
  UNIQUE constraint and surfaces as sqlalchemy.exc.IntegrityError. The
  register route checks for an existing email first and does NOT catch that
  error, so two concurrent registrations racing past the check end with the
  loser seeing a 500, not a 409.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine

from auth.models import Role, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("full_name", String(255)),
    Column("role", String(20), nullable=False, server_default=Role.user.value),
    Column("email_verified", Integer, nullable=False, server_default="0"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
)

# Columns an admin or the account owner may change after creation.
_UPDATABLE_FIELDS = {"role", "is_active", "email_verified", "full_name", "password_hash"}


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by a writer."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite tweaks every store here relies on."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///speciesguard.db")
        uid = store.create_user(User(email="a@b.com", password_hash=hash_password("Secret123")))
        user = store.get_by_email("A@B.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email.lower(),
                    password_hash=user.password_hash,
                    full_name=user.full_name,
                    role=user.role,
                    email_verified=1 if user.email_verified else 0,
                    is_active=1 if user.is_active else 0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: role, is_active, email_verified, full_name, password_hash.
        Booleans are stored as 0/1. Unknown fields raise ValueError.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        for flag in ("is_active", "email_verified"):
            if flag in fields:
                fields[flag] = 1 if fields[flag] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    def mark_email_verified(self, email: str) -> bool:
        """Flag the account owning email as verified. Returns False if no such account."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.email == email.lower()).values(email_verified=1)
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_active_admins(self) -> int:
        """Return the number of active admin users."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_users)
                .where((_users.c.role == Role.admin.value) & (_users.c.is_active == 1))
            ).scalar()
        return result or 0

    def ping(self) -> bool:
        """Run a trivial query; used by the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        full_name=row.full_name,
        role=row.role,
        email_verified=bool(row.email_verified),
        is_active=bool(row.is_active),
        last_login=row.last_login,
        created_at=row.created_at,
    )
