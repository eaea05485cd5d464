import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional, Set, Tuple, Union

from ...domain.errors import ConcurrentUpdate, DuplicateEmail, StorageError
from ...domain.models import NewUser, User
from ...domain.models.user import ACCOUNT_TYPES, ROLES
from ...domain.ports.persistence import CredentialStore

_USER_COLUMNS = """
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    phone TEXT,
    account_type TEXT NOT NULL CHECK (account_type IN ({account_types})),
    role TEXT NOT NULL CHECK (role IN ({roles})),
    company_info TEXT,
    preferences TEXT NOT NULL DEFAULT '{{}}',
    email_verified INTEGER NOT NULL DEFAULT 0,
    email_verification_token TEXT,
    email_verification_expires TEXT,
    password_reset_token TEXT,
    password_reset_expires TEXT,
    two_factor_enabled INTEGER NOT NULL DEFAULT 0,
    two_factor_secret TEXT,
    two_factor_pending_secret TEXT,
    two_factor_pending_expires TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    is_blocked INTEGER NOT NULL DEFAULT 0,
    blocked_reason TEXT,
    last_login TEXT,
    login_count INTEGER NOT NULL DEFAULT 0,
    failed_login_count INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK ((email_verification_token IS NULL) = (email_verification_expires IS NULL)),
    CHECK ((password_reset_token IS NULL) = (password_reset_expires IS NULL))
""".format(
    account_types=", ".join(f"'{value}'" for value in ACCOUNT_TYPES),
    roles=", ".join(f"'{value}'" for value in ROLES),
)


def _ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _opt_ts(value: Optional[datetime]) -> Optional[str]:
    return _ts(value) if value is not None else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteCredentialStore(CredentialStore):
    """SQLite-backed credential store.

    Each operation that gates a state change on a token, a version or a
    backup code is a single conditional statement, so concurrent callers
    racing on the same row observe exactly one winner through ``rowcount``.
    """

    def __init__(self, path: Union[Path, str]) -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with self._conn:
            self._conn.executescript(
                f"""
                PRAGMA foreign_keys = ON;

                CREATE TABLE IF NOT EXISTS users ({_USER_COLUMNS});

                CREATE INDEX IF NOT EXISTS idx_users_verification_token
                    ON users(email_verification_token);

                CREATE INDEX IF NOT EXISTS idx_users_reset_token
                    ON users(password_reset_token);

                CREATE TABLE IF NOT EXISTS two_factor_backup_codes (
                    user_id INTEGER NOT NULL,
                    code_hash TEXT NOT NULL,
                    used_at TEXT,
                    PRIMARY KEY (user_id, code_hash),
                    FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
                );
                """
            )

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.IntegrityError as exc:
                if "users.email" in str(exc):
                    raise DuplicateEmail() from exc
                raise StorageError("Integrity constraint violated.") from exc
            except sqlite3.Error as exc:
                raise StorageError("Credential store operation failed.") from exc

    # Lookups ----------------------------------------------------------------
    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._fetch_one("SELECT * FROM users WHERE email = ?", (email.strip().lower(),))

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        return self._fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))

    def get_user_by_verification_token(self, token: str) -> Optional[User]:
        return self._fetch_one(
            "SELECT * FROM users WHERE email_verification_token = ?", (token,)
        )

    def get_user_by_reset_token(self, token: str) -> Optional[User]:
        return self._fetch_one("SELECT * FROM users WHERE password_reset_token = ?", (token,))

    # Writes -------------------------------------------------------------------
    def create_user(self, new_user: NewUser) -> User:
        now = self._now()
        company = json.dumps(new_user.company_info) if new_user.company_info is not None else None
        with self._transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO users (
                    email, password_hash, first_name, last_name, phone,
                    account_type, role, company_info, preferences,
                    email_verification_token, email_verification_expires,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, '{}', ?, ?, ?, ?)
                """,
                (
                    new_user.email.strip().lower(),
                    new_user.password_hash,
                    new_user.first_name,
                    new_user.last_name,
                    new_user.phone,
                    new_user.account_type,
                    new_user.role,
                    company,
                    new_user.email_verification_token,
                    _opt_ts(new_user.email_verification_expires),
                    now,
                    now,
                ),
            )
            row = conn.execute("SELECT * FROM users WHERE id = ?", (cur.lastrowid,)).fetchone()
        if not row:
            raise StorageError("Failed to persist user.")
        return self._row_to_user(row)

    def update_user(self, user: User) -> User:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE users
                SET first_name = ?, last_name = ?, phone = ?, account_type = ?, role = ?,
                    company_info = ?, preferences = ?, is_active = ?, is_blocked = ?,
                    blocked_reason = ?, version = version + 1, updated_at = ?
                WHERE id = ? AND version = ?
                """,
                (
                    user.first_name,
                    user.last_name,
                    user.phone,
                    user.account_type,
                    user.role,
                    json.dumps(user.company_info) if user.company_info is not None else None,
                    json.dumps(user.preferences or {}),
                    int(user.is_active),
                    int(user.is_blocked),
                    user.blocked_reason,
                    self._now(),
                    user.id,
                    user.version,
                ),
            )
            if cur.rowcount != 1:
                raise ConcurrentUpdate()
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user.id,)).fetchone()
        return self._row_to_user(row)

    def record_login(self, user_id: int, at: datetime) -> User:
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE users
                SET last_login = ?, login_count = login_count + 1, failed_login_count = 0,
                    version = version + 1, updated_at = ?
                WHERE id = ?
                """,
                (_ts(at), self._now(), user_id),
            )
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise StorageError("User disappeared while recording login.")
        return self._row_to_user(row)

    def record_failed_login(self, user_id: int) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE users SET failed_login_count = failed_login_count + 1 WHERE id = ?",
                (user_id,),
            )

    # Email verification ------------------------------------------------------
    def set_email_verification(
        self, user_id: int, token: Optional[str], expires_at: Optional[datetime]
    ) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE users
                SET email_verification_token = ?, email_verification_expires = ?,
                    version = version + 1, updated_at = ?
                WHERE id = ? AND email_verified = 0
                """,
                (token, _opt_ts(expires_at), self._now(), user_id),
            )

    def mark_email_verified(self, user_id: int) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE users
                SET email_verified = 1, email_verification_token = NULL,
                    email_verification_expires = NULL, version = version + 1, updated_at = ?
                WHERE id = ?
                """,
                (self._now(), user_id),
            )

    def consume_email_verification(self, token: str, now: datetime) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE users
                SET email_verified = 1, email_verification_token = NULL,
                    email_verification_expires = NULL, version = version + 1, updated_at = ?
                WHERE email_verification_token = ? AND email_verification_expires > ?
                """,
                (self._now(), token, _ts(now)),
            )
        return cur.rowcount == 1

    # Password -----------------------------------------------------------------
    def set_password_reset(self, user_id: int, token: str, expires_at: datetime) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE users
                SET password_reset_token = ?, password_reset_expires = ?,
                    version = version + 1, updated_at = ?
                WHERE id = ?
                """,
                (token, _ts(expires_at), self._now(), user_id),
            )

    def consume_password_reset(self, token: str, now: datetime, password_hash: str) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE users
                SET password_hash = ?, password_reset_token = NULL,
                    password_reset_expires = NULL, version = version + 1, updated_at = ?
                WHERE password_reset_token = ? AND password_reset_expires > ?
                """,
                (password_hash, self._now(), token, _ts(now)),
            )
        return cur.rowcount == 1

    def update_password(self, user_id: int, password_hash: str, expected_hash: str) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE users
                SET password_hash = ?, password_reset_token = NULL,
                    password_reset_expires = NULL, version = version + 1, updated_at = ?
                WHERE id = ? AND password_hash = ?
                """,
                (password_hash, self._now(), user_id, expected_hash),
            )
        return cur.rowcount == 1

    # Two-factor -----------------------------------------------------------------
    def begin_two_factor_setup(
        self,
        user_id: int,
        secret: str,
        expires_at: datetime,
        backup_code_hashes: List[str],
    ) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE users
                SET two_factor_pending_secret = ?, two_factor_pending_expires = ?,
                    version = version + 1, updated_at = ?
                WHERE id = ? AND two_factor_enabled = 0
                """,
                (secret, _ts(expires_at), self._now(), user_id),
            )
            if cur.rowcount != 1:
                return False
            conn.execute("DELETE FROM two_factor_backup_codes WHERE user_id = ?", (user_id,))
            conn.executemany(
                "INSERT INTO two_factor_backup_codes (user_id, code_hash) VALUES (?, ?)",
                [(user_id, code_hash) for code_hash in backup_code_hashes],
            )
        return True

    def activate_two_factor(self, user_id: int, pending_secret: str) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE users
                SET two_factor_enabled = 1, two_factor_secret = two_factor_pending_secret,
                    two_factor_pending_secret = NULL, two_factor_pending_expires = NULL,
                    version = version + 1, updated_at = ?
                WHERE id = ? AND two_factor_enabled = 0 AND two_factor_pending_secret = ?
                """,
                (self._now(), user_id, pending_secret),
            )
        return cur.rowcount == 1

    def clear_two_factor(self, user_id: int) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE users
                SET two_factor_enabled = 0, two_factor_secret = NULL,
                    two_factor_pending_secret = NULL, two_factor_pending_expires = NULL,
                    version = version + 1, updated_at = ?
                WHERE id = ?
                """,
                (self._now(), user_id),
            )
            conn.execute("DELETE FROM two_factor_backup_codes WHERE user_id = ?", (user_id,))

    def discard_expired_two_factor_setup(self, user_id: int, now: datetime) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE users
                SET two_factor_pending_secret = NULL, two_factor_pending_expires = NULL,
                    version = version + 1, updated_at = ?
                WHERE id = ? AND two_factor_enabled = 0
                  AND two_factor_pending_expires IS NOT NULL AND two_factor_pending_expires <= ?
                """,
                (self._now(), user_id, _ts(now)),
            )
            if cur.rowcount != 1:
                return False
            conn.execute("DELETE FROM two_factor_backup_codes WHERE user_id = ?", (user_id,))
        return True

    def consume_backup_code(self, user_id: int, code_hash: str, at: datetime) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE two_factor_backup_codes
                SET used_at = ?
                WHERE user_id = ? AND code_hash = ? AND used_at IS NULL
                """,
                (_ts(at), user_id, code_hash),
            )
        return cur.rowcount == 1

    def get_backup_codes(self, user_id: int) -> Tuple[Set[str], Set[str]]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT code_hash, used_at FROM two_factor_backup_codes WHERE user_id = ?",
                (user_id,),
            ).fetchall()
        codes = {row["code_hash"] for row in rows}
        used = {row["code_hash"] for row in rows if row["used_at"] is not None}
        return codes, used

    def count_backup_codes(self, user_id: int) -> Tuple[int, int]:
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total,
                       COALESCE(SUM(CASE WHEN used_at IS NOT NULL THEN 1 ELSE 0 END), 0) AS used
                FROM two_factor_backup_codes
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        return int(row["total"]), int(row["used"])

    # Helpers ------------------------------------------------------------------
    def _fetch_one(self, query: str, params: Tuple[Any, ...]) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute(query, params).fetchone()
        return self._row_to_user(row) if row else None

    @staticmethod
    def _now() -> str:
        return _ts(datetime.now(tz=timezone.utc))

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            password_hash=row["password_hash"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            phone=row["phone"],
            account_type=row["account_type"],
            role=row["role"],
            company_info=json.loads(row["company_info"]) if row["company_info"] else None,
            preferences=json.loads(row["preferences"] or "{}"),
            email_verified=bool(row["email_verified"]),
            email_verification_token=row["email_verification_token"],
            email_verification_expires=_parse_ts(row["email_verification_expires"]),
            password_reset_token=row["password_reset_token"],
            password_reset_expires=_parse_ts(row["password_reset_expires"]),
            two_factor_enabled=bool(row["two_factor_enabled"]),
            two_factor_secret=row["two_factor_secret"],
            two_factor_pending_secret=row["two_factor_pending_secret"],
            two_factor_pending_expires=_parse_ts(row["two_factor_pending_expires"]),
            is_active=bool(row["is_active"]),
            is_blocked=bool(row["is_blocked"]),
            blocked_reason=row["blocked_reason"],
            last_login=_parse_ts(row["last_login"]),
            login_count=row["login_count"],
            failed_login_count=row["failed_login_count"],
            version=row["version"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )
