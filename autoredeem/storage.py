"""
Persistent state: a JSON key-value store and the typed ledger on top of it.

Keys used by the ledger:

    redeemed          list of codes that need no further attempts
    failedCodes       list of failed-code records
    history           list of successful redemptions, newest first
    nextAutoRedeemAt  ISO timestamp of the next scheduled sweep
    session           serialized SHiFT session
    config            user preferences
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from .log import log_debug, log_warning
from .models import (
    FailedCodeRecord,
    RedeemedCodeRecord,
    Session,
    UserConfig,
    parse_timestamp,
    utcnow,
)

SCHEMA_VERSION = 1

KEY_REDEEMED = "redeemed"
KEY_FAILED = "failedCodes"
KEY_HISTORY = "history"
KEY_NEXT_AUTO_REDEEM = "nextAutoRedeemAt"
KEY_SESSION = "session"
KEY_CONFIG = "config"


class KeyValueStore(ABC):
    """Durable JSON key-value storage"""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    def set(self, key: str, value: Any):
        ...

    @abstractmethod
    def delete(self, key: str):
        ...


class MemoryStore(KeyValueStore):
    """In-process store, used by tests and dry runs"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._data.get(key)
        # Values round-trip through JSON so callers never share mutable state
        return default if raw is None else json.loads(raw)

    def set(self, key: str, value: Any):
        with self._lock:
            self._data[key] = json.dumps(value)

    def delete(self, key: str):
        with self._lock:
            self._data.pop(key, None)


class SQLiteStore(KeyValueStore):
    """Key-value store in a single SQLite table"""

    def __init__(self, db_path):
        self.db_path = Path(db_path)
        self._init_database()

    def _init_database(self):
        """Initialize database schema"""
        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.get_connection() as conn:
            conn.executescript("""
                PRAGMA journal_mode=WAL;
                PRAGMA synchronous=NORMAL;

                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_ts TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS db_version (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    version INTEGER,
                    migrated_ts TEXT
                );
            """)

            cursor = conn.execute("SELECT MAX(version) FROM db_version")
            result = cursor.fetchone()
            current_version = result[0] if result else None
            if current_version is None:
                conn.execute(
                    "INSERT INTO db_version (version, migrated_ts) VALUES (?, ?)",
                    (SCHEMA_VERSION, datetime.now(timezone.utc).isoformat()),
                )
                log_debug(f"Created store schema v{SCHEMA_VERSION} at {self.db_path}")
            conn.commit()

    @contextmanager
    def get_connection(self):
        """Context manager for database connections"""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        try:
            yield conn
        finally:
            conn.close()

    def get(self, key: str, default: Any = None) -> Any:
        with self.get_connection() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row[0])
        except ValueError:
            log_warning(f"Discarding unreadable value stored under '{key}'")
            return default

    def set(self, key: str, value: Any):
        with self.get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv (key, value, updated_ts) VALUES (?, ?, ?)",
                (key, json.dumps(value), datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()

    def delete(self, key: str):
        with self.get_connection() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()


class RedemptionLedger:
    """Typed bookkeeping over a KeyValueStore

    Keeps a code in at most one of the failed map and the redeemed set.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._lock = threading.RLock()

    # -------------------------------
    # Redeemed set
    # -------------------------------

    def redeemed_codes(self) -> Set[str]:
        return set(self.store.get(KEY_REDEEMED, []))

    def is_redeemed(self, code: str) -> bool:
        return code in self.redeemed_codes()

    def mark_redeemed(self, code: str):
        """Add to the redeemed set and drop any failed record"""
        with self._lock:
            redeemed = self.store.get(KEY_REDEEMED, [])
            if code not in redeemed:
                redeemed.append(code)
                self.store.set(KEY_REDEEMED, redeemed)
            self.remove_failed(code)

    # -------------------------------
    # Failed map
    # -------------------------------

    def failed_codes(self) -> Dict[str, FailedCodeRecord]:
        records = {}
        for item in self.store.get(KEY_FAILED, []):
            try:
                record = FailedCodeRecord.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                log_warning(f"Skipping malformed failed-code record: {e}")
                continue
            records[record.code] = record
        return records

    def get_failed(self, code: str) -> Optional[FailedCodeRecord]:
        return self.failed_codes().get(code)

    def add_failed(self, code: str, reason: str, now: Optional[datetime] = None) -> FailedCodeRecord:
        """Upsert a failed record, bumping attempt_count when one exists"""
        with self._lock:
            records = self.failed_codes()
            existing = records.get(code)
            record = FailedCodeRecord(
                code=code,
                failed_at=now or utcnow(),
                reason=reason,
                attempt_count=existing.attempt_count + 1 if existing else 1,
            )
            records[code] = record
            self._save_failed(records)
            return record

    def remove_failed(self, code: str):
        with self._lock:
            records = self.failed_codes()
            if records.pop(code, None) is not None:
                self._save_failed(records)

    def clear_failed(self) -> int:
        with self._lock:
            count = len(self.failed_codes())
            self.store.set(KEY_FAILED, [])
            return count

    def _save_failed(self, records: Dict[str, FailedCodeRecord]):
        self.store.set(KEY_FAILED, [record.to_dict() for record in records.values()])

    # -------------------------------
    # History
    # -------------------------------

    def history(self) -> List[RedeemedCodeRecord]:
        return [RedeemedCodeRecord.from_dict(item) for item in self.store.get(KEY_HISTORY, [])]

    def add_history(self, record: RedeemedCodeRecord):
        """Prepend a history entry and add its code to the redeemed set"""
        with self._lock:
            history = self.store.get(KEY_HISTORY, [])
            history.insert(0, record.to_dict())
            self.store.set(KEY_HISTORY, history)
            redeemed = self.store.get(KEY_REDEEMED, [])
            if record.code not in redeemed:
                redeemed.append(record.code)
                self.store.set(KEY_REDEEMED, redeemed)

    # -------------------------------
    # Scheduler, session and preferences
    # -------------------------------

    def next_auto_redeem_at(self) -> Optional[datetime]:
        value = self.store.get(KEY_NEXT_AUTO_REDEEM)
        try:
            return parse_timestamp(value)
        except ValueError:
            log_warning(f"Ignoring unreadable next-run timestamp: {value!r}")
            return None

    def set_next_auto_redeem_at(self, when: Optional[datetime]):
        if when is None:
            self.store.delete(KEY_NEXT_AUTO_REDEEM)
        else:
            self.store.set(KEY_NEXT_AUTO_REDEEM, when.isoformat())

    def load_session(self) -> Optional[Session]:
        data = self.store.get(KEY_SESSION)
        if not data:
            return None
        try:
            return Session.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            log_warning(f"Discarding unreadable stored session: {e}")
            return None

    def save_session(self, session: Session):
        self.store.set(KEY_SESSION, session.to_dict())

    def clear_session(self):
        self.store.delete(KEY_SESSION)

    def load_user_config(self, defaults: UserConfig) -> UserConfig:
        data = self.store.get(KEY_CONFIG)
        if not data:
            return defaults
        return UserConfig.from_dict(data, defaults)

    def save_user_config(self, user_config: UserConfig):
        self.store.set(KEY_CONFIG, user_config.to_dict())
