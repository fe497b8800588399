"""Key-value state storage: Postgres (optional), JSON files (default) or memory."""

from __future__ import annotations

import copy
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Protocol

from sceneflow.config import Settings
from sceneflow.errors import PersistenceError

logger = logging.getLogger(__name__)

# Namespaced keys
QUEUE_SNAPSHOT = "queue_snapshot"
SCHEDULED_JOBS = "scheduled_jobs"
SETTINGS = "settings"
WEBHOOK_CONFIG = "webhook_config"
SELECTOR_PATTERNS = "selector_patterns"
RUN_LOGS = "run_logs"

_KEY_RE = re.compile(r"^[a-z0-9_\-]+$")


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...
    def set(self, key: str, value: Any) -> None: ...
    def delete(self, key: str) -> None: ...


def _check_key(key: str) -> None:
    if not _KEY_RE.match(key):
        raise ValueError(f"Invalid store key: {key!r}")


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class MemoryKeyValueStore:
    """Process-local store; values are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        _check_key(key)
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


# ---------------------------------------------------------------------------
# File-based implementation
# ---------------------------------------------------------------------------

class FileKeyValueStore:
    """One JSON document per key. Survives restarts within the same data dir."""

    def __init__(self, state_dir: Path):
        self._dir = Path(state_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        _check_key(key)
        return self._dir / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read {key}: {e}") from e

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2, ensure_ascii=False, default=str)
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {key}: {e}") from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to delete {key}: {e}") from e


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

class PostgresKeyValueStore:
    """Persist state in a single JSONB table. Survives restarts and host moves."""

    def __init__(self, database_url: str):
        self._url = database_url
        self._conn = self._connect()

    def _connect(self):
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres state store. pip install 'psycopg[binary]'"
            )
        conn = psycopg.connect(self._url, autocommit=True)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS sceneflow_state (
                key TEXT PRIMARY KEY,
                value JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        return conn

    def get(self, key: str, default: Any = None) -> Any:
        _check_key(key)
        try:
            row = self._conn.execute(
                "SELECT value FROM sceneflow_state WHERE key = %s", (key,)
            ).fetchone()
        except Exception as e:
            raise PersistenceError(f"Failed to read {key}: {e}") from e
        if not row:
            return default
        value = row[0]
        return json.loads(value) if isinstance(value, str) else value

    def set(self, key: str, value: Any) -> None:
        _check_key(key)
        try:
            self._conn.execute(
                """
                INSERT INTO sceneflow_state (key, value, updated_at)
                VALUES (%s, %s::jsonb, NOW())
                ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
                """,
                (key, json.dumps(value, default=str)),
            )
        except Exception as e:
            raise PersistenceError(f"Failed to write {key}: {e}") from e

    def delete(self, key: str) -> None:
        _check_key(key)
        try:
            self._conn.execute("DELETE FROM sceneflow_state WHERE key = %s", (key,))
        except Exception as e:
            raise PersistenceError(f"Failed to delete {key}: {e}") from e


# ---------------------------------------------------------------------------
# Helpers & factory
# ---------------------------------------------------------------------------

def load_or_default(store: KeyValueStore, key: str, default: Any) -> Any:
    """Read ``key``; on PersistenceError log and fall back to ``default``."""
    try:
        value = store.get(key)
    except PersistenceError as e:
        logger.warning("Persistence read failed, using in-memory state: %s", e)
        return default
    return default if value is None else value


def save_quietly(store: KeyValueStore, key: str, value: Any) -> bool:
    """Write ``key``; on PersistenceError log and carry on with in-memory state."""
    try:
        store.set(key, value)
    except PersistenceError as e:
        logger.warning("Persistence write failed, continuing in memory: %s", e)
        return False
    return True


def get_store(settings: Settings) -> KeyValueStore:
    """Return the configured store (Postgres if configured, else file-based)."""
    if settings.sceneflow_store_backend == "postgres" and settings.sceneflow_database_url:
        try:
            store = PostgresKeyValueStore(settings.sceneflow_database_url)
            logger.info("Using Postgres state store")
            return store
        except Exception as e:
            logger.warning("Postgres state store failed (%s), falling back to file store", e)
    logger.info("Using file-based state store (%s)", settings.state_dir)
    return FileKeyValueStore(settings.state_dir)
