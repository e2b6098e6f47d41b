import os
import sqlite3
from contextlib import contextmanager

DB_PATH = os.environ.get("DB_PATH", "/data/mixer.db")

SCHEMA = """
PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

# Stored as text; read back through the typed getters below
CONFIG_DEFAULTS = {
    "default_popularity_strategy": "mixed",
    "default_total_songs": "50",
    "default_target_duration": "60",
    "preview_track_limit": "20",
}


def get_connection() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


@contextmanager
def db():
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db():
    """Create the config table and seed any missing mixer defaults."""
    directory = os.path.dirname(DB_PATH)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with db() as conn:
        conn.executescript(SCHEMA)
        conn.executemany(
            "INSERT OR IGNORE INTO config (key, value) VALUES (?, ?)",
            CONFIG_DEFAULTS.items(),
        )


def get_config(key: str) -> str:
    with db() as conn:
        row = conn.execute("SELECT value FROM config WHERE key=?", (key,)).fetchone()
    return row["value"] if row else CONFIG_DEFAULTS.get(key, "")


def get_int_config(key: str) -> int:
    return int(float(get_config(key)))


def get_float_config(key: str) -> float:
    return float(get_config(key))


def get_all_config() -> dict[str, str]:
    values = dict(CONFIG_DEFAULTS)
    with db() as conn:
        for row in conn.execute("SELECT key, value FROM config"):
            if row["key"] in CONFIG_DEFAULTS:
                values[row["key"]] = row["value"]
    return values


def set_config(key: str, value) -> None:
    """Store a mixer default; values are kept as text like the seeded ones."""
    if key not in CONFIG_DEFAULTS:
        raise KeyError(f"Unknown config key: {key}")
    with db() as conn:
        conn.execute(
            "INSERT INTO config (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, str(value)),
        )
