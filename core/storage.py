# core/storage.py
import datetime
import os
import sqlite3
from typing import List, Optional

import pytz

from .logger import get_logger

logger = get_logger(__name__)

DB_PATH = os.getenv("DB_PATH", "/data/marketcache.sqlite3")


def _connect(db_path: Optional[str] = None):
    path = db_path or DB_PATH
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return sqlite3.connect(path)


def now_utc_iso() -> str:
    return datetime.datetime.now(tz=pytz.UTC).isoformat()


def ensure_db(db_path: Optional[str] = None):
    with _connect(db_path) as con:
        cur = con.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS recent_searches (
                position INTEGER PRIMARY KEY,
                query TEXT NOT NULL,
                saved_at TEXT
            )
        """
        )
        con.commit()


def load_recent_searches(db_path: Optional[str] = None) -> List[str]:
    """
    Return persisted recent searches, newest first.
    """
    with _connect(db_path) as con:
        cur = con.cursor()
        cur.execute("SELECT query FROM recent_searches ORDER BY position ASC")
        rows = cur.fetchall()
    return [row[0] for row in rows]


def save_recent_searches(queries: List[str], db_path: Optional[str] = None):
    """
    Replace the persisted list with queries (newest first).
    """
    ts = now_utc_iso()
    with _connect(db_path) as con:
        cur = con.cursor()
        cur.execute("DELETE FROM recent_searches")
        cur.executemany(
            "INSERT INTO recent_searches (position, query, saved_at) VALUES (?,?,?)",
            [(i, q, ts) for i, q in enumerate(queries)],
        )
        con.commit()
    logger.debug("Persisted %d recent searches.", len(queries))
