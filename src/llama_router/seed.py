# seed.py
# Demo database for sql_select. Safe to run more than once.

import os
import sqlite3

DEMO_NOTES = ("hello", "router", "sqlite")


def seed_database(db_path: str) -> int:
    """Create the `notas` table if missing and insert the demo rows once."""
    directory = os.path.dirname(os.path.abspath(db_path))
    os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        with conn:
            conn.execute("CREATE TABLE IF NOT EXISTS notas (id INTEGER PRIMARY KEY, titulo TEXT NOT NULL)")
            (count,) = conn.execute("SELECT COUNT(*) FROM notas").fetchone()
            if count == 0:
                conn.executemany("INSERT INTO notas (titulo) VALUES (?)", [(t,) for t in DEMO_NOTES])
        (count,) = conn.execute("SELECT COUNT(*) FROM notas").fetchone()
        return count
    finally:
        conn.close()
