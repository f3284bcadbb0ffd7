# manages connections to the record stores, provides helper methods internal to storage package
import os.path
from contextlib import asynccontextmanager
from sqlite3 import Row

import aiosqlite

from utils.logger import get_logger

_logger = get_logger(__name__)

SCHEMA_SCRIPT = os.path.join(os.path.dirname(__file__), "records.sql")

# db paths already carrying the records table
_initialized = set()


async def _init_db(conn: aiosqlite.Connection) -> None:
    _logger.info(f"Initializing record store with script {SCHEMA_SCRIPT}...")
    with open(SCHEMA_SCRIPT, "r") as f:
        await conn.executescript(f.read())
    await conn.commit()


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


@asynccontextmanager
async def connect(db_path: str) -> aiosqlite.Connection:
    """Async context manager yielding an aiosqlite connection to one record store.

    Creates the parent directory and the records table on first use of a path.
    """
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = Row

    try:
        # the schema script is idempotent
        if db_path not in _initialized:
            if not await _table_exists(conn, "records"):
                await _init_db(conn)
            _initialized.add(db_path)
        yield conn
    finally:
        await conn.close()


def forget(db_path: str) -> None:
    """Drop the initialization marker for a path, e.g. after its file was removed."""
    _initialized.discard(db_path)
