# src/storage/crud.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Optional

from storage.database import connect

# ---------------------------
# Records
# ---------------------------
#
# Every write replaces a whole named record or deletes it, never a field.


async def get_record(db_path: str, key: str) -> Optional[Any]:
    """Return the decoded JSON value stored under key, or None.

    A value that no longer decodes is treated as absent.
    """
    async with connect(db_path) as conn:
        cur = await conn.execute("SELECT value FROM records WHERE key = ?;", (key,))
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    try:
        return json.loads(row[0])
    except ValueError:
        return None


async def put_record(
    db_path: str, key: str, value: Any, when: Optional[datetime] = None
) -> None:
    """Replace the record under key with the JSON encoding of value."""
    when = when or datetime.now()
    encoded = json.dumps(value)
    async with connect(db_path) as conn:
        await conn.execute(
            "INSERT OR REPLACE INTO records(key, value, updated_at) VALUES (?, ?, ?);",
            (key, encoded, when.isoformat()),
        )
        await conn.commit()


async def delete_record(db_path: str, key: str) -> bool:
    """Delete the record under key. Returns True if something was deleted."""
    async with connect(db_path) as conn:
        cur = await conn.execute("DELETE FROM records WHERE key = ?;", (key,))
        deleted = cur.rowcount
        await cur.close()
        await conn.commit()
    return deleted > 0


async def list_keys(db_path: str, prefix: str = "") -> List[str]:
    """Return the stored keys starting with prefix, sorted."""
    async with connect(db_path) as conn:
        cur = await conn.execute(
            "SELECT key FROM records WHERE key LIKE ? ESCAPE '\\' ORDER BY key;",
            (_escape_like(prefix) + "%",),
        )
        rows = await cur.fetchall()
        await cur.close()
    return [row[0] for row in rows]


async def clear_records(db_path: str) -> None:
    """Remove every record in the store."""
    async with connect(db_path) as conn:
        await conn.execute("DELETE FROM records;")
        await conn.commit()


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
