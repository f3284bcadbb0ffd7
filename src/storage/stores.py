from __future__ import annotations

from typing import Any, List, Optional

from storage import crud
from utils import config


class KeyValueStore:
    """
    A named key/value store holding JSON records in one sqlite file.

    Screens and the checkout core never touch sqlite directly, they get one of
    the two stores injected.
    """

    scope = "store"

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def get(self, key: str, default: Any = None) -> Any:
        value = await crud.get_record(self.db_path, key)
        return default if value is None else value

    async def put(self, key: str, value: Any) -> None:
        await crud.put_record(self.db_path, key, value)

    async def delete(self, key: str) -> bool:
        return await crud.delete_record(self.db_path, key)

    async def keys(self, prefix: str = "") -> List[str]:
        return await crud.list_keys(self.db_path, prefix)

    async def clear(self) -> None:
        await crud.clear_records(self.db_path)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.db_path!r})"


class DurableStore(KeyValueStore):
    """Survives restarts of the app."""

    scope = "durable"

    def __init__(self, db_path: Optional[str] = None):
        super().__init__(db_path or config.DURABLE_DB_PATH)


class SessionStore(KeyValueStore):
    """
    Lives for one browsing session: survives a relaunch through the payment
    redirect, wiped by end_session() when the app exits cleanly.
    """

    scope = "session"

    def __init__(self, db_path: Optional[str] = None):
        super().__init__(db_path or config.SESSION_DB_PATH)

    async def end_session(self) -> None:
        await self.clear()
