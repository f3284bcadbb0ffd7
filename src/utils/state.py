from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from checkout.cart import CartLedger
from services.api import AUTH_FLAG_KEY, AUTH_KEYS, TOKEN_KEY, USER_KEY
from storage.stores import DurableStore, SessionStore
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Fields:
      - durable / session: the two record stores
      - cart: the signed-in account's basket
      - user: backend user record of the signed-in account, None if signed out
      - token: bearer token for the backend
    """

    durable: DurableStore
    session: SessionStore
    cart: CartLedger = field(init=False)

    user: Optional[Dict[str, Any]] = None
    token: Optional[str] = None

    def __post_init__(self):
        self.cart = CartLedger(self.durable)

    @property
    def account_id(self) -> Optional[str]:
        if not self.user:
            return None
        return str(self.user.get("_id") or self.user.get("id") or "") or None

    @property
    def signed_in(self) -> bool:
        return self.account_id is not None

    async def load(self) -> bool:
        """Restore the signed-in user from the durable store. Returns True if signed in."""
        flag = await self.durable.get(AUTH_FLAG_KEY)
        user = await self.durable.get(USER_KEY)
        if str(flag).lower() == "true" and isinstance(user, dict):
            self.user = user
            self.token = await self.durable.get(TOKEN_KEY)
        else:
            self.user = None
            self.token = None
        await self.cart.switch_account(self.account_id)
        return self.signed_in

    async def sign_in(self, token: str, user: Dict[str, Any]) -> None:
        await self.durable.put(TOKEN_KEY, token)
        await self.durable.put(USER_KEY, user)
        await self.durable.put(AUTH_FLAG_KEY, "true")
        self.token = token
        self.user = user
        await self.cart.switch_account(self.account_id)
        _logger.info(f"Signed in as {self.account_id}")

    async def sign_out(self) -> None:
        """
        Forget the signed-in user. The account's cart record stays in the
        durable store for the next sign-in.
        """
        for key in AUTH_KEYS:
            await self.durable.delete(key)
        self.token = None
        self.user = None
        await self.cart.switch_account(None)

    async def end_session(self) -> None:
        """
        End the browsing session.
        This is only called upon a clean quit
        """
        await self.session.end_session()
