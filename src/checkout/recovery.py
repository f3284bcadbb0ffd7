"""
Keeps a confirmed order, and who placed it, alive across the trip to the
hosted payment page and back.

Some clients come back from that trip with in-memory state gone and even the
durable store reset, so the order is written to both stores and the auth
state is parked in the session store. The arrival side reads them back in a
fixed order and cleans up after itself on timers.
"""

from __future__ import annotations

import binascii
import enum
import json
from dataclasses import dataclass
from typing import Optional

from storage.models import AuthCarryOver, ConfirmedOrder
from storage.stores import KeyValueStore
from services.api import AUTH_FLAG_KEY, TOKEN_KEY, USER_KEY
from utils import config
from utils.logger import get_logger
from utils.timers import Scheduler

_logger = get_logger(__name__)

LAST_ORDER_KEY = "lastOrder"  # durable
BACKUP_ORDER_KEY = "backup_order"  # session
AUTH_CARRY_OVER_KEY = "auth_data"  # session
RELOADED_FLAG_KEY = "confirmation_reloaded"  # session

CART_ROUTE = "/cart"
LOGIN_ROUTE = "/login"


class ArrivalKind(enum.Enum):
    RENDER = "render"
    RELOAD = "reload"
    LOGIN = "login"
    CART = "cart"


@dataclass(frozen=True)
class Arrival:
    kind: ArrivalKind
    order: Optional[ConfirmedOrder] = None
    redirect: Optional[str] = None
    return_path: Optional[str] = None


class RecoveryLayer:
    def __init__(
        self,
        durable: KeyValueStore,
        session: KeyValueStore,
        scheduler: Scheduler,
        backup_grace: float = config.BACKUP_GRACE_SECONDS,
        last_order_ttl: float = config.LAST_ORDER_TTL_SECONDS,
    ):
        self.durable = durable
        self.session = session
        self.scheduler = scheduler
        self.backup_grace = backup_grace
        self.last_order_ttl = last_order_ttl

    # ---------------------------
    # Sending side
    # ---------------------------

    async def stash_order(self, order: ConfirmedOrder) -> None:
        """Write the confirmed order to both stores."""
        record = order.to_record()
        await self.durable.put(LAST_ORDER_KEY, record)
        await self.session.put(BACKUP_ORDER_KEY, record)
        await self.session.delete(RELOADED_FLAG_KEY)
        _logger.info(f"Order {order.order_number} stashed in durable and session stores")

    async def stash_auth(self) -> bool:
        """Park the signed-in user in the session store. False if nobody is signed in."""
        token = await self.durable.get(TOKEN_KEY)
        user = await self.durable.get(USER_KEY)
        flag = await self.durable.get(AUTH_FLAG_KEY)
        if not token and not user:
            return False
        carry_over = AuthCarryOver(
            token=token,
            encoded_user=AuthCarryOver.encode_user(json.dumps(user)) if user else None,
            auth_flag=str(flag).lower() if flag is not None else None,
        )
        await self.session.put(AUTH_CARRY_OVER_KEY, carry_over.to_record())
        _logger.info("Auth state carried over into the session store")
        return True

    # ---------------------------
    # Arrival side
    # ---------------------------

    async def replay_auth(self) -> bool:
        """Move a parked auth bundle back into the durable store, then drop it."""
        record = await self.session.get(AUTH_CARRY_OVER_KEY)
        if not record:
            return False
        try:
            carry_over = AuthCarryOver.from_record(record)
        except ValueError as e:
            _logger.error(f"Discarding unreadable auth carry-over: {e}")
            await self.session.delete(AUTH_CARRY_OVER_KEY)
            return False

        if carry_over.token:
            await self.durable.put(TOKEN_KEY, carry_over.token)
        if carry_over.encoded_user:
            try:
                await self.durable.put(USER_KEY, json.loads(carry_over.decode_user()))
            except (binascii.Error, UnicodeDecodeError, ValueError) as e:
                _logger.error(f"Could not decode carried-over user record: {e}")
        if carry_over.auth_flag:
            await self.durable.put(AUTH_FLAG_KEY, carry_over.auth_flag)

        await self.session.delete(AUTH_CARRY_OVER_KEY)
        _logger.info("Auth state restored from the session store")
        return True

    async def is_authenticated(self) -> bool:
        flag = await self.durable.get(AUTH_FLAG_KEY)
        user = await self.durable.get(USER_KEY)
        return str(flag).lower() == "true" and bool(user)

    async def _read_order(self, store: KeyValueStore, key: str) -> Optional[ConfirmedOrder]:
        record = await store.get(key)
        if not record:
            return None
        try:
            return ConfirmedOrder.from_record(record)
        except (KeyError, TypeError, ValueError) as e:
            _logger.error(f"Ignoring unreadable {key} record: {e}")
            return None

    async def arrive(self, from_payment: bool = False) -> Arrival:
        """
        Decide what the confirmation screen shows:
        the order, one reload, the sign-in screen, or the cart.
        """
        await self.replay_auth()

        order = await self._read_order(self.durable, LAST_ORDER_KEY)
        if order is None:
            order = await self._read_order(self.session, BACKUP_ORDER_KEY)
            if order is not None:
                _logger.info(f"Recovered order {order.order_number} from the session backup")
                await self.durable.put(LAST_ORDER_KEY, order.to_record())

        if order is not None:
            # a later visit must not render this order again
            self.scheduler.call_later(
                self.backup_grace, self._drop_backup, name="drop backup_order"
            )
            await self.session.delete(RELOADED_FLAG_KEY)
            self.scheduler.call_later(
                self.last_order_ttl, self._drop_last_order, name="drop lastOrder"
            )
            return Arrival(ArrivalKind.RENDER, order=order)

        if from_payment and not await self.session.get(RELOADED_FLAG_KEY):
            _logger.info("No order found right after payment, reloading once")
            await self.session.put(RELOADED_FLAG_KEY, True)
            return Arrival(ArrivalKind.RELOAD)

        if not await self.is_authenticated():
            _logger.info("No order found and nobody signed in, sending to sign-in")
            return Arrival(
                ArrivalKind.LOGIN,
                redirect=LOGIN_ROUTE,
                return_path=config.CONFIRMATION_ROUTE,
            )

        _logger.info("No order to confirm, sending to the cart")
        return Arrival(ArrivalKind.CART, redirect=CART_ROUTE)

    async def _drop_backup(self) -> None:
        await self.session.delete(BACKUP_ORDER_KEY)

    async def _drop_last_order(self) -> None:
        await self.durable.delete(LAST_ORDER_KEY)
