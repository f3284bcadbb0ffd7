import unittest

from support import ManualScheduler, StoreTestCase, line, self_delivery

from checkout.recovery import (
    AUTH_CARRY_OVER_KEY,
    BACKUP_ORDER_KEY,
    LAST_ORDER_KEY,
    RELOADED_FLAG_KEY,
    ArrivalKind,
    RecoveryLayer,
)
from services.api import AUTH_FLAG_KEY, TOKEN_KEY, USER_KEY
from storage.models import AuthCarryOver, ConfirmedOrder
from utils.timers import Scheduler


def confirmed_order(order_number: str = "SBF-1001") -> ConfirmedOrder:
    return ConfirmedOrder(
        id="665f1c",
        order_number=order_number,
        items=(line("p-lily", 500.0, 2),),
        shipping=self_delivery(),
        payment_id="pay_Gw456",
        subtotal=1000.0,
        delivery_fee=0.0,
        promo_discount=0.0,
        total=1000.0,
        currency="INR",
        currency_rate=1.0,
        created_at="2025-03-10T08:05:00",
    )


class RecoveryLayerTestCase(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.scheduler = ManualScheduler()
        self.recovery = RecoveryLayer(self.durable, self.session, self.scheduler)

    async def sign_in(self, user=None):
        await self.durable.put(TOKEN_KEY, "tok-1")
        await self.durable.put(USER_KEY, user or {"_id": "u1", "name": "Asha"})
        await self.durable.put(AUTH_FLAG_KEY, "true")

    async def test_stash_writes_both_stores(self):
        await self.session.put(RELOADED_FLAG_KEY, True)
        order = confirmed_order()
        await self.recovery.stash_order(order)

        self.assertEqual(await self.durable.get(LAST_ORDER_KEY), order.to_record())
        self.assertEqual(await self.session.get(BACKUP_ORDER_KEY), order.to_record())
        self.assertIsNone(await self.session.get(RELOADED_FLAG_KEY))

    async def test_renders_from_last_order_then_forgets_it(self):
        order = confirmed_order()
        await self.recovery.stash_order(order)

        arrival = await self.recovery.arrive(from_payment=True)
        self.assertEqual(arrival.kind, ArrivalKind.RENDER)
        self.assertEqual(arrival.order, order)
        self.assertEqual(self.scheduler.pending[0][0], 5)

        fired = await self.scheduler.fire()
        self.assertEqual(sorted(fired), ["drop backup_order", "drop lastOrder"])
        self.assertIsNone(await self.durable.get(LAST_ORDER_KEY))
        self.assertIsNone(await self.session.get(BACKUP_ORDER_KEY))

    async def test_later_visit_does_not_bring_the_order_back(self):
        await self.sign_in()
        await self.recovery.stash_order(confirmed_order())
        self.assertEqual((await self.recovery.arrive(from_payment=True)).kind, ArrivalKind.RENDER)
        await self.scheduler.fire()

        later = await self.recovery.arrive()
        self.assertEqual(later.kind, ArrivalKind.CART)
        self.assertIsNone(later.order)

    async def test_non_dict_order_record_is_skipped(self):
        await self.durable.put(LAST_ORDER_KEY, "corrupt")
        await self.session.put(BACKUP_ORDER_KEY, ["also", "corrupt"])
        await self.session.put(AUTH_CARRY_OVER_KEY, "corrupt")
        await self.sign_in()

        arrival = await self.recovery.arrive()
        self.assertEqual(arrival.kind, ArrivalKind.CART)
        self.assertIsNone(await self.session.get(AUTH_CARRY_OVER_KEY))

    async def test_falls_back_to_the_session_backup(self):
        order = confirmed_order()
        await self.session.put(BACKUP_ORDER_KEY, order.to_record())

        arrival = await self.recovery.arrive(from_payment=True)
        self.assertEqual(arrival.kind, ArrivalKind.RENDER)
        self.assertEqual(arrival.order.order_number, "SBF-1001")
        # copied back so a second render finds it
        self.assertEqual(await self.durable.get(LAST_ORDER_KEY), order.to_record())

        fired = await self.scheduler.fire()
        self.assertEqual(sorted(fired), ["drop backup_order", "drop lastOrder"])
        self.assertIsNone(await self.session.get(BACKUP_ORDER_KEY))
        self.assertIsNone(await self.durable.get(LAST_ORDER_KEY))

    async def test_unreadable_order_is_skipped(self):
        await self.durable.put(LAST_ORDER_KEY, {"id": "x"})
        await self.session.put(BACKUP_ORDER_KEY, confirmed_order("SBF-2002").to_record())

        arrival = await self.recovery.arrive()
        self.assertEqual(arrival.order.order_number, "SBF-2002")

    async def test_reloads_once_then_asks_to_sign_in(self):
        first = await self.recovery.arrive(from_payment=True)
        self.assertEqual(first.kind, ArrivalKind.RELOAD)
        self.assertTrue(await self.session.get(RELOADED_FLAG_KEY))

        second = await self.recovery.arrive(from_payment=True)
        self.assertEqual(second.kind, ArrivalKind.LOGIN)
        self.assertEqual(second.redirect, "/login")
        self.assertEqual(second.return_path, "/checkout/confirmation")

    async def test_signed_in_without_an_order_goes_to_the_cart(self):
        await self.sign_in()
        arrival = await self.recovery.arrive()
        self.assertEqual(arrival.kind, ArrivalKind.CART)
        self.assertEqual(arrival.redirect, "/cart")

    async def test_auth_survives_a_reset_durable_store(self):
        user = {"_id": "u1", "name": "Åsa Ñúñez"}
        await self.sign_in(user)
        self.assertTrue(await self.recovery.stash_auth())

        parked = AuthCarryOver.from_record(await self.session.get(AUTH_CARRY_OVER_KEY))
        self.assertEqual(parked.token, "tok-1")
        self.assertEqual(parked.auth_flag, "true")

        for key in (TOKEN_KEY, USER_KEY, AUTH_FLAG_KEY):
            await self.durable.delete(key)

        self.assertTrue(await self.recovery.replay_auth())
        self.assertEqual(await self.durable.get(TOKEN_KEY), "tok-1")
        self.assertEqual(await self.durable.get(USER_KEY), user)
        self.assertTrue(await self.recovery.is_authenticated())
        self.assertIsNone(await self.session.get(AUTH_CARRY_OVER_KEY))
        self.assertFalse(await self.recovery.replay_auth())

    async def test_nothing_to_carry_when_signed_out(self):
        self.assertFalse(await self.recovery.stash_auth())
        self.assertIsNone(await self.session.get(AUTH_CARRY_OVER_KEY))


class SchedulerTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_timers_fire_and_cancel(self):
        fired = []

        async def mark():
            fired.append("mark")

        async def broken():
            raise RuntimeError("boom")

        scheduler = Scheduler()
        scheduler.call_later(0.01, mark, name="mark")
        scheduler.call_later(0.01, broken, name="broken")
        await scheduler.drain()
        self.assertEqual(fired, ["mark"])

        scheduler.call_later(10, mark, name="late")
        scheduler.cancel_all()
        await scheduler.drain()
        self.assertEqual(fired, ["mark"])


if __name__ == "__main__":
    unittest.main()
