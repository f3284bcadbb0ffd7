import unittest

from support import StoreTestCase, line

from checkout.cart import cart_key
from services.api import AUTH_FLAG_KEY, TOKEN_KEY, USER_KEY
from utils.state import GlobalState


class GlobalStateTestCase(StoreTestCase):
    async def asyncSetUp(self):
        self.state = GlobalState(self.durable, self.session)

    async def test_signed_out_by_default(self):
        self.assertFalse(await self.state.load())
        self.assertIsNone(self.state.cart.account_id)

    async def test_sign_in_restores_the_account_cart(self):
        await self.durable.put(cart_key("u1"), [line("p-lily").to_record()])

        await self.state.sign_in("tok-1", {"_id": "u1", "name": "Asha"})
        self.assertTrue(self.state.signed_in)
        self.assertEqual(self.state.cart.item_count, 1)
        self.assertEqual(await self.durable.get(AUTH_FLAG_KEY), "true")

        restarted = GlobalState(self.durable, self.session)
        self.assertTrue(await restarted.load())
        self.assertEqual(restarted.token, "tok-1")
        self.assertEqual(restarted.cart.item_count, 1)

    async def test_sign_out_keeps_the_cart_record(self):
        await self.state.sign_in("tok-1", {"_id": "u1"})
        await self.state.cart.add_item(line("p-rose"))

        await self.state.sign_out()
        self.assertFalse(self.state.signed_in)
        self.assertTrue(self.state.cart.is_empty)
        for key in (TOKEN_KEY, USER_KEY, AUTH_FLAG_KEY):
            self.assertIsNone(await self.durable.get(key))
        self.assertEqual(len(await self.durable.get(cart_key("u1"))), 1)

    async def test_end_session(self):
        await self.session.put("seenOffers", {"o1": True})
        await self.state.end_session()
        self.assertEqual(await self.session.keys(), [])


if __name__ == "__main__":
    unittest.main()
