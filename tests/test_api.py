import unittest

import httpx
from support import AUTHORIZATION, Backend, StoreTestCase, line

from checkout.errors import BackendError
from services.api import (
    AUTH_FLAG_KEY,
    TOKEN_KEY,
    USER_KEY,
    StorefrontAPI,
    catalog_item_from_backend,
)


class StorefrontAPITestCase(StoreTestCase):
    async def asyncSetUp(self):
        self.backend = Backend()
        self.api = self.backend.api(self.durable)

    async def asyncTearDown(self):
        await self.api.close()

    async def test_bearer_token_read_per_request(self):
        await self.api.verify_payment(AUTHORIZATION)
        self.assertNotIn("authorization", self.backend.calls[-1].headers)

        await self.durable.put(TOKEN_KEY, "tok-1")
        await self.api.verify_payment(AUTHORIZATION)
        self.assertEqual(self.backend.calls[-1].headers["authorization"], "Bearer tok-1")

    async def test_unauthorized_clears_stored_sign_in(self):
        await self.durable.put(TOKEN_KEY, "expired")
        await self.durable.put(USER_KEY, {"_id": "u1"})
        await self.durable.put(AUTH_FLAG_KEY, True)
        self.backend.routes["POST /orders"] = (401, {"message": "jwt expired"})

        with self.assertRaises(BackendError) as ctx:
            await self.api.create_order({"items": []})

        self.assertEqual(ctx.exception.status_code, 401)
        for key in (TOKEN_KEY, USER_KEY, AUTH_FLAG_KEY):
            self.assertIsNone(await self.durable.get(key))

    async def test_backend_message_reaches_the_customer(self):
        self.backend.routes["POST /orders"] = (400, {"message": "Item out of stock"})
        with self.assertRaises(BackendError) as ctx:
            await self.api.create_order({"items": []})
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.user_message, "Item out of stock")

        self.backend.routes["POST /orders"] = (500, {})
        with self.assertRaises(BackendError) as ctx:
            await self.api.create_order({"items": []})
        self.assertEqual(ctx.exception.user_message, "An error occurred")

    async def test_non_json_body_is_an_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        api = StorefrontAPI(self.durable, base_url="http://backend.test/api", transport=httpx.MockTransport(handler))
        with self.assertRaises(BackendError):
            await api.verify_payment(AUTHORIZATION)
        await api.close()

    async def test_timeout_is_an_ordinary_failure(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        api = StorefrontAPI(self.durable, base_url="http://backend.test/api", transport=httpx.MockTransport(handler))
        with self.assertRaises(BackendError) as ctx:
            await api.create_payment_intent(95000, "INR")
        self.assertEqual(ctx.exception.user_message, "The server is taking too long to respond.")
        await api.close()

    async def test_payment_intent(self):
        intent = await self.api.create_payment_intent(95000, "INR")
        self.assertEqual(intent.intent_id, "order_Gw123")
        self.assertEqual(intent.amount, 95000)
        self.assertEqual(self.backend.body("POST /orders/create-razorpay-order"), {"amount": 95000, "currency": "INR"})

        self.backend.routes["POST /orders/create-razorpay-order"] = {"success": False, "message": "Gateway down"}
        with self.assertRaises(BackendError) as ctx:
            await self.api.create_payment_intent(95000, "INR")
        self.assertEqual(ctx.exception.user_message, "Gateway down")

    async def test_verify_payment_sends_gateway_fields(self):
        self.assertTrue(await self.api.verify_payment(AUTHORIZATION))
        self.assertEqual(
            self.backend.body("POST /orders/verify-payment"),
            {
                "razorpay_order_id": "order_Gw123",
                "razorpay_payment_id": "pay_Gw456",
                "razorpay_signature": "sig_abc",
            },
        )
        self.backend.routes["POST /orders/verify-payment"] = {"success": False}
        self.assertFalse(await self.api.verify_payment(AUTHORIZATION))

    async def test_create_order(self):
        created = await self.api.create_order({"items": []})
        self.assertEqual(created, {"id": "665f1c", "order_number": "SBF-1001"})

        self.backend.routes["POST /orders"] = {"success": True, "order": {}}
        with self.assertRaises(BackendError):
            await self.api.create_order({"items": []})

    async def test_validate_promo_code(self):
        self.backend.routes["POST /promo-codes/validate"] = {
            "success": True,
            "data": {
                "promoCode": {"code": "WELCOME10"},
                "discount": {"amount": 100},
                "order": {"finalAmount": 900},
            },
        }
        applied = await self.api.validate_promo_code("WELCOME10", 1000.0, [line("p-lily", 500.0, 2)])
        self.assertEqual(applied.code, "WELCOME10")
        self.assertEqual(applied.discount_amount, 100.0)
        self.assertEqual(applied.final_amount, 900.0)
        self.assertEqual(
            self.backend.body("POST /promo-codes/validate")["items"],
            [{"product": "p-lily", "quantity": 2, "price": 500.0}],
        )

        self.backend.routes["POST /promo-codes/validate"] = (400, {"success": False, "message": "Promo code has expired"})
        with self.assertRaises(BackendError) as ctx:
            await self.api.validate_promo_code("OLD", 1000.0, [])
        self.assertEqual(ctx.exception.user_message, "Promo code has expired")

    async def test_login(self):
        self.backend.routes["POST /auth/login"] = {"token": "tok-9", "user": {"_id": "u9", "name": "Asha"}}
        signed_in = await self.api.login("asha@example.com", "secret")
        self.assertEqual(signed_in["token"], "tok-9")
        self.assertEqual(self.backend.body("POST /auth/login")["email"], "asha@example.com")

    async def test_list_products_skips_unreadable_entries(self):
        self.backend.routes["GET /products"] = {
            "products": [
                {"_id": "p1", "title": "Lilies", "price": 500, "images": ["lily.jpg"]},
                {"_id": "p2", "price": 700},
            ]
        }
        products = await self.api.list_products()
        self.assertEqual([p.id for p in products], ["p1"])
        self.assertEqual(products[0].image, "lily.jpg")


class CatalogItemFromBackendTestCase(unittest.TestCase):
    def test_customization_groups_flattened(self):
        item = catalog_item_from_backend(
            {
                "_id": "p-rose",
                "title": "Red Roses",
                "price": "1000",
                "discount": 10,
                "isCustomizable": True,
                "customizationOptions": {
                    "flowerAddons": [{"name": "Baby's breath", "price": 40}],
                    "chocolateAddons": [{"name": "Truffles", "price": 80}],
                    "messageCardPrice": 30,
                },
            }
        )
        self.assertEqual(item.price, 1000.0)
        self.assertEqual(item.discount, 10.0)
        self.assertEqual([a.name for a in item.customization.add_ons], ["Baby's breath", "Truffles"])
        self.assertEqual(item.customization.message_card_price, 30.0)

    def test_plain_item(self):
        item = catalog_item_from_backend({"id": 7, "title": "Vase", "price": 250})
        self.assertEqual(item.id, "7")
        self.assertIsNone(item.customization)
        self.assertEqual(item.image, "")


if __name__ == "__main__":
    unittest.main()
