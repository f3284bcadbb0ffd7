import unittest
from datetime import datetime, timedelta

from support import NOW, TOMORROW, StoreTestCase, contact, gift_delivery, self_delivery

from checkout.shipping import (
    TIME_SLOTS,
    available_slots,
    delete_saved_address,
    is_serviceable_pin,
    list_saved_addresses,
    save_address,
    slot_available,
    slot_unavailable_reason,
    validate_shipping,
)
from storage.models import Address, Contact, ShippingDetails


class ValidateShippingTestCase(unittest.TestCase):
    def test_complete_details_pass(self):
        self.assertEqual(validate_shipping(self_delivery(), NOW), [])
        self.assertEqual(validate_shipping(gift_delivery(), NOW), [])

    def test_slot_and_date_required(self):
        problems = validate_shipping(self_delivery(slot=None, delivery_date=None), NOW)
        self.assertIn("Please select a delivery date", problems)
        self.assertIn("Please select a delivery time slot", problems)

    def test_self_delivery_needs_address(self):
        details = self_delivery(sender=contact(with_address=False))
        problems = validate_shipping(details, NOW)
        self.assertIn("Your address is required", problems)
        self.assertIn("Your PIN code is required", problems)

    def test_gift_receiver_must_be_complete(self):
        details = gift_delivery(receiver=Contact(first_name="Ravi"))
        problems = validate_shipping(details, NOW)
        self.assertIn("Recipient last name is required", problems)
        self.assertIn("Recipient phone is required", problems)
        self.assertIn("Recipient address is required", problems)
        self.assertFalse(any(p.startswith("Sender") for p in problems))

    def test_gift_sender_needs_no_address(self):
        details = gift_delivery(sender=Contact(first_name="Asha"))
        problems = validate_shipping(details, NOW)
        self.assertEqual(
            problems, ["Sender last name is required", "Sender phone is required"]
        )

    def test_pin_outside_delivery_area(self):
        address = Address("1 MG Road", "", "Bengaluru", "Karnataka", "560001")
        problems = validate_shipping(self_delivery(sender=contact(address=address)), NOW)
        self.assertEqual(problems, ["Invalid PIN code for delivery"])
        self.assertTrue(is_serviceable_pin(" 500034 "))
        self.assertFalse(is_serviceable_pin("50003"))

    def test_bad_email(self):
        problems = validate_shipping(self_delivery(sender=contact(email="asha@")), NOW)
        self.assertEqual(problems, ["Your email is not valid"])


class TimeSlotTestCase(unittest.TestCase):
    def test_same_day_notice(self):
        today = NOW.date()
        # 08:00 now: morning starts in 1h (needs 5h), afternoon in 5h (needs 30min)
        self.assertEqual(
            slot_unavailable_reason(TIME_SLOTS["morning"], today, NOW),
            "Needs 5+ hours notice",
        )
        self.assertIsNone(slot_unavailable_reason(TIME_SLOTS["afternoon"], today, NOW))

        late = datetime.combine(today, datetime.min.time()) + timedelta(hours=16, minutes=45)
        self.assertEqual(
            slot_unavailable_reason(TIME_SLOTS["evening"], today, late),
            "Needs 30+ minutes notice",
        )
        self.assertIsNone(slot_unavailable_reason(TIME_SLOTS["midnight"], today, late))

    def test_date_window(self):
        slot = TIME_SLOTS["evening"]
        self.assertEqual(
            slot_unavailable_reason(slot, NOW.date() - timedelta(days=1), NOW),
            "Delivery date is in the past",
        )
        self.assertIsNotNone(slot_unavailable_reason(slot, NOW.date() + timedelta(days=31), NOW))
        self.assertIsNone(slot_unavailable_reason(slot, NOW.date() + timedelta(days=30), NOW))
        self.assertTrue(slot_available(slot, TOMORROW, NOW))
        self.assertFalse(slot_available(slot, NOW.date() - timedelta(days=1), NOW))

    def test_available_slots(self):
        self.assertEqual(len(available_slots(TOMORROW, NOW)), 4)
        self.assertNotIn("morning", [s.id for s in available_slots(NOW.date(), NOW)])

    def test_unavailable_slot_rejected(self):
        details = self_delivery(slot="morning", delivery_date=NOW.date())
        self.assertEqual(
            validate_shipping(details, NOW),
            ["Morning slot unavailable: Needs 5+ hours notice"],
        )


class SavedAddressTestCase(StoreTestCase):
    async def test_save_dedupes_and_deletes(self):
        self.assertTrue(await save_address(self.durable, self_delivery(), "acc-1"))
        # same person and address, different booking
        self.assertFalse(
            await save_address(self.durable, self_delivery(slot="evening"), "acc-1")
        )
        self.assertTrue(await save_address(self.durable, gift_delivery(), "acc-1"))

        saved = await list_saved_addresses(self.durable, "acc-1")
        self.assertEqual(len(saved), 2)
        self.assertEqual(saved[0]["account_id"], "acc-1")
        restored = ShippingDetails.from_record(saved[0]["details"])
        self.assertEqual(restored.delivery_address.zip_code, "500034")

        self.assertTrue(await delete_saved_address(self.durable, saved[0]["id"], "acc-1"))
        self.assertFalse(await delete_saved_address(self.durable, "nope", "acc-1"))
        self.assertEqual(len(await list_saved_addresses(self.durable, "acc-1")), 1)

    async def test_accounts_see_only_their_own_addresses(self):
        await save_address(self.durable, self_delivery(), "alice")
        self.assertEqual(await list_saved_addresses(self.durable, "bob"), [])
        self.assertEqual(await list_saved_addresses(self.durable), [])

        # the same address is still new for another account
        self.assertTrue(await save_address(self.durable, self_delivery(), "bob"))
        alice_entry = (await list_saved_addresses(self.durable, "alice"))[0]
        self.assertFalse(await delete_saved_address(self.durable, alice_entry["id"], "bob"))
        self.assertEqual(len(await list_saved_addresses(self.durable, "alice")), 1)
        self.assertEqual(len(await list_saved_addresses(self.durable, "bob")), 1)


if __name__ == "__main__":
    unittest.main()
