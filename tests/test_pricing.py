import unittest

from support import catalog_item

from checkout.pricing import (
    Currency,
    compute_total,
    delivery_surcharge_for,
    line_id_for,
    line_item_for,
    to_base,
    to_minor_units,
    unit_price_for,
)
from storage.models import AddOnSelection
from utils.pure import format_price


class ComputeTotalTestCase(unittest.TestCase):
    def test_total_in_base_currency(self):
        breakdown = compute_total(1000.0, 100.0, 150.0)
        self.assertEqual(breakdown.total, 950.0)
        self.assertEqual(breakdown.subtotal, 1000.0)
        self.assertEqual(breakdown.delivery_surcharge, 100.0)
        self.assertEqual(breakdown.promo_discount, 150.0)

    def test_every_component_scaled_by_the_rate(self):
        breakdown = compute_total(1000.0, 100.0, 150.0, currency_rate=0.012)
        self.assertAlmostEqual(breakdown.subtotal, 12.0)
        self.assertAlmostEqual(breakdown.delivery_surcharge, 1.2)
        self.assertAlmostEqual(breakdown.promo_discount, 1.8)
        self.assertAlmostEqual(breakdown.total, 11.4)
        self.assertEqual(breakdown.rate, 0.012)

    def test_total_never_negative(self):
        self.assertEqual(compute_total(100.0, 0.0, 250.0).total, 0.0)

    def test_rate_must_be_positive(self):
        with self.assertRaises(ValueError):
            compute_total(100.0, 0.0, 0.0, currency_rate=0)

    def test_charging_undoes_the_display_conversion(self):
        shown = compute_total(1000.0, 100.0, 150.0, currency_rate=0.012)
        self.assertEqual(to_minor_units(to_base(shown.total, shown.rate)), 95000)

    def test_surcharge_only_for_midnight(self):
        self.assertEqual(delivery_surcharge_for("midnight"), 100.0)
        self.assertEqual(delivery_surcharge_for("evening"), 0.0)
        self.assertEqual(delivery_surcharge_for(None), 0.0)


class CurrencyTestCase(unittest.TestCase):
    def test_named_and_base(self):
        self.assertEqual(Currency.named("usd"), Currency("USD", 0.012, "$"))
        self.assertEqual(Currency.base().rate, 1.0)
        with self.assertRaises(ValueError):
            Currency.named("XYZ")

    def test_format_price(self):
        self.assertEqual(format_price(1234.5, "INR"), "₹1,234.50")
        self.assertEqual(format_price(-1.8, "USD"), "-$1.80")
        self.assertEqual(format_price(3, "JPY"), "3.00 JPY")


class UnitPriceTestCase(unittest.TestCase):
    def test_plain_item_discounted(self):
        self.assertEqual(unit_price_for(catalog_item()), (900.0, 1000.0))
        self.assertEqual(unit_price_for(catalog_item(discount=0)), (1000.0, 1000.0))

    def test_add_ons_at_face_value(self):
        selection = AddOnSelection(quantities={"Teddy": 2}, message_card="Love you")
        # 1000 less 10% plus 2 x 50 plus the 30 card
        self.assertEqual(unit_price_for(catalog_item(), selection), (1030.0, 1130.0))

    def test_unknown_or_negative_add_on_rejected(self):
        with self.assertRaises(ValueError):
            unit_price_for(catalog_item(), AddOnSelection(quantities={"Balloon": 1}))
        with self.assertRaises(ValueError):
            unit_price_for(catalog_item(), AddOnSelection(quantities={"Teddy": -1}))

    def test_line_ids(self):
        item = catalog_item()
        plain = line_id_for(item)
        teddy = line_id_for(item, AddOnSelection(quantities={"Teddy": 1}))
        truffles = line_id_for(item, AddOnSelection(quantities={"Truffles": 1}))

        self.assertEqual(plain, "p-rose")
        self.assertEqual(line_id_for(item, AddOnSelection()), "p-rose")
        self.assertTrue(teddy.startswith("p-rose-"))
        self.assertNotEqual(teddy, truffles)
        self.assertEqual(teddy, line_id_for(item, AddOnSelection(quantities={"Teddy": 1})))

    def test_line_item_for(self):
        line = line_item_for(catalog_item(), AddOnSelection(quantities={"Truffles": 1}), 2)
        self.assertEqual(line.product_id, "p-rose")
        self.assertEqual(line.unit_price, 980.0)
        self.assertEqual(line.quantity, 2)
        self.assertEqual(line.line_total, 1960.0)


if __name__ == "__main__":
    unittest.main()
