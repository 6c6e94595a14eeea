from datetime import date

from django.test import SimpleTestCase, override_settings

from apps.pricing.estimation import advance_discount, base_price, estimate_price, seasonal_factor


class EstimationTests(SimpleTestCase):
    def test_off_peak_early_booking(self):
        # 4000 base, June is off-peak, week 1 of 10 is in the first 20%
        self.assertEqual(estimate_price("TPE", "HKG", date(2026, 6, 10), 1, 10), 2800.0)

    def test_is_deterministic(self):
        d = date(2026, 7, 15)
        self.assertEqual(estimate_price("TPE", "NRT", d, 3, 8), estimate_price("TPE", "NRT", d, 3, 8))

    def test_unknown_route_uses_default_base(self):
        self.assertEqual(base_price("TPE", "NRT"), 5000.0)
        self.assertEqual(base_price("TPE", "TYO"), 8000.0)

    @override_settings(ROUTE_BASE_PRICES={"TPE-NRT": 8200})
    def test_route_table_can_be_extended_from_settings(self):
        self.assertEqual(base_price("TPE", "NRT"), 8200.0)
        self.assertEqual(base_price("TPE", "HKG"), 4000.0)

    def test_seasonal_factor_by_month(self):
        expected = {1: 1.4, 2: 1.4, 3: 1.3, 4: 1.3, 5: 1.0, 6: 1.0, 7: 1.5, 8: 1.5, 9: 1.0, 10: 1.0, 11: 1.0, 12: 1.4}
        for month, factor in expected.items():
            self.assertEqual(seasonal_factor(date(2026, month, 1)), factor, month)

    def test_advance_discount_steps(self):
        self.assertEqual(advance_discount(1, 10), 0.7)
        self.assertEqual(advance_discount(2, 10), 0.8)
        self.assertEqual(advance_discount(4, 10), 0.8)
        self.assertEqual(advance_discount(5, 10), 0.9)
        self.assertEqual(advance_discount(7, 10), 0.9)
        self.assertEqual(advance_discount(8, 10), 1.0)
        self.assertEqual(advance_discount(10, 10), 1.0)

    def test_peak_month_full_fare(self):
        # 8000 * 1.5 * 1.0
        self.assertEqual(estimate_price("TPE", "TYO", date(2026, 8, 1), 4, 4), 12000.0)

    def test_rounds_half_up(self):
        # 2000 * 1.3 * 0.9 = 2340; 5000 * 1.3 * 0.7 = 4550
        self.assertEqual(estimate_price("TPE", "KHH", date(2026, 3, 1), 5, 10), 2340.0)
        self.assertEqual(estimate_price("XXX", "YYY", date(2026, 4, 1), 1, 10), 4550.0)
