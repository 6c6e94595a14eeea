from unittest.mock import patch

from django.core.cache import cache
from django.test import Client, SimpleTestCase, override_settings

from apps.providers.amadeus_client import ProviderError
from apps.tracking import service


@override_settings(PRICE_TRACK_AUDIT_PATH="")
@patch("apps.tracking.sampler.PriceSampler._live_price", side_effect=ProviderError(503, "down"))
class PriceViewsTests(SimpleTestCase):
    def setUp(self):
        cache.clear()
        self.client = Client()

    def test_health(self, _live):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_track_returns_full_analysis(self, _live):
        response = self.client.get("/api/prices/track", {"origin": "tpe", "destination": "hkg", "weeks": 6})
        self.assertEqual(response.status_code, 200)

        body = response.json()
        analysis = body["analysis"]
        self.assertEqual(analysis["route"], "TPE-HKG")
        self.assertEqual(analysis["track_weeks"], 6)
        self.assertEqual([p["week"] for p in analysis["data_points"]], [1, 2, 3, 4, 5, 6])
        prices = [p["price"] for p in analysis["data_points"]]
        self.assertEqual(analysis["min_price"], min(prices))
        self.assertEqual(analysis["max_price"], max(prices))
        self.assertIn(analysis["recommendation_level"], {"strong", "moderate", "stable"})
        self.assertNotIn("source", analysis["data_points"][0])
        self.assertEqual(body["meta"]["origin"], "TPE")
        self.assertEqual(body["meta"]["track_weeks"], 6)

    def test_track_defaults_and_clamps_weeks(self, _live):
        response = self.client.get("/api/prices/track", {"origin": "TPE", "destination": "TYO"})
        self.assertEqual(response.json()["analysis"]["track_weeks"], 18)

        response = self.client.get("/api/prices/track", {"origin": "TPE", "destination": "TYO", "weeks": 80})
        self.assertEqual(response.json()["analysis"]["track_weeks"], 52)

    def test_track_rejects_bad_input(self, _live):
        cases = [
            {"origin": "TPE"},
            {"destination": "TYO"},
            {"origin": "TPE", "destination": "TYO", "weeks": 0},
            {"origin": "TPE", "destination": "TYO", "weeks": "many"},
            {"origin": "TPE", "destination": "tpe"},
        ]
        for params in cases:
            response = self.client.get("/api/prices/track", params)
            self.assertEqual(response.status_code, 400, params)

    def test_trend_reuses_cached_analysis(self, _live):
        self.client.get("/api/prices/track", {"origin": "TPE", "destination": "TYO", "weeks": 4})

        with patch("apps.api.views.track_prices", wraps=service.track_prices) as tracked:
            response = self.client.get("/api/prices/trend", {"origin": "TPE", "destination": "TYO", "weeks": 4})
            tracked.assert_not_called()

        trend = response.json()["trend"]
        self.assertEqual(trend["route"], "TPE-TYO")
        self.assertEqual(trend["week_nums"], [1, 2, 3, 4])
        self.assertEqual(len(trend["labels"]), 4)
        self.assertEqual(trend["prices"], [p["price"] for p in trend["summary"]["data_points"]])

    def test_trend_tracks_when_nothing_cached(self, _live):
        with patch("apps.api.views.track_prices", wraps=service.track_prices) as tracked:
            response = self.client.get("/api/prices/trend", {"origin": "TPE", "destination": "OSA", "weeks": 3})
            tracked.assert_called_once()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["trend"]["weeks"], 3)

    def test_compare(self, _live):
        response = self.client.get(
            "/api/prices/compare", {"origin": "TPE", "destination": "HKG", "weeks": 10, "price": 1000},
        )
        self.assertEqual(response.status_code, 200)
        comparison = response.json()["comparison"]
        self.assertTrue(comparison["is_good_deal"])
        self.assertEqual(comparison["current_price"], 1000.0)

    def test_compare_requires_price(self, _live):
        response = self.client.get("/api/prices/compare", {"origin": "TPE", "destination": "HKG"})
        self.assertEqual(response.status_code, 400)
