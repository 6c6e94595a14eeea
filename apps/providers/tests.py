import json
import time
from unittest.mock import Mock, patch

from django.test import SimpleTestCase, override_settings

from apps.providers.amadeus_client import (
    AmadeusClient,
    OAuthToken,
    ProviderError,
    TokenError,
    get_amadeus_client,
    reset_amadeus_client,
)
from apps.providers.normalizer import (
    NoOffersError,
    airline_min_prices,
    decode_offers,
    representative_price,
    summarize_airline_prices,
)


def _offer(carrier, total, offer_id="1"):
    return {
        "id": offer_id,
        "price": {"total": total, "currency": "TWD"},
        "itineraries": [{
            "segments": [{
                "carrierCode": carrier,
                "departure": {"iataCode": "TPE", "terminal": "1", "at": "2026-06-03T08:00:00"},
                "arrival": {"iataCode": "NRT", "terminal": "2", "at": "2026-06-03T12:00:00"},
            }],
        }],
    }


def _response(status_code, payload=None, text=None):
    resp = Mock()
    resp.status_code = status_code
    resp.json.return_value = payload
    resp.text = text if text is not None else json.dumps(payload)
    return resp


class TokenCacheTests(SimpleTestCase):
    def setUp(self):
        self.amadeus = AmadeusClient(base_url="http://amadeus.test/", api_key="key", api_secret="secret")

    def test_fetches_token_with_client_credentials(self):
        with patch.object(self.amadeus._session, "post") as mock_post:
            mock_post.return_value = _response(200, {"access_token": "abc", "expires_in": 1799})
            token = self.amadeus.get_token()

        self.assertEqual(token.access_token, "abc")
        self.assertAlmostEqual(token.expires_at_epoch, time.time() + 1799, delta=5)
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], "http://amadeus.test/v1/security/oauth2/token")
        self.assertEqual(kwargs["data"]["grant_type"], "client_credentials")
        self.assertEqual(kwargs["data"]["client_id"], "key")
        self.assertEqual(kwargs["timeout"], 30)

    def test_valid_token_is_reused_without_io(self):
        with patch.object(self.amadeus._session, "post") as mock_post:
            mock_post.return_value = _response(200, {"access_token": "abc", "expires_in": 1799})
            first = self.amadeus.get_token()
            second = self.amadeus.get_token()

        self.assertIs(first, second)
        mock_post.assert_called_once()

    def test_token_inside_safety_margin_is_refreshed(self):
        # Four minutes left is inside the five-minute margin
        self.amadeus._token = OAuthToken("old", "Bearer", time.time() + 240)
        with patch.object(self.amadeus._session, "post") as mock_post:
            mock_post.return_value = _response(200, {"access_token": "new", "expires_in": 1799})
            token = self.amadeus.get_token()

        self.assertEqual(token.access_token, "new")
        mock_post.assert_called_once()

    def test_token_outside_safety_margin_is_kept(self):
        self.amadeus._token = OAuthToken("old", "Bearer", time.time() + 600)
        with patch.object(self.amadeus._session, "post") as mock_post:
            token = self.amadeus.get_token()

        self.assertEqual(token.access_token, "old")
        mock_post.assert_not_called()

    def test_non_200_raises_token_error(self):
        with patch.object(self.amadeus._session, "post") as mock_post:
            mock_post.return_value = _response(401, text='{"error": "invalid_client"}')
            with self.assertRaises(TokenError) as ctx:
                self.amadeus.get_token()

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertIn("invalid_client", ctx.exception.body)
        self.assertIsNone(self.amadeus._token)

    @override_settings(PRICE_TRACK_MAX_WORKERS=7)
    def test_connection_pool_matches_worker_count(self):
        amadeus = AmadeusClient(base_url="https://amadeus.test", api_key="key", api_secret="secret")
        for url in ("https://amadeus.test/v2/shopping/flight-offers", "http://amadeus.test/"):
            adapter = amadeus._session.get_adapter(url)
            self.assertEqual(adapter._pool_maxsize, 7)
            self.assertEqual(adapter._pool_connections, 7)


class OfferSearchTests(SimpleTestCase):
    def setUp(self):
        self.amadeus = AmadeusClient(base_url="http://amadeus.test", api_key="key", api_secret="secret")
        self.amadeus._token = OAuthToken("abc", "Bearer", time.time() + 3600)

    def test_returns_raw_body_and_sends_query(self):
        body = json.dumps({"data": [_offer("CI", "8000.00")]})
        with patch.object(self.amadeus._session, "get") as mock_get:
            mock_get.return_value = _response(200, text=body)
            result = self.amadeus.search_flight_offers(
                origin="TPE", destination="NRT", departure_date="2026-06-03", currency="TWD", max_results=20,
            )

        self.assertEqual(result, body)
        args, kwargs = mock_get.call_args
        self.assertEqual(args[0], "http://amadeus.test/v2/shopping/flight-offers")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer abc")
        self.assertEqual(kwargs["params"], {
            "originLocationCode": "TPE",
            "destinationLocationCode": "NRT",
            "departureDate": "2026-06-03",
            "adults": 1,
            "currencyCode": "TWD",
            "max": 20,
        })

    def test_non_200_raises_provider_error(self):
        with patch.object(self.amadeus._session, "get") as mock_get:
            mock_get.return_value = _response(429, text="rate limited")
            with self.assertRaises(ProviderError) as ctx:
                self.amadeus.search_flight_offers(origin="TPE", destination="NRT", departure_date="2026-06-03")

        self.assertEqual(ctx.exception.status_code, 429)


@override_settings(AMADEUS_BASE_URL="http://amadeus.test", AMADEUS_API_KEY="k", AMADEUS_API_SECRET="s")
class SharedClientTests(SimpleTestCase):
    def tearDown(self):
        reset_amadeus_client()

    def test_shared_client_is_reused_until_reset(self):
        reset_amadeus_client()
        first = get_amadeus_client()
        self.assertIs(first, get_amadeus_client())
        reset_amadeus_client()
        self.assertIsNot(first, get_amadeus_client())


class NormalizerTests(SimpleTestCase):
    def test_representative_price_averages_carrier_minimums(self):
        offers = [
            _offer("CI", "8000.00", "1"),
            _offer("CI", "7500.00", "2"),
            _offer("CI", "9000.00", "3"),
            _offer("BR", "6000.00", "4"),
        ]
        self.assertEqual(representative_price(offers), (7500 + 6000) / 2)

    def test_carrier_codes_map_to_display_names(self):
        prices = airline_min_prices([_offer("CI", "100"), _offer("ZZ", "200")])
        self.assertEqual(prices, {"China Airlines": 100.0, "ZZ": 200.0})

    @override_settings(CARRIER_NAMES={"ZZ": "Zed Air"})
    def test_carrier_table_can_be_extended_from_settings(self):
        prices = airline_min_prices([_offer("ZZ", "200")])
        self.assertEqual(prices, {"Zed Air": 200.0})

    def test_malformed_and_unpriced_offers_are_skipped(self):
        no_itineraries = {"id": "x", "price": {"total": "100"}, "itineraries": []}
        no_segments = {"id": "y", "price": {"total": "100"}, "itineraries": [{"segments": []}]}
        bad_price = _offer("BR", "n/a")
        prices = airline_min_prices([no_itineraries, no_segments, bad_price, _offer("CI", "5000")])
        self.assertEqual(prices, {"China Airlines": 5000.0})

    def test_null_itinerary_or_segment_skips_only_that_offer(self):
        offers = [
            _offer("CI", "8000.00"),
            {"id": "2", "price": {"total": "100"}, "itineraries": [None]},
            {"id": "3", "price": {"total": "100"}, "itineraries": [{"segments": [None]}]},
            {"id": "4", "price": None, "itineraries": [{"segments": [{"carrierCode": "BR"}]}]},
            None,
        ]
        self.assertEqual(airline_min_prices(offers), {"China Airlines": 8000.0})
        self.assertEqual(representative_price(offers), 8000.0)

    def test_all_malformed_offers_raise_no_offers(self):
        offers = [{"id": "1", "price": {"total": "100"}}, {"id": "2", "price": {"total": "200"}, "itineraries": []}]
        with self.assertRaises(NoOffersError):
            representative_price(offers)

    def test_empty_offer_list_raises_no_offers(self):
        with self.assertRaises(NoOffersError):
            representative_price([])

    def test_spread_statistics(self):
        spread = summarize_airline_prices({"A": 100.0, "B": 300.0})
        self.assertEqual(spread.carriers, 2)
        self.assertEqual(spread.average, 200.0)
        self.assertEqual(spread.min_price, 100.0)
        self.assertEqual(spread.max_price, 300.0)
        self.assertEqual(spread.price_range, 200.0)
        self.assertEqual(spread.std_dev, 100.0)

    def test_decode_offers(self):
        self.assertEqual(decode_offers('{"data": [{"id": "1"}]}'), [{"id": "1"}])
        self.assertEqual(decode_offers('{"meta": {"count": 0}}'), [])

    def test_decode_offers_rejects_invalid_json(self):
        with self.assertRaises(ProviderError):
            decode_offers("<html>gateway timeout</html>")
        with self.assertRaises(ProviderError):
            decode_offers("[1, 2]")
