import json
import tempfile
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from pathlib import Path
from unittest.mock import Mock

import requests
from django.core.cache import cache
from django.test import SimpleTestCase, override_settings
from django.utils import timezone

from apps.pricing.estimation import estimate_price
from apps.providers.amadeus_client import AmadeusClient, ProviderError, TokenError
from apps.tracking.audit import ResponseAuditLog
from apps.tracking.cache import cached_analysis, remember_analysis
from apps.tracking.sampler import PriceSampler
from apps.tracking.service import (
    InputError,
    calculate_price_statistics,
    compare_price,
    generate_price_trend,
    track_prices,
    travel_date_for_week,
)
from apps.tracking.types import (
    LEVEL_MODERATE,
    LEVEL_STABLE,
    LEVEL_STRONG,
    SOURCE_ESTIMATED,
    SOURCE_LIVE,
    PriceAnalysis,
    PricePoint,
    PriceSample,
    PriceTrackRequest,
)

TODAY = date(2026, 5, 4)


def _offers_body(*carrier_prices):
    offers = []
    for i, (carrier, price) in enumerate(carrier_prices):
        offers.append({
            "id": str(i + 1),
            "price": {"total": f"{price:.2f}", "currency": "TWD"},
            "itineraries": [{"segments": [{"carrierCode": carrier}]}],
        })
    return json.dumps({"data": offers})


def _client_returning(bodies_by_date):
    client = Mock(spec=AmadeusClient)

    def search(**kwargs):
        return bodies_by_date[kwargs["departure_date"]]

    client.search_flight_offers.side_effect = search
    return client


def _read_records(path):
    return [json.loads(line) for line in Path(path).read_text(encoding="utf-8").splitlines()]


class _FixedSampler:
    """Sampler stub returning a fixed price per week."""

    currency = "TWD"

    def __init__(self, prices, source=SOURCE_LIVE):
        self.prices = prices
        self.source = source

    def sample(self, origin, destination, travel_date, week, total_weeks):
        return PriceSample(price=self.prices[week - 1], source=self.source)


def _analysis(prices, start=TODAY):
    analysis = PriceAnalysis(route="TPE-TYO", track_weeks=len(prices), created_at=timezone.now())
    analysis.data_points = [
        PricePoint(week=i + 1, date=start + timedelta(days=7 * i), price=p, currency="TWD")
        for i, p in enumerate(prices)
    ]
    calculate_price_statistics(analysis)
    return analysis


class PriceSamplerTests(SimpleTestCase):
    def setUp(self):
        self.travel_date = date(2026, 6, 3)
        self.disabled_audit = ResponseAuditLog(None)

    def _sampler(self, client, audit_log=None):
        return PriceSampler(client=client, audit_log=audit_log or self.disabled_audit, currency="TWD", max_results=20)

    def test_live_price_uses_carrier_minimums(self):
        body = _offers_body(("CI", 8000), ("CI", 7500), ("CI", 9000), ("BR", 6000))
        sampler = self._sampler(_client_returning({"2026-06-03": body}))

        sample = sampler.sample("TPE", "TYO", self.travel_date, 1, 4)

        self.assertEqual(sample, PriceSample(price=6750.0, source=SOURCE_LIVE))

    def test_search_parameters(self):
        client = _client_returning({"2026-06-03": _offers_body(("CI", 8000))})
        self._sampler(client).sample_price("TPE", "TYO", self.travel_date, 1, 4)
        client.search_flight_offers.assert_called_once_with(
            origin="TPE", destination="TYO", departure_date="2026-06-03",
            adults=1, currency="TWD", max_results=20,
        )

    def test_failures_fall_back_to_estimate(self):
        failures = [
            ProviderError(500, "boom"),
            TokenError(401, "invalid_client"),
            requests.ConnectionError("unreachable"),
        ]
        expected = estimate_price("TPE", "TYO", self.travel_date, 2, 4)
        for failure in failures:
            client = Mock(spec=AmadeusClient)
            client.search_flight_offers.side_effect = failure
            sample = self._sampler(client).sample("TPE", "TYO", self.travel_date, 2, 4)
            self.assertEqual(sample, PriceSample(price=expected, source=SOURCE_ESTIMATED), failure)
            self.assertGreater(sample.price, 0)

    def test_empty_or_unparseable_responses_fall_back_to_estimate(self):
        expected = estimate_price("TPE", "TYO", self.travel_date, 1, 4)
        for body in ['{"data": []}', "not json", json.dumps({"data": [{"id": "1", "itineraries": []}]})]:
            sampler = self._sampler(_client_returning({"2026-06-03": body}))
            self.assertEqual(sampler.sample_price("TPE", "TYO", self.travel_date, 1, 4), expected, body)

    def test_raw_response_is_audited(self):
        body = _offers_body(("CI", 8000))
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "history.jsonl"
            sampler = self._sampler(_client_returning({"2026-06-03": body}), audit_log=ResponseAuditLog(path))
            sampler.sample("TPE", "TYO", self.travel_date, 1, 4)
            records = _read_records(path)

        self.assertEqual(len(records), 1)
        self.assertEqual(records[0]["origin"], "TPE")
        self.assertEqual(records[0]["destination"], "TYO")
        self.assertEqual(records[0]["departure_date"], "2026-06-03")
        self.assertEqual(records[0]["raw_response"], json.loads(body))

    def test_audit_failure_does_not_fail_sampling(self):
        with tempfile.TemporaryDirectory() as tmp:
            # A directory cannot be opened for appending
            sampler = self._sampler(
                _client_returning({"2026-06-03": _offers_body(("CI", 8000))}),
                audit_log=ResponseAuditLog(tmp),
            )
            sample = sampler.sample("TPE", "TYO", self.travel_date, 1, 4)

        self.assertEqual(sample, PriceSample(price=8000.0, source=SOURCE_LIVE))


class ResponseAuditLogTests(SimpleTestCase):
    def test_appends_one_line_per_record(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "history.jsonl"
            log = ResponseAuditLog(path)
            self.assertTrue(log.append(origin="TPE", destination="NRT", departure_date="2026-06-03", raw_body='{"data": []}'))
            self.assertTrue(log.append(origin="TPE", destination="HKG", departure_date="2026-06-10", raw_body="<html>"))
            lines = path.read_text(encoding="utf-8").splitlines()

        self.assertEqual(len(lines), 2)
        first, second = (json.loads(line) for line in lines)
        self.assertEqual(set(first), {"timestamp", "origin", "destination", "departure_date", "raw_response"})
        self.assertEqual(first["raw_response"], {"data": []})
        self.assertEqual(second["raw_response"], "<html>")

    def test_raw_body_is_stored_verbatim(self):
        body = '{"data": [], "meta": {"total": 1.50, "big": 1e400}}'
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "history.jsonl"
            ResponseAuditLog(path).append(origin="TPE", destination="NRT", departure_date="2026-06-03", raw_body=body)
            line = path.read_text(encoding="utf-8").splitlines()[0]

        self.assertTrue(line.endswith(f'"raw_response": {body}}}'))
        self.assertNotIn("Infinity", line)
        self.assertEqual(json.loads(line)["raw_response"]["data"], [])

    def test_multiline_and_non_standard_bodies_stay_one_line(self):
        pretty = '{\n  "data": [],\n  "meta": {"total": 1.50}\n}\n'
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "history.jsonl"
            log = ResponseAuditLog(path)
            log.append(origin="TPE", destination="NRT", departure_date="2026-06-03", raw_body=pretty)
            log.append(origin="TPE", destination="NRT", departure_date="2026-06-10", raw_body='{"total": NaN}')
            lines = path.read_text(encoding="utf-8").splitlines()

        self.assertEqual(len(lines), 2)
        self.assertIn('"total": 1.50', lines[0])
        self.assertEqual(json.loads(lines[0])["raw_response"]["meta"], {"total": 1.5})
        self.assertEqual(json.loads(lines[1])["raw_response"], '{"total": NaN}')

    def test_concurrent_appends_do_not_interleave(self):
        body = _offers_body(*[("CI", 8000 + i) for i in range(50)])
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "history.jsonl"
            log = ResponseAuditLog(path)

            def append(i):
                return log.append(origin="TPE", destination="NRT", departure_date=f"2026-06-{i % 28 + 1:02d}", raw_body=body)

            with ThreadPoolExecutor(max_workers=8) as executor:
                results = list(executor.map(append, range(200)))
            records = _read_records(path)

        self.assertTrue(all(results))
        self.assertEqual(len(records), 200)
        self.assertTrue(all(r["raw_response"] == json.loads(body) for r in records))

    def test_disabled_log_writes_nothing(self):
        log = ResponseAuditLog("")
        self.assertIsNone(log.path)
        self.assertFalse(log.append(origin="TPE", destination="NRT", departure_date="2026-06-03", raw_body="{}"))

    @override_settings(PRICE_TRACK_AUDIT_PATH="/tmp/configured.jsonl")
    def test_path_from_settings(self):
        self.assertEqual(ResponseAuditLog.from_settings().path, Path("/tmp/configured.jsonl"))


class TrackPricesTests(SimpleTestCase):
    def test_one_point_per_week_in_order(self):
        for weeks in (1, 5, 52):
            prices = [5000.0 + (i * 37) % 900 for i in range(weeks)]
            analysis = track_prices(
                PriceTrackRequest("TPE", "TYO", weeks), sampler=_FixedSampler(prices), today=TODAY, max_workers=8,
            )
            self.assertEqual(len(analysis.data_points), weeks)
            self.assertEqual([p.week for p in analysis.data_points], list(range(1, weeks + 1)))
            self.assertEqual([p.price for p in analysis.data_points], prices)
            self.assertEqual(analysis.min_price, min(prices))
            self.assertEqual(analysis.max_price, max(prices))
            self.assertAlmostEqual(analysis.avg_price, sum(prices) / weeks, delta=1e-6)
            for point in analysis.data_points:
                self.assertLessEqual(analysis.min_price, point.price)
                self.assertLessEqual(point.price, analysis.max_price)

    def test_travel_dates(self):
        self.assertEqual(travel_date_for_week(TODAY, 1), date(2026, 6, 3))
        self.assertEqual(travel_date_for_week(TODAY, 3), date(2026, 6, 17))

        analysis = track_prices(
            PriceTrackRequest("TPE", "TYO", 3), sampler=_FixedSampler([1.0, 2.0, 3.0]), today=TODAY,
        )
        self.assertEqual(
            [p.date for p in analysis.data_points],
            [date(2026, 6, 3), date(2026, 6, 10), date(2026, 6, 17)],
        )
        self.assertTrue(all(p.currency == "TWD" for p in analysis.data_points))
        self.assertEqual(analysis.route, "TPE-TYO")
        self.assertEqual(analysis.track_weeks, 3)

    def test_mocked_provider_end_to_end(self):
        bodies = {
            "2026-06-03": _offers_body(("CI", 8000)),
            "2026-06-10": _offers_body(("CI", 7000)),
            "2026-06-17": _offers_body(("CI", 7500)),
            "2026-06-24": _offers_body(("CI", 6500)),
        }
        sampler = PriceSampler(client=_client_returning(bodies), audit_log=ResponseAuditLog(None), currency="TWD")

        analysis = track_prices(PriceTrackRequest("TPE", "TYO", 4), sampler=sampler, today=TODAY)

        self.assertEqual([p.price for p in analysis.data_points], [8000.0, 7000.0, 7500.0, 6500.0])
        self.assertEqual(analysis.min_price, 6500.0)
        self.assertEqual(analysis.best_date, date(2026, 6, 24))
        self.assertEqual(analysis.max_price, 8000.0)
        self.assertAlmostEqual(analysis.avg_price, 7250.0)
        # (7250 - 6500) / 7250 is about 10.3%
        self.assertEqual(analysis.recommendation_level, LEVEL_MODERATE)
        self.assertIn("2026-06-24", analysis.recommendation)
        self.assertEqual(analysis.estimated_weeks, 0)

    def test_provider_outage_still_produces_full_analysis(self):
        client = Mock(spec=AmadeusClient)
        client.search_flight_offers.side_effect = ProviderError(503, "down")
        sampler = PriceSampler(client=client, audit_log=ResponseAuditLog(None), currency="TWD")

        analysis = track_prices(PriceTrackRequest("TPE", "HKG", 10), sampler=sampler, today=TODAY)

        self.assertEqual(len(analysis.data_points), 10)
        self.assertEqual(analysis.estimated_weeks, 10)
        for point in analysis.data_points:
            self.assertEqual(point.price, estimate_price("TPE", "HKG", point.date, point.week, 10))

    def test_rejects_non_positive_weeks(self):
        for weeks in (0, -3):
            with self.assertRaises(InputError):
                track_prices(PriceTrackRequest("TPE", "TYO", weeks), sampler=_FixedSampler([]), today=TODAY)

    def test_rejects_missing_route(self):
        with self.assertRaises(InputError):
            track_prices(PriceTrackRequest("", "TYO", 2), sampler=_FixedSampler([1.0, 2.0]), today=TODAY)


class PriceStatisticsTests(SimpleTestCase):
    def test_tied_minimum_keeps_earliest_week(self):
        analysis = _analysis([7000.0, 6000.0, 6000.0, 8000.0])
        self.assertEqual(analysis.min_price, 6000.0)
        self.assertEqual(analysis.best_date, analysis.data_points[1].date)

    def test_strong_recommendation(self):
        analysis = _analysis([10000.0, 10000.0, 10000.0, 5000.0])
        self.assertEqual(analysis.recommendation_level, LEVEL_STRONG)
        self.assertIn("5000", analysis.recommendation)

    def test_stable_recommendation(self):
        analysis = _analysis([7000.0, 7100.0, 6900.0])
        self.assertEqual(analysis.recommendation_level, LEVEL_STABLE)

    def test_empty_analysis_is_left_untouched(self):
        analysis = PriceAnalysis(route="TPE-TYO", track_weeks=0, created_at=timezone.now())
        calculate_price_statistics(analysis)
        self.assertIsNone(analysis.best_date)
        self.assertEqual(analysis.recommendation, "")


class PriceTrendTests(SimpleTestCase):
    def test_reshapes_analysis_into_series(self):
        analysis = _analysis([8000.0, 7000.0], start=date(2026, 6, 3))
        trend = generate_price_trend(analysis)

        self.assertEqual(trend.route, "TPE-TYO")
        self.assertEqual(trend.weeks, 2)
        self.assertEqual(trend.labels, ["06/03", "06/10"])
        self.assertEqual(trend.prices, [8000.0, 7000.0])
        self.assertEqual(trend.week_nums, [1, 2])
        self.assertIs(trend.summary, analysis)


class ComparePriceTests(SimpleTestCase):
    def setUp(self):
        # min 6500, avg 7250
        self.analysis = _analysis([8000.0, 7000.0, 7500.0, 6500.0])

    def test_price_at_tracked_low_is_a_deal(self):
        result = compare_price(self.analysis, 6500.0)
        self.assertTrue(result.is_good_deal)
        self.assertEqual(result.historical_low, 6500.0)
        self.assertEqual(result.savings, 750.0)

    def test_price_well_below_average_is_a_deal(self):
        analysis = _analysis([10000.0, 10000.0, 10000.0, 5000.0])
        result = compare_price(analysis, 7000.0)
        # avg 8750: 20% below
        self.assertTrue(result.is_good_deal)
        self.assertEqual(result.savings_percent, 20.0)

    def test_price_above_average_is_not_a_deal(self):
        result = compare_price(self.analysis, 8000.0)
        self.assertFalse(result.is_good_deal)
        self.assertLess(result.savings, 0)
        self.assertEqual(result.average_price, 7250.0)


class RouteCacheTests(SimpleTestCase):
    def setUp(self):
        cache.clear()

    def test_remembers_by_route(self):
        analysis = _analysis([8000.0, 7000.0])
        remember_analysis(analysis)
        cached = cached_analysis("TPE-TYO")
        self.assertEqual(cached.data_points, analysis.data_points)
        self.assertEqual(cached_analysis("TPE-TYO", weeks=2).min_price, 7000.0)

    def test_ignores_entry_for_different_window(self):
        remember_analysis(_analysis([8000.0, 7000.0]))
        self.assertIsNone(cached_analysis("TPE-TYO", weeks=4))
        self.assertIsNone(cached_analysis("TPE-OSA"))
