from django.utils import timezone
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.api.serializers import (
    PriceAnalysisSerializer,
    PriceCompareRequestSerializer,
    PriceComparisonSerializer,
    PriceTrackRequestSerializer,
    PriceTrendSerializer,
)
from apps.tracking.cache import cached_analysis, remember_analysis
from apps.tracking.service import compare_price, generate_price_trend, track_prices
from apps.tracking.types import PriceTrackRequest


def _track_request(data) -> PriceTrackRequest:
    return PriceTrackRequest(origin=data["origin"], destination=data["destination"], weeks=data["weeks"])


def _analysis_for(req: PriceTrackRequest):
    analysis = cached_analysis(req.route, weeks=req.weeks)
    if analysis is None:
        analysis = track_prices(req)
        remember_analysis(analysis)
    return analysis


class TrackPricesView(APIView):
    def get(self, request):
        serializer = PriceTrackRequestSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        req = _track_request(serializer.validated_data)

        analysis = track_prices(req)
        remember_analysis(analysis)

        return Response({
            "analysis": PriceAnalysisSerializer(analysis).data,
            "meta": {
                "origin": req.origin,
                "destination": req.destination,
                "track_weeks": req.weeks,
                "analyzed_at": timezone.now().isoformat(),
            },
        }, status=status.HTTP_200_OK)


class PriceTrendView(APIView):
    def get(self, request):
        serializer = PriceTrackRequestSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        req = _track_request(serializer.validated_data)

        trend = generate_price_trend(_analysis_for(req))
        return Response({"trend": PriceTrendSerializer(trend).data}, status=status.HTTP_200_OK)


class PriceCompareView(APIView):
    def get(self, request):
        serializer = PriceCompareRequestSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        req = _track_request(data)

        comparison = compare_price(_analysis_for(req), data["price"])
        return Response({"comparison": PriceComparisonSerializer(comparison).data}, status=status.HTTP_200_OK)


class HealthView(APIView):
    authentication_classes = []
    permission_classes = []

    def get(self, request):
        return Response({'status': 'ok'}, status=status.HTTP_200_OK)
