from rest_framework import serializers

from apps.tracking.service import DEFAULT_TRACK_WEEKS, MAX_TRACK_WEEKS


class PriceTrackRequestSerializer(serializers.Serializer):
    origin = serializers.CharField(min_length=3, max_length=3)
    destination = serializers.CharField(min_length=3, max_length=3)
    weeks = serializers.IntegerField(min_value=1, required=False, default=DEFAULT_TRACK_WEEKS)

    def validate(self, attrs):
        origin = attrs["origin"].strip().upper()
        destination = attrs["destination"].strip().upper()
        if origin == destination:
            raise serializers.ValidationError({"destination": "Destination must be different from origin."})
        attrs["origin"] = origin
        attrs["destination"] = destination
        # Long windows are clamped rather than rejected
        attrs["weeks"] = min(attrs["weeks"], MAX_TRACK_WEEKS)
        return attrs


class PriceCompareRequestSerializer(PriceTrackRequestSerializer):
    price = serializers.FloatField(min_value=0.01)


class PricePointSerializer(serializers.Serializer):
    week = serializers.IntegerField()
    date = serializers.DateField()
    price = serializers.FloatField()
    currency = serializers.CharField()


class PriceAnalysisSerializer(serializers.Serializer):
    route = serializers.CharField()
    track_weeks = serializers.IntegerField()
    data_points = PricePointSerializer(many=True)
    min_price = serializers.FloatField()
    max_price = serializers.FloatField()
    avg_price = serializers.FloatField()
    best_date = serializers.DateField(allow_null=True)
    recommendation = serializers.CharField()
    recommendation_level = serializers.CharField()
    created_at = serializers.DateTimeField()


class PriceTrendSerializer(serializers.Serializer):
    route = serializers.CharField()
    weeks = serializers.IntegerField()
    labels = serializers.ListField(child=serializers.CharField())
    prices = serializers.ListField(child=serializers.FloatField())
    week_nums = serializers.ListField(child=serializers.IntegerField())
    summary = PriceAnalysisSerializer()


class PriceComparisonSerializer(serializers.Serializer):
    current_price = serializers.FloatField()
    historical_low = serializers.FloatField()
    average_price = serializers.FloatField()
    savings = serializers.FloatField()
    savings_percent = serializers.FloatField()
    is_good_deal = serializers.BooleanField()
    recommendation = serializers.CharField()
    compared_date = serializers.DateTimeField()
