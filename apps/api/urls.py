from django.urls import path
from apps.api.views import HealthView, PriceCompareView, PriceTrendView, TrackPricesView

urlpatterns = [
    path('prices/track', TrackPricesView.as_view(), name='prices-track'),
    path('prices/trend', PriceTrendView.as_view(), name='prices-trend'),
    path('prices/compare', PriceCompareView.as_view(), name='prices-compare'),
    path('health', HealthView.as_view(), name='health'),
]
