import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / '.env')

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'insecure-dev-key')
DEBUG = os.getenv('DJANGO_DEBUG', 'true').lower() == 'true'
ALLOWED_HOSTS = [h.strip() for h in os.getenv('DJANGO_ALLOWED_HOSTS', '*').split(',') if h.strip()]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'rest_framework',
]

MIDDLEWARE = [
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'
WSGI_APPLICATION = 'config.wsgi.application'

# Tracked prices are not persisted
DATABASES = {}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'price-track',
        'OPTIONS': {'MAX_ENTRIES': 500},
    }
}

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [],
    'DEFAULT_RENDERER_CLASSES': ['rest_framework.renderers.JSONRenderer'],
    'UNAUTHENTICATED_USER': None,
}

USE_TZ = True
TIME_ZONE = os.getenv('TIME_ZONE', 'Asia/Taipei')

# ---------- Amadeus ----------
AMADEUS_API_KEY = os.getenv('AMADEUS_API_KEY', '')
AMADEUS_API_SECRET = os.getenv('AMADEUS_API_SECRET', '')
AMADEUS_BASE_URL = os.getenv('AMADEUS_BASE_URL', 'https://test.api.amadeus.com')

# ---------- Price tracking ----------
PRICE_TRACK_CURRENCY = os.getenv('PRICE_TRACK_CURRENCY', 'TWD')
PRICE_TRACK_MAX_WORKERS = int(os.getenv('PRICE_TRACK_MAX_WORKERS', '4'))
PRICE_TRACK_MAX_RESULTS = int(os.getenv('PRICE_TRACK_MAX_RESULTS', '20'))
PRICE_TRACK_AUDIT_PATH = os.getenv('PRICE_TRACK_AUDIT_PATH', str(BASE_DIR / 'amadeus_api_history.jsonl'))
PRICE_TRACK_CACHE_TTL = int(os.getenv('PRICE_TRACK_CACHE_TTL', '3600'))
PRICE_DEAL_THRESHOLD_PERCENT = float(os.getenv('PRICE_DEAL_THRESHOLD_PERCENT', '15'))

# Extra entries merged over the built-in tables in apps.pricing.reference
CARRIER_NAMES = {}
ROUTE_BASE_PRICES = {}

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {'format': '%(asctime)s %(levelname)s %(name)s: %(message)s'},
    },
    'handlers': {
        'console': {'class': 'logging.StreamHandler', 'formatter': 'default'},
    },
    'loggers': {
        'apps': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
    'root': {'handlers': ['console'], 'level': 'WARNING'},
}
