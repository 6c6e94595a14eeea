import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from django.conf import settings

logger = logging.getLogger(__name__)

# Refresh 5 minutes before expiry
TOKEN_REFRESH_MARGIN_SECONDS = 300
DEFAULT_TIMEOUT = 30


class TokenError(Exception):
    def __init__(self, status_code: int, body: Any):
        super().__init__(f"Amadeus token request failed {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class ProviderError(Exception):
    def __init__(self, status_code: int, payload: Any):
        super().__init__(f"Amadeus API error {status_code}: {payload}")
        self.status_code = status_code
        self.payload = payload


@dataclass(frozen=True)
class OAuthToken:
    access_token: str
    token_type: str
    expires_at_epoch: float

    @property
    def is_expired(self) -> bool:
        return time.time() >= (self.expires_at_epoch - TOKEN_REFRESH_MARGIN_SECONDS)


class AmadeusClient:
    """Amadeus client with an in-memory token cache.

    The token and the HTTP session are shared by every thread using this client.
    Token refresh runs under a lock, so concurrent callers trigger one fetch.
    The session's connection pool is sized to PRICE_TRACK_MAX_WORKERS so week
    workers do not discard connections.
    """

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, api_secret: Optional[str] = None):
        self.base_url = (base_url or settings.AMADEUS_BASE_URL).rstrip('/')
        self.api_key = api_key or settings.AMADEUS_API_KEY
        self.api_secret = api_secret or settings.AMADEUS_API_SECRET
        self._token: Optional[OAuthToken] = None
        self._token_lock = threading.Lock()
        self._session = requests.Session()
        pool_size = getattr(settings, "PRICE_TRACK_MAX_WORKERS", 4)
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    # ---------- OAuth ----------
    def _fetch_token(self) -> OAuthToken:
        url = f"{self.base_url}/v1/security/oauth2/token"
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        data = {
            "grant_type": "client_credentials",
            "client_id": self.api_key,
            "client_secret": self.api_secret,
        }
        resp = self._session.post(url, headers=headers, data=data, timeout=DEFAULT_TIMEOUT)
        if resp.status_code != 200:
            raise TokenError(resp.status_code, resp.text)
        payload = resp.json()
        expires_in = payload.get("expires_in", 0)
        token = OAuthToken(
            access_token=payload["access_token"],
            token_type=payload.get("token_type", "Bearer"),
            expires_at_epoch=time.time() + float(expires_in),
        )
        logger.info("Obtained Amadeus access token (expires in %ss)", expires_in)
        return token

    def get_token(self) -> OAuthToken:
        with self._token_lock:
            if self._token is None or self._token.is_expired:
                self._token = self._fetch_token()
            return self._token

    # ---------- HTTP ----------
    def _headers(self) -> Dict[str, str]:
        token = self.get_token()
        return {
            "Authorization": f"Bearer {token.access_token}",
            "Accept": "application/json",
        }

    def get_text(self, path: str, params: Optional[Dict[str, Any]] = None, timeout: int = DEFAULT_TIMEOUT) -> str:
        url = f"{self.base_url}{path}"
        resp = self._session.get(url, headers=self._headers(), params=params or {}, timeout=timeout)
        if resp.status_code != 200:
            raise ProviderError(resp.status_code, resp.text)
        return resp.text

    # ---------- Flight Offers Search ----------
    def search_flight_offers(
        self,
        *,
        origin: str,
        destination: str,
        departure_date: str,
        adults: int = 1,
        currency: Optional[str] = None,
        max_results: int = 20,
    ) -> str:
        """Query Flight Offers Search (v2) and return the raw response body.

        The body is returned verbatim so callers can audit it before decoding.
        """
        params = {
            "originLocationCode": origin,
            "destinationLocationCode": destination,
            "departureDate": departure_date,
            "adults": adults,
            "currencyCode": currency,
            "max": max_results,
        }
        params = {k: v for k, v in params.items() if v is not None}
        logger.info("Searching offers %s -> %s on %s", origin, destination, departure_date)
        return self.get_text("/v2/shopping/flight-offers", params=params)


_client: Optional[AmadeusClient] = None
_client_lock = threading.Lock()


def get_amadeus_client() -> AmadeusClient:
    """Return the process-wide client so every sampler shares one token cache."""
    global _client
    with _client_lock:
        if _client is None:
            _client = AmadeusClient()
    return _client


def reset_amadeus_client() -> None:
    global _client
    with _client_lock:
        _client = None
