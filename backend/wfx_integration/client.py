"""
WorkflowMax (WFX) API Client

Async client for the WorkflowMax API:
- OAuth2 authorisation-code flow and token refresh
- Token persistence between runs (JSON file)
- Retry with linear backoff on timeouts, connection errors and 5xx
- Short-lived cache for GET responses

Endpoints used:
- GET /api/2.0/jobs/{id}
- GET /api/2.0/time?from=&to=&detailed=true
- GET /api/2.0/staff
"""

import asyncio
import json
import logging
import os
import secrets
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlencode

import httpx

from reconciliation.models import JobDetails

logger = logging.getLogger(__name__)

# Retry configuration
RETRY_DELAYS = [1.0, 2.0, 3.0]  # seconds, linear backoff
TOKEN_REFRESH_MARGIN_SECONDS = 60


class WFXAuthenticationError(Exception):
    """No usable token, or the API rejected the credentials."""
    pass


class WFXApiError(Exception):
    """Non-retryable API failure, or retries exhausted."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class CachedResponse:
    data: Any
    cached_at: float


class WFXApiClient:
    """
    Client for the WorkflowMax API.

    Tokens are loaded from ``token_path`` on construction when still valid.
    """

    def __init__(
        self,
        settings: Optional[Any] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        token_path: Optional[str] = None,
        retry_delays: Optional[List[float]] = None
    ):
        if settings is None:
            from config import get_settings
            settings = get_settings()

        self.client_id = settings.WFX_CLIENT_ID
        self.client_secret = settings.WFX_CLIENT_SECRET
        self.account_id = settings.WFX_ACCOUNT_ID
        self.base_url = settings.WFX_BASE_URL.rstrip("/")
        self.auth_url = settings.WFX_AUTH_URL
        self.token_url = settings.WFX_TOKEN_URL
        self.callback_url = settings.WFX_CALLBACK_URL
        self.scopes = settings.WFX_SCOPES
        self.timeout = settings.WFX_REQUEST_TIMEOUT_SECONDS
        self.max_retries = settings.WFX_MAX_RETRIES
        self.cache_minutes = settings.WFX_CACHE_MINUTES
        self.token_path = token_path or settings.WFX_TOKEN_PATH

        self._transport = transport
        self._retry_delays = RETRY_DELAYS if retry_delays is None else retry_delays

        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.token_expiry: Optional[float] = None  # epoch seconds

        self._cache: Dict[str, CachedResponse] = {}

        self.load_saved_tokens()

    # ==================== TOKENS ====================

    def load_saved_tokens(self):
        """Load persisted tokens; expired tokens are discarded."""
        if not os.path.exists(self.token_path):
            return

        try:
            with open(self.token_path, "r", encoding="utf-8") as f:
                tokens = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read saved WFX tokens: {e}")
            return

        if tokens.get("access_token") and (tokens.get("token_expiry") or 0) > time.time():
            self.access_token = tokens["access_token"]
            self.refresh_token = tokens.get("refresh_token")
            self.token_expiry = tokens["token_expiry"]
            logger.info("Loaded saved WFX tokens")
        else:
            self.clear_tokens()

    def save_tokens(self):
        token_data = {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_expiry": self.token_expiry,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            directory = os.path.dirname(self.token_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.token_path, "w", encoding="utf-8") as f:
                json.dump(token_data, f, indent=2)
        except OSError as e:
            logger.warning(f"Could not save WFX tokens: {e}")

    def clear_tokens(self):
        self.access_token = None
        self.refresh_token = None
        self.token_expiry = None
        try:
            os.remove(self.token_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove saved WFX tokens: {e}")

    def set_tokens(self, access_token: str, refresh_token: Optional[str], expires_in: float):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.token_expiry = time.time() + expires_in

    def is_authenticated(self) -> bool:
        return bool(self.access_token) and (self.token_expiry or 0) > time.time()

    # ==================== OAUTH ====================

    def get_authorization_url(self, callback_url: Optional[str] = None, state: Optional[str] = None) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": callback_url or self.callback_url,
            "scope": self.scopes,
            "state": state or secrets.token_urlsafe(8),
        }
        return f"{self.auth_url}?{urlencode(params)}"

    async def exchange_code_for_token(self, code: str, callback_url: Optional[str] = None) -> Dict[str, Any]:
        """Exchange an authorisation code for access and refresh tokens."""
        return await self._request_token({
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": callback_url or self.callback_url,
        })

    async def refresh_access_token(self) -> Dict[str, Any]:
        if not self.refresh_token:
            raise WFXAuthenticationError("No refresh token available")

        return await self._request_token({
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
        })

    async def _request_token(self, form: Dict[str, str]) -> Dict[str, Any]:
        try:
            async with self._http_client() as client:
                response = await client.post(
                    self.token_url,
                    data=form,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.RequestError as e:
            logger.error(f"WFX token request error: {e}")
            raise WFXApiError(f"Token request failed: {e}")

        if response.status_code != 200:
            logger.error(f"WFX token endpoint returned {response.status_code}: {response.text}")
            raise WFXAuthenticationError(
                f"Token request ({form['grant_type']}) rejected with HTTP {response.status_code}"
            )

        payload = response.json()
        self.set_tokens(
            payload["access_token"],
            payload.get("refresh_token", self.refresh_token),
            payload.get("expires_in", 1800),
        )
        self.save_tokens()
        return payload

    async def ensure_valid_token(self):
        """Refresh the access token when it is missing or about to expire."""
        if self.access_token and time.time() < (self.token_expiry or 0) - TOKEN_REFRESH_MARGIN_SECONDS:
            return

        if self.refresh_token:
            await self.refresh_access_token()
        else:
            raise WFXAuthenticationError("No valid WFX authentication token; authorise the client first")

    # ==================== REQUESTS ====================

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.access_token}",
        }
        if self.account_id:
            headers["account_id"] = self.account_id
        return headers

    async def _send_with_retry(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        attempt = 0
        while True:
            try:
                async with self._http_client() as client:
                    response = await client.request(
                        method, url, params=params, json=body, headers=self._headers()
                    )
                if response.status_code < 500:
                    return response
                failure = f"HTTP {response.status_code}"
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                failure = f"{type(e).__name__}: {e}"

            if attempt >= self.max_retries:
                raise WFXApiError(f"{method} {url} failed after {attempt + 1} attempts ({failure})")

            delay = self._retry_delays[min(attempt, len(self._retry_delays) - 1)] if self._retry_delays else 0
            attempt += 1
            logger.warning(f"WFX request failed ({failure}), retrying ({attempt}/{self.max_retries})")
            await asyncio.sleep(delay)

    def _cache_key(self, endpoint: str, params: Optional[Dict[str, Any]]) -> str:
        return f"{endpoint}_{json.dumps(params or {}, sort_keys=True, default=str)}"

    def _cache_valid(self, entry: CachedResponse) -> bool:
        return (time.time() - entry.cached_at) / 60 < self.cache_minutes

    async def api_request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        use_cache: bool = True
    ) -> Any:
        """
        Authenticated API request; GET responses are cached.

        Raises:
            WFXAuthenticationError: missing token, or the API answered 401/403
            WFXApiError: any other failure
        """
        await self.ensure_valid_token()

        cacheable = method == "GET" and use_cache
        cache_key = self._cache_key(endpoint, params)
        if cacheable:
            cached = self._cache.get(cache_key)
            if cached and self._cache_valid(cached):
                logger.debug(f"Using cached data for {endpoint}")
                return cached.data

        response = await self._send_with_retry(method, f"{self.base_url}{endpoint}", params, body)

        if response.status_code == 403:
            self.clear_tokens()
            logger.error("WFX authentication failed (403); tokens cleared, re-authorise the client")
            raise WFXAuthenticationError("WFX rejected the access token (403)")
        if response.status_code == 401:
            raise WFXAuthenticationError("WFX request unauthorised (401)")
        if response.status_code >= 400:
            logger.error(f"WFX API error {response.status_code} for {endpoint}: {response.text}")
            raise WFXApiError(f"WFX API returned {response.status_code} for {endpoint}", response.status_code)

        data = response.json() if response.content else None
        if cacheable:
            self._cache[cache_key] = CachedResponse(data=data, cached_at=time.time())
        return data

    # ==================== RESOURCES ====================

    async def get_job(self, job_id: str) -> Dict[str, Any]:
        return await self.api_request(f"/api/2.0/jobs/{job_id}")

    async def get_timesheets(
        self,
        start_date: Union[date, str],
        end_date: Union[date, str]
    ) -> List[Dict[str, Any]]:
        """Time records for a date range (inclusive)."""
        data = await self.api_request("/api/2.0/time", params={
            "from": _format_date(start_date),
            "to": _format_date(end_date),
            "detailed": "true",
        })
        if isinstance(data, dict):
            data = data.get("times") or data.get("data") or []
        return list(data or [])

    async def get_staff(self) -> List[Dict[str, Any]]:
        data = await self.api_request("/api/2.0/staff")
        if isinstance(data, dict):
            data = data.get("staff") or data.get("data") or []
        return list(data or [])

    async def fetch_job_details(self, job_id: str) -> JobDetails:
        """Job metadata in the shape the matching engine consumes."""
        raw = await self.get_job(job_id)
        return JobDetails.from_mapping(job_id, raw or {})

    # ==================== CACHE ====================

    def clear_cache(self):
        self._cache.clear()
        logger.info("WFX response cache cleared")

    def get_cache_stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._cache),
            "entries": list(self._cache.keys()),
        }


def _format_date(value: Union[date, str]) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


@lru_cache()
def get_wfx_client() -> WFXApiClient:
    """Shared client for the application lifetime."""
    return WFXApiClient()
