"""
Blocking HTTP transport shared by the REST adapters.
"""

import json
import time
from typing import Any, Callable, Dict, Optional

import httpx

from src.exchangehub.config import HttpSettings, settings
from src.exchangehub.logging import get_logger
from src.exchangehub.shared.errors import (
    AuthenticationError,
    ExchangeError,
    NetworkError,
    RateLimitError,
)
from src.exchangehub.signing.models import SignedRequest

logger = get_logger(__name__)


class HttpClient:
    """JSON-over-HTTP client with bounded retries.

    Only NetworkError (transport failures and 5xx answers) is retried, with a
    linear backoff of retry_delay * attempt. Rate limits, authentication
    failures and other 4xx answers are raised immediately.
    """

    def __init__(
        self,
        base_url: str,
        exchange: str = "",
        config: Optional[HttpSettings] = None,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or settings.http
        self.exchange = exchange
        self.sleep = sleep
        self.client = client or httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(self.config.timeout, connect=self.config.connect_timeout),
        )

    def get(self, path: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Any:
        return self.request("GET", path, params=params, headers=headers)

    def post(
        self,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return self.request("POST", path, params=params, body=body, headers=headers)

    def put(
        self,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return self.request("PUT", path, params=params, body=body, headers=headers)

    def delete(self, path: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> Any:
        return self.request("DELETE", path, params=params, headers=headers)

    def send(self, signed: SignedRequest) -> Any:
        """Send a signed request, using its signed body text verbatim."""
        return self.request(
            signed.method,
            signed.path,
            params=signed.params,
            body=signed.body,
            content=signed.content,
            headers=signed.headers,
        )

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        content: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._execute(method, path, params, body, content, headers)
            except NetworkError as e:
                if attempt >= self.config.max_retries:
                    logger.error(f"{method} {path} failed after {attempt} attempts: {e}")
                    raise
                delay = self.config.retry_delay * attempt
                logger.warning(f"{method} {path} attempt {attempt} failed ({e}), retrying in {delay:.2f}s")
                self.sleep(delay)

    def close(self) -> None:
        self.client.close()

    def _execute(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        body: Optional[Dict[str, Any]],
        content: Optional[str],
        headers: Optional[Dict[str, str]],
    ) -> Any:
        request_headers = dict(headers or {})
        if content is None and body is not None:
            content = json.dumps(body, separators=(",", ":"))
            request_headers.setdefault("Content-Type", "application/json")

        logger.debug(f"{method} {path} params={params}")
        try:
            response = self.client.request(
                method,
                path,
                params=params or None,
                content=content or None,
                headers=request_headers,
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"{type(e).__name__}: {e}", self.exchange, e) from e

        logger.debug(f"{method} {path} -> {response.status_code}")
        payload = self._decode(response)
        self._raise_for_status(response, payload)
        return payload

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    def _raise_for_status(self, response: httpx.Response, payload: Any) -> None:
        code = response.status_code
        if code < 400:
            return

        data = payload if isinstance(payload, dict) else {}
        if code == 401:
            raise AuthenticationError("Invalid or expired credentials", self.exchange)
        if code == 403:
            raise AuthenticationError("Access denied, check the API key permissions", self.exchange)
        if code == 429:
            raise RateLimitError(self.exchange, self._retry_after(response, data))
        if code == 418:
            raise RateLimitError(self.exchange, 60)
        if code >= 500:
            raise NetworkError(f"Exchange internal error (HTTP {code})", self.exchange)

        message = data.get("msg") or data.get("message") or data.get("error") or data.get("code")
        raise ExchangeError(str(message) if message else response.text[:200], self.exchange, code)

    @staticmethod
    def _retry_after(response: httpx.Response, data: Dict[str, Any]) -> int:
        value = data.get("retryAfter") or response.headers.get("Retry-After") or 0
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0
