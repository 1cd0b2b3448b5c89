"""
Request signing strategies, one per authentication family.

Every signer turns a SignableRequest into a SignedRequest. Apart from the
bearer-token signer, which caches its token, they hold no state beyond the
credentials, so a clock can be injected to make signatures reproducible.
"""

import base64
import hashlib
import hmac
import json
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import httpx

from src.exchangehub.logging import get_logger
from src.exchangehub.shared.errors import AuthenticationError, ExchangeError, NetworkError
from src.exchangehub.signing.models import (
    ApiCredentials,
    PassphraseCredentials,
    SignableRequest,
    SignedRequest,
    TokenCredentials,
)

logger = get_logger(__name__)

Clock = Callable[[], float]


def hmac_hex(secret: str, payload: str, digest=hashlib.sha256) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), digest).hexdigest()


def hmac_b64(secret: str, payload: str, digest=hashlib.sha256) -> str:
    raw = hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), digest).digest()
    return base64.b64encode(raw).decode("ascii")


class RequestSigner(ABC):
    """Base class for all signing strategies."""

    exchange: str = ""

    def __init__(self, credentials: Any, clock: Clock = time.time):
        self.credentials = credentials
        self.clock = clock

    @abstractmethod
    def sign(self, request: SignableRequest) -> SignedRequest:
        """Return the authenticated form of request."""

    def _millis(self) -> str:
        return str(int(self.clock() * 1000))

    def _seconds(self) -> str:
        return str(int(self.clock()))

    def _micros(self) -> str:
        return str(int(self.clock() * 1_000_000))


class QueryHmacSigner(RequestSigner):
    """HMAC-SHA256 over the query string, sent back as a signature param.

    Binance and MEXC. A JSON body, when present, is appended to the query
    string before hashing.
    """

    def __init__(
        self,
        credentials: ApiCredentials,
        api_key_header: str = "X-MBX-APIKEY",
        exchange: str = "binance",
        clock: Clock = time.time,
    ):
        super().__init__(credentials, clock)
        self.api_key_header = api_key_header
        self.exchange = exchange

    def sign(self, request: SignableRequest) -> SignedRequest:
        params = {**request.params, "timestamp": self._millis()}
        body = request.body_string
        params["signature"] = hmac_hex(self.credentials.api_secret, urlencode(params) + body)

        return SignedRequest(
            method=request.method,
            path=request.path,
            params=params,
            headers={self.api_key_header: self.credentials.api_key, "Content-Type": "application/json"},
            body=request.body,
            content=body or None,
        )


class BybitSigner(RequestSigner):
    """HMAC-SHA256 over timestamp + key + recv window + payload, in X-BAPI headers."""

    exchange = "bybit"

    def __init__(self, credentials: ApiCredentials, recv_window: int = 5000, clock: Clock = time.time):
        super().__init__(credentials, clock)
        self.recv_window = recv_window

    def sign(self, request: SignableRequest) -> SignedRequest:
        timestamp = self._millis()
        payload = request.query_string if request.method in ("GET", "DELETE") else request.body_string
        prehash = f"{timestamp}{self.credentials.api_key}{self.recv_window}{payload}"

        return SignedRequest(
            method=request.method,
            path=request.path,
            params=request.params,
            headers={
                "X-BAPI-API-KEY": self.credentials.api_key,
                "X-BAPI-TIMESTAMP": timestamp,
                "X-BAPI-SIGN": hmac_hex(self.credentials.api_secret, prehash),
                "X-BAPI-RECV-WINDOW": str(self.recv_window),
                "Content-Type": "application/json",
            },
            body=request.body,
            content=request.body_string or None,
        )


class CoinbaseSigner(RequestSigner):
    """Legacy HMAC-SHA256 hex over timestamp + METHOD + path + body."""

    exchange = "coinbase"

    def sign(self, request: SignableRequest) -> SignedRequest:
        timestamp = self._seconds()
        body = request.body_string
        prehash = f"{timestamp}{request.method}{request.request_path}{body}"

        return SignedRequest(
            method=request.method,
            path=request.path,
            params=request.params,
            headers={
                "CB-ACCESS-KEY": self.credentials.api_key,
                "CB-ACCESS-SIGN": hmac_hex(self.credentials.api_secret, prehash),
                "CB-ACCESS-TIMESTAMP": timestamp,
                "Content-Type": "application/json",
            },
            body=request.body,
            content=body or None,
        )


class BitstampSigner(RequestSigner):
    """X-Auth v2 headers: uppercase HMAC-SHA256 with a per-request nonce."""

    exchange = "bitstamp"

    def __init__(
        self,
        credentials: ApiCredentials,
        clock: Clock = time.time,
        nonce_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        super().__init__(credentials, clock)
        self.nonce_factory = nonce_factory

    def sign(self, request: SignableRequest) -> SignedRequest:
        timestamp = self._millis()
        nonce = self.nonce_factory()
        content = urlencode(request.body) if request.body else ""
        auth = f"BITSTAMP {self.credentials.api_key}"
        message = f"{auth}{request.method}{request.host}{request.request_path}{nonce}{timestamp}v2{content}"

        return SignedRequest(
            method=request.method,
            path=request.path,
            params=request.params,
            headers={
                "X-Auth": auth,
                "X-Auth-Signature": hmac_hex(self.credentials.api_secret, message).upper(),
                "X-Auth-Nonce": nonce,
                "X-Auth-Timestamp": timestamp,
                "X-Auth-Version": "v2",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            body=request.body,
            content=content or None,
        )


class GateioSigner(RequestSigner):
    """HMAC-SHA512 over METHOD, path, query, SHA-512 of the body and timestamp, newline-joined."""

    exchange = "gateio"

    def sign(self, request: SignableRequest) -> SignedRequest:
        timestamp = self._seconds()
        body = request.body_string
        body_hash = hashlib.sha512(body.encode("utf-8")).hexdigest()
        prehash = "\n".join([request.method, request.path, request.query_string, body_hash, timestamp])

        return SignedRequest(
            method=request.method,
            path=request.path,
            params=request.params,
            headers={
                "KEY": self.credentials.api_key,
                "Timestamp": timestamp,
                "SIGN": hmac_hex(self.credentials.api_secret, prehash, hashlib.sha512),
                "Content-Type": "application/json",
            },
            body=request.body,
            content=body or None,
        )


class PassphraseSigner(RequestSigner):
    """Base64 HMAC-SHA256 over timestamp + METHOD + path + body, with a signed passphrase.

    KuCoin uses the KC-API header prefix and key version 2; Bitget uses ACCESS.
    """

    def __init__(
        self,
        credentials: PassphraseCredentials,
        header_prefix: str = "KC-API",
        key_version: Optional[str] = "2",
        exchange: str = "kucoin",
        clock: Clock = time.time,
    ):
        super().__init__(credentials, clock)
        self.header_prefix = header_prefix
        self.key_version = key_version
        self.exchange = exchange

    def sign(self, request: SignableRequest) -> SignedRequest:
        timestamp = self._millis()
        body = request.body_string
        prehash = f"{timestamp}{request.method}{request.request_path}{body}"
        prefix = self.header_prefix

        headers = {
            f"{prefix}-KEY": self.credentials.api_key,
            f"{prefix}-SIGN": hmac_b64(self.credentials.api_secret, prehash),
            f"{prefix}-TIMESTAMP": timestamp,
            f"{prefix}-PASSPHRASE": hmac_b64(self.credentials.api_secret, self.credentials.passphrase),
            "Content-Type": "application/json",
        }
        if self.key_version:
            headers[f"{prefix}-KEY-VERSION"] = self.key_version

        return SignedRequest(
            method=request.method,
            path=request.path,
            params=request.params,
            headers=headers,
            body=request.body,
            content=body or None,
        )


class OkxSigner(RequestSigner):
    """Base64 HMAC-SHA256 with an ISO-8601 timestamp and the plain passphrase."""

    exchange = "okx"

    def __init__(self, credentials: PassphraseCredentials, demo: bool = False, clock: Clock = time.time):
        super().__init__(credentials, clock)
        self.demo = demo

    def _iso_timestamp(self) -> str:
        now = self.clock()
        moment = datetime.fromtimestamp(now, tz=timezone.utc)
        return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(now * 1000) % 1000:03d}Z"

    def sign(self, request: SignableRequest) -> SignedRequest:
        timestamp = self._iso_timestamp()
        body = request.body_string
        prehash = f"{timestamp}{request.method}{request.request_path}{body}"

        headers = {
            "OK-ACCESS-KEY": self.credentials.api_key,
            "OK-ACCESS-SIGN": hmac_b64(self.credentials.api_secret, prehash),
            "OK-ACCESS-TIMESTAMP": timestamp,
            "OK-ACCESS-PASSPHRASE": self.credentials.passphrase,
            "Content-Type": "application/json",
        }
        if self.demo:
            headers["x-simulated-trading"] = "1"

        return SignedRequest(
            method=request.method,
            path=request.path,
            params=request.params,
            headers=headers,
            body=request.body,
            content=body or None,
        )


class GeminiSigner(RequestSigner):
    """HMAC-SHA384 over a base64 JSON payload carrying request path and nonce."""

    exchange = "gemini"

    def sign(self, request: SignableRequest) -> SignedRequest:
        payload = {"request": request.path, "nonce": self._millis(), **(request.body or {})}
        encoded = base64.b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8")).decode("ascii")

        return SignedRequest(
            method=request.method,
            path=request.path,
            params=request.params,
            headers={
                "X-GEMINI-APIKEY": self.credentials.api_key,
                "X-GEMINI-PAYLOAD": encoded,
                "X-GEMINI-SIGNATURE": hmac_hex(self.credentials.api_secret, encoded, hashlib.sha384),
                "Content-Type": "text/plain",
                "Cache-Control": "no-cache",
            },
            body=None,
            content="",
        )


class BitfinexSigner(RequestSigner):
    """HMAC-SHA384 hex over '/api' + path + nonce + body."""

    exchange = "bitfinex"

    def sign(self, request: SignableRequest) -> SignedRequest:
        nonce = self._micros()
        body = json.dumps(request.body or {}, separators=(",", ":"))
        signature = hmac_hex(self.credentials.api_secret, f"/api{request.path}{nonce}{body}", hashlib.sha384)

        return SignedRequest(
            method=request.method,
            path=request.path,
            params=request.params,
            headers={
                "bfx-nonce": nonce,
                "bfx-apikey": self.credentials.api_key,
                "bfx-signature": signature,
                "Content-Type": "application/json",
            },
            body=request.body or {},
            content=body,
        )


class KrakenSigner(RequestSigner):
    """Base64 HMAC-SHA512, keyed by the decoded secret, over path + SHA256(nonce + postdata)."""

    exchange = "kraken"

    def sign(self, request: SignableRequest) -> SignedRequest:
        nonce = self._micros()
        data = {**(request.body or {}), "nonce": nonce}
        postdata = urlencode(data)
        digest = hashlib.sha256((nonce + postdata).encode("utf-8")).digest()

        try:
            secret = base64.b64decode(self.credentials.api_secret)
        except ValueError as e:
            raise AuthenticationError("API secret is not valid base64", self.exchange) from e

        mac = hmac.new(secret, request.path.encode("utf-8") + digest, hashlib.sha512)

        return SignedRequest(
            method=request.method,
            path=request.path,
            params=request.params,
            headers={
                "API-Key": self.credentials.api_key,
                "API-Sign": base64.b64encode(mac.digest()).decode("ascii"),
                "Content-Type": "application/x-www-form-urlencoded",
            },
            body=data,
            content=postdata,
        )


class BearerTokenSigner(RequestSigner):
    """OAuth-style bearer token obtained by logging in out of band.

    The token is cached with its expiry and fetched again only once it is
    within refresh_margin seconds of expiring.
    """

    exchange = "mercadobitcoin"

    def __init__(
        self,
        credentials: TokenCredentials,
        http_client: Optional[httpx.Client] = None,
        refresh_margin: int = 60,
        clock: Clock = time.time,
    ):
        super().__init__(credentials, clock)
        self.http_client = http_client or httpx.Client(timeout=10.0)
        self.refresh_margin = refresh_margin
        self._token: Optional[str] = None
        self._expires_at: float = 0.0

    def get_token(self) -> str:
        if self._token and self.clock() < self._expires_at - self.refresh_margin:
            return self._token

        logger.debug(f"Fetching bearer token from {self.credentials.auth_url}")
        try:
            response = self.http_client.post(
                self.credentials.auth_url,
                json={"login": self.credentials.login, "password": self.credentials.password},
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Token request failed: {e}", self.exchange, e) from e

        if response.status_code in (401, 403):
            raise AuthenticationError("Login rejected", self.exchange)
        if response.status_code >= 400:
            raise ExchangeError(f"Token request failed with HTTP {response.status_code}", self.exchange, response.status_code)

        data = response.json()
        token = data.get("access_token")
        if not token:
            raise AuthenticationError("Token response has no access_token", self.exchange)

        self._token = token
        self._expires_at = self.clock() + int(data.get("expiration", 3600))
        logger.info(f"Bearer token refreshed, valid for {int(data.get('expiration', 3600))}s")
        return token

    def sign(self, request: SignableRequest) -> SignedRequest:
        return SignedRequest(
            method=request.method,
            path=request.path,
            params=request.params,
            headers={"Authorization": f"Bearer {self.get_token()}", "Content-Type": "application/json"},
            body=request.body,
            content=request.body_string or None,
        )


def create_signer(exchange: str, credentials: Any, clock: Clock = time.time, **options) -> RequestSigner:
    """Build the signer used by an exchange.

    Passphrase exchanges (KuCoin, Bitget, OKX) require PassphraseCredentials
    and Mercado Bitcoin requires TokenCredentials.
    """
    name = exchange.lower().strip()

    if name in ("kucoin", "bitget", "okx") and not isinstance(credentials, PassphraseCredentials):
        raise AuthenticationError("A passphrase is required", name)
    if name == "mercadobitcoin" and not isinstance(credentials, TokenCredentials):
        raise AuthenticationError("Login credentials are required", name)

    if name == "binance":
        return QueryHmacSigner(credentials, "X-MBX-APIKEY", "binance", clock)
    if name == "mexc":
        return QueryHmacSigner(credentials, "X-MEXC-APIKEY", "mexc", clock)
    if name == "bybit":
        return BybitSigner(credentials, options.get("recv_window", 5000), clock)
    if name == "coinbase":
        return CoinbaseSigner(credentials, clock)
    if name == "bitstamp":
        return BitstampSigner(credentials, clock)
    if name == "gateio":
        return GateioSigner(credentials, clock)
    if name == "kucoin":
        return PassphraseSigner(credentials, "KC-API", "2", "kucoin", clock)
    if name == "bitget":
        return PassphraseSigner(credentials, "ACCESS", None, "bitget", clock)
    if name == "okx":
        return OkxSigner(credentials, options.get("demo", False), clock)
    if name == "gemini":
        return GeminiSigner(credentials, clock)
    if name == "bitfinex":
        return BitfinexSigner(credentials, clock)
    if name == "kraken":
        return KrakenSigner(credentials, clock)
    if name == "mercadobitcoin":
        return BearerTokenSigner(credentials, options.get("http_client"), options.get("refresh_margin", 60), clock)

    raise ExchangeError(f"No signer available for exchange '{exchange}'", name)
