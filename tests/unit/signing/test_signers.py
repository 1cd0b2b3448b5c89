"""
Unit tests for the request signers.

Expected signatures are recomputed here straight from hashlib/hmac.
"""

import base64
import hashlib
import hmac
import json

import httpx
import pytest
import respx

from src.exchangehub.shared.errors import AuthenticationError, ExchangeError, NetworkError
from src.exchangehub.signing import (
    ApiCredentials,
    BearerTokenSigner,
    BitfinexSigner,
    BitstampSigner,
    BybitSigner,
    CoinbaseSigner,
    GateioSigner,
    GeminiSigner,
    KrakenSigner,
    OkxSigner,
    PassphraseCredentials,
    PassphraseSigner,
    QueryHmacSigner,
    SignableRequest,
    TokenCredentials,
    create_signer,
)

NOW = 1_700_000_000.5
MILLIS = "1700000000500"
SECONDS = "1700000000"


def clock():
    return NOW


def hex_digest(secret, message, digest=hashlib.sha256):
    return hmac.new(secret.encode(), message.encode(), digest).hexdigest()


def b64_digest(secret, message, digest=hashlib.sha256):
    return base64.b64encode(hmac.new(secret.encode(), message.encode(), digest).digest()).decode()


@pytest.fixture
def creds():
    return ApiCredentials(api_key="key", api_secret="secret")


@pytest.fixture
def passphrase_creds():
    return PassphraseCredentials(api_key="key", api_secret="secret", passphrase="pass")


class TestSignableRequest:
    """Test the request envelope helpers."""

    def test_method_is_upper_cased(self):
        assert SignableRequest(method="get", path="/x").method == "GET"

    def test_request_path_and_body(self):
        request = SignableRequest(method="POST", path="/api/orders", params={"a": 1, "b": "x"}, body={"q": 2})

        assert request.query_string == "a=1&b=x"
        assert request.request_path == "/api/orders?a=1&b=x"
        assert request.body_string == '{"q":2}'

    def test_empty_request(self):
        request = SignableRequest(path="/api/time")

        assert request.request_path == "/api/time"
        assert request.body_string == ""

    def test_credentials_must_not_be_empty(self):
        with pytest.raises(ValueError):
            ApiCredentials(api_key="", api_secret="secret")


class TestQueryHmacSigner:
    """Test Binance/MEXC style query signing."""

    def test_signature_over_query_with_timestamp(self, creds):
        signer = QueryHmacSigner(creds, clock=clock)
        signed = signer.sign(SignableRequest(method="GET", path="/api/v3/account", params={"symbol": "BTCUSDT"}))

        expected = hex_digest("secret", f"symbol=BTCUSDT&timestamp={MILLIS}")
        assert signed.params == {"symbol": "BTCUSDT", "timestamp": MILLIS, "signature": expected}
        assert signed.headers["X-MBX-APIKEY"] == "key"
        assert signed.content is None

    def test_body_is_appended_to_query(self, creds):
        signer = QueryHmacSigner(creds, "X-MEXC-APIKEY", "mexc", clock)
        signed = signer.sign(SignableRequest(method="POST", path="/api/v3/order", body={"side": "BUY"}))

        expected = hex_digest("secret", f"timestamp={MILLIS}" + '{"side":"BUY"}')
        assert signed.params["signature"] == expected
        assert signed.headers["X-MEXC-APIKEY"] == "key"
        assert signed.content == '{"side":"BUY"}'


class TestHeaderSigners:
    """Test header-based HMAC schemes."""

    def test_bybit_get_signs_query(self, creds):
        signed = BybitSigner(creds, clock=clock).sign(
            SignableRequest(method="GET", path="/v5/account/wallet-balance", params={"accountType": "UNIFIED"})
        )

        expected = hex_digest("secret", f"{MILLIS}key5000accountType=UNIFIED")
        assert signed.headers["X-BAPI-SIGN"] == expected
        assert signed.headers["X-BAPI-TIMESTAMP"] == MILLIS
        assert signed.headers["X-BAPI-RECV-WINDOW"] == "5000"

    def test_bybit_post_signs_body(self, creds):
        signed = BybitSigner(creds, recv_window=10000, clock=clock).sign(
            SignableRequest(method="POST", path="/v5/order/create", params={"ignored": 1}, body={"qty": "1"})
        )

        assert signed.headers["X-BAPI-SIGN"] == hex_digest("secret", f"{MILLIS}key10000" + '{"qty":"1"}')

    def test_coinbase(self, creds):
        signed = CoinbaseSigner(creds, clock).sign(
            SignableRequest(method="GET", path="/accounts", params={"limit": 5})
        )

        assert signed.headers["CB-ACCESS-SIGN"] == hex_digest("secret", f"{SECONDS}GET/accounts?limit=5")
        assert signed.headers["CB-ACCESS-TIMESTAMP"] == SECONDS

    def test_bitstamp(self, creds):
        signer = BitstampSigner(creds, clock, nonce_factory=lambda: "nonce-1")
        signed = signer.sign(
            SignableRequest(method="POST", path="/api/v2/balance/", host="www.bitstamp.net", body={"offset": 0})
        )

        message = f"BITSTAMP keyPOSTwww.bitstamp.net/api/v2/balance/nonce-1{MILLIS}v2offset=0"
        assert signed.headers["X-Auth-Signature"] == hex_digest("secret", message).upper()
        assert signed.headers["X-Auth-Nonce"] == "nonce-1"
        assert signed.content == "offset=0"

    def test_gateio(self, creds):
        signed = GateioSigner(creds, clock).sign(
            SignableRequest(method="GET", path="/api/v4/spot/accounts", params={"currency": "BTC"})
        )

        body_hash = hashlib.sha512(b"").hexdigest()
        prehash = "\n".join(["GET", "/api/v4/spot/accounts", "currency=BTC", body_hash, SECONDS])
        assert signed.headers["SIGN"] == hex_digest("secret", prehash, hashlib.sha512)
        assert signed.headers["Timestamp"] == SECONDS

    def test_kucoin(self, passphrase_creds):
        signed = PassphraseSigner(passphrase_creds, clock=clock).sign(
            SignableRequest(method="POST", path="/api/v1/orders", body={"size": "1"})
        )

        assert signed.headers["KC-API-SIGN"] == b64_digest("secret", f"{MILLIS}POST/api/v1/orders" + '{"size":"1"}')
        assert signed.headers["KC-API-PASSPHRASE"] == b64_digest("secret", "pass")
        assert signed.headers["KC-API-KEY-VERSION"] == "2"

    def test_bitget_has_no_key_version(self, passphrase_creds):
        signed = create_signer("bitget", passphrase_creds, clock).sign(SignableRequest(path="/api/spot/v1/account"))

        assert signed.headers["ACCESS-SIGN"] == b64_digest("secret", f"{MILLIS}GET/api/spot/v1/account")
        assert "ACCESS-KEY-VERSION" not in signed.headers

    def test_okx(self, passphrase_creds):
        signed = OkxSigner(passphrase_creds, demo=True, clock=clock).sign(
            SignableRequest(method="GET", path="/api/v5/account/balance")
        )

        timestamp = "2023-11-14T22:13:20.500Z"
        assert signed.headers["OK-ACCESS-TIMESTAMP"] == timestamp
        assert signed.headers["OK-ACCESS-SIGN"] == b64_digest("secret", f"{timestamp}GET/api/v5/account/balance")
        assert signed.headers["OK-ACCESS-PASSPHRASE"] == "pass"
        assert signed.headers["x-simulated-trading"] == "1"

    def test_gemini(self, creds):
        signed = GeminiSigner(creds, clock).sign(
            SignableRequest(method="POST", path="/v1/balances", body={"account": "primary"})
        )

        payload = json.loads(base64.b64decode(signed.headers["X-GEMINI-PAYLOAD"]))
        assert payload == {"request": "/v1/balances", "nonce": MILLIS, "account": "primary"}
        assert signed.headers["X-GEMINI-SIGNATURE"] == hex_digest(
            "secret", signed.headers["X-GEMINI-PAYLOAD"], hashlib.sha384
        )
        assert signed.content == ""

    def test_bitfinex(self, creds):
        signed = BitfinexSigner(creds, clock).sign(SignableRequest(method="POST", path="/v2/auth/r/wallets"))

        nonce = str(int(NOW * 1_000_000))
        assert signed.headers["bfx-nonce"] == nonce
        assert signed.headers["bfx-signature"] == hex_digest(
            "secret", f"/api/v2/auth/r/wallets{nonce}{{}}", hashlib.sha384
        )
        assert signed.content == "{}"


class TestKrakenSigner:
    """Test Kraken's two-stage signature."""

    def test_signature(self):
        secret = base64.b64encode(b"kraken-secret").decode()
        creds = ApiCredentials(api_key="key", api_secret=secret)
        signed = KrakenSigner(creds, clock).sign(
            SignableRequest(method="POST", path="/0/private/Balance", body={"asset": "XBT"})
        )

        nonce = str(int(NOW * 1_000_000))
        postdata = f"asset=XBT&nonce={nonce}"
        digest = hashlib.sha256((nonce + postdata).encode()).digest()
        expected = hmac.new(b"kraken-secret", b"/0/private/Balance" + digest, hashlib.sha512).digest()
        assert signed.headers["API-Sign"] == base64.b64encode(expected).decode()
        assert signed.content == postdata
        assert signed.body == {"asset": "XBT", "nonce": nonce}

    def test_invalid_secret(self):
        creds = ApiCredentials(api_key="key", api_secret="abc")

        with pytest.raises(AuthenticationError):
            KrakenSigner(creds, clock).sign(SignableRequest(method="POST", path="/0/private/Balance"))


class TestBearerTokenSigner:
    """Test login, caching and refresh of bearer tokens."""

    AUTH_URL = "https://api.mercadobitcoin.net/api/v4/authorize"

    @pytest.fixture
    def now(self):
        return {"t": NOW}

    @pytest.fixture
    def signer(self, now):
        creds = TokenCredentials(login="user", password="pw")
        return BearerTokenSigner(creds, httpx.Client(), refresh_margin=60, clock=lambda: now["t"])

    @respx.mock
    def test_token_is_cached_until_near_expiry(self, signer, now):
        route = respx.post(self.AUTH_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "tok-1", "expiration": 3600})
        )

        signed = signer.sign(SignableRequest(path="/accounts"))
        signer.sign(SignableRequest(path="/accounts"))

        assert signed.headers["Authorization"] == "Bearer tok-1"
        assert route.call_count == 1
        assert json.loads(route.calls.last.request.content) == {"login": "user", "password": "pw"}

        now["t"] += 3541
        signer.get_token()
        assert route.call_count == 2

    @respx.mock
    def test_rejected_login(self, signer):
        respx.post(self.AUTH_URL).mock(return_value=httpx.Response(401, json={}))

        with pytest.raises(AuthenticationError):
            signer.get_token()

    @respx.mock
    def test_server_error(self, signer):
        respx.post(self.AUTH_URL).mock(return_value=httpx.Response(500, json={}))

        with pytest.raises(ExchangeError):
            signer.get_token()

    @respx.mock
    def test_missing_token(self, signer):
        respx.post(self.AUTH_URL).mock(return_value=httpx.Response(200, json={"expiration": 10}))

        with pytest.raises(AuthenticationError):
            signer.get_token()

    @respx.mock
    def test_transport_failure(self, signer):
        respx.post(self.AUTH_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(NetworkError):
            signer.get_token()


class TestCreateSigner:
    """Test the signer factory."""

    @pytest.mark.parametrize(
        "exchange,signer_type",
        [
            ("binance", QueryHmacSigner),
            ("MEXC", QueryHmacSigner),
            ("bybit", BybitSigner),
            ("coinbase", CoinbaseSigner),
            ("bitstamp", BitstampSigner),
            ("gateio", GateioSigner),
            ("gemini", GeminiSigner),
            ("bitfinex", BitfinexSigner),
            ("kraken", KrakenSigner),
        ],
    )
    def test_api_key_exchanges(self, creds, exchange, signer_type):
        assert isinstance(create_signer(exchange, creds), signer_type)

    def test_mexc_header(self, creds):
        assert create_signer("mexc", creds).api_key_header == "X-MEXC-APIKEY"

    @pytest.mark.parametrize("exchange", ["kucoin", "bitget", "okx"])
    def test_passphrase_required(self, creds, passphrase_creds, exchange):
        with pytest.raises(AuthenticationError):
            create_signer(exchange, creds)
        assert create_signer(exchange, passphrase_creds).exchange == exchange

    def test_token_credentials_required(self, creds):
        with pytest.raises(AuthenticationError):
            create_signer("mercadobitcoin", creds)
        signer = create_signer("mercadobitcoin", TokenCredentials(login="u", password="p"), refresh_margin=30)
        assert isinstance(signer, BearerTokenSigner)
        assert signer.refresh_margin == 30

    def test_unknown_exchange(self, creds):
        with pytest.raises(ExchangeError):
            create_signer("nowhere", creds)
