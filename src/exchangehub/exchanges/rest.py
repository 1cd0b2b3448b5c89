"""
Base class for adapters talking to a real exchange REST API.
"""

from typing import Any, Dict, Optional

from src.exchangehub.config import HttpSettings
from src.exchangehub.core.base import Exchange
from src.exchangehub.http.client import HttpClient
from src.exchangehub.logging import get_logger
from src.exchangehub.shared.errors import AuthenticationError
from src.exchangehub.shared.utils import filter_nulls
from src.exchangehub.signing.models import SignableRequest
from src.exchangehub.signing.signers import RequestSigner

logger = get_logger(__name__)


class RestExchange(Exchange):
    """Adapter skeleton: an HTTP transport plus an optional request signer.

    Subclasses set base_url (and testnet_url where the venue has one) and map
    vendor payloads to the shared models.
    """

    base_url: str = ""
    testnet_url: str = ""

    def __init__(
        self,
        signer: Optional[RequestSigner] = None,
        testnet: bool = False,
        http: Optional[HttpClient] = None,
        http_config: Optional[HttpSettings] = None,
    ):
        self.signer = signer
        self.testnet = testnet
        url = self.testnet_url if testnet and self.testnet_url else self.base_url
        self.http = http or HttpClient(url, self.name, http_config)
        logger.debug(f"{self.name} adapter using {url} (signed={signer is not None})")

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        signed: bool = False,
    ) -> Any:
        params = filter_nulls(params or {})
        if not signed:
            return self.http.request(method, path, params=params, body=body)

        if self.signer is None:
            raise AuthenticationError(f"API credentials are required for {path}", self.name)
        request = SignableRequest(method=method, path=path, params=params, body=body)
        return self.http.send(self.signer.sign(request))

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None, signed: bool = False) -> Any:
        return self._request("GET", path, params=params, signed=signed)

    def _post(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        signed: bool = True,
    ) -> Any:
        return self._request("POST", path, params=params, body=body, signed=signed)

    def _delete(self, path: str, params: Optional[Dict[str, Any]] = None, signed: bool = True) -> Any:
        return self._request("DELETE", path, params=params, signed=signed)

    def close(self) -> None:
        self.http.close()
