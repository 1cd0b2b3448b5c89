"""
Typed credentials and request envelopes used by the signers.
"""

import json
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from pydantic import BaseModel, Field, field_validator


class ApiCredentials(BaseModel):
    """API key and secret."""

    api_key: str = Field(min_length=1)
    api_secret: str = Field(min_length=1)


class PassphraseCredentials(ApiCredentials):
    """API key, secret and the trading passphrase chosen at key creation."""

    passphrase: str = Field(min_length=1)


class TokenCredentials(BaseModel):
    """Login exchanged for a short-lived bearer token."""

    login: str = Field(min_length=1)
    password: str = Field(min_length=1)
    auth_url: str = "https://api.mercadobitcoin.net/api/v4/authorize"


class SignableRequest(BaseModel):
    """Request description before authentication is applied."""

    method: str = "GET"
    path: str
    params: Dict[str, Any] = Field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None
    host: str = ""

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @property
    def query_string(self) -> str:
        return urlencode(self.params)

    @property
    def request_path(self) -> str:
        """Path including the query string, as most prehash formats expect."""
        return f"{self.path}?{self.query_string}" if self.params else self.path

    @property
    def body_string(self) -> str:
        return json.dumps(self.body, separators=(",", ":")) if self.body else ""


class SignedRequest(BaseModel):
    """Authenticated request ready for the transport.

    content is the exact body text that was signed; when set it must be sent
    verbatim instead of re-serializing body.
    """

    method: str
    path: str
    params: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None
    content: Optional[str] = None
