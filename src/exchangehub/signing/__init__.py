"""
Request signing strategies for the supported exchanges.
"""

from src.exchangehub.signing.models import (
    ApiCredentials,
    PassphraseCredentials,
    SignableRequest,
    SignedRequest,
    TokenCredentials,
)
from src.exchangehub.signing.signers import (
    BearerTokenSigner,
    BitfinexSigner,
    BitstampSigner,
    BybitSigner,
    CoinbaseSigner,
    GateioSigner,
    GeminiSigner,
    KrakenSigner,
    OkxSigner,
    PassphraseSigner,
    QueryHmacSigner,
    RequestSigner,
    create_signer,
)

__all__ = [
    "ApiCredentials",
    "PassphraseCredentials",
    "TokenCredentials",
    "SignableRequest",
    "SignedRequest",
    "RequestSigner",
    "QueryHmacSigner",
    "BybitSigner",
    "CoinbaseSigner",
    "BitstampSigner",
    "GateioSigner",
    "PassphraseSigner",
    "OkxSigner",
    "GeminiSigner",
    "BitfinexSigner",
    "KrakenSigner",
    "BearerTokenSigner",
    "create_signer",
]
