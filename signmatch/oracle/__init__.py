from __future__ import annotations

import sys

from .authenticode import AuthenticodeOracle
from .base import OracleSession, ProviderData, SignerChain, TrustOracle
from .cert_store import CERTIFICATE_LOCATION, TRUSTED_CERTIFICATE_STORE
from .wintrust import WinTrustOracle

ORACLES: dict[str, type[TrustOracle]] = {
    AuthenticodeOracle.name: AuthenticodeOracle,
    WinTrustOracle.name: WinTrustOracle,
}


def default_oracle() -> TrustOracle:
    """Returns the oracle that is preferred on this platform: WinVerifyTrust on
    Windows, the portable Authenticode verification elsewhere.
    """
    if sys.platform == "win32":
        return WinTrustOracle()
    return AuthenticodeOracle()


__all__ = [
    "CERTIFICATE_LOCATION",
    "ORACLES",
    "TRUSTED_CERTIFICATE_STORE",
    "AuthenticodeOracle",
    "OracleSession",
    "ProviderData",
    "SignerChain",
    "TrustOracle",
    "WinTrustOracle",
    "default_oracle",
]
