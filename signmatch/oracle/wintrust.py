"""A trust verification oracle that uses the Windows ``WinVerifyTrust`` API, bound
through :mod:`ctypes`. This oracle is only available on Windows.

The verification is performed with the ``WINTRUST_ACTION_GENERIC_VERIFY_V2``
policy, without UI, and checks revocation of the whole chain except for the root.
The state that is kept by WinTrust after the verification is released when the
session is closed.
"""

from __future__ import annotations

import ctypes
import logging
import pathlib
import sys
from ctypes import wintypes
from functools import lru_cache

from signmatch.exceptions import OracleUnavailableError
from signmatch.oracle.base import OracleSession, ProviderData, SignerChain, TrustOracle

logger = logging.getLogger(__name__)

WTD_UI_NONE = 2
WTD_REVOKE_WHOLECHAIN = 1
WTD_CHOICE_FILE = 1
WTD_STATEACTION_VERIFY = 1
WTD_STATEACTION_CLOSE = 2
WTD_REVOCATION_CHECK_CHAIN_EXCLUDE_ROOT = 0x80
WTD_UICONTEXT_EXECUTE = 0
CERT_NAME_ATTR_TYPE = 3


class GUID(ctypes.Structure):
    _fields_ = [
        ("Data1", wintypes.DWORD),
        ("Data2", wintypes.WORD),
        ("Data3", wintypes.WORD),
        ("Data4", ctypes.c_ubyte * 8),
    ]


# {00AAC56B-CD44-11d0-8CC2-00C04FC295EE}
WINTRUST_ACTION_GENERIC_VERIFY_V2 = GUID(
    0x00AAC56B,
    0xCD44,
    0x11D0,
    (ctypes.c_ubyte * 8)(0x8C, 0xC2, 0x00, 0xC0, 0x4F, 0xC2, 0x95, 0xEE),
)


class WINTRUST_FILE_INFO(ctypes.Structure):
    _fields_ = [
        ("cbStruct", wintypes.DWORD),
        ("pcwszFilePath", wintypes.LPCWSTR),
        ("hFile", wintypes.HANDLE),
        ("pgKnownSubject", ctypes.POINTER(GUID)),
    ]


class WINTRUST_DATA(ctypes.Structure):
    _fields_ = [
        ("cbStruct", wintypes.DWORD),
        ("pPolicyCallbackData", wintypes.LPVOID),
        ("pSIPClientData", wintypes.LPVOID),
        ("dwUIChoice", wintypes.DWORD),
        ("fdwRevocationChecks", wintypes.DWORD),
        ("dwUnionChoice", wintypes.DWORD),
        ("pFile", ctypes.POINTER(WINTRUST_FILE_INFO)),
        ("dwStateAction", wintypes.DWORD),
        ("hWVTStateData", wintypes.HANDLE),
        ("pwszURLReference", wintypes.LPWSTR),
        ("dwProvFlags", wintypes.DWORD),
        ("dwUIContext", wintypes.DWORD),
        ("pSignatureSettings", wintypes.LPVOID),
    ]


class CERT_TRUST_STATUS(ctypes.Structure):
    _fields_ = [
        ("dwErrorStatus", wintypes.DWORD),
        ("dwInfoStatus", wintypes.DWORD),
    ]


# The following structures are declared up to the fields that are read.


class CERT_CHAIN_ELEMENT(ctypes.Structure):
    _fields_ = [
        ("cbSize", wintypes.DWORD),
        ("pCertContext", wintypes.LPVOID),
    ]


class CERT_SIMPLE_CHAIN(ctypes.Structure):
    _fields_ = [
        ("cbSize", wintypes.DWORD),
        ("TrustStatus", CERT_TRUST_STATUS),
        ("cElement", wintypes.DWORD),
        ("rgpElement", ctypes.POINTER(ctypes.POINTER(CERT_CHAIN_ELEMENT))),
    ]


class CERT_CHAIN_CONTEXT(ctypes.Structure):
    _fields_ = [
        ("cbSize", wintypes.DWORD),
        ("TrustStatus", CERT_TRUST_STATUS),
        ("cChain", wintypes.DWORD),
        ("rgpChain", ctypes.POINTER(ctypes.POINTER(CERT_SIMPLE_CHAIN))),
    ]


class CRYPT_PROVIDER_SGNR(ctypes.Structure):
    _fields_ = [
        ("cbStruct", wintypes.DWORD),
        ("sftVerifyAsOf", wintypes.FILETIME),
        ("csCertChain", wintypes.DWORD),
        ("pasCertChain", wintypes.LPVOID),
        ("dwSignerType", wintypes.DWORD),
        ("psSigner", wintypes.LPVOID),
        ("dwError", wintypes.DWORD),
        ("csCounterSigners", wintypes.DWORD),
        ("pasCounterSigners", wintypes.LPVOID),
        ("pChainContext", ctypes.POINTER(CERT_CHAIN_CONTEXT)),
    ]


class _WinTrustApi:
    """The functions of ``wintrust.dll`` and ``crypt32.dll`` that are used."""

    def __init__(self) -> None:
        wintrust = ctypes.WinDLL("wintrust")  # type: ignore[attr-defined]
        crypt32 = ctypes.WinDLL("crypt32")  # type: ignore[attr-defined]

        self.WinVerifyTrust = wintrust.WinVerifyTrust
        self.WinVerifyTrust.argtypes = [
            wintypes.HWND,
            ctypes.POINTER(GUID),
            ctypes.POINTER(WINTRUST_DATA),
        ]
        self.WinVerifyTrust.restype = wintypes.LONG

        self.WTHelperProvDataFromStateData = wintrust.WTHelperProvDataFromStateData
        self.WTHelperProvDataFromStateData.argtypes = [wintypes.HANDLE]
        self.WTHelperProvDataFromStateData.restype = wintypes.LPVOID

        self.WTHelperGetProvSignerFromChain = wintrust.WTHelperGetProvSignerFromChain
        self.WTHelperGetProvSignerFromChain.argtypes = [
            wintypes.LPVOID,
            wintypes.DWORD,
            wintypes.BOOL,
            wintypes.DWORD,
        ]
        self.WTHelperGetProvSignerFromChain.restype = ctypes.POINTER(
            CRYPT_PROVIDER_SGNR
        )

        self.CertGetNameStringW = crypt32.CertGetNameStringW
        self.CertGetNameStringW.argtypes = [
            wintypes.LPVOID,
            wintypes.DWORD,
            wintypes.DWORD,
            wintypes.LPVOID,
            wintypes.LPWSTR,
            wintypes.DWORD,
        ]
        self.CertGetNameStringW.restype = wintypes.DWORD


@lru_cache(maxsize=None)
def _load_api() -> _WinTrustApi:
    if sys.platform != "win32":
        raise OracleUnavailableError(
            f"WinVerifyTrust is not available on platform {sys.platform}"
        )
    try:
        return _WinTrustApi()
    except OSError as e:
        raise OracleUnavailableError(f"Unable to load the WinTrust API: {e}") from e


class WinTrustSignerChain(SignerChain):
    def __init__(self, api: _WinTrustApi, cert_context: int | None):
        self.api = api
        self.cert_context = cert_context

    def get_attribute_value(self, attribute_id: str) -> str | None:
        if not self.cert_context:
            return None

        oid = ctypes.c_char_p(attribute_id.encode("ascii"))
        length = self.api.CertGetNameStringW(
            self.cert_context, CERT_NAME_ATTR_TYPE, 0, oid, None, 0
        )
        # the returned length includes the terminating null character
        if length <= 1:
            return None

        buffer = ctypes.create_unicode_buffer(length)
        self.api.CertGetNameStringW(
            self.cert_context, CERT_NAME_ATTR_TYPE, 0, oid, buffer, length
        )
        return buffer.value


class WinTrustProviderData(ProviderData):
    def __init__(self, api: _WinTrustApi, handle: int):
        self.api = api
        self.handle = handle

    def signer(self, index: int = 0) -> WinTrustSignerChain | None:
        signer = self.api.WTHelperGetProvSignerFromChain(self.handle, index, False, 0)
        if not signer:
            return None
        return WinTrustSignerChain(self.api, _leaf_certificate(signer.contents))


def _leaf_certificate(signer: CRYPT_PROVIDER_SGNR) -> int | None:
    """Returns the certificate context of the first element of the first simple
    chain of the signer.
    """
    if not signer.pChainContext:
        return None
    chain_context = signer.pChainContext.contents
    if not chain_context.cChain or not chain_context.rgpChain:
        return None
    simple_chain = chain_context.rgpChain[0].contents
    if not simple_chain.cElement or not simple_chain.rgpElement:
        return None
    return simple_chain.rgpElement[0].contents.pCertContext  # type: ignore[no-any-return]


class WinTrustSession(OracleSession):
    def __init__(
        self,
        path: pathlib.Path,
        api: _WinTrustApi,
        trust_data: WINTRUST_DATA,
        file_info: WINTRUST_FILE_INFO,
        status: int,
    ):
        super().__init__(path, status)
        self.api = api
        self.trust_data = trust_data
        # WINTRUST_DATA points into this structure, which must outlive the state
        self.file_info = file_info

    def provider_data(self) -> WinTrustProviderData | None:
        handle = self.api.WTHelperProvDataFromStateData(self.trust_data.hWVTStateData)
        if not handle:
            return None
        return WinTrustProviderData(self.api, handle)

    def _release(self) -> None:
        self.trust_data.dwStateAction = WTD_STATEACTION_CLOSE
        self.api.WinVerifyTrust(
            None,
            ctypes.byref(WINTRUST_ACTION_GENERIC_VERIFY_V2),
            ctypes.byref(self.trust_data),
        )


class WinTrustOracle(TrustOracle):
    """Verifies files with ``WinVerifyTrust``.

    :raises OracleUnavailableError: when not running on Windows
    """

    name = "wintrust"
    thread_safe = True

    def __init__(self) -> None:
        super().__init__()
        self.api = _load_api()

    def open(self, path: str | pathlib.Path) -> WinTrustSession:
        path = pathlib.Path(path)

        file_info = WINTRUST_FILE_INFO(
            cbStruct=ctypes.sizeof(WINTRUST_FILE_INFO),
            pcwszFilePath=str(path),
            hFile=None,
            pgKnownSubject=None,
        )
        trust_data = WINTRUST_DATA(
            cbStruct=ctypes.sizeof(WINTRUST_DATA),
            dwUIChoice=WTD_UI_NONE,
            fdwRevocationChecks=WTD_REVOKE_WHOLECHAIN,
            dwUnionChoice=WTD_CHOICE_FILE,
            pFile=ctypes.pointer(file_info),
            dwStateAction=WTD_STATEACTION_VERIFY,
            hWVTStateData=None,
            dwProvFlags=WTD_REVOCATION_CHECK_CHAIN_EXCLUDE_ROOT,
            dwUIContext=WTD_UICONTEXT_EXECUTE,
        )

        status = self.api.WinVerifyTrust(
            None,
            ctypes.byref(WINTRUST_ACTION_GENERIC_VERIFY_V2),
            ctypes.byref(trust_data),
        )
        logger.debug(f"WinVerifyTrust of {path} returned {status}")
        return WinTrustSession(path, self.api, trust_data, file_info, status)
