from __future__ import annotations

import enum
import logging
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)


def _signed_status(code: int) -> int:
    """Normalizes a status code to its signed 32-bit representation, which is how
    HRESULTs are returned by the platform and how they are presented to users.
    """

    code &= 0xFFFFFFFF
    return code - 0x100000000 if code & 0x80000000 else code


class StatusCode(enum.IntEnum):
    """The status codes returned by the trust verification oracle that are relevant
    for classification. Values are HRESULTs in their signed 32-bit form.
    """

    SUCCESS = 0
    TRUST_E_PROVIDER_UNKNOWN = _signed_status(0x800B0001)
    TRUST_E_SUBJECT_FORM_UNKNOWN = _signed_status(0x800B0003)
    TRUST_E_SUBJECT_NOT_TRUSTED = _signed_status(0x800B0004)
    TRUST_E_NOSIGNATURE = _signed_status(0x800B0100)
    CERT_E_EXPIRED = _signed_status(0x800B0101)
    CERT_E_CHAINING = _signed_status(0x800B010A)
    CERT_E_REVOKED = _signed_status(0x800B010C)
    CERT_E_WRONG_USAGE = _signed_status(0x800B0110)
    TRUST_E_EXPLICIT_DISTRUST = _signed_status(0x800B0111)
    NTE_BAD_SIGNATURE = _signed_status(0x80090006)
    CRYPT_E_FILE_ERROR = _signed_status(0x80092003)
    CRYPT_E_SECURITY_SETTINGS = _signed_status(0x80092026)
    CRYPT_E_ASN1_BADTAG = _signed_status(0x8009310B)
    TRUST_E_NO_SIGNER_CERT = _signed_status(0x80096002)
    TRUST_E_BAD_DIGEST = _signed_status(0x80096010)


_SECURITY_SETTINGS_MESSAGE = (
    "Signature was not explicitly trusted by admin, and user trust has been"
    " disabled. No signature, publisher, or timestamp error."
)


class TrustStatus(NamedTuple):
    """The result of a verification attempt."""

    signed: bool = False
    """Whether the file is signed, trusted and (when requested) signed by an
    allowed publisher.
    """
    message: str = ""
    """A human-readable description of the outcome."""
    subject: str = ""
    """The subject of the signing certificate, as rendered by
    :func:`signmatch.dn.render_dn`, or empty if it could not be extracted.
    """

    def to_dict(self) -> dict[str, Any]:
        return dict(self._asdict())


class TrustOutcome(enum.Enum):
    """The classification of a raw oracle status code."""

    OK = enum.auto()
    """The signature is present and trusted."""
    NOT_SIGNED = enum.auto()
    """The file is not signed, or its format can not carry a signature."""
    EXPLICIT_DISTRUST = enum.auto()
    """The signature is specifically disallowed by an administrator or the user."""
    SUBJECT_NOT_TRUSTED = enum.auto()
    """The subject of the signature is not trusted."""
    SECURITY_SETTINGS = enum.auto()
    """User trust is disabled and the signature was not explicitly trusted."""
    FILE_ERROR = enum.auto()
    """The file could not be read by the oracle."""
    CHAINING_ERROR = enum.auto()
    """The certificate chain could not be built to a trusted root."""
    UNEXPECTED_ERROR = enum.auto()
    """Any other status. The subject is still extracted when possible."""

    @classmethod
    def from_code(cls, code: int) -> TrustOutcome:
        code = _signed_status(code)
        if code == StatusCode.SUCCESS:
            return cls.OK
        if code in (
            StatusCode.TRUST_E_NOSIGNATURE,
            StatusCode.TRUST_E_SUBJECT_FORM_UNKNOWN,
            StatusCode.TRUST_E_PROVIDER_UNKNOWN,
        ):
            return cls.NOT_SIGNED
        return _NAMED_FAILURES.get(code, cls.UNEXPECTED_ERROR)

    @property
    def extracts_subject(self) -> bool:
        """Whether the subject of the signer should be extracted after this
        outcome. Named failures end the verification immediately.
        """
        return self in (TrustOutcome.OK, TrustOutcome.UNEXPECTED_ERROR)

    def describe(self, code: int) -> str:
        """Returns the human-readable message for this outcome, given the original
        status code.
        """
        code = _signed_status(code)
        if self is TrustOutcome.OK:
            return "Verification succeeded!"
        if self is TrustOutcome.NOT_SIGNED:
            return "The file is not signed."
        if self is TrustOutcome.EXPLICIT_DISTRUST:
            return (
                "Signature is present but is specifically disallowed by admin or user."
            )
        if self is TrustOutcome.SUBJECT_NOT_TRUSTED:
            return "Signature is present but subject not trusted."
        if self is TrustOutcome.SECURITY_SETTINGS:
            return _SECURITY_SETTINGS_MESSAGE
        if self is TrustOutcome.FILE_ERROR:
            return (
                f"CRYPT_E_FILE_ERROR: {_SECURITY_SETTINGS_MESSAGE}"
                f" Original Error Code: {code}"
            )
        if self is TrustOutcome.CHAINING_ERROR:
            return (
                "CERT_E_CHAINING: There was an error relating to the certificate"
                " chain for the signed file. Check if your certificate is in Root"
                f" storage. Original Error Code: {code}"
            )
        return f"Unexpected error. Verification failed. Original Error Code: {code}"


_NAMED_FAILURES = {
    StatusCode.TRUST_E_EXPLICIT_DISTRUST: TrustOutcome.EXPLICIT_DISTRUST,
    StatusCode.TRUST_E_SUBJECT_NOT_TRUSTED: TrustOutcome.SUBJECT_NOT_TRUSTED,
    StatusCode.CRYPT_E_SECURITY_SETTINGS: TrustOutcome.SECURITY_SETTINGS,
    StatusCode.CRYPT_E_FILE_ERROR: TrustOutcome.FILE_ERROR,
    StatusCode.CERT_E_CHAINING: TrustOutcome.CHAINING_ERROR,
}


def classify(code: int) -> TrustStatus:
    """Translates a raw status code of the trust verification oracle into a
    :class:`TrustStatus`. The subject is left empty.

    :param code: The status code, either as signed or as unsigned 32-bit integer
    """

    outcome = TrustOutcome.from_code(code)
    logger.debug(f"Status code {_signed_status(code)} classified as {outcome.name}")
    return TrustStatus(
        signed=outcome is TrustOutcome.OK,
        message=outcome.describe(code),
    )
