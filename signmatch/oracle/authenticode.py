"""A portable trust verification oracle, that verifies the Authenticode signature
embedded in a PE file. The outcome is reported using the same status codes that
``WinVerifyTrust`` uses, so both oracles can be used interchangeably.

The verification consists of the following steps:

* The file must be a PE file, and must contain a SignedData structure in its
  Certificate Table.
* The digest in the SpcIndirectDataContent must match the Authenticode hash of the
  file, and the messageDigest of the signer must match the hash of that content.
* The signer's certificate must have signed the authenticated attributes.
* The signer's certificate must chain to a certificate in the trusted certificate
  store, and may not be in the list of disallowed fingerprints.

Countersignatures are not processed: the chain is verified at the moment given to
the oracle, or the current time.
"""

from __future__ import annotations

import datetime
import logging
import pathlib
from collections.abc import Iterable
from functools import cached_property
from typing import BinaryIO, cast

from asn1crypto import cms, core
from certvalidator.errors import (
    InvalidCertificateError,
    PathBuildingError,
    PathValidationError,
    RevokedError,
)
from typing_extensions import Literal

from signmatch.asn1 import spc  # noqa: F401  # registers the indirect data content
from signmatch.asn1.hashing import hash_function
from signmatch.exceptions import (
    AuthenticodeNotSignedError,
    CertificateVerificationError,
    ExplicitDistrustError,
    InvalidDigestError,
    ParseError,
    SignedPEParseError,
    SignerInfoVerificationError,
    SignerNotFoundError,
    UnsupportedSubjectFormError,
)
from signmatch.oracle.base import OracleSession, ProviderData, SignerChain, TrustOracle
from signmatch.oracle.cert_store import TRUSTED_CERTIFICATE_STORE
from signmatch.oracle.pe import SignedPEFile
from signmatch.trust_status import StatusCode
from signmatch.x509 import (
    Certificate,
    CertificateName,
    CertificateStore,
    VerificationContext,
)

logger = logging.getLogger(__name__)

PE_EXTENSIONS = ("exe", "dll", "ocx")


class CertificateSignerChain(SignerChain):
    """The signer chain, represented by the certificate of the signer."""

    def __init__(self, certificate: Certificate):
        self.certificate = certificate

    def get_attribute_value(self, attribute_id: str) -> str | None:
        return self.certificate.subject.get_first_value(attribute_id)

    def __repr__(self) -> str:
        return f"<CertificateSignerChain {self.certificate}>"


class AuthenticodeProviderData(ProviderData):
    """The SignedData structure found in the file."""

    def __init__(self, asn1: cms.SignedData):
        self.asn1 = asn1

    @cached_property
    def certificates(self) -> CertificateStore:
        """All certificates included in the SignedData. These are used as
        intermediates when building the chain.
        """
        certificates = self.asn1["certificates"]
        if isinstance(certificates, core.Void):
            return CertificateStore()
        return CertificateStore(
            [
                Certificate(cert)
                for cert in certificates
                if not isinstance(cert, cms.CertificateChoices)
                or cert.name == "certificate"
            ]
        )

    @property
    def signer_infos(self) -> list[cms.SignerInfo]:
        return list(self.asn1["signer_infos"])

    def find_signer_certificate(self, signer_info: cms.SignerInfo) -> Certificate | None:
        """Returns the certificate identified by the sid of the SignerInfo, or
        :const:`None` if the SignedData does not include it.
        """

        sid = signer_info["sid"]
        if sid.name == "issuer_and_serial_number":
            return next(
                self.certificates.find_certificates(
                    issuer=CertificateName(sid.chosen["issuer"]),
                    serial_number=sid.chosen["serial_number"].native,
                ),
                None,
            )

        for certificate in self.certificates:
            if certificate.asn1.key_identifier == sid.chosen.native:
                return certificate
        return None

    def signer(self, index: int = 0) -> SignerChain | None:
        signer_infos = self.signer_infos
        if not 0 <= index < len(signer_infos):
            return None
        certificate = self.find_signer_certificate(signer_infos[index])
        if certificate is None:
            return None
        return CertificateSignerChain(certificate)


class AuthenticodeSession(OracleSession):
    """Holds the opened file and the SignedData that was found in it."""

    def __init__(
        self,
        path: pathlib.Path,
        status: int,
        file_obj: BinaryIO | None = None,
    ):
        super().__init__(path, status)
        self.file = file_obj
        self._provider_data: AuthenticodeProviderData | None = None

    def provider_data(self) -> AuthenticodeProviderData | None:
        return self._provider_data

    def _release(self) -> None:
        if self.file is not None:
            self.file.close()


def _load_signed_data(blob: bytes) -> cms.SignedData:
    content_info = cms.ContentInfo.load(blob)
    if content_info["content_type"].native != "signed_data":
        raise ParseError("ContentInfo does not contain SignedData")

    signed_data = content_info["content"]
    content_type = signed_data["encap_content_info"]["content_type"].native
    if content_type != "microsoft_spc_indirect_data_content":
        raise ParseError(
            f"SignedData.contentInfo contains {content_type},"
            " expected microsoft_spc_indirect_data_content"
        )
    if not len(signed_data["signer_infos"]):
        raise ParseError("SignedData.signerInfos does not contain a signer")
    return cast(cms.SignedData, signed_data)


def _content_bytes(signed_data: cms.SignedData) -> bytes:
    """Returns the content of the SignedData as it is hashed for the messageDigest:
    without the identifier and length.
    """
    content = signed_data["encap_content_info"]["content"]
    if hasattr(content, "parsed"):
        return bytes(content)
    return cast(bytes, content.contents)


def _chain_status(error: CertificateVerificationError) -> StatusCode:
    cause = error.__cause__
    if cause is None:
        return StatusCode.CERT_E_CHAINING
    if isinstance(cause, RevokedError):
        return StatusCode.CERT_E_REVOKED
    if isinstance(cause, PathBuildingError):
        return StatusCode.CERT_E_CHAINING
    if isinstance(cause, InvalidCertificateError):
        # certvalidator reports a self-signed certificate that is not a trust root
        # as invalid, rather than as a path building error
        if "self-signed" in str(cause):
            return StatusCode.CERT_E_CHAINING
        return StatusCode.CERT_E_WRONG_USAGE
    if isinstance(cause, PathValidationError) and "expir" in str(cause):
        return StatusCode.CERT_E_EXPIRED
    return StatusCode.TRUST_E_SUBJECT_NOT_TRUSTED


class AuthenticodeOracle(TrustOracle):
    """Verifies Authenticode signatures of PE files without platform support."""

    name = "authenticode"
    # the default trusted certificate store is loaded lazily and shared
    thread_safe = False

    def __init__(
        self,
        trusted_certificate_store: CertificateStore = TRUSTED_CERTIFICATE_STORE,
        disallowed_fingerprints: Iterable[str] = (),
        timestamp: datetime.datetime | None = None,
        revocation_mode: Literal["soft-fail", "hard-fail", "require"] = "soft-fail",
        allow_fetching: bool = False,
        fetch_timeout: int = 30,
    ):
        """
        :param trusted_certificate_store: The store with the trusted root
            certificates. Defaults to the Microsoft trusted root bundle.
        :param disallowed_fingerprints: SHA-1 fingerprints (hex) of certificates
            that are explicitly distrusted, either as signer or in its chain.
        :param timestamp: The moment at which the chain is verified. Defaults to
            the current time.
        :param revocation_mode: See :class:`signmatch.x509.VerificationContext`
        :param allow_fetching: Whether CRL and OCSP responses may be fetched.
        :param fetch_timeout: The timeout used when fetching CRL/OCSP responses
        """

        super().__init__()
        self.trusted_certificate_store = trusted_certificate_store
        self.disallowed_fingerprints = frozenset(
            fingerprint.replace(" ", "").replace(":", "").lower()
            for fingerprint in disallowed_fingerprints
        )
        self.timestamp = timestamp
        self.revocation_mode = revocation_mode
        self.allow_fetching = allow_fetching
        self.fetch_timeout = fetch_timeout

    def open(self, path: str | pathlib.Path) -> AuthenticodeSession:
        path = pathlib.Path(path)
        try:
            file_obj = path.open("rb")
        except OSError as e:
            logger.debug(f"Unable to open {path}: {e}")
            return AuthenticodeSession(path, StatusCode.CRYPT_E_FILE_ERROR)

        session = AuthenticodeSession(path, StatusCode.SUCCESS, file_obj)
        try:
            session.status = self._verify(session, file_obj)
        except Exception:
            session.close()
            raise
        logger.debug(f"Authenticode verification of {path} returned {session.status}")
        return session

    def _verify(self, session: AuthenticodeSession, file_obj: BinaryIO) -> StatusCode:
        try:
            self._verify_file(session, file_obj)
        except UnsupportedSubjectFormError as e:
            logger.debug(str(e))
            return StatusCode.TRUST_E_SUBJECT_FORM_UNKNOWN
        except AuthenticodeNotSignedError as e:
            logger.debug(str(e))
            return StatusCode.TRUST_E_NOSIGNATURE
        except SignerNotFoundError as e:
            logger.debug(str(e))
            return StatusCode.TRUST_E_NO_SIGNER_CERT
        except InvalidDigestError as e:
            logger.info(str(e))
            return StatusCode.TRUST_E_BAD_DIGEST
        except SignerInfoVerificationError as e:
            logger.info(str(e))
            return StatusCode.NTE_BAD_SIGNATURE
        except ExplicitDistrustError as e:
            logger.info(str(e))
            return StatusCode.TRUST_E_EXPLICIT_DISTRUST
        except CertificateVerificationError as e:
            logger.info(str(e))
            return _chain_status(e)
        except (ParseError, ValueError) as e:
            logger.debug(f"Unable to parse the signature of {session.path}: {e}")
            return StatusCode.CRYPT_E_ASN1_BADTAG
        except OSError as e:
            logger.debug(f"Unable to read {session.path}: {e}")
            return StatusCode.CRYPT_E_FILE_ERROR
        return StatusCode.SUCCESS

    def _verify_file(self, session: AuthenticodeSession, file_obj: BinaryIO) -> None:
        if session.path.suffix[1:].lower() not in PE_EXTENSIONS:
            raise UnsupportedSubjectFormError(
                f"{session.path.name} is not of a type that carries an embedded"
                " Authenticode signature"
            )
        pe_file = SignedPEFile(file_obj)
        if not pe_file.is_pe():
            raise UnsupportedSubjectFormError(f"{session.path.name} is not a PE file")

        try:
            blob = next(pe_file.iter_signed_data_blobs())
        except SignedPEParseError as e:
            raise AuthenticodeNotSignedError(str(e)) from e

        signed_data = _load_signed_data(blob)
        provider_data = AuthenticodeProviderData(signed_data)
        session._provider_data = provider_data

        signer_info = provider_data.signer_infos[0]
        certificate = provider_data.find_signer_certificate(signer_info)
        if certificate is None:
            raise SignerNotFoundError(
                "The certificate of the signer is not included in the SignedData"
            )

        self._verify_digests(pe_file, signed_data, signer_info)
        self._verify_signature(certificate, signer_info)

        self._check_distrust(certificate)
        context = VerificationContext(
            self.trusted_certificate_store,
            provider_data.certificates,
            timestamp=self.timestamp,
            extended_key_usages=["code_signing"],
            revocation_mode=self.revocation_mode,
            allow_fetching=self.allow_fetching,
            fetch_timeout=self.fetch_timeout,
        )
        for chain_certificate in context.verify(certificate):
            self._check_distrust(chain_certificate)

    def _verify_digests(
        self,
        pe_file: SignedPEFile,
        signed_data: cms.SignedData,
        signer_info: cms.SignerInfo,
    ) -> None:
        indirect_data = signed_data["encap_content_info"]["content"]
        if hasattr(indirect_data, "parsed"):
            indirect_data = indirect_data.parsed
        message_digest = indirect_data["message_digest"]

        digest_algorithm = hash_function(
            message_digest["digest_algorithm"],
            location="SpcIndirectDataContent.digestAlgorithm",
        )
        expected = message_digest["digest"].native
        actual = pe_file.get_authentihash(digest_algorithm)
        if expected != actual:
            raise InvalidDigestError(
                f"The expected hash does not match the digest of the file:"
                f" {expected.hex()} != {actual.hex()}"
            )

        signer_digest_algorithm = hash_function(
            signer_info["digest_algorithm"], location="SignerInfo.digestAlgorithm"
        )
        signed_attrs = signer_info["signed_attrs"]
        if isinstance(signed_attrs, core.Void):
            raise ParseError("SignerInfo does not contain authenticated attributes")
        digests = [
            attribute["values"][0].native
            for attribute in signed_attrs
            if attribute["type"].native == "message_digest"
        ]
        if len(digests) != 1:
            raise ParseError(
                "Exactly one messageDigest expected in"
                " SignerInfo.authenticatedAttributes"
            )

        content_hash = signer_digest_algorithm()
        content_hash.update(_content_bytes(signed_data))
        if content_hash.digest() != digests[0]:
            raise InvalidDigestError(
                "The messageDigest of the signer does not match the hash of the"
                " SpcIndirectDataContent"
            )

    def _verify_signature(
        self, certificate: Certificate, signer_info: cms.SignerInfo
    ) -> None:
        signed_attrs = signer_info["signed_attrs"]
        # the signature is calculated over the attributes with an explicit SET tag
        encoded = type(signed_attrs)(contents=signed_attrs.contents).dump()
        try:
            certificate.verify_signature(
                signer_info["signature"].native,
                encoded,
                hash_function(
                    signer_info["digest_algorithm"],
                    location="SignerInfo.digestAlgorithm",
                ),
                allow_legacy=True,
            )
        except CertificateVerificationError as e:
            raise SignerInfoVerificationError(
                f"Could not verify {certificate} as the signer of the authenticated"
                f" attributes: {e}"
            ) from e

    def _check_distrust(self, certificate: Certificate) -> None:
        if certificate.sha1_fingerprint in self.disallowed_fingerprints:
            raise ExplicitDistrustError(f"The certificate {certificate} is disallowed")
