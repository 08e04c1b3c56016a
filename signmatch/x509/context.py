from __future__ import annotations

import datetime
import logging
import pathlib
from collections.abc import Iterable, Iterator
from typing import Any

from certvalidator import CertificateValidator, ValidationContext
from typing_extensions import Literal

from signmatch.exceptions import (
    CertificateNotTrustedVerificationError,
    CertificateVerificationError,
)
from signmatch.x509.certificates import Certificate, CertificateName

logger = logging.getLogger(__name__)


class CertificateStore:
    """A collection of certificates, used either as trusted roots or as the
    intermediates that may be used to build a chain.

    :param trusted: Whether the certificates in this store are trust anchors
    """

    def __init__(
        self, certificates: Iterable[Certificate] = (), *, trusted: bool = False
    ):
        self.trusted = trusted
        self._certificates = list(certificates)

    def _all(self) -> list[Certificate]:
        return self._certificates

    def __iter__(self) -> Iterator[Certificate]:
        return iter(self._all())

    def __len__(self) -> int:
        return len(self._all())

    def __contains__(self, item: Certificate) -> bool:
        return item in self._all()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} trusted={self.trusted}>"

    def is_trusted(self, certificate: Certificate) -> bool:
        return self.trusted and certificate in self

    def find_certificates(
        self,
        *,
        subject: CertificateName | None = None,
        serial_number: int | None = None,
        issuer: CertificateName | None = None,
    ) -> Iterator[Certificate]:
        """Yields the certificates that match all given properties."""

        for certificate in self:
            if subject is not None and certificate.subject != subject:
                continue
            if serial_number is not None and certificate.serial_number != serial_number:
                continue
            if issuer is not None and certificate.issuer != issuer:
                continue
            yield certificate


class FileSystemCertificateStore(CertificateStore):
    """A store that reads its certificates from a PEM bundle, or a directory of PEM
    files, the first time it is used.
    """

    _loaded = False

    def __init__(self, location: pathlib.Path, *, trusted: bool = False):
        super().__init__(trusted=trusted)
        self.location = location

    def __repr__(self) -> str:
        return f"<FileSystemCertificateStore {self.location} trusted={self.trusted}>"

    def _all(self) -> list[Certificate]:
        if not self._loaded:
            files = (
                sorted(self.location.glob("*"))
                if self.location.is_dir()
                else [self.location]
            )
            for file in files:
                self._certificates.extend(Certificate.from_pems(file.read_bytes()))
            logger.debug(
                f"Loaded {len(self._certificates)} certificates from {self.location}"
            )
            self._loaded = True
        return self._certificates


class VerificationContext:
    """Validates the chain of a signing certificate using :mod:`certvalidator`.

    Certificates from trusted stores are used as trust anchors, all others as
    intermediates. Chains using legacy hash algorithms are accepted, and the code
    signing usage is only enforced when a certificate lists its extended key usages.

    :param stores: The certificate stores to build the chain from
    :param timestamp: The moment at which the chain must be valid, or :const:`None`
        for the current time. Must be timezone-aware.
    :param extended_key_usages: Names of the extended key usages the certificate
        must allow, e.g. ``code_signing``
    :param revocation_mode: ``soft-fail``, ``hard-fail`` or ``require``; see
        :class:`certvalidator.ValidationContext`
    :param allow_fetching: Whether CRLs and OCSP responses may be fetched
    :param fetch_timeout: The timeout in seconds when fetching
    """

    def __init__(
        self,
        *stores: CertificateStore,
        timestamp: datetime.datetime | None = None,
        extended_key_usages: Iterable[str] = (),
        revocation_mode: Literal["soft-fail", "hard-fail", "require"] = "soft-fail",
        allow_fetching: bool = False,
        fetch_timeout: int = 30,
    ):
        self.stores = list(stores)
        self.timestamp = timestamp
        self.extended_key_usages = set(extended_key_usages)
        self.revocation_mode = revocation_mode
        self.allow_fetching = allow_fetching
        self.fetch_timeout = fetch_timeout

    def is_trusted(self, certificate: Certificate) -> bool:
        return any(store.is_trusted(certificate) for store in self.stores)

    def verify(self, certificate: Certificate) -> list[Certificate]:
        """Verifies the certificate and its chain.

        :return: The chain, starting at the trust anchor and ending with the
            certificate itself.
        :raises CertificateVerificationError: when no valid chain exists; the error
            raised by :mod:`certvalidator` is set as cause.
        :raises CertificateNotTrustedVerificationError: when the chain does not start
            at a trusted certificate
        """

        # certvalidator returns its own objects, which are mapped back to ours
        known = {certificate.asn1: certificate}
        trust_roots = []
        intermediates = []
        for store in self.stores:
            for cert in store:
                known[cert.asn1] = cert
                (trust_roots if store.trusted else intermediates).append(cert.asn1)

        moment: dict[str, Any] = {}
        if self.timestamp is not None:
            moment["moment"] = self.timestamp

        validator = CertificateValidator(
            end_entity_cert=certificate.asn1,
            intermediate_certs=intermediates,
            validation_context=ValidationContext(
                trust_roots=trust_roots,
                weak_hash_algos=set(),
                revocation_mode=self.revocation_mode,
                allow_fetching=self.allow_fetching,
                crl_fetch_params={"timeout": self.fetch_timeout},
                ocsp_fetch_params={"timeout": self.fetch_timeout},
                **moment,
            ),
        )

        try:
            path = validator.validate_usage(
                key_usage=set(),
                extended_key_usage=self.extended_key_usages,
                extended_optional=True,
            )
        except Exception as e:
            raise CertificateVerificationError(
                f"Chain verification from {certificate} failed: {e}"
            ) from e

        chain = [known[cert] for cert in path]
        logger.debug(f"Built chain {' <- '.join(str(c) for c in chain)}")
        if not self.is_trusted(chain[0]):
            raise CertificateNotTrustedVerificationError(
                f"The certificate {chain[0]} is not trusted by any store."
            )
        return chain
