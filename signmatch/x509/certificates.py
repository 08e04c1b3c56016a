from __future__ import annotations

import datetime
import logging
from collections.abc import Iterator
from functools import cached_property
from typing import Callable, cast

import asn1crypto.pem
import asn1crypto.x509
from asn1crypto import cms
from oscrypto import asymmetric
from oscrypto.errors import SignatureError

from signmatch._typing import HashFunction
from signmatch.attributes import OID_TO_ATTRIBUTE
from signmatch.exceptions import CertificateVerificationError

logger = logging.getLogger(__name__)

_SIGNATURE_VERIFIERS: dict[str, Callable[..., None]] = {
    "rsa": asymmetric.rsa_pkcs1v15_verify,
    "dsa": asymmetric.dsa_verify,
    "ec": asymmetric.ecdsa_verify,
}


class Certificate:
    """A certificate found in the SignedData of a file, or in a certificate store.

    :param asn1: The ASN.1 structure, either a bare certificate or the choice as it
        is found in a SignedData structure.
    """

    asn1: asn1crypto.x509.Certificate

    def __init__(self, asn1: asn1crypto.x509.Certificate | cms.CertificateChoices):
        if isinstance(asn1, cms.CertificateChoices):
            if asn1.name != "certificate":
                raise NotImplementedError(f"This is not a certificate, but a {asn1.name}")
            asn1 = asn1.chosen
        self.asn1 = asn1

    @classmethod
    def from_der(cls, content: bytes) -> Certificate:
        return cls(asn1crypto.x509.Certificate.load(content))

    @classmethod
    def from_pems(cls, content: bytes) -> Iterator[Certificate]:
        """Yields every certificate in PEM-armored data, e.g. a CA bundle."""
        for _type_name, _headers, der_bytes in asn1crypto.pem.unarmor(
            content, multiple=True
        ):
            yield cls.from_der(der_bytes)

    @property
    def serial_number(self) -> int:
        return cast(int, self.asn1.serial_number)

    @property
    def issuer(self) -> CertificateName:
        return CertificateName(self.asn1.issuer)

    @property
    def subject(self) -> CertificateName:
        return CertificateName(self.asn1.subject)

    @property
    def valid_from(self) -> datetime.datetime:
        return cast(datetime.datetime, self.asn1.not_valid_before)

    @property
    def valid_to(self) -> datetime.datetime:
        return cast(datetime.datetime, self.asn1.not_valid_after)

    @cached_property
    def sha1_fingerprint(self) -> str:
        """The lowercase hexadecimal SHA-1 fingerprint, as used to disallow
        certificates.
        """
        return cast(str, self.asn1.sha1_fingerprint).replace(" ", "").lower()

    @cached_property
    def _der(self) -> bytes:
        return cast(bytes, self.asn1.dump())

    def __str__(self) -> str:
        return f"{self.subject} (serial:{self.serial_number})"

    def __repr__(self) -> str:
        return f"<Certificate {self}>"

    def __hash__(self) -> int:
        return hash(self._der)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Certificate) and self._der == other._der

    def verify_signature(
        self,
        signature: bytes,
        data: bytes,
        algorithm: HashFunction,
        allow_legacy: bool = False,
    ) -> None:
        """Verifies that the signature over the data was made with the private key
        of this certificate.

        :param allow_legacy: Also accept RSA signatures over the raw hash value,
            rather than over a DigestInfo structure, as produced by old signing tools.
        :raises CertificateVerificationError: when the signature is invalid, or the
            key type is not supported
        """

        public_key = asymmetric.load_public_key(self.asn1.public_key)
        verify = _SIGNATURE_VERIFIERS.get(public_key.algorithm)
        if verify is None:
            raise CertificateVerificationError(
                f"Signature algorithm {public_key.algorithm} is unsupported for {self}"
            )

        try:
            verify(public_key, signature, data, algorithm().name)
            return
        except (SignatureError, OSError, ValueError, TypeError) as e:
            if not allow_legacy or public_key.algorithm != "rsa":
                raise CertificateVerificationError(
                    f"Invalid signature for {self}: {e}"
                ) from e
            logger.debug(f"Retrying verification of {self} with a raw hash value")

        hasher = algorithm()
        hasher.update(data)
        try:
            asymmetric.rsa_pkcs1v15_verify(
                public_key, signature, hasher.digest(), "raw"
            )
        except (SignatureError, OSError, ValueError, TypeError) as e:
            raise CertificateVerificationError(
                f"Invalid signature for {self} (legacy attempted): {e}"
            ) from e


class CertificateName:
    """The issuer or subject of a certificate."""

    def __init__(self, asn1: asn1crypto.x509.Name):
        self.asn1 = asn1

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CertificateName) and self.rdns == other.rdns

    def __hash__(self) -> int:
        return hash(self.rdns)

    def __str__(self) -> str:
        return self.dn

    @cached_property
    def rdns(self) -> tuple[tuple[str, str], ...]:
        """All ``(dotted OID, value)`` pairs, in encoding order."""
        return tuple(
            (type_value["type"].dotted, str(type_value["value"].native))
            for rdn in self.asn1.chosen
            for type_value in rdn
        )

    @property
    def dn(self) -> str:
        """A readable rendering, most specific component first, labelled with the
        attribute keys Windows uses. This is meant for diagnostics: use
        :func:`signmatch.dn.render_dn` for a subject that can be parsed back.
        """
        return ", ".join(
            f"{OID_TO_ATTRIBUTE.get(oid, oid)}={value}"
            for oid, value in reversed(self.rdns)
        )

    def get_values(self, oid: str) -> list[str]:
        return [value for type_oid, value in self.rdns if type_oid == oid]

    def get_first_value(self, oid: str) -> str | None:
        """Returns the first value of the attribute with the given dotted OID, in
        encoding order, or :const:`None`.
        """
        values = self.get_values(oid)
        return values[0] if values else None
