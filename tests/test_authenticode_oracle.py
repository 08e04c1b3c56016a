import pytest
from asn1crypto import cms, x509

from signmatch.oracle.authenticode import AuthenticodeOracle, CertificateSignerChain
from signmatch.trust_status import StatusCode, TrustStatus
from signmatch.verification import Verifier
from signmatch.x509 import Certificate, CertificateStore
from tests._utils import (
    INDIRECT_DATA_CONTENT_TYPE,
    build_certificate,
    build_pe,
    build_signed_pe,
    signing_identity,
)

SUBJECT = 'CN="Signmatch Test",O="Signmatch",C="NL",'


@pytest.fixture
def trusted_store():
    certificate, _ = signing_identity()
    return CertificateStore([Certificate(certificate)], trusted=True)


@pytest.fixture
def oracle(trusted_store):
    return AuthenticodeOracle(trusted_certificate_store=trusted_store)


def write(tmp_path, name, data):
    path = tmp_path / name
    path.write_bytes(data)
    return path


def signed_data_without_signer_certificate():
    indirect_data = {
        "data": {"type": "microsoft_spc_pe_image_data"},
        "message_digest": {
            "digest_algorithm": {"algorithm": "sha256"},
            "digest": b"\0" * 32,
        },
    }
    signer_info = {
        "version": "v1",
        "sid": {
            "issuer_and_serial_number": {
                "issuer": x509.Name.build({"common_name": "Unknown CA"}),
                "serial_number": 1,
            }
        },
        "digest_algorithm": {"algorithm": "sha256"},
        "signature_algorithm": {"algorithm": "rsassa_pkcs1v15"},
        "signature": b"\0" * 16,
    }
    return cms.ContentInfo(
        {
            "content_type": "signed_data",
            "content": {
                "version": "v1",
                "digest_algorithms": [{"algorithm": "sha256"}],
                "encap_content_info": {
                    "content_type": INDIRECT_DATA_CONTENT_TYPE,
                    "content": indirect_data,
                },
                "signer_infos": [signer_info],
            },
        }
    ).dump()


def status_of(oracle, path):
    with oracle.open(path) as session:
        return session.status


def test_missing_file(oracle, tmp_path):
    session = oracle.open(tmp_path / "missing.exe")
    assert session.status == StatusCode.CRYPT_E_FILE_ERROR
    assert session.provider_data() is None
    session.close()


def test_unsupported_extension(oracle, tmp_path):
    path = write(tmp_path, "installer.msi", build_signed_pe())
    assert status_of(oracle, path) == StatusCode.TRUST_E_SUBJECT_FORM_UNKNOWN


def test_not_a_pe_file(oracle, tmp_path):
    path = write(tmp_path, "setup.exe", b"#!/bin/sh\necho hello\n")
    assert status_of(oracle, path) == StatusCode.TRUST_E_SUBJECT_FORM_UNKNOWN


def test_unsigned_pe_file(oracle, tmp_path):
    path = write(tmp_path, "setup.exe", build_pe())
    with oracle.open(path) as session:
        assert session.status == StatusCode.TRUST_E_NOSIGNATURE
        assert session.provider_data() is None


@pytest.mark.parametrize(
    "blob",
    [
        b"this is not DER",
        cms.ContentInfo({"content_type": "data", "content": b"hello"}).dump(),
    ],
)
def test_unparsable_signature(oracle, tmp_path, blob):
    path = write(tmp_path, "setup.exe", build_pe(signed_data=blob))
    assert status_of(oracle, path) == StatusCode.CRYPT_E_ASN1_BADTAG


def test_signer_certificate_missing(oracle, tmp_path):
    path = write(
        tmp_path,
        "setup.exe",
        build_pe(signed_data=signed_data_without_signer_certificate()),
    )
    with oracle.open(path) as session:
        assert session.status == StatusCode.TRUST_E_NO_SIGNER_CERT
        assert session.provider_data() is not None
        assert session.provider_data().signer(0) is None


def test_valid_signature(oracle, tmp_path):
    path = write(tmp_path, "setup.exe", build_signed_pe())
    with oracle.open(path) as session:
        assert session.status == StatusCode.SUCCESS
        signer = session.provider_data().signer(0)
        assert isinstance(signer, CertificateSignerChain)
        assert signer.get_attribute_value("2.5.4.3") == "Signmatch Test"
        assert signer.get_attribute_value("2.5.4.10") == "Signmatch"
        assert signer.get_attribute_value("2.5.4.11") is None
        assert session.provider_data().signer(1) is None


def test_session_closes_file(oracle, tmp_path):
    path = write(tmp_path, "setup.exe", build_signed_pe())
    with oracle.open(path) as session:
        assert not session.file.closed
    assert session.file.closed


def test_modified_file(oracle, tmp_path):
    data = bytearray(build_signed_pe())
    data[400] ^= 0xFF
    path = write(tmp_path, "setup.exe", bytes(data))
    assert status_of(oracle, path) == StatusCode.TRUST_E_BAD_DIGEST


def test_signed_with_other_key(oracle, tmp_path):
    certificate, _ = signing_identity()
    _, other_key = build_certificate({"common_name": "Other"})
    path = write(
        tmp_path,
        "setup.exe",
        build_signed_pe(certificate=certificate, signing_key=other_key),
    )
    assert status_of(oracle, path) == StatusCode.NTE_BAD_SIGNATURE

    result = Verifier(oracle).verify_from_path(path)
    assert not result.signed
    assert result.message == (
        "Unexpected error. Verification failed. Original Error Code: -2146893818"
    )
    assert result.subject == SUBJECT


def test_untrusted_root(tmp_path):
    other, _ = signing_identity("Another Test")
    oracle = AuthenticodeOracle(
        trusted_certificate_store=CertificateStore([Certificate(other)], trusted=True)
    )
    path = write(tmp_path, "setup.exe", build_signed_pe())
    assert status_of(oracle, path) == StatusCode.CERT_E_CHAINING


def test_disallowed_fingerprint(trusted_store, tmp_path):
    certificate, _ = signing_identity()
    fingerprint = Certificate(certificate).sha1_fingerprint.upper()
    oracle = AuthenticodeOracle(
        trusted_certificate_store=trusted_store,
        disallowed_fingerprints=[fingerprint],
    )
    path = write(tmp_path, "setup.exe", build_signed_pe())
    assert status_of(oracle, path) == StatusCode.TRUST_E_EXPLICIT_DISTRUST


def test_verifier_with_signed_file(oracle, tmp_path):
    path = write(tmp_path, "setup.exe", build_signed_pe())
    verifier = Verifier(oracle)
    assert verifier.verify_by_publisher(path, ["Signmatch Test"]) == TrustStatus(
        True, "Verification succeeded!", SUBJECT
    )
    assert verifier.verify_by_publisher(path, ["O=Signmatch, C=NL"]).signed
    assert verifier.verify_by_publisher(path, ['CN="Other"']) == TrustStatus(
        False, "Publisher name does not match.", SUBJECT
    )


def test_verifier_with_unsigned_file(oracle, tmp_path):
    path = write(tmp_path, "setup.exe", build_pe())
    assert Verifier(oracle).verify_by_publisher(path, ["Signmatch Test"]) == (
        TrustStatus(False, "The file is not signed.", "")
    )


def test_verifier_without_signer_certificate(oracle, tmp_path):
    path = write(
        tmp_path,
        "setup.exe",
        build_pe(signed_data=signed_data_without_signer_certificate()),
    )
    assert Verifier(oracle).verify_from_path(path) == TrustStatus(
        False, "Unable to retrieve the signer from the provider data.", ""
    )


def test_oracle_is_not_thread_safe():
    assert not AuthenticodeOracle.thread_safe
