import unittest

import pytest

from signmatch.trust_status import StatusCode, TrustOutcome, TrustStatus, classify

SECURITY_SETTINGS = (
    "Signature was not explicitly trusted by admin, and user trust has been"
    " disabled. No signature, publisher, or timestamp error."
)


class ClassifyTestCase(unittest.TestCase):
    def test_success(self):
        self.assertEqual(
            classify(0), TrustStatus(True, "Verification succeeded!", "")
        )

    def test_not_signed(self):
        for code in (
            StatusCode.TRUST_E_NOSIGNATURE,
            StatusCode.TRUST_E_SUBJECT_FORM_UNKNOWN,
            StatusCode.TRUST_E_PROVIDER_UNKNOWN,
        ):
            with self.subTest(code=code):
                self.assertEqual(
                    classify(code), TrustStatus(False, "The file is not signed.", "")
                )

    def test_explicit_distrust(self):
        self.assertEqual(
            classify(StatusCode.TRUST_E_EXPLICIT_DISTRUST).message,
            "Signature is present but is specifically disallowed by admin or user.",
        )

    def test_subject_not_trusted(self):
        self.assertEqual(
            classify(StatusCode.TRUST_E_SUBJECT_NOT_TRUSTED).message,
            "Signature is present but subject not trusted.",
        )

    def test_security_settings(self):
        self.assertEqual(
            classify(StatusCode.CRYPT_E_SECURITY_SETTINGS).message, SECURITY_SETTINGS
        )

    def test_file_error(self):
        self.assertEqual(
            classify(0x80092003).message,
            f"CRYPT_E_FILE_ERROR: {SECURITY_SETTINGS} Original Error Code: -2146885629",
        )

    def test_chaining(self):
        self.assertEqual(
            classify(0x800B010A).message,
            "CERT_E_CHAINING: There was an error relating to the certificate chain for"
            " the signed file. Check if your certificate is in Root storage. Original"
            " Error Code: -2146762486",
        )

    def test_unexpected(self):
        status = classify(StatusCode.TRUST_E_BAD_DIGEST)
        self.assertFalse(status.signed)
        self.assertEqual(
            status.message,
            "Unexpected error. Verification failed. Original Error Code: -2146869232",
        )
        self.assertEqual(status.subject, "")


@pytest.mark.parametrize(
    ("code", "outcome"),
    [
        (0, TrustOutcome.OK),
        (0x800B0100, TrustOutcome.NOT_SIGNED),
        (-2146762496, TrustOutcome.NOT_SIGNED),
        (0x800B0111, TrustOutcome.EXPLICIT_DISTRUST),
        (0x800B0004, TrustOutcome.SUBJECT_NOT_TRUSTED),
        (0x80092026, TrustOutcome.SECURITY_SETTINGS),
        (0x80092003, TrustOutcome.FILE_ERROR),
        (0x800B010A, TrustOutcome.CHAINING_ERROR),
        (0x800B0101, TrustOutcome.UNEXPECTED_ERROR),
        (1, TrustOutcome.UNEXPECTED_ERROR),
    ],
)
def test_outcome_from_code(code, outcome):
    assert TrustOutcome.from_code(code) is outcome


def test_signed_and_unsigned_forms_are_equivalent():
    for code in StatusCode:
        assert classify(code) == classify(code & 0xFFFFFFFF)


def test_only_ok_and_unexpected_extract_subject():
    assert {o for o in TrustOutcome if o.extracts_subject} == {
        TrustOutcome.OK,
        TrustOutcome.UNEXPECTED_ERROR,
    }


def test_only_success_is_signed():
    assert [code for code in StatusCode if classify(code).signed] == [
        StatusCode.SUCCESS
    ]


def test_to_dict():
    assert TrustStatus(True, "ok", 'CN="Acme",').to_dict() == {
        "signed": True,
        "message": "ok",
        "subject": 'CN="Acme",',
    }


def test_default_status():
    assert TrustStatus() == (False, "", "")
