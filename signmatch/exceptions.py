class SignmatchError(Exception):
    pass


class TargetFileError(SignmatchError, OSError):
    """Raised when the file handed to :func:`signmatch.verify_by_publisher` is not
    acceptable for verification. These errors abort the call before the oracle is
    consulted.
    """


class TargetFileNotFoundError(TargetFileError):
    pass


class MissingExtensionError(TargetFileError):
    pass


class DisallowedExtensionError(TargetFileError):
    pass


class OracleError(SignmatchError):
    """Raised when the trust verification oracle could not be initialized."""


class OracleUnavailableError(OracleError):
    """The requested oracle is not available on this platform."""


class ParseError(SignmatchError):
    pass


class SignedPEParseError(ParseError):
    pass


class VerificationError(SignmatchError):
    pass


class CertificateVerificationError(VerificationError):
    pass


class CertificateNotTrustedVerificationError(CertificateVerificationError):
    pass


class InvalidDigestError(VerificationError):
    pass


class SignerInfoVerificationError(VerificationError):
    pass


class UnsupportedSubjectFormError(VerificationError):
    """The file is of a type that can not be verified."""


class AuthenticodeNotSignedError(VerificationError):
    pass


class SignerNotFoundError(VerificationError):
    pass


class ExplicitDistrustError(CertificateVerificationError):
    pass
