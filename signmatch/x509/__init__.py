from .certificates import Certificate, CertificateName
from .context import CertificateStore, FileSystemCertificateStore, VerificationContext

__all__ = [
    "Certificate",
    "CertificateName",
    "CertificateStore",
    "FileSystemCertificateStore",
    "VerificationContext",
]
