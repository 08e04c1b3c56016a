"""The trusted root certificates of the portable oracle: the Microsoft trusted root
program, as distributed by :mod:`mscerts`.

Running this module lists the certificates with their SHA-1 fingerprints, as
accepted by the ``disallowed_fingerprints`` option of
:class:`signmatch.oracle.AuthenticodeOracle`.
"""

import pathlib

import mscerts

from signmatch.x509 import FileSystemCertificateStore

CERTIFICATE_LOCATION = pathlib.Path(mscerts.where(stl=False))
TRUSTED_CERTIFICATE_STORE = FileSystemCertificateStore(
    CERTIFICATE_LOCATION, trusted=True
)


if __name__ == "__main__":
    print(f"Trusted root certificates in {CERTIFICATE_LOCATION}:")
    for certificate in sorted(TRUSTED_CERTIFICATE_STORE, key=lambda c: str(c.subject)):
        print(
            f"{certificate.sha1_fingerprint}  {certificate.valid_to:%Y-%m-%d}"
            f"  {certificate.subject}"
        )
