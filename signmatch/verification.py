"""Verification of the signature of a file, and of the publisher that signed it.

The typical use is::

    >>> from signmatch import verify_by_publisher
    >>> verify_by_publisher("setup.exe", ["Microsoft Corporation"])
    TrustStatus(signed=True, message='Verification succeeded!', subject='CN="Micr...')

A file that is not signed, or not trusted, or signed by another publisher, results
in a :class:`TrustStatus` with ``signed`` set to :const:`False`; these never raise.
Exceptions are only raised when the file can not be verified at all: when it is not
an existing file with an allowed extension, or when no trust verification oracle is
available.
"""

from __future__ import annotations

import logging
import pathlib
import threading
from collections.abc import Iterable
from contextlib import nullcontext
from typing import ContextManager

from signmatch.attributes import ATTRIBUTE_MAPPING
from signmatch.dn import parse_dn, render_dn
from signmatch.exceptions import (
    DisallowedExtensionError,
    MissingExtensionError,
    TargetFileNotFoundError,
)
from signmatch.oracle import TrustOracle, default_oracle
from signmatch.oracle.base import OracleSession
from signmatch.publisher import matches_any
from signmatch.trust_status import TrustOutcome, TrustStatus, classify

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = ("exe", "cab", "dll", "ocx", "msi", "msix", "xpi")


def allowed_extensions() -> list[str]:
    """Returns the file extensions that are accepted by :func:`verify_by_publisher`,
    in a fixed order.
    """
    return list(ALLOWED_EXTENSIONS)


def validate_signed_file(path: str | pathlib.Path) -> pathlib.Path:
    """Checks that the path refers to an existing file with an allowed extension.
    The extension is compared case-sensitively.

    :raises TargetFileNotFoundError: when the path is not an existing regular file
    :raises MissingExtensionError: when the file name has no extension
    :raises DisallowedExtensionError: when the extension is not allowed
    """

    path = pathlib.Path(path)
    if not path.is_file():
        raise TargetFileNotFoundError(f'Unable to locate target file "{path}"')

    extension = path.suffix[1:]
    if not extension:
        raise MissingExtensionError("Failed to get file extension")
    if extension not in ALLOWED_EXTENSIONS:
        raise DisallowedExtensionError(
            f"Accepted file types are: {','.join(ALLOWED_EXTENSIONS)}"
        )
    return path


class Verifier:
    """Verifies files using a single trust verification oracle.

    :param oracle: The oracle to use. When omitted, :func:`default_oracle` is used,
        which may raise :exc:`signmatch.exceptions.OracleUnavailableError`.
    """

    def __init__(self, oracle: TrustOracle | None = None):
        self.oracle = oracle if oracle is not None else default_oracle()

    def __repr__(self) -> str:
        return f"<Verifier {self.oracle!r}>"

    def _serialized(self) -> ContextManager[object]:
        if self.oracle.thread_safe:
            return nullcontext()
        return self.oracle.lock

    def verify_from_path(self, path: str | pathlib.Path) -> TrustStatus:
        """Verifies the signature of the file and extracts the subject of the signer.
        The publisher is not checked.
        """

        with self._serialized(), self.oracle.open(path) as session:
            return self._status_from_session(session)

    def _status_from_session(self, session: OracleSession) -> TrustStatus:
        outcome = TrustOutcome.from_code(session.status)
        status = classify(session.status)
        if not outcome.extracts_subject:
            return status

        provider_data = session.provider_data()
        if provider_data is None:
            return TrustStatus(
                signed=False,
                message="Unable to retrieve the provider data from the trust state.",
            )

        signer = provider_data.signer(0)
        if signer is None:
            return TrustStatus(
                signed=False,
                message="Unable to retrieve the signer from the provider data.",
            )

        attributes = {}
        for key, oid in ATTRIBUTE_MAPPING.items():
            value = signer.get_attribute_value(oid)
            if value:
                attributes[key] = value
        logger.debug(f"Extracted subject attributes of {session.path}: {attributes}")

        subject = render_dn(attributes)
        if not subject:
            return status._replace(message="Sign subject info is empty.")
        return status._replace(subject=subject)

    def verify_by_publisher(
        self, path: str | pathlib.Path, publish_names: Iterable[str]
    ) -> TrustStatus:
        """Verifies the signature of the file, and that it is signed by one of the
        allowed publishers. An empty list of publishers allows any publisher.

        :param path: The file to verify; trailing whitespace is ignored
        :param publish_names: Publisher patterns, see
            :func:`signmatch.publisher.matches`
        :raises signmatch.exceptions.TargetFileError: when the file can not be
            verified
        """

        path = validate_signed_file(str(path).rstrip())
        result = self.verify_from_path(path)
        if not result.signed:
            return result

        if matches_any(parse_dn(result.subject), publish_names):
            return result

        logger.info(f"The publisher of {path} is not allowed: {result.subject}")
        return TrustStatus(
            signed=False,
            message="Publisher name does not match.",
            subject=result.subject,
        )


_default_verifier: Verifier | None = None
_default_verifier_lock = threading.Lock()


def _get_verifier(oracle: TrustOracle | None) -> Verifier:
    global _default_verifier

    if oracle is not None:
        return Verifier(oracle)
    with _default_verifier_lock:
        if _default_verifier is None:
            _default_verifier = Verifier()
        return _default_verifier


def verify_from_path(
    path: str | pathlib.Path, *, oracle: TrustOracle | None = None
) -> TrustStatus:
    """See :meth:`Verifier.verify_from_path`."""
    return _get_verifier(oracle).verify_from_path(path)


def verify_by_publisher(
    path: str | pathlib.Path,
    publish_names: Iterable[str],
    *,
    oracle: TrustOracle | None = None,
) -> TrustStatus:
    """See :meth:`Verifier.verify_by_publisher`."""
    return _get_verifier(oracle).verify_by_publisher(path, publish_names)
