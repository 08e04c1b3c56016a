"""The interface of a trust verification oracle: the platform service that verifies
the signature of a file and exposes the certificate chain of its signer.

A verification is performed by opening an :class:`OracleSession` for a file. The
session holds the state of the verification and must be closed when done, which is
ensured by using it as context manager::

    with oracle.open(path) as session:
        print(session.status)
"""

from __future__ import annotations

import logging
import pathlib
import threading
from typing import Any

from typing_extensions import Self

logger = logging.getLogger(__name__)


class SignerChain:
    """The certificate chain of a single signer."""

    def get_attribute_value(self, attribute_id: str) -> str | None:
        """Returns the value of an attribute of the subject of the signing
        certificate.

        :param attribute_id: The dotted object identifier of the attribute
        :return: The value, or :const:`None` if the subject does not contain the
            attribute
        """
        raise NotImplementedError


class ProviderData:
    """The data gathered by the oracle while verifying the file."""

    def signer(self, index: int = 0) -> SignerChain | None:
        """Returns the signer at the given index, or :const:`None` if it does not
        exist.
        """
        raise NotImplementedError


class OracleSession:
    """The state of a single verification. Subclasses must implement
    :meth:`provider_data` and :meth:`_release`.

    .. attribute:: status

       The raw status code of the verification, as signed 32-bit integer.
    """

    status: int

    def __init__(self, path: pathlib.Path, status: int):
        self.path = path
        self.status = status
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def provider_data(self) -> ProviderData | None:
        """Returns the data gathered by the oracle, or :const:`None` if it is not
        available.
        """
        raise NotImplementedError

    def _release(self) -> None:
        """Releases the resources held by the oracle for this session."""

    def close(self) -> None:
        """Closes the session. Calling this more than once has no effect."""
        if self._closed:
            return
        self._closed = True
        self._release()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: Any) -> None:
        try:
            self.close()
        except Exception as e:
            # Never let the release mask the outcome of the verification
            logger.warning(f"Failed to release the trust state of {self.path}: {e!r}")


class TrustOracle:
    """Opens verification sessions for files.

    .. attribute:: thread_safe

       Whether sessions may be opened concurrently from multiple threads. When
       :const:`False`, :class:`signmatch.verification.Verifier` serializes access
       through :attr:`lock`, which is shared by every verifier using this oracle.
    """

    name = "base"
    thread_safe = False

    def __init__(self) -> None:
        self.lock = threading.Lock()

    def open(self, path: str | pathlib.Path) -> OracleSession:
        """Verifies the file and returns the session holding the result.

        :raises signmatch.exceptions.OracleError: when the oracle could not be used
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"
