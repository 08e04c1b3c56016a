from __future__ import annotations

import hashlib
from typing import cast

from asn1crypto import algos

from signmatch._typing import HashFunction
from signmatch.exceptions import ParseError

SUPPORTED_DIGEST_ALGORITHMS = frozenset({"md5", "sha1", "sha256", "sha384", "sha512"})


def hash_function(algorithm: algos.DigestAlgorithm, location: str) -> HashFunction:
    """Returns the :mod:`hashlib` constructor for a DigestAlgorithm structure.

    :param location: Where the structure was found, used in the error message
    :raises ParseError: when the algorithm is not supported
    """

    name = algorithm["algorithm"].native
    if name not in SUPPORTED_DIGEST_ALGORITHMS:
        raise ParseError(f"Unsupported digest algorithm {name} in {location}")
    if algorithm["parameters"].native:
        raise ParseError(f"Unexpected parameters for {name} in {location}")
    return cast(HashFunction, getattr(hashlib, name))
