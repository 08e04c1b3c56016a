from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from signmatch.dn import parse_dn

logger = logging.getLogger(__name__)


def matches(subject: Mapping[str, str], candidate: str) -> bool:
    """Determines whether a parsed certificate subject satisfies a publisher
    pattern.

    When the candidate is a Distinguished Name, every attribute in it must be present
    in the subject with exactly the same value. The subject may contain additional
    attributes. When the candidate contains no attributes at all, it is a bare name
    that must equal the subject's ``CN`` exactly.

    :param subject: The subject of the signing certificate, as parsed by
        :func:`signmatch.dn.parse_dn`
    :param candidate: The publisher pattern
    """

    candidate_map = parse_dn(candidate)
    if candidate_map:
        return all(subject.get(key) == value for key, value in candidate_map.items())
    return subject.get("CN") == candidate


def matches_any(subject: Mapping[str, str], publish_names: Iterable[str]) -> bool:
    """Returns whether the subject matches any of the publisher patterns. An empty
    list of patterns allows any publisher.
    """

    publish_names = list(publish_names)
    if not publish_names:
        return True

    for name in publish_names:
        if matches(subject, name):
            logger.debug(f"Subject matched publisher {name!r}")
            return True
    return False
