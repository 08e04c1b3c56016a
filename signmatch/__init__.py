__version__ = "0.1.0"

from .dn import parse_dn, render_dn  # noqa: E402
from .publisher import matches, matches_any  # noqa: E402
from .trust_status import TrustOutcome, TrustStatus, classify  # noqa: E402
from .verification import (  # noqa: E402
    Verifier,
    allowed_extensions,
    verify_by_publisher,
    verify_from_path,
)

__all__ = [
    "TrustOutcome",
    "TrustStatus",
    "Verifier",
    "allowed_extensions",
    "classify",
    "matches",
    "matches_any",
    "parse_dn",
    "render_dn",
    "verify_by_publisher",
    "verify_from_path",
]
