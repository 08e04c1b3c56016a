from __future__ import annotations

import argparse
import logging
import pathlib
import sys
import textwrap

from signmatch.exceptions import SignmatchError
from signmatch.oracle import ORACLES, TrustOracle, default_oracle
from signmatch.trust_status import TrustStatus
from signmatch.verification import Verifier, allowed_extensions


def indent_text(*items: str, indent: int = 4) -> str:
    return "\n".join(textwrap.indent(item, " " * indent) for item in items)


def describe_status(status: TrustStatus) -> list[str]:
    return [
        f"Signed: {status.signed}",
        f"Message: {status.message}",
        f"Subject: {status.subject}",
    ]


def get_oracle(name: str) -> TrustOracle:
    if name == "auto":
        return default_oracle()
    return ORACLES[name]()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Verify the signature and publisher of signed files"
    )
    parser.add_argument(
        "filenames", nargs="*", help="Filenames to verify", type=pathlib.Path
    )
    parser.add_argument(
        "--publisher",
        "-p",
        action="append",
        default=[],
        help=(
            "Allowed publisher, either a Distinguished Name or the common name of the"
            " signer. May be given multiple times; when omitted, any publisher is"
            " allowed."
        ),
    )
    parser.add_argument(
        "--oracle",
        choices=["auto", *ORACLES],
        default="auto",
        help="The trust verification oracle to use.",
    )
    parser.add_argument(
        "--list-extensions",
        action="store_true",
        help="Print the accepted file extensions and exit.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log the details of the verification.",
    )
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if args.list_extensions:
        print(",".join(allowed_extensions()))
        return 0

    if not args.filenames:
        parser.error("at least one filename is required")

    try:
        verifier = Verifier(get_oracle(args.oracle))
    except SignmatchError as e:
        print(f"Error: {e}")
        return 1

    all_signed = True
    for filename in args.filenames:
        print(f"{filename}:")
        try:
            status = verifier.verify_by_publisher(filename, args.publisher)
        except SignmatchError as e:
            print(indent_text(f"Error: {e}"))
            all_signed = False
            continue

        print(indent_text(*describe_status(status)))
        all_signed = all_signed and status.signed

    return 0 if all_signed else 1


if __name__ == "__main__":
    sys.exit(main())
