import hashlib
import io
import struct

import pytest

from signmatch.exceptions import SignedPEParseError
from signmatch.oracle.pe import RelRange, SignedPEFile
from tests._utils import (
    CERT_DIRECTORY_OFFSET,
    CHECKSUM_OFFSET,
    OPTIONAL_HEADER_OFFSET,
    build_pe,
)

BLOB = b"0\x03\x02\x01\x01"


def pe_file(data):
    return SignedPEFile(io.BytesIO(data))


def test_is_pe():
    assert pe_file(build_pe()).is_pe()
    assert pe_file(build_pe(signed_data=BLOB)).is_pe()


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"not a pe file",
        b"MZ" + b"\0" * 58 + struct.pack("<I", 0x1000),
        b"MZ" + b"\0" * 58 + struct.pack("<I", 0x40) + b"NE\0\0" + b"\0" * 100,
    ],
)
def test_is_not_pe(data):
    assert not pe_file(data).is_pe()


def test_omit_sections_of_unsigned_file():
    assert pe_file(build_pe()).get_authenticode_omit_sections() == {
        "checksum": RelRange(CHECKSUM_OFFSET, 4),
        "datadir_certtable": RelRange(CERT_DIRECTORY_OFFSET, 8),
    }


def test_omit_sections_of_signed_file():
    unsigned = build_pe()
    signed = build_pe(signed_data=BLOB)
    sections = pe_file(signed).get_authenticode_omit_sections()
    assert sections["certtable"] == RelRange(len(unsigned), len(signed) - len(unsigned))


def test_omit_sections_of_non_pe():
    assert pe_file(b"not a pe file").get_authenticode_omit_sections() is None


def test_small_optional_header():
    data = bytearray(build_pe())
    data[OPTIONAL_HEADER_OFFSET - 4 : OPTIONAL_HEADER_OFFSET - 2] = struct.pack(
        "<H", 60
    )
    assert pe_file(bytes(data)).get_authenticode_omit_sections() is None


def test_signed_data_blobs():
    blobs = list(pe_file(build_pe(signed_data=BLOB)).iter_signed_data_blobs())
    assert blobs == [BLOB]


def test_signed_data_blobs_of_unsigned_file():
    with pytest.raises(SignedPEParseError, match="does not contain a certificate table"):
        list(pe_file(build_pe()).iter_signed_data_blobs())


def test_signed_data_blobs_without_signed_data_entry():
    data = bytearray(build_pe(signed_data=BLOB))
    # change the certificate type of the first entry to X.509
    entry = len(build_pe())
    data[entry + 6 : entry + 8] = struct.pack("<H", 1)
    with pytest.raises(SignedPEParseError, match="SignedData structure was not found"):
        list(pe_file(bytes(data)).iter_signed_data_blobs())


def test_signed_data_blobs_with_unknown_revision():
    data = bytearray(build_pe(signed_data=BLOB))
    entry = len(build_pe())
    data[entry + 4 : entry + 6] = struct.pack("<H", 0x100)
    with pytest.raises(SignedPEParseError, match="Unknown certificate revision"):
        list(pe_file(bytes(data)).iter_signed_data_blobs())


def test_authentihash_skips_omitted_sections():
    data = build_pe()
    expected = hashlib.sha256(
        data[:CHECKSUM_OFFSET]
        + data[CHECKSUM_OFFSET + 4 : CERT_DIRECTORY_OFFSET]
        + data[CERT_DIRECTORY_OFFSET + 8 :]
    ).digest()
    assert pe_file(data).get_authentihash(hashlib.sha256) == expected


def test_authentihash_is_independent_of_signature():
    assert pe_file(build_pe()).get_authentihash(hashlib.sha1) == pe_file(
        build_pe(signed_data=BLOB)
    ).get_authentihash(hashlib.sha1)


def test_authentihash_is_independent_of_checksum():
    data = bytearray(build_pe())
    data[CHECKSUM_OFFSET : CHECKSUM_OFFSET + 4] = b"\xff\xff\xff\xff"
    assert pe_file(bytes(data)).get_authentihash(hashlib.sha256) == pe_file(
        build_pe()
    ).get_authentihash(hashlib.sha256)


def test_authentihash_depends_on_body():
    assert pe_file(build_pe(body=b"\x01" * 200)).get_authentihash(
        hashlib.sha256
    ) != pe_file(build_pe(body=b"\x02" * 200)).get_authentihash(hashlib.sha256)


def test_authentihash_block_size():
    data = build_pe(signed_data=BLOB)
    assert SignedPEFile(io.BytesIO(data), block_size=7).get_authentihash(
        hashlib.sha256
    ) == pe_file(data).get_authentihash(hashlib.sha256)


def test_authentihash_of_non_pe():
    with pytest.raises(SignedPEParseError):
        pe_file(b"not a pe file").get_authentihash(hashlib.sha256)
