# This is a derivative, modified, work from the verify-sigs project.
# Please refer to the LICENSE file in the distribution for more
# information. Original filename: fingerprinter.py
#
# Parts of this file are licensed as follows:
#
# Copyright 2010 Google Inc. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""This module implements the relevant parts of the PECOFF_ documentation to find
the Certificate Table of a PE file, and to calculate the Authenticode hash of the
file over everything but the Certificate Table and its references.

.. _PECOFF: http://www.microsoft.com/whdc/system/platform/firmware/PECOFF.mspx
"""

from __future__ import annotations

import logging
import os
import struct
from collections.abc import Iterator
from functools import cached_property
from typing import BinaryIO, NamedTuple, cast

from signmatch._typing import HashFunction, HashObject
from signmatch.exceptions import SignedPEParseError

logger = logging.getLogger(__name__)

WIN_CERT_REVISION_2_0 = 0x200
WIN_CERT_TYPE_PKCS_SIGNED_DATA = 0x2

# offsets within the optional header, per magic: (NumberOfRvaAndSizes, Certificate
# Table entry of the Data Directory)
_DATA_DIRECTORY_OFFSETS = {
    0x10B: (92, 128),  # PE32
    0x20B: (108, 144),  # PE32+
}
_CHECKSUM_OFFSET = 64
_MINIMUM_OPTIONAL_HEADER_SIZE = _CHECKSUM_OFFSET + 4


class RelRange(NamedTuple):
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


class SignedPEFile:
    """A PE file, opened to find its Certificate Table and to calculate its
    Authenticode hash.

    :param file_obj: The file, opened in binary mode
    :param block_size: The size of the blocks in which the file is fed to a hasher
    """

    def __init__(self, file_obj: BinaryIO, block_size: int = 1000000):
        self.file = file_obj
        self.block_size = block_size

        self.file.seek(0, os.SEEK_END)
        self._filelength = self.file.tell()

    def _read_at(self, offset: int, size: int) -> bytes:
        self.file.seek(offset, os.SEEK_SET)
        data = self.file.read(size)
        if len(data) != size:
            raise SignedPEParseError(
                f"Unexpected end of file reading {size} bytes at {offset:#x}"
            )
        return data

    def _pe_offset(self) -> int:
        if self._read_at(0, 2) != b"MZ":
            raise SignedPEParseError("MZ header not found")

        # e_lfanew
        (offset,) = struct.unpack("<I", self._read_at(0x3C, 4))
        if offset >= self._filelength:
            raise SignedPEParseError(
                f"PE header location {offset:#x} is beyond the end of the file"
            )
        if self._read_at(offset, 4) != b"PE\0\0":
            raise SignedPEParseError("PE header not found")
        return cast(int, offset)

    def is_pe(self) -> bool:
        """Returns whether the file carries both the MZ and the PE header."""
        try:
            self._pe_offset()
        except SignedPEParseError:
            return False
        return True

    @cached_property
    def _omit_sections(self) -> dict[str, RelRange] | None:
        try:
            return self._parse_omit_sections()
        except SignedPEParseError as e:
            logger.debug(f"Unable to locate the Authenticode sections: {e}")
            return None

    def _parse_omit_sections(self) -> dict[str, RelRange]:
        pe_offset = self._pe_offset()
        (header_size,) = struct.unpack("<H", self._read_at(pe_offset + 20, 2))
        header_offset = pe_offset + 24
        if header_size < _MINIMUM_OPTIONAL_HEADER_SIZE:
            raise SignedPEParseError(
                f"The optional header size {header_size} does not hold a checksum"
            )
        header = self._read_at(header_offset, header_size)

        (magic,) = struct.unpack_from("<H", header)
        if magic not in _DATA_DIRECTORY_OFFSETS:
            raise SignedPEParseError(f"Unknown optional header magic {magic:#x}")
        rva_count_offset, directory_offset = _DATA_DIRECTORY_OFFSETS[magic]

        sections = {"checksum": RelRange(header_offset + _CHECKSUM_OFFSET, 4)}

        if header_size < directory_offset + 8:
            logger.debug("The optional header has no room for a Certificate Table")
            return sections
        (rva_count,) = struct.unpack_from("<I", header, rva_count_offset)
        if rva_count < 5:
            logger.debug(
                f"The Data Directory has {rva_count} entries, no Certificate Table"
            )
            return sections
        sections["datadir_certtable"] = RelRange(header_offset + directory_offset, 8)

        address, size = struct.unpack_from("<II", header, directory_offset)
        if not size:
            return sections
        if address < header_offset + header_size or address + size > self._filelength:
            logger.debug(
                f"Ignoring Certificate Table at {address:#x} of {size:#x} bytes, which"
                " is outside the file or overlaps the PE header"
            )
            return sections
        sections["certtable"] = RelRange(address, size)
        return sections

    def get_authenticode_omit_sections(self) -> dict[str, RelRange] | None:
        """Returns the ranges of the file that are excluded from the Authenticode
        hash, keyed by name:

        * ``checksum``: the checksum in the optional header;
        * ``datadir_certtable``: the Certificate Table entry of the Data Directory,
          if the header has one;
        * ``certtable``: the Certificate Table itself, if the file has one.

        :return: The ranges, or :const:`None` when this is not a PE file that can be
            hashed
        """
        return self._omit_sections

    def _iter_cert_table(self) -> Iterator[tuple[int, int, bytes]]:
        sections = self.get_authenticode_omit_sections()
        if not sections or "certtable" not in sections:
            raise SignedPEParseError(
                "The PE file does not contain a certificate table."
            )

        table = sections["certtable"]
        position = table.start
        while position < table.end:
            length, revision, certificate_type = struct.unpack(
                "<IHH", self._read_at(position, 8)
            )
            if length <= 8 or position + length > table.end:
                raise SignedPEParseError("Invalid length in certificate table header")
            yield revision, certificate_type, self._read_at(position + 8, length - 8)
            # entries are aligned on 8 bytes
            position += length + (8 - length % 8) % 8

    def iter_signed_data_blobs(self) -> Iterator[bytes]:
        """Yields the raw PKCS#7 SignedData entries of the Certificate Table.

        :raises SignedPEParseError: when the file has no usable Certificate Table,
            or the table does not contain a SignedData entry
        """

        found = False
        for revision, certificate_type, data in self._iter_cert_table():
            if revision != WIN_CERT_REVISION_2_0:
                raise SignedPEParseError(f"Unknown certificate revision {revision:#x}")
            if certificate_type == WIN_CERT_TYPE_PKCS_SIGNED_DATA:
                found = True
                yield data

        if not found:
            raise SignedPEParseError(
                "A SignedData structure was not found in the PE file's Certificate"
                " Table"
            )

    def get_authentihash(self, digest_algorithm: HashFunction) -> bytes:
        """Calculates the Authenticode hash: the digest of the entire file, except
        for the ranges returned by :meth:`get_authenticode_omit_sections`.

        :raises SignedPEParseError: when the file is not a PE file
        """

        omit_sections = self.get_authenticode_omit_sections()
        if omit_sections is None:
            raise SignedPEParseError("Unable to locate the sections to omit from hash")

        hasher = digest_algorithm()
        position = 0
        for omit in sorted(omit_sections.values()):
            if omit.start > position:
                self._feed(hasher, position, omit.start)
            position = max(position, omit.end)
        if position < self._filelength:
            self._feed(hasher, position, self._filelength)
        return cast(bytes, hasher.digest())

    def _feed(self, hasher: HashObject, start: int, end: int) -> None:
        self.file.seek(start, os.SEEK_SET)
        while start < end:
            block = self.file.read(min(self.block_size, end - start))
            if not block:
                break
            hasher.update(block)
            start += len(block)
