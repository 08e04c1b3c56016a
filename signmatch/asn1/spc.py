# This is a derivative, modified, work from the verify-sigs project.
# Please refer to the LICENSE file in the distribution for more
# information. Original filename: asn1/spc.py
#
# Parts of this file are licensed as follows:
#
# Copyright 2011 Google Inc. All Rights Reserved.
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

"""The subset of the Authenticode-specific ASN.1 data structures, called
Software Publishing Certificate (SPC), that is needed to obtain the signed digest of
a file. Importing this module registers the indirect data content type with
:mod:`asn1crypto.cms`.
"""

from __future__ import annotations

from asn1crypto.algos import DigestInfo
from asn1crypto.cms import ContentInfo, ContentType, EncapsulatedContentInfo
from asn1crypto.core import Any, ObjectIdentifier, Sequence

# based on https://download.microsoft.com/download/9/c/5/9c5b2167-8017-4bae-9fde-d599bac8184a/authenticode_pe.docx


class SpcAttributeType(ObjectIdentifier):  # type: ignore[misc]
    """Specific attribute type of a SPC attribute."""

    _map: dict[str, str] = {
        "1.3.6.1.4.1.311.2.1.15": "microsoft_spc_pe_image_data",
        "1.3.6.1.4.1.311.2.1.25": "microsoft_spc_cab_data",
        "1.3.6.1.4.1.311.2.1.30": "microsoft_spc_siginfo",
    }


class SpcAttributeTypeAndOptionalValue(Sequence):  # type: ignore[misc]
    """Attribute type and optional value::

        SpcAttributeTypeAndOptionalValue ::= SEQUENCE {
            type ObjectID,
            value [0] EXPLICIT ANY OPTIONAL
        }

    The value is kept unparsed, as only the digest of the indirect data is used.
    """

    _fields = [
        ("type", SpcAttributeType),
        ("value", Any, {"optional": True}),
    ]


class SpcIndirectDataContent(Sequence):  # type: ignore[misc]
    """Indirect data content::

        SpcIndirectDataContent ::= SEQUENCE {
            data SpcAttributeTypeAndOptionalValue,
            messageDigest DigestInfo
        }
    """

    _fields = [
        ("data", SpcAttributeTypeAndOptionalValue),
        ("message_digest", DigestInfo),
    ]


ContentType._map["1.3.6.1.4.1.311.2.1.4"] = "microsoft_spc_indirect_data_content"
EncapsulatedContentInfo._oid_specs["microsoft_spc_indirect_data_content"] = (
    ContentInfo._oid_specs["microsoft_spc_indirect_data_content"]
) = SpcIndirectDataContent
