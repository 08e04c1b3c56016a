"""The X.500 attributes that make up the subject of a signing certificate, keyed by
the short names Windows uses (see wincrypt.h)::

    Key           Object Identifier               RDN Value Type(s)
    ---           -----------------               -----------------
    CN            szOID_COMMON_NAME               Printable, Unicode
    L             szOID_LOCALITY_NAME             Printable, Unicode
    O             szOID_ORGANIZATION_NAME         Printable, Unicode
    OU            szOID_ORGANIZATIONAL_UNIT_NAME  Printable, Unicode
    E             szOID_RSA_emailAddr             Only IA5
    C             szOID_COUNTRY_NAME              Only Printable
    S             szOID_STATE_OR_PROVINCE_NAME    Printable, Unicode
    STREET        szOID_STREET_ADDRESS            Printable, Unicode
    T             szOID_TITLE                     Printable, Unicode
    G             szOID_GIVEN_NAME                Printable, Unicode
    I             szOID_INITIALS                  Printable, Unicode
    SN            szOID_SUR_NAME                  Printable, Unicode
    DC            szOID_DOMAIN_COMPONENT          IA5, UTF8
    SERIALNUMBER  szOID_DEVICE_SERIAL_NUMBER      Only Printable
"""

from __future__ import annotations

import types
from collections.abc import Mapping

ATTRIBUTE_MAPPING: Mapping[str, str] = types.MappingProxyType(
    {
        "CN": "2.5.4.3",
        "L": "2.5.4.7",
        "O": "2.5.4.10",
        "OU": "2.5.4.11",
        "E": "1.2.840.113549.1.9.1",
        "C": "2.5.4.6",
        "S": "2.5.4.8",
        "STREET": "2.5.4.9",
        "T": "2.5.4.12",
        "G": "2.5.4.42",
        "I": "2.5.4.43",
        "SN": "2.5.4.4",
        "DC": "0.9.2342.19200300.100.1.25",
        "SERIALNUMBER": "2.5.4.5",
    }
)
"""Maps each attribute key to the dotted object identifier used to request the
attribute from the oracle. Iteration order is the order of the rendered subject.
"""

OID_TO_ATTRIBUTE: Mapping[str, str] = types.MappingProxyType(
    {oid: key for key, oid in ATTRIBUTE_MAPPING.items()}
)
"""The reverse of :data:`ATTRIBUTE_MAPPING`, used to label the components of a
certificate name.
"""
