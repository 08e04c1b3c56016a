import logging

import pytest

from signmatch.dn import parse_dn, render_dn


def test_repeated_keys_last_occurrence_wins():
    assert parse_dn("CN=TestGroup,OU=Groups,OU=UT-SLC,OU=US,DC=Company,DC=com") == {
        "CN": "TestGroup",
        "OU": "US",
        "DC": "com",
    }


def test_quoted_values():
    result = parse_dn(
        'CN="Microsoft Corporation",L="Redmond",O="Microsoft Corporation",'
        'OU="Microsoft Corporation",C="US",S="Washington"'
    )
    assert result == {
        "CN": "Microsoft Corporation",
        "L": "Redmond",
        "O": "Microsoft Corporation",
        "OU": "Microsoft Corporation",
        "C": "US",
        "S": "Washington",
    }
    assert not any('"' in value for value in result.values())


def test_separator_inside_quotes_is_literal():
    assert parse_dn('O="TotallyFakeTestDomain , Inc.",DC="Company"') == {
        "O": "TotallyFakeTestDomain , Inc.",
        "DC": "Company",
    }


def test_hex_escape():
    assert parse_dn(r"CN=Test\x20Group,OU=Groups,DC=Company")["CN"] == "Test Group"


def test_escape_without_hex_is_kept_literally():
    assert parse_dn(r"CN=a\b,O=x") == {"CN": "a\\b", "O": "x"}


def test_trailing_backslash_is_dropped():
    assert parse_dn("CN=abc\\") == {"CN": "abc"}


@pytest.mark.parametrize("separator", [",", ";", "+"])
def test_separators(separator):
    assert parse_dn(f"CN=a{separator}O=b") == {"CN": "a", "O": "b"}


def test_spaces_around_boundaries_are_elided():
    assert parse_dn("  CN = Acme Corp ,  O = Acme  ;  C = US  ") == {
        "CN": "Acme Corp",
        "O": "Acme",
        "C": "US",
    }


def test_space_before_plus_is_elided_only_in_values():
    assert parse_dn("CN=Acme +O=Acme") == {"CN": "Acme", "O": "Acme"}


def test_spaces_inside_value_are_kept():
    assert parse_dn("CN=Acme   Software   Ltd") == {"CN": "Acme   Software   Ltd"}


def test_second_equals_sign_is_part_of_value():
    assert parse_dn("CN=a=b") == {"CN": "a=b"}


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "SomeBareName", "Acme, Inc.", ",,,;;+", "=value"],
)
def test_no_pairs(raw):
    assert parse_dn(raw) == {}


def test_text_without_key_is_discarded():
    assert parse_dn("garbage,CN=Acme") == {"CN": "Acme"}


def test_discarded_text_is_logged(caplog):
    with caplog.at_level(logging.DEBUG, logger="signmatch.dn"):
        parse_dn("garbage,CN=Acme")
    assert "Discarding text 'garbage' without an attribute key" in caplog.text


def test_unterminated_quote():
    assert parse_dn('CN="Acme, Inc') == {"CN": "Acme, Inc"}


def test_render():
    assert (
        render_dn({"CN": "Microsoft Corporation", "C": "US"})
        == 'CN="Microsoft Corporation",C="US",'
    )


def test_render_empty():
    assert render_dn({}) == ""


def test_render_escapes_quotes():
    rendered = render_dn({"CN": 'The "Best" Corp'})
    assert rendered == 'CN="The "\\x22"Best"\\x22" Corp",'
    assert parse_dn(rendered) == {"CN": 'The "Best" Corp'}


@pytest.mark.parametrize(
    "raw",
    [
        "CN=TestGroup,OU=Groups,OU=UT-SLC,OU=US,DC=Company,DC=com",
        'O="TotallyFakeTestDomain , Inc.",DC="Company"',
        r"CN=Test\x20Group,OU=Groups,DC=Company",
        r"CN=a\b;O= spaced  value +C=NL",
        '"odd key"=value,E=dev@example.com',
    ],
)
def test_render_is_inverse_of_parse(raw):
    mapping = parse_dn(raw)
    assert parse_dn(render_dn(mapping)) == mapping
    assert render_dn(parse_dn(render_dn(mapping))) == render_dn(mapping)


def test_render_preserves_special_characters():
    mapping = {"CN": " leading, trailing ", "O": "a;b+c=d\\e", "weird key": "x"}
    assert parse_dn(render_dn(mapping)) == mapping
