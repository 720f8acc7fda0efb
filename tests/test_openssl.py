import pytest

from vuldbgen.appvuls import AppVulCollection
from vuldbgen.models import AppModuleVersion, Priority
from vuldbgen.openssl import get_openssl_vul_version, parse_openssl_page


@pytest.mark.parametrize(
    "line, expected",
    [
        (
            "\t\t<li>from 1.0.1 before 1.0.1u </li>",
            [AppModuleVersion("lt", "1.0.1u"), AppModuleVersion("gteq", "1.0.1")],
        ),
        (
            "<li>from 1.0.2 before 1.0.2i </li>\n<li>from 1.0.4 before 1.0.5d </li>",
            [
                AppModuleVersion("lt", "1.0.2i"),
                AppModuleVersion("gteq", "1.0.2"),
                AppModuleVersion("orlt", "1.0.5d"),
                AppModuleVersion("gteq", "1.0.4"),
            ],
        ),
    ],
)
def test_openssl_vul_version(line, expected):
    _, affected = get_openssl_vul_version("cve1", line)
    assert affected == expected


def test_openssl_fixed_versions():
    fixed, _ = get_openssl_vul_version(
        "cve1", "<li>from 1.0.2 before 1.0.2i </li>\n<li>from 1.0.4 before 1.0.5d </li>"
    )
    assert fixed == [AppModuleVersion("", "1.0.2i"), AppModuleVersion("", "1.0.5d")]


def test_openssl_no_version():
    with pytest.raises(ValueError):
        get_openssl_vul_version("cve1", "<p>nothing</p>")


def entry(cve, severity):
    return (
        f'h3 id="{cve}"><a href="https://example.com/cve">{cve}</a></h3>\n'
        "<p>A pointer issue.</p>\n"
        '<a href="https://example.com/record" target="_blank">CVE Record</a>\n'
        f'<div><span class="x">Severity</span></div><div class="y">{severity}</div>\n'
        "<ul><li>from 1.0.1 before 1.0.1u</li></ul>\n"
    )


def test_parse_openssl_page():
    body = "summary " + entry("CVE-2016-2177", "Low") + entry("CVE-2016-2178", "Moderate") \
        + entry("CVE-2016-2179", "Unknown")
    coll = AppVulCollection()
    assert parse_openssl_page(coll, body) == 2
    vul = coll.vuls["openssl:CVE-2016-2177"]
    assert vul.severity is Priority.LOW
    assert vul.link == "https://example.com/record"
    assert vul.description == "A pointer issue."
    assert vul.cves == ["CVE-2016-2177"]
    assert vul.affected_ver == [AppModuleVersion("lt", "1.0.1u"), AppModuleVersion("gteq", "1.0.1")]
    assert coll.vuls["openssl:CVE-2016-2178"].severity is Priority.MEDIUM
    assert "openssl:CVE-2016-2179" not in coll.vuls


def test_parse_openssl_page_skips_header_chunk():
    coll = AppVulCollection()
    assert parse_openssl_page(coll, "no entries at all") == 0
    assert coll.vuls == {}